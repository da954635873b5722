"""Configuration loader for volley."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

AUTH_MODES = ("password", "key")
DEFAULT_CONFIG_PATH = Path("~/volley.yml")


@dataclass(frozen=True)
class AuthConfig:
    """Resolved authentication parameters for one run."""

    mode: str = "key"
    key_path: str = ".ssh/id_rsa"  # relative to the home directory
    timeout: float = 30.0

    @property
    def key_file(self) -> Path:
        return Path.home() / self.key_path


@dataclass
class Config:
    """Main configuration for a run."""

    hosts_file: Path | None = None
    auth_mode: str = "key"
    ssh_key: str = ".ssh/id_rsa"
    timeout: float = 30.0
    record_path: Path = field(
        default_factory=lambda: Path("~/.volley/record").expanduser()
    )
    limit: int | None = None
    source_path: Path | None = None  # Path to the loaded config file

    @property
    def auth(self) -> AuthConfig:
        return AuthConfig(mode=self.auth_mode, key_path=self.ssh_key, timeout=self.timeout)

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "hosts_file" in changes:
            changes["hosts_file"] = Path(changes["hosts_file"]).expanduser()
        config = dataclasses.replace(self, **changes)
        _validate(config)
        return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load and validate configuration from a YAML file.

    With no path the default ``~/volley.yml`` is used if it exists, otherwise
    the built-in defaults apply.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH.expanduser()
        if not config_path.exists():
            return Config()

    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    config = _parse_config(raw or {})
    config.source_path = config_path
    return config


_KEYS = {"hosts_file", "auth_mode", "ssh_key", "timeout", "record_path", "limit"}


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into Config object."""
    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a mapping")

    unknown = set(raw) - _KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    defaults = Config()
    hosts_file = raw.get("hosts_file")
    record_path = raw.get("record_path")

    config = Config(
        hosts_file=Path(hosts_file).expanduser() if hosts_file else None,
        auth_mode=raw.get("auth_mode", defaults.auth_mode),
        ssh_key=raw.get("ssh_key", defaults.ssh_key),
        timeout=raw.get("timeout", defaults.timeout),
        record_path=Path(record_path).expanduser() if record_path else defaults.record_path,
        limit=raw.get("limit", defaults.limit),
    )
    _validate(config)
    return config


def _validate(config: Config) -> None:
    if config.auth_mode not in AUTH_MODES:
        raise ValueError(
            f"auth_mode must be one of {', '.join(AUTH_MODES)}, got {config.auth_mode!r}"
        )
    if isinstance(config.timeout, bool) or not isinstance(config.timeout, (int, float)):
        raise ValueError(f"timeout must be a number of seconds, got {config.timeout!r}")
    if config.timeout <= 0:
        raise ValueError("timeout must be positive")
    if config.limit is not None and (
        isinstance(config.limit, bool) or not isinstance(config.limit, int) or config.limit < 1
    ):
        raise ValueError(f"limit must be a positive integer, got {config.limit!r}")


def parse_mode(mask: str) -> int:
    """Parse an octal permission mask such as ``0755``."""
    try:
        mode = int(mask, 8)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid permission mask: {mask!r}") from None
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"Invalid permission mask: {mask!r}")
    return mode
