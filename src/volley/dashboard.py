"""TUI Dashboard for volley."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Callable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker, WorkerState

from .inventory import HostRecord, HostSet

PENDING, SUCCESS, FAILED = "pending", "success", "failed"

STATUS_ICONS = {
    PENDING: ("…", "yellow"),
    SUCCESS: ("✔", "green"),
    FAILED: ("✘", "red"),
}


class HostPanel(Static):
    """A panel displaying the outcome of a single host."""

    status: reactive[str] = reactive(PENDING)

    def __init__(self, host: HostRecord, index: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.host = host
        self.index = index

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.index}")
        yield RichLog(
            id=f"log-{self.index}",
            highlight=True,
            markup=True,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        header = f"[{color}]{icon}[/] [{color}][bold]{self.host.target}[/bold][/]"
        if self.status != PENDING:
            header += f" [dim]{self.host.duration:.3f}s[/]"
        return header

    def watch_status(self, status: str) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.index}", Label)
        header.update(self._get_header())

    def show_outcome(self) -> None:
        """Render the finished host's output."""
        log = self.query_one(f"#log-{self.index}", RichLog)
        if self.host.stdout:
            log.write(Text(self.host.stdout))
        if self.host.stderr:
            for line in self.host.stderr.splitlines():
                log.write(Text(f"STDERR: {line}", style="red"))
        if self.host.error:
            log.write(Text(f"ERROR: {self.host.error}", style="bold red"))
        self.status = SUCCESS if self.host.succeeded else FAILED


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} hosts complete, "
            f"{self.failed} failed | {status} | Press 'q' to quit"
        )


@dataclass
class HostFinished(Message):
    """Message posted when a host is published on the completion stream."""
    host: HostRecord


class Dashboard(App):
    """Shows every host of a run and fills in outcomes as they arrive."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 3;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 8;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        hosts: HostSet,
        start: Callable[[], AsyncIterator[HostRecord]],
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.hosts = hosts
        self.start = start
        self.finished = False
        self.panels: dict[int, HostPanel] = {}
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, host in enumerate(self.hosts):
            panel = HostPanel(host, index, id=f"panel-{index}")
            self.panels[id(host)] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start the run when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.hosts)
        self._worker = self.run_worker(self._consume(), exclusive=True)

    async def _consume(self) -> None:
        async for host in self.start():
            self.post_message(HostFinished(host))

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == WorkerState.SUCCESS:
            self.finished = True
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def on_host_finished(self, message: HostFinished) -> None:
        panel = self.panels.get(id(message.host))
        if panel is not None:
            panel.show_outcome()

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.completed += 1
        if not message.host.succeeded:
            status_bar.failed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
