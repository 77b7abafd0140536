"""sysmon - Main Textual application."""

from enum import Enum
from queue import Empty, Queue

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Input, Static

from sysmon.config import Settings
from sysmon.control import KillResult, kill_from_input
from sysmon.logs import configure_logging
from sysmon.models import ProcessView, SortMode, TickResult
from sysmon.monitor import REFRESH_INTERVAL, SystemMonitor
from sysmon.ranking import rank
from sysmon.sources import CounterSource, default_source

USER_WIDTH = 10


class InteractionState(Enum):
    """What keystrokes currently mean."""

    BROWSING = "browsing"
    AWAITING_KILL_INPUT = "awaiting_kill_input"


def format_kb(size: float) -> str:
    """Format kilobytes as human-readable string."""
    for unit in ["K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def usage_bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a fixed-width markup bar."""
    filled = min(int(percent * width / 100), width)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)


class HeaderStats(Static):
    """Header widget showing CPU and memory usage."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 4;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._cpu_percent: float = 0.0
        self._memory_total_kb: int = 0
        self._memory_used_kb: int = 0
        self._sort_mode: SortMode = SortMode.CPU
        self._refresh_interval: float = REFRESH_INTERVAL

    def on_mount(self) -> None:
        self.update(self._stats_text())

    def update_stats(self, result: TickResult, sort_mode: SortMode, refresh_interval: float) -> None:
        """Update the statistics from a tick result."""
        self._cpu_percent = result.cpu_percent
        self._memory_total_kb = result.memory_total_kb
        self._memory_used_kb = result.memory_used_kb
        self._sort_mode = sort_mode
        self._refresh_interval = refresh_interval
        self.update(self._stats_text())

    def _stats_text(self) -> str:
        if self._memory_total_kb == 0:
            mem_percent = 0.0
        else:
            mem_percent = 100.0 * self._memory_used_kb / self._memory_total_kb

        # Use escaped brackets for the bar containers
        return (
            f"CPU \\[{usage_bar(self._cpu_percent, 'green')}] {self._cpu_percent:6.2f}%\n"
            f"Mem \\[{usage_bar(mem_percent, 'cyan')}] "
            f"{self._memory_used_kb} kB used / {self._memory_total_kb} kB total "
            f"({format_kb(self._memory_used_kb)}/{format_kb(self._memory_total_kb)})\n"
            f"Sort: {self._sort_mode.value.upper()}   Refresh: {self._refresh_interval:g}s"
        )


class ProcessTable(Container):
    """Container for the ranked process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, command_width: int = 40, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._command_width = command_width
        self._current_pids: list[int] = []

    @property
    def displayed_pids(self) -> list[int]:
        """Pids currently shown, top row first."""
        return list(self._current_pids)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=7)
        table.add_column("USER", key="user", width=USER_WIDTH)
        table.add_column("%CPU", key="cpu", width=6)
        table.add_column("%MEM", key="mem", width=6)
        table.add_column("RSS(kB)", key="rss", width=10)
        table.add_column("CMD", key="command")

    @property
    def row_budget(self) -> int | None:
        """Rows that fit in the table below its header, or None before layout."""
        table = self.query_one("#process-table", DataTable)
        visible = table.size.height - 1
        return visible if visible > 0 else None

    def update_processes(self, views: tuple[ProcessView, ...] | list[ProcessView], sort_mode: SortMode) -> None:
        """Rank the views and redraw the rows that fit on screen."""
        table = self.query_one("#process-table", DataTable)
        ranked = rank(views, sort_mode, self.row_budget)

        cursor_row = table.cursor_row
        table.clear()
        for view in ranked:
            table.add_row(
                Text(str(view.pid), justify="right"),
                Text(view.user[:USER_WIDTH]),
                Text(f"{view.cpu_percent:6.2f}", justify="right"),
                Text(f"{view.mem_percent:6.2f}", justify="right"),
                Text(str(view.rss_kb), justify="right"),
                Text(view.command[: self._command_width]),
                key=str(view.pid),
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

        self._current_pids = [view.pid for view in ranked]


class SysmonApp(App):
    """Main sysmon application."""

    TITLE = "sysmon"
    SUB_TITLE = "simple system monitor"
    AUTO_FOCUS = "#process-table"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
    }

    #kill-input {
        display: none;
    }
    """

    BINDINGS = [
        ("q,Q", "quit", "Quit"),
        ("s,S", "toggle_sort", "Toggle sort"),
        ("k,K", "kill", "Kill PID"),
        ("r,R", "refresh", "Refresh"),
        Binding("escape", "cancel_kill", "Cancel", show=False),
    ]

    def __init__(
        self,
        source: CounterSource | None = None,
        poll_rate: float = REFRESH_INTERVAL,
        command_width: int = 40,
    ) -> None:
        """Initialize the SysmonApp."""
        super().__init__()
        self._update_queue: Queue[TickResult] = Queue()
        self._monitor = SystemMonitor(self._update_queue, poll_rate=poll_rate, source=source)
        self._command_width = command_width
        self._sort_mode = SortMode.CPU
        self._interaction = InteractionState.BROWSING
        self._latest: TickResult | None = None
        self.last_message = ""

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    @property
    def interaction_state(self) -> InteractionState:
        return self._interaction

    @property
    def latest(self) -> TickResult | None:
        """Most recent tick result received from the monitor."""
        return self._latest

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable(command_width=self._command_width)
        yield Input(placeholder="Enter PID to kill", id="kill-input")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Make sure the sampling thread does not outlive the UI."""
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Drain the queue and render only the most recent result."""
        result = None
        while True:
            try:
                result = self._update_queue.get_nowait()
            except Empty:
                break

        if result is not None:
            self._latest = result
            self._update_ui()

    def _update_ui(self) -> None:
        """Redraw header and table from the latest result and current sort mode."""
        if self._latest is None:
            return
        try:
            header = self.query_one("#header-stats", HeaderStats)
            process_table = self.query_one(ProcessTable)
        except NoMatches:
            return  # Not mounted yet, or already torn down
        header.update_stats(self._latest, self._sort_mode, self._monitor.poll_rate)
        process_table.update_processes(self._latest.processes, self._sort_mode)

    def show_result(self, result: TickResult) -> None:
        """Render a result directly, bypassing the queue."""
        self._latest = result
        self._update_ui()

    def action_toggle_sort(self) -> None:
        """Switch between CPU and MEM ordering and re-rank immediately."""
        self._sort_mode = self._sort_mode.toggled()
        self._update_ui()
        self.notify(f"Sort: {self._sort_mode.value.upper()}")

    def action_refresh(self) -> None:
        """Ask the monitor for a tick now instead of at the end of the interval."""
        self._monitor.refresh_now()

    def action_kill(self) -> None:
        """Enter the kill prompt."""
        if self._interaction is InteractionState.AWAITING_KILL_INPUT:
            return
        self._interaction = InteractionState.AWAITING_KILL_INPUT
        kill_input = self.query_one("#kill-input", Input)
        kill_input.value = ""
        kill_input.display = True
        kill_input.focus()

    def action_cancel_kill(self) -> None:
        """Leave the kill prompt without sending anything."""
        if self._interaction is not InteractionState.AWAITING_KILL_INPUT:
            return
        self._leave_kill_prompt()
        self.last_message = "Kill cancelled"

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Send the kill request for the entered pid and go back to browsing."""
        if event.input.id != "kill-input":
            return
        event.stop()
        result = kill_from_input(event.value)
        self._leave_kill_prompt()
        self._report_kill(result)

    def _leave_kill_prompt(self) -> None:
        kill_input = self.query_one("#kill-input", Input)
        kill_input.display = False
        self._interaction = InteractionState.BROWSING
        self.query_one("#process-table", DataTable).focus()

    def _report_kill(self, result: KillResult) -> None:
        self.last_message = result.message
        self.notify(result.message, severity="information" if result.ok else "error")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for the sysmon application."""
    settings = Settings()
    configure_logging(settings.log_level, settings.log_file)
    app = SysmonApp(source=default_source(settings), command_width=settings.command_width)
    app.run()


if __name__ == "__main__":
    main()
