"""procmon - Textual front end for the sampling engine."""

import argparse
import logging
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static

from procmon.formatting import format_bytes, format_kb
from procmon.models import ProcessSnapshot, SortKey, sort_processes
from procmon.monitor import SystemMonitor, SystemSnapshot
from procmon.settings import Settings

logger = logging.getLogger(__name__)

# Summary pages selectable with "c"
COVER_LABELS = ("CPU", "Memory", "Battery")
MIN_INTERVAL = 1
MAX_INTERVAL = 60


def cover_text(page: int, snapshot: SystemSnapshot | None) -> str:
    """One-line summary for the selected page."""
    label = COVER_LABELS[page]
    if snapshot is None:
        return f"{label}: -"
    if page == 0:
        total = snapshot.cpu_usage[0] if snapshot.cpu_usage else 0
        return f"{label}: {total}%"
    if page == 1:
        used = snapshot.memory_total - snapshot.memory_free
        return f"{label}: {format_kb(used).strip()} / {format_kb(snapshot.memory_total).strip()}"
    if snapshot.battery_level is None:
        return f"{label}: n/a"
    return f"{label}: {snapshot.battery_level}% {snapshot.battery_status or ''}".rstrip()


class HeaderStats(Static):
    """Header widget showing CPU, memory, uptime and battery."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshot: SystemSnapshot | None = None
        self._cover_page = 0
        self._paused = False

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_system_info(), id="system-info"),
        )

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        """Update the statistics from a system snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def set_cover_page(self, page: int) -> None:
        self._cover_page = page
        self._refresh_display()

    def set_paused(self, paused: bool) -> None:
        self._paused = paused
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            cpu_info = self.query_one("#cpu-info", Static)
            system_info = self.query_one("#system-info", Static)
        except NoMatches:
            return  # Widget not mounted yet
        cpu_info.update(self._get_cpu_info())
        system_info.update(self._get_system_info())

    def _get_cpu_info(self) -> str:
        if self._snapshot is None or not self._snapshot.cpu_usage:
            return "Loading CPU info..."
        lines = []
        for i, usage in enumerate(self._snapshot.cpu_usage):
            bar_len = min(usage // 5, 20)
            bar = "[green]█[/green]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
            name = "All" if i == 0 else f"{i - 1}"
            # Escaped bracket for the bar container
            lines.append(f"CPU{name:<3} \\[{bar}] {usage:3d}%")
        return "\n".join(lines)

    def _get_system_info(self) -> str:
        snapshot = self._snapshot
        lines = [cover_text(self._cover_page, snapshot)]
        if snapshot is None:
            return "\n".join(lines)

        lines.append(
            f"Mem total {format_kb(snapshot.memory_total).strip()}, "
            f"free {format_kb(snapshot.memory_free).strip()}"
        )
        lines.append(f"Uptime: {snapshot.uptime or '-'}")
        if snapshot.battery_level is not None:
            extra = ", ".join(
                value
                for value in (snapshot.battery_health, snapshot.battery_technology)
                if value
            )
            lines.append(
                f"Battery: {snapshot.battery_level}% {snapshot.battery_status or ''}"
                + (f" ({extra})" if extra else "")
            )
        if snapshot.temperature is not None:
            lines.append(f"Thermal zone 0: {snapshot.temperature}")
        if self._paused:
            lines.append("[yellow]Paused[/yellow]")
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("S", key="state", width=3)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("MEM%", key="mem", width=6)
        table.add_column("RES", key="rss", width=8)
        table.add_column("SHR", key="shared", width=8)
        table.add_column("Name", key="name")

    def update_processes(self, processes: list[ProcessSnapshot]) -> None:
        """Replace the table rows with processes in the current sort order."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in sort_processes(processes, self._sort_key):
            table.add_row(
                str(proc.pid),
                proc.state,
                f"{proc.cpu_usage:3d}",
                f"{proc.memory_usage:3d}",
                format_bytes(proc.vm_rss),
                format_bytes(proc.shared_mem),
                proc.name,
                key=str(proc.pid),
            )

    @property
    def row_pids(self) -> list[int]:
        """Pids in display order."""
        table = self.query_one("#process-table", DataTable)
        return [int(row.value) for row in table.rows]


class MonitorApp(App):
    """Main procmon application."""

    TITLE = "procmon"
    SUB_TITLE = "Process and system monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #system-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("p", "pause", "Pause"),
        ("plus", "interval(1)", "Slower"),
        ("minus", "interval(-1)", "Faster"),
        ("c", "cover", "Summary"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        monitor: SystemMonitor | None = None,
        update_queue: Queue[SystemSnapshot] | None = None,
    ) -> None:
        """
        Initialize the MonitorApp.

        Args:
            settings: Persisted settings, loaded from the default path if None.
            monitor: Sampling engine; one reading the live system is built if None.
            update_queue: Queue the monitor publishes to. Must be the queue
                given to monitor when both are passed.
        """
        super().__init__()
        self._settings = settings or Settings()
        self._update_queue: Queue[SystemSnapshot] = update_queue or Queue()
        self._monitor = monitor or SystemMonitor(
            self._update_queue, poll_rate=self._settings.interval
        )
        self._last_snapshot: SystemSnapshot | None = None

    @property
    def monitor(self) -> SystemMonitor:
        return self._monitor

    @property
    def settings(self) -> Settings:
        return self._settings

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self.query_one(HeaderStats).set_cover_page(self._settings.cover_page)
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Show the most recent snapshot in the queue, if any."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: SystemSnapshot) -> None:
        self._last_snapshot = snapshot
        self.query_one(HeaderStats).update_stats(snapshot)
        self.query_one(ProcessTable).update_processes(snapshot.processes)

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        if self._last_snapshot is not None:
            process_table.update_processes(self._last_snapshot.processes)
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_pause(self) -> None:
        """Toggle sampling."""
        self._monitor.paused = not self._monitor.paused
        self.query_one(HeaderStats).set_paused(self._monitor.paused)

    def action_interval(self, step: int) -> None:
        """Change and persist the polling interval."""
        interval = int(self._settings.interval) + step
        interval = max(MIN_INTERVAL, min(MAX_INTERVAL, interval))
        if interval == self._settings.interval:
            return
        self._settings.interval = interval
        self._settings.save()
        self._monitor.poll_rate = interval
        self.notify(f"Interval: {interval}s")

    def action_cover(self) -> None:
        """Show the next summary page."""
        self._settings.cover_page = self._settings.cover_page + 1
        self._settings.save()
        self.query_one(HeaderStats).set_cover_page(self._settings.cover_page)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="procmon", description=__doc__)
    parser.add_argument("--interval", type=float, help="polling interval in seconds")
    parser.add_argument("--settings", help="settings file (YAML)")
    parser.add_argument("--log-file", help="write log messages to this file")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for procmon."""
    args = build_parser().parse_args(argv)
    if args.log_file:
        logging.basicConfig(
            filename=args.log_file,
            level=args.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        # stderr would corrupt the terminal UI
        logging.getLogger().addHandler(logging.NullHandler())

    settings = Settings(args.settings)
    if args.interval is not None:
        settings.interval = args.interval

    app = MonitorApp(settings=settings)
    app.run()


if __name__ == "__main__":
    main()
