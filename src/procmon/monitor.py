"""System monitoring engine for procmon."""

import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from queue import Queue

from procmon.formatting import get_uptime_string
from procmon.handlers import (
    CPUCountHandler,
    CPUUsageHandler,
    MemoryHandler,
    ProcessStatHandler,
    ProcessStatMHandler,
    UptimeHandler,
)
from procmon.models import CoreTickSample, ProcessSnapshot, ProcessTable
from procmon.procreader import ProcReader

logger = logging.getLogger(__name__)

CPUINFO_MAX_LINES = 4096
MEMINFO_MAX_LINES = 4
BATTERY_DIR = ("class", "power_supply", "battery")
THERMAL_ZONE_DIR = ("class", "thermal", "thermal_zone0")


@dataclass(slots=True)
class SystemSnapshot:
    """Snapshot of overall system state, last known values."""

    cpu_usage: list[int]  # index 0 is the aggregate
    memory_total: int  # kB
    memory_free: int  # kB
    uptime: str
    uptime_seconds: float
    idle_seconds: float
    processes: list[ProcessSnapshot]
    battery_health: str | None = None
    battery_technology: str | None = None
    battery_level: int | None = None
    battery_status: str | None = None
    temperature: int | None = None


class SystemMonitor:
    """
    Samples /proc and /sys and derives usage figures.

    Runs in a separate daemon thread and pushes one SystemSnapshot per cycle
    to a thread-safe Queue. All counters are owned by that thread; consumers
    only ever see the published snapshots.
    """

    def __init__(
        self,
        update_queue: Queue[SystemSnapshot],
        poll_rate: float = 2.0,
        proc_root: str | os.PathLike[str] = "/proc",
        sys_root: str | os.PathLike[str] = "/sys",
        page_size: int | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to poll the system (in seconds). Default 2.0s.
            proc_root: Mount point of the process filesystem.
            sys_root: Mount point of sysfs.
            page_size: Memory page size in bytes, queried from the OS if None.
        """
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._paused = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._abandoned: threading.Thread | None = None

        self._reader = ProcReader(proc_root)
        self._sys_root = Path(sys_root)
        self._page_size = page_size or os.sysconf("SC_PAGE_SIZE")

        self._cpu_count: int | None = None
        self._cpu_samples: list[CoreTickSample] = []
        self._cpu_usage: list[int] = []
        self._total_memory = 0
        self._free_memory = 0
        self._uptime = 0.0
        self._idle_time = 0.0
        self._processes = ProcessTable()

        self._got_battery_info = False
        self._battery_health: str | None = None
        self._battery_technology: str | None = None
        self._battery_level: int | None = None
        self._battery_status: str | None = None
        self._temperature: int | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate, picked up after the current wait."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def paused(self) -> bool:
        return self._paused

    @paused.setter
    def paused(self, value: bool) -> None:
        """Pause or resume sampling; takes effect at the next loop iteration."""
        self._paused = bool(value)

    @property
    def cpu_count(self) -> int | None:
        return self._cpu_count

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start the monitoring thread.

        Does nothing while a worker abandoned by a timed-out stop() is still
        finishing its cycle, so only one thread ever samples.
        """
        if self.is_running:
            return
        if self._abandoned is not None and self._abandoned.is_alive():
            logger.warning("Previous monitor thread still running, not starting")
            return
        self._abandoned = None

        # Each worker gets its own event so a stale one cannot be revived
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._poll_loop,
            args=(self._stop_event,),
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        """
        Stop the monitoring thread.

        The join is best effort: if a cycle is still running when the timeout
        expires the daemon thread is abandoned.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Monitor thread did not stop within %ss", timeout)
                self._abandoned = self._thread
            self._thread = None

    def _poll_loop(self, stop_event: threading.Event) -> None:
        """Main polling loop running in the background thread."""
        while not stop_event.is_set():
            if not self._paused:
                try:
                    self._queue.put(self.run_cycle())
                except Exception:
                    # Keep the loop alive, the next cycle is the retry
                    logger.exception("Sampling cycle failed")

            # Wait for poll_rate seconds or until stop is requested
            stop_event.wait(timeout=self._poll_rate)

    def run_cycle(self) -> SystemSnapshot:
        """Sample every source once and return the resulting snapshot."""
        if self._cpu_count is None:
            self._proc_processor_count()
        self._proc_uptime()
        self._proc_cpu_activity()
        self._proc_memory()
        self._proc_processes()
        self._proc_battery()
        self._proc_temperature()
        return self.snapshot()

    def snapshot(self) -> SystemSnapshot:
        """Copy the current state into a new SystemSnapshot."""
        return SystemSnapshot(
            cpu_usage=list(self._cpu_usage),
            memory_total=self._total_memory,
            memory_free=self._free_memory,
            uptime=get_uptime_string(self._uptime),
            uptime_seconds=self._uptime,
            idle_seconds=self._idle_time,
            processes=self._processes.snapshot(),
            battery_health=self._battery_health,
            battery_technology=self._battery_technology,
            battery_level=self._battery_level,
            battery_status=self._battery_status,
            temperature=self._temperature,
        )

    def _proc_processor_count(self) -> None:
        handler = CPUCountHandler()
        path = self._reader.proc_path("cpuinfo")
        if not self._reader.read_proc_file(path, handler, CPUINFO_MAX_LINES):
            logger.error("Error reading processor count")
        self._cpu_count = handler.count
        # room for the aggregate row
        self._cpu_samples = [CoreTickSample() for _ in range(handler.count + 1)]
        self._cpu_usage = [0] * (handler.count + 1)
        logger.info("Detected %d processor(s)", handler.count)

    def _proc_cpu_activity(self) -> None:
        # Work on copies so a failed read leaves usage and baselines alone
        samples = [replace(sample) for sample in self._cpu_samples]
        usage = list(self._cpu_usage)
        handler = CPUUsageHandler(samples, usage)
        path = self._reader.proc_path("stat")
        if self._reader.read_proc_file(path, handler, len(samples)):
            self._cpu_samples = samples
            self._cpu_usage = usage

    def _proc_memory(self) -> None:
        handler = MemoryHandler()
        path = self._reader.proc_path("meminfo")
        if not self._reader.read_proc_file(path, handler, MEMINFO_MAX_LINES):
            return
        if not handler.complete:
            logger.error("MemTotal/MemFree missing from %s", path)
            return
        self._total_memory = handler.total
        self._free_memory = handler.free

    def _proc_uptime(self) -> None:
        handler = UptimeHandler()
        path = self._reader.proc_path("uptime")
        # An empty file reads fine but leaves the handler without values
        if self._reader.read_proc_file(path, handler, 1) and handler.uptime is not None:
            self._uptime = handler.uptime
            self._idle_time = handler.idle
        else:
            logger.error("Unable to read uptime")

    def _proc_processes(self) -> None:
        total_ticks = self._cpu_samples[0].total_ticks if self._cpu_samples else 0

        reconciliation = self._processes.reconcile(
            self._reader.get_proc_list(),
            lambda pid: self._reader.proc_path(pid, "stat").exists(),
        )

        stat_handler = ProcessStatHandler(self._processes, total_ticks)
        statm_handler = ProcessStatMHandler(
            self._processes, self._total_memory, self._page_size
        )
        for entry in self._processes.tracked():
            pid = entry.pid
            if not self._reader.read_proc_file(
                self._reader.proc_path(pid, "stat"), stat_handler, 1, pid
            ):
                logger.error("Error reading process stat file %d", pid)
            if not self._reader.read_proc_file(
                self._reader.proc_path(pid, "statm"), statm_handler, 1, pid
            ):
                logger.error("Error reading process statm file %d", pid)

        self._processes.apply(reconciliation)
        if reconciliation.added or reconciliation.removed:
            logger.debug(
                "Processes: %d added, %d removed, %d tracked",
                len(reconciliation.added),
                len(reconciliation.removed),
                len(self._processes),
            )

    def _sys_path(self, *parts: str) -> Path:
        return self._sys_root.joinpath(*parts)

    def _proc_battery(self) -> None:
        if not self._got_battery_info:
            # health and technology never change at runtime
            self._battery_health = self._reader.read_value(
                self._sys_path(*BATTERY_DIR, "health")
            )
            self._battery_technology = self._reader.read_value(
                self._sys_path(*BATTERY_DIR, "technology")
            )
            self._got_battery_info = True

        capacity = self._reader.read_value(self._sys_path(*BATTERY_DIR, "capacity"))
        if capacity is not None:
            try:
                self._battery_level = int(capacity)
            except ValueError:
                logger.debug("Ignoring battery capacity %r", capacity)

        status = self._reader.read_value(self._sys_path(*BATTERY_DIR, "status"))
        if status is not None:
            self._battery_status = status

    def _proc_temperature(self) -> None:
        value = self._reader.read_value(self._sys_path(*THERMAL_ZONE_DIR, "temp"))
        if value is None:
            return
        try:
            self._temperature = int(value)
        except ValueError:
            logger.debug("Ignoring thermal zone value %r", value)
