"""Data models for procmon."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from procmon.formatting import round_half_up

PACKAGE_PREFIX = "harbour-"
PACKAGE_SUFFIX = "(h)"

# /proc/meminfo reports kB; resident sizes are bytes.
MEMORY_SCALE = 1000


def sanitize_name(raw: str) -> str:
    """
    Clean up a kernel command name.

    "(harbour-foo)" becomes "foo(h)", "(bar)" becomes "bar".
    """
    name = raw.replace("(", "").replace(")", "")
    if name.startswith(PACKAGE_PREFIX):
        name = name[len(PACKAGE_PREFIX):] + PACKAGE_SUFFIX
    return name


def usage_percent(delta: int, total_delta: int) -> int:
    """Percentage of delta in total_delta, 0 when there is nothing to compare."""
    if total_delta <= 0 or delta <= 0:
        return 0
    return min(100, round_half_up(100.0 * delta / total_delta))


class EntryStatus(Enum):
    """Lifecycle of a tracked process entry."""

    NEW = "new"  # no sample read yet
    TRACKED = "tracked"
    PENDING_REMOVAL = "pending_removal"


@dataclass(slots=True)
class CoreTickSample:
    """Tick counters of one /proc/stat row (row 0 is the aggregate)."""

    active_ticks: int = 0
    total_ticks: int = 0
    sampled: bool = False

    def update(self, active_ticks: int, total_ticks: int) -> int:
        """Store a new sample and return the usage since the previous one."""
        usage = 0
        if self.sampled:
            usage = usage_percent(
                active_ticks - self.active_ticks,
                total_ticks - self.total_ticks,
            )
        self.active_ticks = active_ticks
        self.total_ticks = total_ticks
        self.sampled = True
        return usage


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process state."""

    pid: int
    name: str
    state: str  # 'R', 'S', 'Z', 'D', etc.
    cpu_usage: int  # 0 - 100
    memory_usage: int  # 0 - 100
    vm_size: int  # Bytes
    vm_rss: int  # Bytes
    shared_mem: int  # Bytes


@dataclass(slots=True)
class ProcessEntry:
    """Latest parsed attributes of one process, updated in place every cycle."""

    pid: int
    name: str = ""
    state: str = "?"
    user_time: int = 0
    sys_time: int = 0
    start_time: int | None = None
    baseline_ticks: int | None = None  # aggregate total ticks at last sample
    cpu_usage: int = 0
    vm_size: int = 0
    vm_rss: int = 0
    shared_mem: int = 0
    memory_usage: int = 0
    status: EntryStatus = EntryStatus.NEW

    @property
    def cpu_time(self) -> int:
        return self.user_time + self.sys_time

    def update_stat(
        self,
        name: str,
        state: str,
        user_time: int,
        sys_time: int,
        total_ticks: int,
        start_time: int | None = None,
    ) -> None:
        """
        Apply a parsed stat line.

        total_ticks is the aggregate /proc/stat total for this cycle. Usage is
        only computed once a previous sample exists. A changed start time means
        the kernel recycled the pid, so the old baseline is discarded.
        """
        if (
            start_time is not None
            and self.start_time is not None
            and start_time != self.start_time
        ):
            self.baseline_ticks = None

        old_cpu_time = self.cpu_time
        self.name = name
        self.state = state
        self.user_time = user_time
        self.sys_time = sys_time
        self.start_time = start_time

        if self.baseline_ticks is None:
            self.cpu_usage = 0
        else:
            self.cpu_usage = usage_percent(
                self.cpu_time - old_cpu_time, total_ticks - self.baseline_ticks
            )
        self.baseline_ticks = total_ticks
        self.status = EntryStatus.TRACKED

    def update_memory(
        self,
        vm_size_pages: int,
        rss_pages: int,
        shared_pages: int,
        total_memory: int,
        page_size: int,
    ) -> None:
        """Apply a parsed statm line; total_memory is in kB."""
        self.vm_size = vm_size_pages * page_size
        self.vm_rss = rss_pages * page_size
        self.shared_mem = shared_pages * page_size
        self.memory_usage = usage_percent(self.vm_rss, total_memory * MEMORY_SCALE)

    def snapshot(self) -> ProcessSnapshot:
        return ProcessSnapshot(
            pid=self.pid,
            name=self.name,
            state=self.state,
            cpu_usage=self.cpu_usage,
            memory_usage=self.memory_usage,
            vm_size=self.vm_size,
            vm_rss=self.vm_rss,
            shared_mem=self.shared_mem,
        )


@dataclass(slots=True, frozen=True)
class Reconciliation:
    """Outcome of matching the table against the live pid list."""

    added: tuple[int, ...]
    removed: tuple[int, ...]


@dataclass
class ProcessTable:
    """Tracked processes keyed by pid."""

    entries: dict[int, ProcessEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, pid: object) -> bool:
        return pid in self.entries

    def __getitem__(self, pid: int) -> ProcessEntry:
        return self.entries[pid]

    def get(self, pid: int) -> ProcessEntry | None:
        return self.entries.get(pid)

    def pids(self) -> list[int]:
        return list(self.entries)

    def reconcile(
        self,
        live_pids: Iterable[int],
        stat_exists: Callable[[int], bool],
    ) -> Reconciliation:
        """
        Add entries for new pids and mark entries whose stat file is gone.

        Marked entries stay in the table until apply() so the caller can
        finish iterating first.
        """
        added = []
        for pid in live_pids:
            if pid not in self.entries:
                self.entries[pid] = ProcessEntry(pid=pid)
                added.append(pid)

        removed = []
        for pid, entry in self.entries.items():
            if not stat_exists(pid):
                entry.status = EntryStatus.PENDING_REMOVAL
                removed.append(pid)

        return Reconciliation(added=tuple(added), removed=tuple(removed))

    def tracked(self) -> list[ProcessEntry]:
        """Entries that are not waiting to be removed."""
        return [
            entry
            for entry in self.entries.values()
            if entry.status is not EntryStatus.PENDING_REMOVAL
        ]

    def apply(self, reconciliation: Reconciliation) -> None:
        """Drop the entries a reconciliation marked for removal."""
        for pid in reconciliation.removed:
            self.entries.pop(pid, None)

    def snapshot(self) -> list[ProcessSnapshot]:
        return [entry.snapshot() for entry in self.entries.values()]


class SortKey(Enum):
    """Sort keys for process lists."""

    CPU = "cpu"
    MEM = "mem"
    NAME = "name"


def sort_processes(
    processes: Iterable[ProcessSnapshot], key: SortKey
) -> list[ProcessSnapshot]:
    """
    Order processes for display.

    CPU and MEM sort by usage descending with ties going to the higher pid;
    NAME sorts alphabetically ignoring case.
    """
    if key is SortKey.NAME:
        return sorted(processes, key=lambda p: p.name.lower())
    if key is SortKey.MEM:
        return sorted(processes, key=lambda p: (p.memory_usage, p.pid), reverse=True)
    return sorted(processes, key=lambda p: (p.cpu_usage, p.pid), reverse=True)
