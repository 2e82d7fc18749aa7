"""
Line handlers for the kernel text sources.

Each handler consumes lines handed over by ProcReader and updates the
monitor state it was built with. Fields are validated strictly; a line that
does not have the expected shape raises MalformedLineError, which the reader
turns into a failed read.
"""

from dataclasses import dataclass

from procmon.models import CoreTickSample, ProcessTable, sanitize_name

# /proc/stat cpu columns after the label
CPU_BUSY_FIELDS = (0, 1, 2, 5, 6, 7)  # user nice system irq softirq steal
CPU_IDLE_FIELDS = (3, 4)  # idle iowait
CPU_MIN_FIELDS = 4
CPU_MAX_FIELDS = 8  # guest columns are already in user and nice, see DESIGN.md

# /proc/<pid>/stat fields after the closing parenthesis of the name
STAT_STATE = 0
STAT_UTIME = 11
STAT_STIME = 12
STAT_STARTTIME = 19
STAT_MIN_FIELDS = STAT_STIME + 1

STATM_MIN_FIELDS = 3


class MalformedLineError(ValueError):
    """A line did not match the expected kernel format."""


class LineHandler:
    """Base class for line handlers."""

    def handle(self, line: str, index: int, key: int) -> bool:
        """
        Consume one line.

        Returns:
            False when no further lines are needed.
        """
        raise NotImplementedError


def _parse_ints(fields: list[str], line: str) -> list[int]:
    try:
        return [int(value) for value in fields]
    except ValueError:
        raise MalformedLineError(f"non-numeric field in {line!r}") from None


class CPUCountHandler(LineHandler):
    """Counts logical cores in /proc/cpuinfo."""

    def __init__(self) -> None:
        self.count = 0

    def handle(self, line: str, index: int, key: int) -> bool:
        name, sep, _ = line.partition(":")
        if sep and name.strip() == "processor":
            self.count += 1
        return True


class CPUUsageHandler(LineHandler):
    """
    Computes per-core usage from the cpu rows of /proc/stat.

    Row 0 is the aggregate "cpu" line, row N+1 is "cpuN". Rows are matched
    by label because cores that are offline have no line at all.
    """

    def __init__(self, samples: list[CoreTickSample], usage: list[int]) -> None:
        self._samples = samples
        self._usage = usage

    @staticmethod
    def row_index(label: str) -> int | None:
        if not label.startswith("cpu"):
            return None
        suffix = label[3:]
        if not suffix:
            return 0
        if not suffix.isdecimal():
            return None
        return int(suffix) + 1

    def handle(self, line: str, index: int, key: int) -> bool:
        fields = line.split()
        if not fields:
            raise MalformedLineError("empty line")

        row = self.row_index(fields[0])
        if row is None:
            # past the cpu block
            return False
        if row >= len(self._samples):
            return True

        ticks = fields[1 : CPU_MAX_FIELDS + 1]
        if len(ticks) < CPU_MIN_FIELDS:
            raise MalformedLineError(f"expected {CPU_MIN_FIELDS} tick fields in {line!r}")
        values = _parse_ints(ticks, line)

        active = sum(values[i] for i in CPU_BUSY_FIELDS if i < len(values))
        total = active + sum(values[i] for i in CPU_IDLE_FIELDS if i < len(values))
        self._usage[row] = self._samples[row].update(active, total)
        return True


class MemoryHandler(LineHandler):
    """Extracts MemTotal and MemFree (kB) from /proc/meminfo."""

    def __init__(self) -> None:
        self.total: int | None = None
        self.free: int | None = None

    @property
    def complete(self) -> bool:
        return self.total is not None and self.free is not None

    def handle(self, line: str, index: int, key: int) -> bool:
        name, sep, rest = line.partition(":")
        if not sep:
            raise MalformedLineError(f"missing ':' in {line!r}")
        fields = rest.split()
        if name in ("MemTotal", "MemFree"):
            if not fields:
                raise MalformedLineError(f"missing value in {line!r}")
            value = _parse_ints(fields[:1], line)[0]
            if name == "MemTotal":
                self.total = value
            else:
                self.free = value
        return not self.complete


class UptimeHandler(LineHandler):
    """Parses the two fields of /proc/uptime."""

    def __init__(self) -> None:
        self.uptime: float | None = None
        self.idle: float | None = None

    def handle(self, line: str, index: int, key: int) -> bool:
        fields = line.split()
        if len(fields) != 2:
            raise MalformedLineError(f"expected 2 fields in {line!r}")
        try:
            self.uptime, self.idle = float(fields[0]), float(fields[1])
        except ValueError:
            raise MalformedLineError(f"non-numeric field in {line!r}") from None
        return False


@dataclass(slots=True, frozen=True)
class StatLine:
    """Fields of interest from /proc/<pid>/stat."""

    pid: int
    name: str
    state: str
    user_time: int
    sys_time: int
    start_time: int | None


def parse_stat_line(line: str) -> StatLine:
    """
    Parse /proc/<pid>/stat.

    The command name sits in parentheses and may itself contain spaces or
    parentheses, so it is delimited by the first "(" and the last ")".
    """
    open_paren = line.find("(")
    close_paren = line.rfind(")")
    if open_paren < 0 or close_paren < open_paren:
        raise MalformedLineError(f"missing command name in {line!r}")

    pid_field = line[:open_paren].strip()
    if not pid_field.isdecimal():
        raise MalformedLineError(f"bad pid in {line!r}")

    fields = line[close_paren + 1 :].split()
    if len(fields) < STAT_MIN_FIELDS:
        raise MalformedLineError(
            f"expected at least {STAT_MIN_FIELDS} fields after name in {line!r}"
        )
    state = fields[STAT_STATE]
    if len(state) != 1:
        raise MalformedLineError(f"bad state {state!r}")

    user_time, sys_time = _parse_ints(fields[STAT_UTIME : STAT_STIME + 1], line)
    start_time = None
    if len(fields) > STAT_STARTTIME:
        start_time = _parse_ints([fields[STAT_STARTTIME]], line)[0]

    return StatLine(
        pid=int(pid_field),
        name=line[open_paren : close_paren + 1],
        state=state,
        user_time=user_time,
        sys_time=sys_time,
        start_time=start_time,
    )


def parse_statm_line(line: str) -> tuple[int, int, int]:
    """Parse /proc/<pid>/statm into (size, resident, shared) page counts."""
    fields = line.split()
    if len(fields) < STATM_MIN_FIELDS:
        raise MalformedLineError(f"expected {STATM_MIN_FIELDS} fields in {line!r}")
    size, resident, shared = _parse_ints(fields[:STATM_MIN_FIELDS], line)
    return size, resident, shared


class ProcessStatHandler(LineHandler):
    """Routes /proc/<pid>/stat lines to the table entry for key."""

    def __init__(self, table: ProcessTable, total_ticks: int) -> None:
        self._table = table
        self._total_ticks = total_ticks

    def handle(self, line: str, index: int, key: int) -> bool:
        entry = self._table.get(key)
        if entry is None:
            return False
        stat = parse_stat_line(line)
        entry.update_stat(
            name=sanitize_name(stat.name),
            state=stat.state,
            user_time=stat.user_time,
            sys_time=stat.sys_time,
            total_ticks=self._total_ticks,
            start_time=stat.start_time,
        )
        return False


class ProcessStatMHandler(LineHandler):
    """Routes /proc/<pid>/statm lines to the table entry for key."""

    def __init__(self, table: ProcessTable, total_memory: int, page_size: int) -> None:
        self._table = table
        self._total_memory = total_memory
        self._page_size = page_size

    def handle(self, line: str, index: int, key: int) -> bool:
        entry = self._table.get(key)
        if entry is None:
            return False
        size, resident, shared = parse_statm_line(line)
        entry.update_memory(size, resident, shared, self._total_memory, self._page_size)
        return False
