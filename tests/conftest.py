"""Shared fixtures: a fake /proc and /sys tree under tmp_path."""

from pathlib import Path

import pytest


def stat_line(
    pid: int,
    name: str,
    state: str = "S",
    utime: int = 0,
    stime: int = 0,
    starttime: int = 100,
) -> str:
    """Build a /proc/<pid>/stat line with the kernel's field layout."""
    after_name = [
        state, "1", "1", "1", "0", "-1", "4194560", "0", "0", "0", "0",
        str(utime), str(stime), "0", "0", "20", "0", "1", "0",
        str(starttime), "12345678", "250",
    ]
    return f"{pid} ({name}) " + " ".join(after_name) + "\n"


class FakeSystem:
    """Writes kernel text files the way the monitor expects to find them."""

    def __init__(self, root: Path) -> None:
        self.proc = root / "proc"
        self.sys = root / "sys"
        self.proc.mkdir()
        self.sys.mkdir()

    def write_cpuinfo(self, cores: int) -> None:
        blocks = [
            f"processor\t: {i}\nBogoMIPS\t: 38.40\nFeatures\t: fp asimd\n"
            for i in range(cores)
        ]
        (self.proc / "cpuinfo").write_text("\n".join(blocks) + "Hardware\t: Qualcomm\n")

    def write_stat(self, rows: list[tuple[int, ...]]) -> None:
        """rows[0] is the aggregate; each tuple is user nice system idle iowait."""
        lines = []
        for i, ticks in enumerate(rows):
            label = "cpu" if i == 0 else f"cpu{i - 1}"
            padded = list(ticks) + [0] * (10 - len(ticks))
            lines.append(label + " " + " ".join(str(t) for t in padded))
        lines.append("intr 12345 0 0 0")
        lines.append("ctxt 987654")
        (self.proc / "stat").write_text("\n".join(lines) + "\n")

    def write_uptime(self, uptime: float, idle: float) -> None:
        (self.proc / "uptime").write_text(f"{uptime:.2f} {idle:.2f}\n")

    def write_meminfo(self, total_kb: int, free_kb: int) -> None:
        (self.proc / "meminfo").write_text(
            f"MemTotal:       {total_kb} kB\n"
            f"MemFree:        {free_kb} kB\n"
            f"MemAvailable:   {free_kb} kB\n"
            "Buffers:           1024 kB\n"
            "Cached:           20480 kB\n"
        )

    def add_process(
        self,
        pid: int,
        name: str,
        utime: int = 0,
        stime: int = 0,
        state: str = "S",
        starttime: int = 100,
        statm: tuple[int, int, int] = (1000, 100, 50),
    ) -> None:
        pid_dir = self.proc / str(pid)
        pid_dir.mkdir(exist_ok=True)
        (pid_dir / "stat").write_text(stat_line(pid, name, state, utime, stime, starttime))
        size, resident, shared = statm
        (pid_dir / "statm").write_text(f"{size} {resident} {shared} 10 0 200 0\n")

    def remove_process(self, pid: int) -> None:
        pid_dir = self.proc / str(pid)
        for child in pid_dir.iterdir():
            child.unlink()
        pid_dir.rmdir()

    def write_battery(self, **values: str) -> None:
        battery = self.sys / "class" / "power_supply" / "battery"
        battery.mkdir(parents=True, exist_ok=True)
        for name, value in values.items():
            (battery / name).write_text(f"{value}\n")

    def write_temperature(self, value: int) -> None:
        zone = self.sys / "class" / "thermal" / "thermal_zone0"
        zone.mkdir(parents=True, exist_ok=True)
        (zone / "temp").write_text(f"{value}\n")


@pytest.fixture
def fake_system(tmp_path: Path) -> FakeSystem:
    """A minimal two-core system with no processes."""
    system = FakeSystem(tmp_path)
    system.write_cpuinfo(2)
    system.write_stat([(100, 0, 50, 800, 50), (50, 0, 25, 400, 25), (50, 0, 25, 400, 25)])
    system.write_uptime(3661.0, 7000.5)
    system.write_meminfo(1_000_000, 400_000)
    return system
