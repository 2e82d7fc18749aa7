"""Verification Test: processes exiting while the monitor samples the live /proc.

Processes can terminate at any point of a cycle: between the pid listing and
the stat read, or between the stat and statm reads. The monitor must keep
publishing snapshots and drop exited pids from its table.
"""

import os
import subprocess
import sys
import time
from queue import Empty, Queue

import psutil
import pytest

from procmon.monitor import SystemMonitor, SystemSnapshot

pytestmark = pytest.mark.skipif(
    not os.path.isfile("/proc/self/stat"), reason="needs a Linux procfs"
)


def spawn_sleepers(count: int) -> list[subprocess.Popen]:
    return [
        subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        for _ in range(count)
    ]


def reap(processes: list[subprocess.Popen]) -> None:
    for proc in processes:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=5)


def next_snapshot(queue: Queue, timeout: float = 5.0) -> SystemSnapshot:
    """Drain the queue and return the newest snapshot, waiting for one if needed."""
    snapshot = queue.get(timeout=timeout)
    while True:
        try:
            snapshot = queue.get_nowait()
        except Empty:
            return snapshot


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_monitor_survives_process_termination(self):
        processes = spawn_sleepers(20)
        queue: Queue[SystemSnapshot] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        try:
            monitor.start()
            snapshot = queue.get(timeout=5.0)
            pids = {proc.pid for proc in snapshot.processes}
            assert os.getpid() in pids

            for proc in processes[::2]:
                proc.terminate()
                time.sleep(0.02)

            received = 0
            deadline = time.monotonic() + 3.0
            while time.monotonic() < deadline:
                try:
                    snapshot = queue.get(timeout=1.0)
                except Empty:
                    continue
                received += 1
                assert isinstance(snapshot.processes, list)

            assert received >= 3
            assert monitor.is_running
        finally:
            monitor.stop()
            reap(processes)

    def test_exited_processes_leave_the_table(self):
        processes = spawn_sleepers(5)
        queue: Queue[SystemSnapshot] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        try:
            monitor.start()
            # Make sure the children have been seen
            deadline = time.monotonic() + 5.0
            children = {proc.pid for proc in processes}
            while time.monotonic() < deadline:
                seen = {proc.pid for proc in next_snapshot(queue).processes}
                if children <= seen:
                    break
            else:
                pytest.fail("spawned processes never appeared")

            reap(processes)
            deadline = time.monotonic() + 5.0
            while time.monotonic() < deadline:
                seen = {proc.pid for proc in next_snapshot(queue).processes}
                if not children & seen:
                    break
            else:
                pytest.fail("exited processes were not removed")
        finally:
            monitor.stop()
            reap(processes)

    def test_own_process_matches_psutil(self):
        """Test the parsed name and state of this process agree with psutil."""
        queue: Queue[SystemSnapshot] = Queue()
        monitor = SystemMonitor(queue)
        snapshot = monitor.run_cycle()

        me = next(proc for proc in snapshot.processes if proc.pid == os.getpid())
        reference = psutil.Process(os.getpid())
        assert me.name == reference.name()[:15].replace("(", "").replace(")", "")
        assert me.vm_rss > 0
        assert 0 <= me.memory_usage <= 100
