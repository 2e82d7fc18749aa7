"""Tests for ProcReader."""

import logging
import os

import psutil
import pytest

from procmon.handlers import LineHandler, MalformedLineError
from procmon.procreader import ProcReader


class RecordingHandler(LineHandler):
    """Records every line it is given; optionally stops or fails."""

    def __init__(self, stop_after=None, fail_on=None):
        self.lines = []
        self.stop_after = stop_after
        self.fail_on = fail_on

    def handle(self, line, index, key):
        if line == self.fail_on:
            raise MalformedLineError(line)
        self.lines.append((line, index, key))
        return self.stop_after is None or index + 1 < self.stop_after


class TestReadProcFile:
    """Tests for ProcReader.read_proc_file."""

    def test_feeds_lines_with_index_and_key(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("a\nb\nc\n")
        handler = RecordingHandler()
        assert ProcReader(tmp_path).read_proc_file(path, handler, 10, key=42)
        assert handler.lines == [("a", 0, 42), ("b", 1, 42), ("c", 2, 42)]

    def test_max_lines(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("\n".join(str(i) for i in range(100)))
        handler = RecordingHandler()
        assert ProcReader(tmp_path).read_proc_file(path, handler, 3)
        assert [line for line, _, _ in handler.lines] == ["0", "1", "2"]

    def test_handler_stops_early(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("a\nb\nc\n")
        handler = RecordingHandler(stop_after=1)
        assert ProcReader(tmp_path).read_proc_file(path, handler, 10)
        assert len(handler.lines) == 1

    def test_missing_file(self, tmp_path, caplog):
        handler = RecordingHandler()
        with caplog.at_level(logging.ERROR, logger="procmon.procreader"):
            ok = ProcReader(tmp_path).read_proc_file(tmp_path / "missing", handler, 1)
        assert ok is False
        assert handler.lines == []
        assert "missing" in caplog.text

    def test_malformed_line(self, tmp_path, caplog):
        path = tmp_path / "file"
        path.write_text("good\nbad\nnever\n")
        handler = RecordingHandler(fail_on="bad")
        with caplog.at_level(logging.ERROR, logger="procmon.procreader"):
            ok = ProcReader(tmp_path).read_proc_file(path, handler, 10)
        assert ok is False
        assert [line for line, _, _ in handler.lines] == ["good"]
        assert "Malformed" in caplog.text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("")
        handler = RecordingHandler()
        assert ProcReader(tmp_path).read_proc_file(path, handler, 1)
        assert handler.lines == []


class TestProcList:
    """Tests for ProcReader.get_proc_list."""

    def test_numeric_entries_only(self, tmp_path):
        for name in ["1", "42", "self", "sys", "1a", "net"]:
            (tmp_path / name).mkdir()
        assert sorted(ProcReader(tmp_path).get_proc_list()) == [1, 42]

    def test_missing_root(self, tmp_path):
        assert ProcReader(tmp_path / "nope").get_proc_list() == []

    @pytest.mark.skipif(not os.path.isdir("/proc/self"), reason="needs procfs")
    def test_matches_psutil_on_live_system(self):
        """Test our listing agrees with psutil on pids that outlive both calls."""
        ours = set(ProcReader().get_proc_list())
        theirs = set(psutil.pids())
        assert os.getpid() in ours
        assert 1 in ours
        assert len(ours & theirs) >= min(len(ours), len(theirs)) - 50

    def test_proc_path(self, tmp_path):
        assert ProcReader(tmp_path).proc_path(12, "stat") == tmp_path / "12" / "stat"


class TestReadValue:
    """Tests for ProcReader.read_value."""

    def test_strips_newline(self, tmp_path):
        path = tmp_path / "capacity"
        path.write_text("87\n")
        assert ProcReader.read_value(path) == "87"

    def test_missing_is_none(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR):
            assert ProcReader.read_value(tmp_path / "health") is None
        assert caplog.text == ""
