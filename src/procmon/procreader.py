"""Line-oriented reader for kernel text pseudo-files."""

import logging
import os
from pathlib import Path

from procmon.handlers import LineHandler, MalformedLineError

logger = logging.getLogger(__name__)


class ProcReader:
    """
    Reads /proc style text files and feeds their lines to a handler.

    Failures are logged and reported through the return value, never raised,
    so a missing or malformed source only costs that metric for one cycle.
    """

    def __init__(self, proc_root: str | os.PathLike[str] = "/proc") -> None:
        self._proc_root = Path(proc_root)

    @property
    def proc_root(self) -> Path:
        """Root of the process filesystem."""
        return self._proc_root

    def proc_path(self, *parts: str | int) -> Path:
        """Build a path below the proc root."""
        return self._proc_root.joinpath(*(str(part) for part in parts))

    def read_proc_file(
        self,
        path: str | os.PathLike[str],
        handler: LineHandler,
        max_lines: int,
        key: int = -1,
    ) -> bool:
        """
        Feed up to max_lines lines of path to handler.

        Args:
            path: File to read.
            handler: Receives each line, its index and key.
            max_lines: Upper bound on lines read.
            key: Context passed through to the handler (a pid, or -1).

        Returns:
            True if the file was read and every line handled, False otherwise.
        """
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for index, line in enumerate(f):
                    if index >= max_lines:
                        break
                    if handler.handle(line.rstrip("\n"), index, key) is False:
                        break
        except OSError as exc:
            logger.error("Unable to read %s: %s", path, exc)
            return False
        except MalformedLineError as exc:
            logger.error("Malformed line in %s: %s", path, exc)
            return False
        return True

    def get_proc_list(self) -> list[int]:
        """List the pids that currently have a directory under the proc root."""
        try:
            names = os.listdir(self._proc_root)
        except OSError as exc:
            logger.error("Unable to list %s: %s", self._proc_root, exc)
            return []
        return [int(name) for name in names if name.isdecimal()]

    @staticmethod
    def read_value(path: str | os.PathLike[str]) -> str | None:
        """
        Read a small sysfs node in one go.

        Missing nodes are normal on some hardware (no battery, no thermal
        zone), so they only get a debug message.
        """
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                return f.read().replace("\n", "")
        except OSError as exc:
            logger.debug("Skipping %s: %s", path, exc)
            return None
