"""Formatting helpers for procmon."""

import math

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY
SECONDS_PER_YEAR = 12 * SECONDS_PER_MONTH

# Largest unit first
UPTIME_UNITS: tuple[tuple[str, int], ...] = (
    ("y", SECONDS_PER_YEAR),
    ("mo", SECONDS_PER_MONTH),
    ("d", SECONDS_PER_DAY),
    ("h", SECONDS_PER_HOUR),
    ("m", SECONDS_PER_MINUTE),
    ("s", 1),
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def get_uptime_string(uptime: float) -> str:
    """
    Format elapsed seconds as e.g. "3d 4h 1m 12s".

    Months are 30 days and years are 12 such months. Zero components are
    left out, so 0 seconds formats as an empty string.
    """
    seconds = max(0, round_half_up(uptime))
    parts: list[str] = []
    for suffix, size in UPTIME_UNITS:
        value, seconds = divmod(seconds, size)
        if value:
            parts.append(f"{value}{suffix}")
    return " ".join(parts)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_kb(kb: int) -> str:
    """Format a kB count from /proc/meminfo."""
    return format_bytes(kb * 1024)
