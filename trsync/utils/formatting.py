"""Human readable sizes and speed unit conversion."""

from __future__ import annotations

_SIZE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_bytes(value: float) -> str:
    """Format a byte count as ``"1.5 MiB"``; zero and negatives give ``"0 B"``."""
    if value <= 0:
        return "0 B"

    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_SIZE_UNITS[unit]}"


def format_speed(value: float) -> str:
    """Format a byte rate as ``"1.5 MiB/s"``."""
    return f"{format_bytes(value)}/s"


def convert_speed_to_kib(speed: int, unit: str) -> int:
    """Convert a speed in ``KiB/s`` or ``MiB/s`` to KiB/s."""
    if unit == "MiB/s":
        return speed * 1024
    return speed
