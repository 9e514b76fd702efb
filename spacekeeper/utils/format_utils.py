"""Formatting helpers for sizes and timestamps shown in logs and dialogs."""

from datetime import datetime


def timestamp() -> str:
    """Return current time as HH:MM:SS."""
    return datetime.now().strftime("%H:%M:%S")


def format_binary_size(num_bytes, precision: int = 1) -> str:
    """Format a byte count using 1024 steps (B, KiB, MiB, GiB, TiB, PiB).

    Bytes are shown without decimals; larger units use ``precision`` places.
    Invalid or negative input formats as "0 B".
    """
    try:
        value = float(num_bytes or 0)
    except (TypeError, ValueError):
        return "0 B"
    if value < 0:
        value = 0.0

    units = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1

    if idx == 0:
        return f"{int(value)} B"
    return f"{value:.{precision}f} {units[idx]}"
