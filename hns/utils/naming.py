"""
Naming utilities for hostname generation.

This module provides the small string helpers shared by the template loader,
the generator and the DNS checker.
"""
from typing import List, Optional


def format_sequence(value: int, length: int) -> Optional[str]:
    """Zero-pad a sequence value to ``length`` base-10 digits.

    Returns None if the value needs more digits than ``length``.
    """
    digits = str(value)
    if len(digits) > length:
        return None
    return digits.zfill(length)


def sequence_capacity(length: int) -> int:
    """Largest sequence value that still fits in ``length`` digits."""
    return 10 ** length - 1


def split_allowed_values(raw: str) -> List[str]:
    """Split a comma-separated allowed-values string, dropping empty entries."""
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def qualify_hostname(hostname: str, suffix: str = "") -> str:
    """Append the DNS suffix to bare names (no dot) before a lookup."""
    name = hostname.strip().rstrip(".")
    if suffix and "." not in name:
        return f"{name}.{suffix}"
    return name
