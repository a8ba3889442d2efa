"""Canonical color tokens ("#RRGGBBAA", uppercase) and comparison helpers."""

from __future__ import annotations

from typing import Iterable, Optional


def normalize_color(value: Optional[str]) -> str:
    """Trim, force exactly one leading '#', uppercase. Empty stays empty."""
    if value is None:
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""
    return "#" + trimmed.lstrip("#").upper()


def normalize_colors(values: Iterable[Optional[str]]) -> list[str]:
    """Normalize a color list, dropping empty entries."""
    return [c for c in (normalize_color(v) for v in values) if c]


def colors_match(entry_colors: Iterable[str], read_colors: Iterable[str]) -> bool:
    """Order-independent equality of two color lists.

    Both sides must be non-empty after normalization.
    """
    left = normalize_colors(entry_colors)
    right = normalize_colors(read_colors)
    if not left or not right:
        return False
    if len(left) != len(right):
        return False
    return sorted(left) == sorted(right)
