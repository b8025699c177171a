from __future__ import annotations

from typing import List


# Placement keys the backend's print-file catalog commonly exposes
KNOWN_PLACEMENTS: List[str] = [
    "front",
    "back",
    "sleeve_left",
    "sleeve_right",
    "label_inside",
    "label_outside",
    "embroidery_front",
    "embroidery_chest_left",
    "default",
]


def normalize_placement(value: str) -> str:
    """Normalize a placement key to lowercase form without surrounding spaces."""
    return (value or "").strip().lower()


def is_known_placement(value: str) -> bool:
    return normalize_placement(value) in KNOWN_PLACEMENTS


def placement_title(value: str) -> str:
    """
    Human-readable title for a placement key.
    Example: "sleeve_left" -> "Sleeve left"
    """
    words = normalize_placement(value).replace("_", " ").split()
    if not words:
        return ""
    return " ".join(words).capitalize()
