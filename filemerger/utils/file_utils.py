from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from filemerger.storage.registry import CandidateFile

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def file_extension(name: str) -> str:
    """Return the text after the last dot of a file name ("" when there is none)."""
    base = name.rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1]


def has_extension(name: str) -> bool:
    """A dot followed by at least one character counts as an extension."""
    dot = name.find(".")
    return dot != -1 and dot < len(name) - 1


def is_acceptable(file: "CandidateFile") -> bool:
    """Decide whether a selected entry may join the batch.

    Hidden and system entries (leading ``.`` or ``~``) are always rejected.
    Anything else is kept if it has content, a declared type or an extension,
    so bare directory placeholders from a drop are filtered out.
    """
    name = file.name
    if not name or name.startswith((".", "~")):
        return False
    return file.byte_size > 0 or bool(file.mime_hint) or has_extension(name)


def format_file_size(size: int) -> str:
    """Human readable size with one decimal rounded half up, e.g. ``1.3 KB`` for 1280 bytes."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            break
        value /= 1024
    rounded = math.floor(value * 10 + 0.5) / 10
    text = f"{rounded:.1f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"
