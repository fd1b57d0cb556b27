from __future__ import annotations

import re
from typing import Optional

SEPARATOR = "/"

_WHITESPACE = re.compile(r"\s")


def normalize_path(path: Optional[str]) -> str:
    """Turn a user supplied path into a store key with no leading separator.

    Backslashes are accepted as separators. ``None``, ``""``, ``"/"`` and
    ``"."`` all denote the root and normalize to ``""``.
    """
    if not path:
        return ""
    value = path.strip().replace("\\", SEPARATOR)
    if value == ".":
        return ""
    return value.lstrip(SEPARATOR)


def sanitize_name(name: str) -> str:
    return _WHITESPACE.sub("-", name)


def is_directory_key(key: str) -> bool:
    return key.endswith(SEPARATOR)


def basename(key: str) -> str:
    trimmed = key.rstrip(SEPARATOR)
    return trimmed.rsplit(SEPARATOR, 1)[-1]


def dirname(key: str) -> str:
    """Parent prefix of ``key`` with a trailing separator, or ``""`` at root."""
    trimmed = key.rstrip(SEPARATOR)
    if SEPARATOR not in trimmed:
        return ""
    return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR


def extension(name: str) -> str:
    base = basename(name)
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1].lower()


def relative_key(key: str, parent: str) -> str:
    if parent and key.startswith(parent):
        return key[len(parent) :]
    return key


def separator_depth(relative: str) -> int:
    return relative.count(SEPARATOR)


def directory_prefix(path: Optional[str]) -> str:
    """Normalized prefix for a directory, always ending in a separator."""
    value = normalize_path(path)
    if value and not value.endswith(SEPARATOR):
        value = f"{value}{SEPARATOR}"
    return value
