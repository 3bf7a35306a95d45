"""
Deduplication helpers: identity keys for acquired items and the text fingerprint
used by the near-duplicate rule.
"""
from __future__ import annotations

import re
from typing import Iterable, List, TypeVar

T = TypeVar("T")

DUPLICATE_PREFIX_LENGTH = 50
MIN_PREFIX_LENGTH = 5

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def dedupe_by_key(items: Iterable[T], key_fn) -> List[T]:
    seen = set()
    result: List[T] = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def fingerprint(text: str) -> str:
    """Lowercase ASCII alphanumerics and single spaces; stored next to every raw item."""
    lowered = (text or "").lower()
    return _WHITESPACE.sub(" ", _NON_ALNUM.sub("", lowered)).strip()


def duplicate_prefix(text: str, length: int = DUPLICATE_PREFIX_LENGTH) -> str:
    """
    Fingerprint of the first ``length`` characters, or "" when too short to be meaningful.
    A prefix of an item's text is always a substring of that item's fingerprint.
    """
    prefix = fingerprint((text or "")[:length])
    if len(prefix) < MIN_PREFIX_LENGTH:
        return ""
    return prefix
