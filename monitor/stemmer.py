"""
Heuristic Indonesian affix stripper.

One suffix, then one prefix, first match in list order wins. An affix is only
removed while the word is longer than the affix plus three characters, so short
roots survive. False stems are expected; do not grow the lists to chase them.
"""
from __future__ import annotations

from typing import Iterable, List

SUFFIXES = ("kan", "an", "i", "nya", "ku", "mu")
PREFIXES = (
    "di", "ke", "me", "mem", "men", "meng", "meny", "pe", "pem", "pen",
    "peng", "peny", "per", "ber", "ter", "se",
)
SAFETY_MARGIN = 3


def stem(word: str) -> str:
    stemmed = word.lower()
    for suffix in SUFFIXES:
        if stemmed.endswith(suffix) and len(stemmed) > len(suffix) + SAFETY_MARGIN:
            stemmed = stemmed[: -len(suffix)]
            break
    for prefix in PREFIXES:
        if stemmed.startswith(prefix) and len(stemmed) > len(prefix) + SAFETY_MARGIN:
            stemmed = stemmed[len(prefix):]
            break
    return stemmed


def stem_all(words: Iterable[str]) -> List[str]:
    return [stem(word) for word in words]
