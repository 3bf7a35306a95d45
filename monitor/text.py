"""
Text cleaning, normalization and tokenization shared by the quality gate and enrichment.
"""
from __future__ import annotations

import re
from typing import Iterable, List

URL_PATTERN = re.compile(r"https?://\S+")
MENTION_PATTERN = re.compile(r"@\w+")
HASHTAG_PATTERN = re.compile(r"#(\w+)")
_PUNCTUATION = re.compile(r"[^\w\s]")
_DIGITS = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    {
        # pronouns
        "aku", "saya", "kami", "kita", "anda", "kamu", "dia", "beliau", "mereka",
        "gue", "gua", "gw", "lu", "lo", "elo", "nya",
        # conjunctions and prepositions
        "yang", "dan", "atau", "tapi", "tetapi", "namun", "serta", "dengan", "untuk",
        "dari", "pada", "kepada", "bagi", "oleh", "dalam", "tentang", "antara",
        "karena", "sebab", "jika", "kalau", "bila", "agar", "supaya", "sehingga",
        "hingga", "sampai", "sejak", "ketika", "saat", "selama", "setelah", "sebelum",
        "sambil", "seperti", "bahwa", "yaitu", "yakni", "walau", "walaupun", "meski",
        "meskipun",
        # determiners and demonstratives
        "ini", "itu", "sini", "situ", "sana", "tersebut", "para", "sang", "suatu",
        "setiap", "semua", "segala", "beberapa", "banyak", "sedikit",
        # auxiliaries, adverbs and particles
        "adalah", "ialah", "merupakan", "akan", "sudah", "telah", "sedang", "masih",
        "pernah", "harus", "bisa", "dapat", "boleh", "mau", "ingin", "juga", "pun",
        "hanya", "saja", "lagi", "sangat", "sekali", "lebih", "paling", "agak",
        "tidak", "bukan", "belum", "jangan", "tak", "nggak", "enggak", "gak",
        "lah", "kah", "dong", "deh", "sih", "kok", "kan", "nih", "tuh", "loh", "yah",
        "apa", "siapa", "mana", "kapan", "mengapa", "kenapa", "bagaimana", "berapa",
        "ada", "adanya", "jadi", "menjadi", "maka", "lalu", "kemudian", "terus",
        "begitu", "demikian", "sama", "secara", "hal", "orang",
        # chat shorthand
        "yg", "dgn", "utk", "krn", "tdk", "gk", "aja", "udah", "udh", "sdh", "klo",
        "kalo", "emang", "memang", "banget", "bgt",
    }
)


def clean_text(text: str) -> str:
    """Remove URLs and @mentions and collapse whitespace, keeping case and punctuation."""
    cleaned = URL_PATTERN.sub("", text or "")
    cleaned = MENTION_PATTERN.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def normalize_text(text: str) -> str:
    """Lowercase, punctuation to spaces, digits removed, whitespace collapsed."""
    normalized = (text or "").lower()
    normalized = _PUNCTUATION.sub(" ", normalized)
    normalized = _DIGITS.sub("", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def tokenize(text: str, min_length: int = MIN_TOKEN_LENGTH) -> List[str]:
    normalized = normalize_text(text)
    return [token for token in normalized.split() if len(token) >= min_length]


def remove_stopwords(tokens: Iterable[str], stopwords: frozenset = STOPWORDS) -> List[str]:
    return [token for token in tokens if token not in stopwords]


def contains_phrase(normalized: str, phrase: str) -> bool:
    """Word-bounded phrase lookup on already normalized text."""
    return f" {phrase} " in f" {normalized} "


def count_urls(text: str) -> int:
    return len(URL_PATTERN.findall(text or ""))


def count_mentions(text: str) -> int:
    return len(MENTION_PATTERN.findall(text or ""))


def extract_hashtags(text: str) -> List[str]:
    seen: List[str] = []
    for tag in HASHTAG_PATTERN.findall(text or ""):
        lowered = tag.lower()
        if lowered not in seen:
            seen.append(lowered)
    return seen


def extract_mentions(text: str) -> List[str]:
    seen: List[str] = []
    for mention in MENTION_PATTERN.findall(text or ""):
        handle = mention[1:]
        if handle not in seen:
            seen.append(handle)
    return seen
