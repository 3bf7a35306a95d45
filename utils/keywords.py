"""
Search keywords for the X live search and the categories used to tag them.
"""
from typing import Optional

SEARCH_KEYWORDS = [
    "gizi",
    "ketahanan pangan",
    "stunting",
    "malnutrisi",
    "Makan Bergizi Gratis",
    "MBG",
    "Makan Siang Gratis",
    "gizi buruk",
    "krisis pangan",
]

KEYWORD_CATEGORIES = {
    "GIZI": ["gizi", "nutrisi", "bergizi", "kekurangan gizi", "gizi buruk"],
    "STUNTING": ["stunting", "tumbuh kembang", "balita", "anak", "kurang gizi"],
    "MALNUTRISI": ["malnutrisi", "gizi buruk", "kurang gizi", "wasting", "kurus"],
    "MBG": ["makan bergizi gratis", "mbg", "makan siang gratis"],
    "KETAHANAN_PANGAN": ["ketahanan pangan", "kedaulatan pangan", "swasembada", "krisis pangan"],
    "BANTUAN": ["bantuan", "bansos", "subsidi", "bantuan pangan"],
}


def keyword_category(keyword: str) -> Optional[str]:
    """First category whose terms equal or occur inside ``keyword``."""
    lowered = keyword.lower()
    for category, terms in KEYWORD_CATEGORIES.items():
        for term in terms:
            if lowered == term or term in lowered:
                return category
    return None
