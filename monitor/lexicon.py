"""
Sentiment lexicon and domain word sets for Indonesian nutrition / food-security talk.

Entries containing a space are phrases: they are matched against the whole
normalized text and count independently of their component words.
"""
from __future__ import annotations

from typing import FrozenSet, Tuple

POSITIVE_WORDS: FrozenSet[str] = frozenset(
    {
        # general
        "baik", "bagus", "sangat bagus", "cukup baik", "memuaskan", "mantap",
        "hebat", "oke", "puas", "senang", "terbantu", "bermanfaat", "sesuai",
        "tepat sasaran", "mudah", "jelas", "lengkap", "cepat", "terjangkau",
        "murah", "mahal tapi sepadan", "ramah", "responsif", "tersedia",
        "cukup tersedia", "melimpah", "stabil", "aman", "sehat", "bergizi",
        "nutritif", "berkualitas", "segar", "enak", "layak", "memadai",
        "terpenuhi", "tercukupi", "kecukupan gizi", "gizi tercukupi",
        "makan teratur", "porsi cukup", "menu bervariasi", "protein cukup",
        "sayur cukup", "buah cukup", "asi lancar", "mpasi baik",
        "posyandu membantu", "pelayanan baik", "bantuan tepat waktu",
        "bantuan bermanfaat", "bansos membantu", "harga stabil",
        "harga terjangkau", "akses mudah", "pasokan lancar", "stok ada",
        "tidak kelaparan", "tidak kekurangan", "tidak khawatir", "optimis",
        "terjamin", "cukup", "pas", "lumayan",
        # outcome words; "tumbuh" is a domain term, not praise
        "sukses", "berhasil", "maju", "positif", "membaik",
        "sembuh", "pulih", "optimal", "meningkat", "berkembang", "normal",
        "ideal", "kuat", "aktif", "berprestasi",
    }
)

NEGATIVE_WORDS: FrozenSet[str] = frozenset(
    {
        # general
        "biasa saja", "standar", "netral", "tidak masalah", "tidak terlalu",
        "kurang", "kurang baik", "tidak baik", "buruk", "sangat buruk",
        "mengecewakan", "kecewa", "sedih", "khawatir", "cemas", "stress",
        "tertekan", "lelah", "lapar", "kelaparan", "kekurangan",
        "kekurangan gizi", "gizi kurang", "gizi buruk", "stunting", "kurus",
        "wasting", "anemia", "kurang darah", "bb kurang", "berat badan turun",
        "nafsu makan turun", "sakit sakitan",
        "junk food", "makanan instan", "tidak segar", "basi", "tidak enak",
        "hambar", "porsi kurang", "porsi kecil", "menu tidak bervariasi",
        "jarang makan", "tidak makan", "terlambat makan", "susah makan",
        "sulit makan", "anak susah makan", "tidak ada uang", "tidak mampu",
        "penghasilan turun", "pengangguran", "utang", "mahal", "sangat mahal",
        "harga naik", "inflasi", "biaya tinggi", "akses sulit", "jauh",
        "transport mahal", "pasar jauh", "tidak tersedia", "stok habis",
        "kosong", "langka", "pasokan terganggu", "distribusi lambat", "antri",
        "pelayanan buruk", "tidak ramah", "lambat", "rumit", "berbelit",
        "tidak jelas", "membingungkan", "data tidak akurat", "data salah",
        "tidak valid", "bias", "tidak konsisten", "duplikat",
        "tidak lengkap", "tidak sesuai", "tidak tepat", "tidak tepat sasaran",
        "bantuan tidak tepat sasaran", "bantuan terlambat", "bantuan kurang",
        "bansos tidak ada", "korupsi", "pungli", "curang", "tidak dipercaya",
        "hoaks", "informasi salah", "minim informasi", "rentan", "rawan pangan",
        "tidak tahan pangan", "krisis pangan", "darurat pangan", "banjir",
        "kekeringan", "gagal panen", "cuaca buruk", "panen buruk", "hama",
        "harga pupuk naik", "harga pakan naik", "hasil turun",
        "pendapatan petani turun", "pasar sepi", "daya beli turun",
        # outcome words
        "gagal", "menurun", "turun", "krisis", "parah", "darurat", "lemah",
        "sakit", "penyakit", "masalah", "kendala", "minim", "rendah",
    }
)

POSITIVE_PHRASES: Tuple[str, ...] = tuple(sorted(entry for entry in POSITIVE_WORDS if " " in entry))
NEGATIVE_PHRASES: Tuple[str, ...] = tuple(sorted(entry for entry in NEGATIVE_WORDS if " " in entry))

NEGATION_WORDS: FrozenSet[str] = frozenset(
    {"tidak", "bukan", "tanpa", "belum", "jangan", "nggak", "enggak", "tak", "gak", "jgn", "g"}
)

# "benar-benar" is normalized to "benar benar" before matching
BOOSTER_WORDS: Tuple[str, ...] = (
    "sangat", "amat", "terlalu", "benar benar", "sungguh", "sekali", "banget", "bgt", "parah",
)

# Domain-relevance terms: they weight a score, never create one. Generic words
# such as "anak" or "program" are not domain terms.
CONTEXT_TERMS: Tuple[str, ...] = (
    # nutrition
    "gizi", "nutrisi", "makan", "makanan", "minum", "minuman", "diet",
    "protein", "karbohidrat", "lemak", "vitamin", "mineral", "serat",
    "sayur", "buah", "nasi", "lauk", "lauk pauk",
    # health and growth
    "stunting", "malnutrisi", "sehat", "sakit", "imun", "daya tahan",
    "tumbuh", "kembang", "balita", "hamil", "menyusui", "asi", "mpasi",
    # programmes and food security
    "mbg", "makan siang gratis", "makan bergizi gratis", "subsidi", "bansos",
    "pangan", "ketahanan pangan", "kedaulatan pangan", "swasembada",
    # everyday context
    "lapar", "kenyang", "kantin", "kantin sehat", "posyandu", "kader", "anak usia dini",
)

PROGRAM_TERMS: Tuple[str, ...] = (
    "mbg", "makan siang gratis", "makan bergizi gratis", "bansos", "bantuan sosial",
    "pkh", "program keluarga harapan", "bantuan pangan", "kartu sembako",
)


def polarity(word: str) -> int:
    """+1, -1 or 0 for a single lexicon entry."""
    key = word.lower().strip()
    if key in POSITIVE_WORDS:
        return 1
    if key in NEGATIVE_WORDS:
        return -1
    return 0


def is_sentiment_word(word: str) -> bool:
    return polarity(word) != 0
