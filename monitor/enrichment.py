"""
Lexicon-based sentiment scoring and keyword extraction for Indonesian posts.

Everything here is a pure function of the input text: the same text always
yields the same label, score, confidence and keywords.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from monitor.lexicon import (
    BOOSTER_WORDS,
    CONTEXT_TERMS,
    NEGATION_WORDS,
    NEGATIVE_PHRASES,
    POSITIVE_PHRASES,
    PROGRAM_TERMS,
    is_sentiment_word,
    polarity,
)
from monitor.models import EnrichmentResult, KeywordScore, SentimentLabel, SentimentResult
from monitor.stemmer import stem_all
from monitor.text import contains_phrase, normalize_text, remove_stopwords, tokenize

logger = logging.getLogger(__name__)

NEGATION_FACTOR = -0.5
BOOSTER_FACTOR = 1.5
CONTEXT_WEIGHT = 0.15
SCORE_DIVISOR = 3.0
CONFIDENCE_FLOOR = 0.3


@dataclass(frozen=True)
class SentimentThresholds:
    positive: float = 0.8
    negative: float = -0.8


DEFAULT_THRESHOLDS = SentimentThresholds()
# Values used before short comments were added to the corpus.
HISTORICAL_THRESHOLDS = SentimentThresholds(positive=1.5, negative=-1.5)


def classify(
    weighted_score: float,
    positive_matches: Sequence[str],
    negative_matches: Sequence[str],
    thresholds: SentimentThresholds = DEFAULT_THRESHOLDS,
) -> SentimentLabel:
    """Strict comparisons: a score sitting exactly on a threshold is not polarised."""
    if weighted_score > thresholds.positive:
        return SentimentLabel.POSITIVE
    if weighted_score < thresholds.negative:
        return SentimentLabel.NEGATIVE
    if positive_matches and negative_matches:
        return SentimentLabel.MIXED
    return SentimentLabel.NEUTRAL


def confidence_for(match_count: int) -> float:
    return min(1.0, match_count / 4 + CONFIDENCE_FLOOR)


def has_negated_sentiment(words: Sequence[str]) -> bool:
    """True if a negation word is immediately followed by a lexicon word."""
    for current, following in zip(words, words[1:]):
        if current in NEGATION_WORDS and is_sentiment_word(following):
            return True
    return False


def has_booster(normalized: str) -> bool:
    return any(contains_phrase(normalized, booster) for booster in BOOSTER_WORDS)


def contextual_hits(normalized: str) -> List[str]:
    words = set(normalized.split())
    hits = []
    for term in CONTEXT_TERMS:
        found = contains_phrase(normalized, term) if " " in term else term in words
        if found and term not in hits:
            hits.append(term)
    return hits


def mentions_program(normalized: str) -> bool:
    return any(contains_phrase(normalized, term) for term in PROGRAM_TERMS)


class SentimentAnalyzer:
    """
    Score = (positive matches - negative matches), then
    * x -0.5 when a negation precedes a lexicon word,
    * x 1.5 when any booster occurs,
    * x (1 + 0.15 per distinct contextual hit),
    and finally divided by 3 and clamped to [-1, 1].
    """

    def __init__(self, thresholds: SentimentThresholds = DEFAULT_THRESHOLDS) -> None:
        self.thresholds = thresholds

    def analyze(self, text: str) -> SentimentResult:
        normalized = normalize_text(text)
        content_tokens = remove_stopwords(tokenize(normalized))

        positive_matches = [token for token in content_tokens if polarity(token) > 0]
        negative_matches = [token for token in content_tokens if polarity(token) < 0]
        # phrases count on top of their component words
        for phrase in POSITIVE_PHRASES:
            if contains_phrase(normalized, phrase) and phrase not in positive_matches:
                positive_matches.append(phrase)
        for phrase in NEGATIVE_PHRASES:
            if contains_phrase(normalized, phrase) and phrase not in negative_matches:
                negative_matches.append(phrase)

        raw_score = float(len(positive_matches) - len(negative_matches))
        adjusted = raw_score
        negated = has_negated_sentiment(normalized.split())
        if negated:
            adjusted *= NEGATION_FACTOR
        boosted = has_booster(normalized)
        if boosted:
            adjusted *= BOOSTER_FACTOR

        hits = contextual_hits(normalized)
        weight = 1 + CONTEXT_WEIGHT * len(hits)
        adjusted = round(adjusted, 6)
        weighted = round(adjusted * weight, 6)

        return SentimentResult(
            label=classify(weighted, positive_matches, negative_matches, self.thresholds),
            score=max(-1.0, min(1.0, weighted / SCORE_DIVISOR)),
            confidence=confidence_for(len(positive_matches) + len(negative_matches)),
            positive_matches=positive_matches,
            negative_matches=negative_matches,
            contextual_hits=hits,
            raw_score=raw_score,
            adjusted_score=adjusted,
            weighted_score=weighted,
            negated=negated,
            boosted=boosted,
        )


class KeywordExtractor:
    def __init__(self, top_n: int = 10) -> None:
        self.top_n = top_n

    def extract(self, text: str) -> Tuple[List[KeywordScore], List[str], List[str]]:
        """Return (top keywords, content tokens, stemmed tokens)."""
        tokens = remove_stopwords(tokenize(text))
        stemmed = stem_all(tokens)
        if not stemmed:
            return [], tokens, stemmed
        total = len(stemmed)
        keywords = [
            KeywordScore(keyword=word, count=count, score=round(count / total, 4))
            for word, count in Counter(stemmed).most_common(self.top_n)
        ]
        return keywords, tokens, stemmed


class Enricher:
    def __init__(
        self,
        analyzer: Optional[SentimentAnalyzer] = None,
        extractor: Optional[KeywordExtractor] = None,
    ) -> None:
        self.analyzer = analyzer or SentimentAnalyzer()
        self.extractor = extractor or KeywordExtractor()

    def enrich(self, text: str) -> EnrichmentResult:
        normalized = normalize_text(text)
        sentiment = self.analyzer.analyze(normalized)
        keywords, tokens, stemmed = self.extractor.extract(normalized)
        return EnrichmentResult(
            sentiment=sentiment,
            keywords=keywords,
            tokens=tokens,
            stemmed_text=" ".join(stemmed),
            has_nutrition_terms=bool(sentiment.contextual_hits),
            has_policy_terms=mentions_program(normalized),
        )


def enrich(text: str) -> EnrichmentResult:
    return Enricher().enrich(text)
