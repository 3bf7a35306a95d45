import unittest

from monitor.enrichment import (
    HISTORICAL_THRESHOLDS,
    Enricher,
    KeywordExtractor,
    SentimentAnalyzer,
    classify,
    confidence_for,
    enrich,
    has_negated_sentiment,
)
from monitor.models import SentimentLabel

PRAISE = "Makanan sangat bagus, anak saya sehat dan tumbuh dengan baik berkat program MBG"


class SentimentAnalyzerTests(unittest.TestCase):
    def setUp(self):
        self.analyzer = SentimentAnalyzer()

    def test_boosted_praise_with_context(self):
        result = self.analyzer.analyze(PRAISE)
        self.assertEqual(result.positive_matches, ["bagus", "sehat", "baik", "sangat bagus"])
        self.assertEqual(result.negative_matches, [])
        self.assertEqual(result.raw_score, 4.0)
        self.assertTrue(result.boosted)
        self.assertFalse(result.negated)
        self.assertEqual(result.adjusted_score, 6.0)
        self.assertEqual(result.contextual_hits, ["makanan", "sehat", "tumbuh", "mbg"])
        self.assertAlmostEqual(result.weighted_score, 9.6)
        self.assertEqual(result.score, 1.0)
        self.assertEqual(result.label, SentimentLabel.POSITIVE)
        self.assertEqual(result.confidence, 1.0)

    def test_negation_flips_and_halves(self):
        result = self.analyzer.analyze("makanan tidak sehat")
        self.assertTrue(result.negated)
        self.assertEqual(result.raw_score, 1.0)
        self.assertEqual(result.adjusted_score, -0.5)
        self.assertEqual(result.contextual_hits, ["makanan", "sehat"])
        self.assertAlmostEqual(result.weighted_score, -0.65)
        self.assertEqual(result.label, SentimentLabel.NEUTRAL)
        self.assertAlmostEqual(result.confidence, 0.55)

    def test_negation_needs_a_following_lexicon_word(self):
        self.assertTrue(has_negated_sentiment(["tidak", "sehat"]))
        self.assertFalse(has_negated_sentiment(["tidak", "makan"]))
        self.assertFalse(has_negated_sentiment(["sehat", "tidak"]))

    def test_negative_phrases_count_on_top_of_words(self):
        result = self.analyzer.analyze("harga naik, anak kelaparan dan gizi buruk")
        self.assertEqual(result.negative_matches, ["kelaparan", "buruk", "gizi buruk", "harga naik"])
        self.assertEqual(result.raw_score, -4.0)
        self.assertEqual(result.contextual_hits, ["gizi"])
        self.assertAlmostEqual(result.weighted_score, -4.6)
        self.assertEqual(result.score, -1.0)
        self.assertEqual(result.label, SentimentLabel.NEGATIVE)

    def test_balanced_matches_are_mixed(self):
        result = self.analyzer.analyze("enak tapi mahal")
        self.assertEqual(result.weighted_score, 0.0)
        self.assertEqual(result.label, SentimentLabel.MIXED)

    def test_no_matches_is_neutral_with_floor_confidence(self):
        result = self.analyzer.analyze("hari ini hujan di jakarta")
        self.assertEqual(result.label, SentimentLabel.NEUTRAL)
        self.assertEqual(result.score, 0.0)
        self.assertAlmostEqual(result.confidence, 0.3)

    def test_historical_thresholds_are_stricter(self):
        self.assertEqual(self.analyzer.analyze("makanan sehat").label, SentimentLabel.POSITIVE)
        strict = SentimentAnalyzer(HISTORICAL_THRESHOLDS)
        self.assertEqual(strict.analyze("makanan sehat").label, SentimentLabel.NEUTRAL)

    def test_same_text_same_result(self):
        self.assertEqual(self.analyzer.analyze(PRAISE), self.analyzer.analyze(PRAISE))


class ClassifyTests(unittest.TestCase):
    def test_threshold_is_exclusive(self):
        self.assertEqual(classify(0.8, ["baik"], []), SentimentLabel.NEUTRAL)
        self.assertEqual(classify(0.81, ["baik"], []), SentimentLabel.POSITIVE)
        self.assertEqual(classify(-0.8, [], ["buruk"]), SentimentLabel.NEUTRAL)
        self.assertEqual(classify(-0.81, [], ["buruk"]), SentimentLabel.NEGATIVE)

    def test_mixed_requires_both_polarities(self):
        self.assertEqual(classify(0.0, ["baik"], ["buruk"]), SentimentLabel.MIXED)
        self.assertEqual(classify(0.0, [], []), SentimentLabel.NEUTRAL)

    def test_confidence_caps_at_one(self):
        self.assertAlmostEqual(confidence_for(1), 0.55)
        self.assertEqual(confidence_for(10), 1.0)


class KeywordExtractorTests(unittest.TestCase):
    def test_counts_stemmed_tokens(self):
        keywords, tokens, stemmed = KeywordExtractor(top_n=2).extract("makanan makanan bergizi untuk anak")
        self.assertEqual(tokens, ["makanan", "makanan", "bergizi", "anak"])
        self.assertEqual(stemmed, ["makan", "makan", "bergiz", "anak"])
        self.assertEqual(len(keywords), 2)
        self.assertEqual(keywords[0].keyword, "makan")
        self.assertEqual(keywords[0].count, 2)
        self.assertEqual(keywords[0].score, 0.5)

    def test_empty_text(self):
        self.assertEqual(KeywordExtractor().extract(""), ([], [], []))


class EnricherTests(unittest.TestCase):
    def test_flags_and_stemmed_text(self):
        result = Enricher().enrich(PRAISE)
        self.assertTrue(result.has_nutrition_terms)
        self.assertTrue(result.has_policy_terms)
        self.assertIn("makan", result.stemmed_text.split())
        self.assertEqual(result.sentiment.label, SentimentLabel.POSITIVE)

    def test_unrelated_text_has_no_flags(self):
        result = enrich("cuaca cerah sekali")
        self.assertFalse(result.has_nutrition_terms)
        self.assertFalse(result.has_policy_terms)


if __name__ == "__main__":
    unittest.main()
