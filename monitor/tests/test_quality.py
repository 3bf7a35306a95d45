import unittest
from datetime import datetime

from crawler.schemas.models import RawPost
from monitor.models import Platform, QualityChecks
from monitor.quality import (
    DEFAULT_WEIGHTS,
    TWITTER_RULES,
    YOUTUBE_RULES,
    QualityGate,
    count_emojis,
    failure_reason,
    has_acceptable_emojis,
    has_no_repeated_text,
    is_bot,
    is_language_valid,
    quality_score,
    repeated_word_count,
    rules_from_config,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)
GOOD_TEXT = "Program makan siang gratis ini sangat membantu anak-anak di sekolah kami"


class _FakeStore:
    def __init__(self, similar=False):
        self.similar = similar
        self.verdicts = []
        self.placeholders = []
        self.similar_calls = []

    def has_similar_text(self, platform, prefix, exclude_id, since):
        self.similar_calls.append((platform, prefix, exclude_id, since))
        return self.similar

    def create_verdict(self, verdict):
        self.verdicts.append(verdict)

    def create_or_get_placeholder(self, raw_id, cleaned_text, normalized_text):
        self.placeholders.append((raw_id, cleaned_text, normalized_text))
        return len(self.placeholders)


def _tweet(text=GOOD_TEXT, handle="warga_peduli"):
    return RawPost(platform="twitter", external_id="1", text=text, author_handle=handle)


def _comment(text, name="Ibu Rina"):
    return RawPost(platform="youtube", external_id="c1", text=text, author_name=name)


class QualityGateTests(unittest.TestCase):
    def setUp(self):
        self.store = _FakeStore()
        self.gate = QualityGate(self.store, clock=lambda: NOW)

    def test_clean_tweet_passes_and_gets_placeholder(self):
        verdict = self.gate.apply(7, _tweet("@dinkes " + GOOD_TEXT + " https://t.co/x"))

        self.assertTrue(verdict.passed)
        self.assertEqual(verdict.score, 1.0)
        self.assertIsNone(verdict.reason)
        self.assertEqual(verdict.checked_at, NOW)
        self.assertEqual(self.store.verdicts, [verdict])
        raw_id, cleaned, normalized = self.store.placeholders[0]
        self.assertEqual(raw_id, 7)
        self.assertEqual(cleaned, GOOD_TEXT)
        self.assertTrue(normalized.startswith("program makan siang gratis"))

    def test_duplicate_lookback_uses_platform_window(self):
        self.gate.evaluate(7, _tweet())
        platform, prefix, exclude_id, since = self.store.similar_calls[0]
        self.assertEqual(platform, Platform.TWITTER)
        self.assertEqual(exclude_id, 7)
        self.assertEqual((NOW - since).days, 7)
        self.assertTrue(prefix.startswith("program makan"))

    def test_language_failure_is_a_veto(self):
        verdict = self.gate.apply(1, _tweet("This is the best program for the kids and it is great"))

        self.assertEqual(verdict.score, 0.6)
        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "Invalid language (not Indonesian)")
        self.assertEqual(self.store.placeholders, [])

    def test_duplicate_reported_before_bot(self):
        gate = QualityGate(_FakeStore(similar=True), clock=lambda: NOW)
        verdict = gate.evaluate(2, _tweet(handle="promo_bot"))

        self.assertTrue(verdict.checks.is_duplicate)
        self.assertTrue(verdict.checks.is_bot)
        self.assertEqual(verdict.score, 0.0)
        self.assertEqual(verdict.reason, "Duplicate tweet detected")

    def test_bot_handle(self):
        verdict = self.gate.evaluate(3, _tweet(handle="autoposter"))
        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.score, 0.4)
        self.assertEqual(verdict.reason, "Bot or spam detected")

    def test_youtube_rules_include_emoji_and_repeat_checks(self):
        verdict = self.gate.evaluate(4, _comment("Menu gizi di sekolah ini enak dan lengkap"))
        self.assertTrue(verdict.passed)
        self.assertTrue(verdict.checks.has_acceptable_emojis)
        self.assertTrue(verdict.checks.has_no_repeated_text)
        self.assertIn("emoji_check", verdict.rules_applied)
        self.assertIn("repetition_check", verdict.rules_applied)

    def test_twitter_rules_skip_emoji_check(self):
        verdict = self.gate.evaluate(5, _tweet())
        self.assertIsNone(verdict.checks.has_acceptable_emojis)
        self.assertNotIn("emoji_check", verdict.rules_applied)


class RuleTests(unittest.TestCase):
    def test_language_markers(self):
        self.assertTrue(is_language_valid("makan siang di sekolah"))
        self.assertTrue(is_language_valid("tidak ada penanda"))
        self.assertFalse(is_language_valid("the food is good"))

    def test_youtube_first_is_word_bounded(self):
        self.assertTrue(is_bot("First! program ini bagus", "", YOUTUBE_RULES))
        self.assertFalse(is_bot("firstly saya suka program ini", "", YOUTUBE_RULES))

    def test_numeric_handle_is_bot_on_both_platforms(self):
        self.assertTrue(is_bot("halo semua", "user123456", YOUTUBE_RULES))
        self.assertTrue(is_bot("halo semua", "user123456", TWITTER_RULES))
        self.assertFalse(is_bot("halo semua", "user1234", TWITTER_RULES))

    def test_spam_text(self):
        self.assertTrue(is_bot("get free followers now", "warga", TWITTER_RULES))
        self.assertTrue(is_bot("sub4sub yuk", "warga", YOUTUBE_RULES))

    def test_emojis(self):
        self.assertEqual(count_emojis("bagus \U0001F600\U0001F44D"), 2)
        self.assertTrue(has_acceptable_emojis("bagus sekali \U0001F600"))
        self.assertFalse(has_acceptable_emojis("\U0001F600" * 5))

    def test_repeated_words(self):
        self.assertEqual(repeated_word_count("enak enak enak"), 2)
        self.assertTrue(has_no_repeated_text("enak enak enak"))
        self.assertFalse(has_no_repeated_text("enak enak enak enak"))
        self.assertEqual(repeated_word_count("ya ya ya ya ya"), 0)

    def test_more_failures_never_raise_the_score(self):
        base = QualityChecks()
        one = QualityChecks(is_min_length=False)
        two = QualityChecks(is_min_length=False, has_valid_urls=False)
        scores = [quality_score(checks, DEFAULT_WEIGHTS) for checks in (base, one, two)]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(scores[0], 1.0)
        self.assertEqual(scores[2], 0.7)

    def test_score_is_floored_at_zero(self):
        checks = QualityChecks(is_duplicate=True, is_bot=True, is_language_valid=False)
        self.assertEqual(quality_score(checks, DEFAULT_WEIGHTS), 0.0)

    def test_failure_reason_priority(self):
        checks = QualityChecks(is_min_length=False, has_acceptable_emojis=False)
        self.assertEqual(failure_reason(checks, 0.65, YOUTUBE_RULES), "Comment too short")
        checks = QualityChecks(is_max_length=False)
        self.assertEqual(failure_reason(checks, 0.9, TWITTER_RULES), "Tweet too long")
        checks = QualityChecks(has_no_repeated_text=False)
        self.assertEqual(failure_reason(checks, 0.85, YOUTUBE_RULES), "Repeated text detected")
        checks = QualityChecks(has_valid_urls=False, has_valid_mentions=False)
        self.assertEqual(
            failure_reason(checks, 0.4, YOUTUBE_RULES), "Quality score 0.40 below threshold 0.5"
        )


class RulesFromConfigTests(unittest.TestCase):
    def test_overrides_apply_per_platform(self):
        config = {
            "quality": {
                "twitter": {
                    "min_length": 30,
                    "quality_threshold": 0.7,
                    "weights": {"bot": 0.9, "nonsense": 1.0},
                }
            }
        }
        rules = rules_from_config(config)

        self.assertEqual(rules[Platform.TWITTER].min_length, 30)
        self.assertEqual(rules[Platform.TWITTER].quality_threshold, 0.7)
        self.assertEqual(rules[Platform.TWITTER].weights["bot"], 0.9)
        self.assertNotIn("nonsense", rules[Platform.TWITTER].weights)
        self.assertEqual(rules[Platform.YOUTUBE], YOUTUBE_RULES)
        self.assertEqual(TWITTER_RULES.min_length, 20)

    def test_empty_config_keeps_defaults(self):
        rules = rules_from_config(None)
        self.assertEqual(rules[Platform.TWITTER], TWITTER_RULES)


if __name__ == "__main__":
    unittest.main()
