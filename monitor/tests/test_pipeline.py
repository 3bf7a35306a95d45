import shutil
import tempfile
import unittest
from pathlib import Path

from sqlalchemy.exc import OperationalError

from crawler.errors import ConfigurationError, TargetUnavailableError
from crawler.pipelines.store import Store
from crawler.schemas.models import RawPost
from monitor.models import Platform, RunKind, RunStatus, SentimentLabel
from monitor.pipeline import MonitorPipeline
from monitor.settings import MonitorSettings

PRAISE = "Makanan sangat bagus, anak saya sehat dan tumbuh dengan baik berkat program MBG"


def _settings(db_path):
    return MonitorSettings(
        db_path=db_path,
        timezone="Asia/Jakarta",
        search_keywords=["mbg"],
        twitter_credentials=None,
        youtube_api_key=None,
        enrichment_workers=2,
    )


def _post(external_id, text=PRAISE, keyword="mbg"):
    return RawPost(
        platform="twitter",
        external_id=external_id,
        text=text,
        author_handle="warga_peduli",
        hashtags=["MBG"],
        search_keyword=keyword,
    )


class _StaticEngine:
    """Engine fake returning canned posts per unit; callables are invoked instead."""

    platform = Platform.TWITTER

    def __init__(self, batches):
        self.batches = batches
        self.entered = False
        self.exited = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exited = True

    def units(self):
        return list(self.batches)

    def acquire(self, unit):
        batch = self.batches[unit]
        if callable(batch):
            return batch()
        return list(batch)

    def stats(self):
        return {"keywords": len(self.batches)}


class MonitorPipelineTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = Store(Path(self.tmpdir) / "monitor.db")
        self.settings = _settings(Path(self.tmpdir) / "monitor.db")

    def tearDown(self):
        self.store.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _pipeline(self, engine):
        return MonitorPipeline(
            self.store,
            self.settings,
            engine_factories={Platform.TWITTER: lambda settings, cancel: engine},
        )

    def test_duplicate_ids_are_stored_once(self):
        engine = _StaticEngine({"mbg": [_post("1"), _post("2", "Harga naik, anak kelaparan dan gizi buruk di desa")],
                                "gizi": [_post("1")]})
        result = self._pipeline(engine).run_acquisition(Platform.TWITTER, follow_up=False)

        self.assertEqual(result.status, RunStatus.COMPLETED)
        self.assertEqual(result.items_found, 3)
        self.assertEqual(result.items_acquired, 2)
        self.assertEqual(result.items_passed, 2)
        self.assertEqual(result.sources, ["mbg", "gizi"])
        self.assertEqual(result.stats, {"keywords": 2})
        self.assertTrue(engine.entered and engine.exited)
        self.assertEqual(self.store.pending_count(Platform.TWITTER), 2)

    def test_second_run_with_nothing_new_fails(self):
        self._pipeline(_StaticEngine({"mbg": [_post("1")]})).run_acquisition(Platform.TWITTER, follow_up=False)
        result = self._pipeline(_StaticEngine({"mbg": [_post("1")]})).run_acquisition(
            Platform.TWITTER, follow_up=False
        )

        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertEqual(result.error_message, "No items acquired (1 found)")
        latest = self.store.recent_runs(limit=1)[0]
        self.assertEqual(latest.status, RunStatus.FAILED)
        self.assertIsNotNone(latest.finished_at)

    def test_terminal_unit_error_moves_on(self):
        def unavailable():
            raise TargetUnavailableError("gone")

        engine = _StaticEngine({"broken": unavailable, "mbg": [_post("1")]})
        result = self._pipeline(engine).run_acquisition(Platform.TWITTER, follow_up=False)

        self.assertEqual(result.status, RunStatus.COMPLETED)
        self.assertEqual(result.units_failed, 1)
        self.assertEqual(result.items_acquired, 1)

    def test_fatal_error_fails_the_run(self):
        def factory(settings, cancel):
            raise ConfigurationError("YOUTUBE_API_KEY is not set")

        pipeline = MonitorPipeline(self.store, self.settings, engine_factories={Platform.YOUTUBE: factory})
        result = pipeline.run_acquisition(Platform.YOUTUBE, follow_up=False)

        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertIn("ConfigurationError", result.error_message)
        self.assertEqual(result.items_found, 0)

    def test_cancellation_wins_and_skips_follow_up(self):
        holder = {}

        def cancel_after_first():
            holder["pipeline"].cancel.cancel("SIGTERM")
            return [_post("1"), _post("2", "Menu sekolah hari ini nasi sayur dan buah segar")]

        engine = _StaticEngine({"mbg": cancel_after_first, "gizi": [_post("3")]})
        holder["pipeline"] = self._pipeline(engine)
        result = holder["pipeline"].run_acquisition(Platform.TWITTER)

        self.assertEqual(result.status, RunStatus.CANCELLED)
        self.assertEqual(result.error_message, "Cancelled: SIGTERM")
        self.assertEqual(result.sources, ["mbg"])
        self.assertEqual(result.items_acquired, 0)
        runs = self.store.recent_runs(limit=5)
        self.assertEqual([run.kind for run in runs], [RunKind.ACQUISITION])

    def test_cancellation_after_partial_acquisition_keeps_earlier_items(self):
        holder = {}

        def cancel_midway():
            holder["pipeline"].cancel.cancel("SIGINT")
            return [_post("2", "Menu sekolah hari ini nasi sayur dan buah segar")]

        engine = _StaticEngine({"mbg": [_post("1")], "gizi": cancel_midway})
        holder["pipeline"] = self._pipeline(engine)
        result = holder["pipeline"].run_acquisition(Platform.TWITTER)

        self.assertEqual(result.status, RunStatus.CANCELLED)
        self.assertEqual(result.error_message, "Cancelled: SIGINT")
        self.assertEqual(result.sources, ["mbg", "gizi"])
        self.assertEqual(result.items_acquired, 1)
        self.assertTrue(self.store.exists(Platform.TWITTER, "1"))
        self.assertFalse(self.store.exists(Platform.TWITTER, "2"))
        runs = self.store.recent_runs(limit=5)
        self.assertEqual([run.kind for run in runs], [RunKind.ACQUISITION])
        self.assertEqual(runs[0].items_acquired, 1)

    def test_follow_up_enriches_and_aggregates(self):
        engine = _StaticEngine({"mbg": [_post("1")]})
        result = self._pipeline(engine).run_acquisition(Platform.TWITTER)

        self.assertEqual(result.status, RunStatus.COMPLETED)
        self.assertEqual(self.store.pending_count(Platform.TWITTER), 0)
        enriched = self.store.get_enriched(1)
        self.assertEqual(enriched["sentiment_label"], SentimentLabel.POSITIVE.value)
        kinds = [run.kind for run in self.store.recent_runs(limit=5)]
        self.assertEqual(kinds, [RunKind.ENRICHMENT, RunKind.ACQUISITION])

    def test_enrichment_batch_is_bounded_and_idempotent(self):
        self.settings.enrichment_batch_size = 2
        posts = [_post(str(i), f"Makan siang gratis di sekolah nomor {i} enak sekali") for i in range(3)]
        pipeline = self._pipeline(_StaticEngine({"mbg": posts}))
        pipeline.run_acquisition(Platform.TWITTER, follow_up=False)

        first = pipeline.run_enrichment(Platform.TWITTER)
        second = pipeline.run_enrichment(Platform.TWITTER)
        third = pipeline.run_enrichment(Platform.TWITTER)

        self.assertEqual((first.items_found, first.items_acquired), (2, 2))
        self.assertEqual((second.items_found, second.items_acquired), (1, 1))
        self.assertEqual((third.items_found, third.items_acquired), (0, 0))
        self.assertEqual(third.status, RunStatus.COMPLETED)

    def test_store_error_during_enrichment_fails_the_run(self):
        class LockedStore(Store):
            def list_pending(self, platform, batch_size):
                raise OperationalError("SELECT enriched_items", {}, Exception("database is locked"))

        locked = LockedStore(Path(self.tmpdir) / "locked.db")
        try:
            result = MonitorPipeline(locked, self.settings, engine_factories={}).run_enrichment(Platform.TWITTER)
            latest = locked.recent_runs(limit=1)[0]
        finally:
            locked.engine.dispose()

        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertIn("OperationalError", result.error_message)
        self.assertIn("database is locked", result.error_message)
        self.assertEqual(latest.status, RunStatus.FAILED)
        self.assertIsNotNone(latest.finished_at)


if __name__ == "__main__":
    unittest.main()
