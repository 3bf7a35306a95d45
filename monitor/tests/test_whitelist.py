import shutil
import tempfile
import unittest
from pathlib import Path

from crawler.pipelines.store import Store
from monitor.models import TargetType
from monitor.settings import MonitorSettings
from monitor.status import build_status
from monitor.whitelist import WhitelistManager, parse_target_id

CHANNEL_ID = "UC_x5XG1OV2P6uZZ5FSM9Ttw"


class ParseTargetIdTests(unittest.TestCase):
    def test_video_urls(self):
        self.assertEqual(parse_target_id(TargetType.VIDEO, "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=5"), "dQw4w9WgXcQ")
        self.assertEqual(parse_target_id(TargetType.VIDEO, "https://youtu.be/dQw4w9WgXcQ"), "dQw4w9WgXcQ")
        self.assertEqual(parse_target_id(TargetType.VIDEO, " dQw4w9WgXcQ "), "dQw4w9WgXcQ")

    def test_channel_url(self):
        url = f"https://www.youtube.com/channel/{CHANNEL_ID}/videos"
        self.assertEqual(parse_target_id(TargetType.CHANNEL, url), CHANNEL_ID)


class WhitelistManagerTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = Store(Path(self.tmpdir) / "monitor.db")
        self.manager = WhitelistManager(self.store)

    def tearDown(self):
        self.store.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_add_then_update_keeps_unset_fields(self):
        self.manager.add("video", "dQw4w9WgXcQ", title="Liputan MBG", priority=5, max_items=200)
        entry = self.manager.add(TargetType.VIDEO, "https://youtu.be/dQw4w9WgXcQ", notes="cek ulang")

        self.assertEqual(entry.priority, 5)
        self.assertEqual(entry.max_items, 200)
        self.assertEqual(entry.title, "Liputan MBG")
        self.assertEqual(entry.notes, "cek ulang")
        self.assertEqual(len(self.manager.active()), 1)

    def test_active_orders_by_priority(self):
        self.manager.add("video", "aaaaaaaaaaa", priority=1)
        self.manager.add("video", "bbbbbbbbbbb", priority=9)
        self.manager.add("video", "ccccccccccc", priority=1)

        ids = [entry.target_id for entry in self.store.list_active_targets(TargetType.VIDEO)]
        self.assertEqual(ids, ["bbbbbbbbbbb", "aaaaaaaaaaa", "ccccccccccc"])

    def test_remove_and_reactivate(self):
        self.manager.add("channel", CHANNEL_ID)
        self.store.record_collected(TargetType.CHANNEL, CHANNEL_ID, 12)

        self.assertTrue(self.manager.remove("channel", CHANNEL_ID))
        self.assertFalse(self.manager.remove("channel", CHANNEL_ID))
        self.assertEqual(self.manager.active(), [])

        entry = self.manager.add("channel", CHANNEL_ID)
        self.assertTrue(entry.is_active)
        self.assertEqual(entry.total_collected, 12)
        self.assertIsNotNone(entry.last_collected_at)

    def test_invalid_input(self):
        with self.assertRaises(ValueError):
            self.manager.add("video", "   ")
        with self.assertRaises(ValueError):
            self.manager.add("video", "dQw4w9WgXcQ", max_items=0)
        with self.assertRaises(ValueError):
            self.manager.add("playlist", "PL123")

    def test_stats_and_status_payload(self):
        self.manager.add("video", "dQw4w9WgXcQ")
        self.manager.add("channel", CHANNEL_ID)
        self.store.record_collected(TargetType.VIDEO, "dQw4w9WgXcQ", 3)

        self.assertEqual(
            self.manager.stats(), {"active": 2, "videos": 1, "channels": 1, "total_collected": 3}
        )

        settings = MonitorSettings(
            db_path=Path(self.tmpdir) / "monitor.db",
            timezone="Asia/Jakarta",
            search_keywords=["gizi"],
            twitter_credentials=None,
            youtube_api_key="AIzaSyA-secret-value-1234567890",
        )
        status = build_status(self.store, settings)
        self.assertEqual(status["runs"], [])
        self.assertEqual(status["pending_enrichment"], {"twitter": 0, "youtube": 0})
        self.assertTrue(status["config"]["youtube_api_key_configured"])
        self.assertEqual(status["config"]["keyword_categories"], {"gizi": "GIZI"})
        self.assertNotIn("AIza", str(status))


if __name__ == "__main__":
    unittest.main()
