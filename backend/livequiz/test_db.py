from __future__ import annotations

import json
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, mock

from .db import JsonFileSink, Store
from .errors import PersistenceError
from .models import Admin, Answer, Game, Player, Question, Session
from .utils import new_id, now_iso


def _populated_store() -> Store:
    store = Store()
    store.admins["a@example.com"] = Admin(name="A", password="hash", session_active=True)
    store.games["111111111"] = Game(
        owner="a@example.com",
        name="QUIZ",
        questions=[Question(duration=5, correct_answers=["x"], text="Pick x")],
    )
    store.sessions["222222"] = Session(
        game_id="111111111",
        position=0,
        iso_time_last_question_started="2024-01-01T00:00:00.000Z",
        players={"333333333": Player(name="P", answers=[Answer()])},
        questions=[Question(duration=5, correct_answers=["x"])],
    )
    store.sessions["444444"] = Session(game_id="111111111", active=False)
    return store


class StoreTests(IsolatedAsyncioTestCase):
    def test_derived_session_lookups(self):
        store = _populated_store()
        self.assertEqual(store.active_session_id("111111111"), "222222")
        self.assertEqual(store.inactive_session_ids("111111111"), ["444444"])
        self.assertEqual(store.session_id_for_player("333333333"), "222222")
        self.assertIsNone(store.session_id_for_player("1"))
        self.assertEqual(store.player_ids(), {"333333333"})

    def test_ambiguous_active_session(self):
        store = _populated_store()
        store.sessions["555555"] = Session(game_id="111111111")
        self.assertIsNone(store.active_session_id("111111111"))

    def test_snapshot_shape(self):
        snapshot = _populated_store().snapshot()
        self.assertEqual(set(snapshot), {"admins", "games", "sessions"})
        self.assertEqual(snapshot["admins"]["a@example.com"]["sessionActive"], True)
        game = snapshot["games"]["111111111"]
        self.assertNotIn("active", game)
        self.assertNotIn("oldSessions", game)
        self.assertEqual(game["questions"][0]["correctAnswers"], ["x"])
        self.assertEqual(game["questions"][0]["text"], "Pick x")
        session = snapshot["sessions"]["222222"]
        self.assertEqual(session["gameId"], "111111111")
        self.assertEqual(session["isoTimeLastQuestionStarted"], "2024-01-01T00:00:00.000Z")
        self.assertFalse(session["answerAvailable"])
        self.assertEqual(
            session["players"]["333333333"]["answers"][0],
            {"questionStartedAt": None, "answeredAt": None, "answers": [], "correct": False},
        )


class JsonFileSinkTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "database.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_save_then_load(self):
        sink = JsonFileSink(self.path)
        await sink.save(_populated_store())

        on_disk = json.loads(self.path.read_text())
        self.assertIn("222222", on_disk["sessions"])

        loaded = sink.load()
        self.assertEqual(loaded.snapshot(), _populated_store().snapshot())

    def test_missing_file_creates_empty_database(self):
        store = JsonFileSink(self.path).load()
        self.assertEqual(store.snapshot(), {"admins": {}, "games": {}, "sessions": {}})
        self.assertEqual(json.loads(self.path.read_text()), {"admins": {}, "games": {}, "sessions": {}})

    def test_corrupt_file_starts_fresh(self):
        self.path.write_text("{not json")
        store = JsonFileSink(self.path).load()
        self.assertEqual(store.games, {})

    async def test_reset_empties_store(self):
        sink = JsonFileSink(self.path)
        store = _populated_store()
        await sink.reset(store)
        self.assertEqual(store.sessions, {})
        self.assertEqual(json.loads(self.path.read_text())["admins"], {})

    async def test_write_failure_raises_persistence_error(self):
        sink = JsonFileSink(self.path)
        with mock.patch.object(Path, "write_text", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceError):
                await sink.save(Store())


class IdTests(IsolatedAsyncioTestCase):
    def test_new_id_in_range(self):
        for _ in range(200):
            value = int(new_id(set(), 999_999))
            self.assertTrue(99_999 <= value <= 999_999)

    def test_new_id_skips_existing(self):
        taken = {str(i) for i in range(1, 10)}
        # range [1, 10] leaves only "10" free
        with mock.patch("backend.livequiz.utils.random.randint", side_effect=[3, 7, 10]):
            self.assertEqual(new_id(taken, 10), "10")

    def test_now_iso_format(self):
        stamp = now_iso()
        self.assertTrue(stamp.endswith("Z"))
        self.assertEqual(len(stamp), len("2024-01-01T00:00:00.000Z"))
