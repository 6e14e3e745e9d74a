from __future__ import annotations

import os
import tempfile
import unittest

from golfbot.storage import Database

GUILD = 1000
ALICE = 101
BOB = 202
CAROL = 303


class StorageDuelTests(unittest.TestCase):
    def setUp(self) -> None:
        fd, path = tempfile.mkstemp(prefix="golf-bot-test-", suffix=".db")
        os.close(fd)
        self.db_path = path
        self.db = Database(path=path)

    def tearDown(self) -> None:
        self.db.close()
        for suffix in ("", "-wal", "-shm"):
            try:
                os.remove(self.db_path + suffix)
            except FileNotFoundError:
                pass

    def _create(self, challenger_id: int = ALICE, opponent_id: int = BOB, level: int = 9, guild_id: int = GUILD):
        return self.db.create_duel(
            guild_id=guild_id,
            challenger_id=challenger_id,
            opponent_id=opponent_id,
            level=level,
        )

    def test_create_duel_starts_pending(self) -> None:
        duel = self._create()
        self.assertEqual(duel.status, "pending")
        self.assertIsNone(duel.challenger_strokes)
        self.assertIsNone(duel.opponent_strokes)
        self.assertEqual(self.db.get_duel(duel.duel_id), duel)

    def test_duplicate_duels_are_tracked_independently(self) -> None:
        first = self._create()
        second = self._create()
        self.assertNotEqual(first.duel_id, second.duel_id)
        self.assertEqual(len(self.db.active_duels(GUILD, ALICE)), 2)

    def test_submit_sets_only_callers_side(self) -> None:
        duel = self._create()
        updated = self.db.submit_duel_result(duel.duel_id, ALICE, 4)
        self.assertEqual(updated.challenger_strokes, 4)
        self.assertIsNone(updated.opponent_strokes)
        self.assertEqual(updated.status, "pending")

        updated = self.db.submit_duel_result(duel.duel_id, BOB, 7)
        self.assertEqual(updated.challenger_strokes, 4)
        self.assertEqual(updated.opponent_strokes, 7)
        self.assertEqual(updated.status, "complete")

    def test_opponent_can_submit_first(self) -> None:
        duel = self._create()
        updated = self.db.submit_duel_result(duel.duel_id, BOB, 5)
        self.assertIsNone(updated.challenger_strokes)
        self.assertEqual(updated.opponent_strokes, 5)
        self.assertEqual(updated.status, "pending")

    def test_duel_strokes_are_single_write(self) -> None:
        duel = self._create()
        self.db.submit_duel_result(duel.duel_id, ALICE, 4)
        updated = self.db.submit_duel_result(duel.duel_id, ALICE, 2)
        self.assertEqual(updated.challenger_strokes, 4)
        self.assertIsNone(updated.opponent_strokes)
        self.assertEqual(updated.status, "pending")

    def test_complete_duel_never_returns_to_pending(self) -> None:
        duel = self._create()
        self.db.submit_duel_result(duel.duel_id, ALICE, 4)
        self.db.submit_duel_result(duel.duel_id, BOB, 7)
        updated = self.db.submit_duel_result(duel.duel_id, BOB, 1)
        self.assertEqual(updated.status, "complete")
        self.assertEqual(updated.opponent_strokes, 7)

    def test_submit_unknown_duel_raises(self) -> None:
        with self.assertRaises(LookupError):
            self.db.submit_duel_result(9999, ALICE, 3)

    def test_submit_by_non_participant_raises(self) -> None:
        duel = self._create()
        with self.assertRaises(ValueError):
            self.db.submit_duel_result(duel.duel_id, CAROL, 3)
        self.assertEqual(self.db.get_duel(duel.duel_id), duel)

    def test_find_pending_duel_returns_most_recent_match(self) -> None:
        self._create(level=9)
        newer = self._create(challenger_id=CAROL, opponent_id=ALICE, level=9)
        self._create(level=10)

        found = self.db.find_pending_duel(GUILD, ALICE, 9)
        self.assertIsNotNone(found)
        self.assertEqual(found.duel_id, newer.duel_id)

    def test_find_pending_duel_skips_completed_and_other_guilds(self) -> None:
        duel = self._create()
        self._create(guild_id=2000)
        self.db.submit_duel_result(duel.duel_id, ALICE, 3)
        self.db.submit_duel_result(duel.duel_id, BOB, 3)
        self.assertIsNone(self.db.find_pending_duel(GUILD, ALICE, 9))
        self.assertIsNone(self.db.find_pending_duel(GUILD, CAROL, 9))

    def test_active_duels_most_recent_first_and_capped(self) -> None:
        created = [self._create(level=level) for level in range(1, 8)]
        self._create(challenger_id=BOB, opponent_id=CAROL)

        active = self.db.active_duels(GUILD, ALICE)
        self.assertEqual(len(active), 5)
        self.assertEqual([d.duel_id for d in active], [d.duel_id for d in reversed(created)][:5])

    def test_active_duels_excludes_completed(self) -> None:
        duel = self._create()
        self.db.submit_duel_result(duel.duel_id, ALICE, 2)
        self.db.submit_duel_result(duel.duel_id, BOB, 3)
        self.assertEqual(self.db.active_duels(GUILD, BOB), [])


if __name__ == "__main__":
    unittest.main()
