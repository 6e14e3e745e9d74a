from __future__ import annotations

from datetime import datetime, timezone
import sqlite3

from .models import (
    DUEL_PENDING,
    Duel,
    LevelEntry,
    OverallEntry,
    PlayerLevelScore,
    PlayerStats,
)

LEADERBOARD_LIMIT = 15
ACTIVE_DUELS_LIMIT = 5


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class Database:
    def __init__(self, path: str) -> None:
        self.path = path
        self.conn = sqlite3.connect(path)
        self.conn.row_factory = sqlite3.Row
        if path != ":memory:":
            self.conn.execute("PRAGMA journal_mode = WAL")
        self._create_schema()

    def _create_schema(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    username TEXT NOT NULL,
                    guild_id INTEGER NOT NULL,
                    level INTEGER NOT NULL,
                    strokes INTEGER NOT NULL,
                    submitted_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS duels (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    guild_id INTEGER NOT NULL,
                    challenger_id INTEGER NOT NULL,
                    opponent_id INTEGER NOT NULL,
                    level INTEGER NOT NULL,
                    challenger_strokes INTEGER DEFAULT NULL,
                    opponent_strokes INTEGER DEFAULT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_scores_user_level
                ON scores(guild_id, user_id, level)
                """
            )
            self.conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_scores_level
                ON scores(guild_id, level, strokes)
                """
            )
            self.conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_duels_players
                ON duels(guild_id, status)
                """
            )

    def close(self) -> None:
        self.conn.close()

    # Scores

    def record_score(
        self,
        *,
        guild_id: int,
        user_id: int,
        username: str,
        level: int,
        strokes: int,
    ) -> int:
        now = utc_now_iso()
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO scores (user_id, username, guild_id, level, strokes, submitted_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, username, guild_id, level, strokes, now),
            )
        return int(cursor.lastrowid)

    def get_best_for_level(self, guild_id: int, user_id: int, level: int) -> int | None:
        row = self.conn.execute(
            """
            SELECT MIN(strokes) AS best
            FROM scores
            WHERE guild_id = ?
              AND user_id = ?
              AND level = ?
            """,
            (guild_id, user_id, level),
        ).fetchone()
        if row is None or row["best"] is None:
            return None
        return int(row["best"])

    def level_leaderboard(
        self,
        guild_id: int,
        level: int,
        limit: int | None = LEADERBOARD_LIMIT,
    ) -> list[LevelEntry]:
        # Ties on best strokes go to whoever reached that score first.
        rows = self.conn.execute(
            """
            WITH per_user AS (
                SELECT user_id, MIN(strokes) AS best_strokes, COUNT(*) AS attempts
                FROM scores
                WHERE guild_id = :guild_id
                  AND level = :level
                GROUP BY user_id
            ),
            achieved AS (
                SELECT s.user_id, MIN(s.id) AS best_id
                FROM scores s
                JOIN per_user p ON p.user_id = s.user_id AND p.best_strokes = s.strokes
                WHERE s.guild_id = :guild_id
                  AND s.level = :level
                GROUP BY s.user_id
            ),
            latest AS (
                SELECT user_id, MAX(id) AS last_id
                FROM scores
                WHERE guild_id = :guild_id
                GROUP BY user_id
            )
            SELECT p.user_id, s.username, p.best_strokes, p.attempts
            FROM per_user p
            JOIN achieved a ON a.user_id = p.user_id
            JOIN latest l ON l.user_id = p.user_id
            JOIN scores s ON s.id = l.last_id
            ORDER BY p.best_strokes ASC, a.best_id ASC
            LIMIT :limit
            """,
            {"guild_id": guild_id, "level": level, "limit": -1 if limit is None else max(limit, 0)},
        ).fetchall()
        return [
            LevelEntry(
                user_id=int(row["user_id"]),
                username=row["username"],
                best_strokes=int(row["best_strokes"]),
                attempts=int(row["attempts"]),
            )
            for row in rows
        ]

    def level_rank(self, guild_id: int, level: int, user_id: int) -> int | None:
        entries = self.level_leaderboard(guild_id, level, limit=None)
        for index, entry in enumerate(entries):
            if entry.user_id == user_id:
                return index + 1
        return None

    def overall_leaderboard(self, guild_id: int, limit: int = LEADERBOARD_LIMIT) -> list[OverallEntry]:
        rows = self.conn.execute(
            """
            WITH best_per_level AS (
                SELECT user_id, level, MIN(strokes) AS best
                FROM scores
                WHERE guild_id = :guild_id
                GROUP BY user_id, level
            ),
            per_user AS (
                SELECT user_id, SUM(best) AS total_strokes, COUNT(*) AS levels_played
                FROM best_per_level
                GROUP BY user_id
            ),
            bounds AS (
                SELECT user_id, MIN(id) AS first_id, MAX(id) AS last_id
                FROM scores
                WHERE guild_id = :guild_id
                GROUP BY user_id
            )
            SELECT p.user_id, s.username, p.total_strokes, p.levels_played
            FROM per_user p
            JOIN bounds b ON b.user_id = p.user_id
            JOIN scores s ON s.id = b.last_id
            ORDER BY p.levels_played DESC, p.total_strokes ASC, b.first_id ASC
            LIMIT :limit
            """,
            {"guild_id": guild_id, "limit": max(limit, 0)},
        ).fetchall()
        return [
            OverallEntry(
                user_id=int(row["user_id"]),
                username=row["username"],
                total_strokes=int(row["total_strokes"]),
                levels_played=int(row["levels_played"]),
            )
            for row in rows
        ]

    def player_scores(self, guild_id: int, user_id: int) -> list[PlayerLevelScore]:
        rows = self.conn.execute(
            """
            SELECT level, MIN(strokes) AS best, COUNT(*) AS attempts
            FROM scores
            WHERE guild_id = ?
              AND user_id = ?
            GROUP BY level
            ORDER BY level ASC
            """,
            (guild_id, user_id),
        ).fetchall()
        return [
            PlayerLevelScore(level=int(row["level"]), best=int(row["best"]), attempts=int(row["attempts"]))
            for row in rows
        ]

    def player_stats(self, guild_id: int, user_id: int) -> PlayerStats | None:
        row = self.conn.execute(
            """
            SELECT COUNT(DISTINCT level) AS levels_played,
                   COUNT(*) AS total_attempts,
                   MIN(strokes) AS best_single,
                   ROUND(AVG(strokes), 1) AS avg_strokes
            FROM scores
            WHERE guild_id = ?
              AND user_id = ?
            """,
            (guild_id, user_id),
        ).fetchone()
        if row is None or int(row["total_attempts"]) == 0:
            return None
        return PlayerStats(
            levels_played=int(row["levels_played"]),
            total_attempts=int(row["total_attempts"]),
            best_single=int(row["best_single"]),
            avg_strokes=float(row["avg_strokes"]),
        )

    # Duels

    def _row_to_duel(self, row: sqlite3.Row | None) -> Duel | None:
        if row is None:
            return None
        return Duel(
            duel_id=int(row["id"]),
            guild_id=int(row["guild_id"]),
            challenger_id=int(row["challenger_id"]),
            opponent_id=int(row["opponent_id"]),
            level=int(row["level"]),
            challenger_strokes=(int(row["challenger_strokes"]) if row["challenger_strokes"] is not None else None),
            opponent_strokes=(int(row["opponent_strokes"]) if row["opponent_strokes"] is not None else None),
            status=str(row["status"]),
            created_at=str(row["created_at"]),
        )

    def create_duel(self, *, guild_id: int, challenger_id: int, opponent_id: int, level: int) -> Duel:
        now = utc_now_iso()
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO duels (guild_id, challenger_id, opponent_id, level, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (guild_id, challenger_id, opponent_id, level, DUEL_PENDING, now),
            )
        duel = self.get_duel(int(cursor.lastrowid))
        if duel is None:
            raise RuntimeError(f"Failed to create duel: {cursor.lastrowid}")
        return duel

    def get_duel(self, duel_id: int) -> Duel | None:
        row = self.conn.execute(
            """
            SELECT id, guild_id, challenger_id, opponent_id, level,
                   challenger_strokes, opponent_strokes, status, created_at
            FROM duels
            WHERE id = ?
            """,
            (duel_id,),
        ).fetchone()
        return self._row_to_duel(row)

    def find_pending_duel(self, guild_id: int, user_id: int, level: int) -> Duel | None:
        row = self.conn.execute(
            """
            SELECT id, guild_id, challenger_id, opponent_id, level,
                   challenger_strokes, opponent_strokes, status, created_at
            FROM duels
            WHERE guild_id = ?
              AND status = ?
              AND (challenger_id = ? OR opponent_id = ?)
              AND level = ?
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (guild_id, DUEL_PENDING, user_id, user_id, level),
        ).fetchone()
        return self._row_to_duel(row)

    def submit_duel_result(self, duel_id: int, user_id: int, strokes: int) -> Duel:
        current = self.get_duel(duel_id)
        if current is None:
            raise LookupError(f"Duel {duel_id} does not exist")
        if not current.involves(user_id):
            raise ValueError(f"User {user_id} is not a participant in duel {duel_id}")

        # A side that already holds strokes keeps them, and status never leaves complete.
        with self.conn:
            self.conn.execute(
                """
                UPDATE duels
                SET challenger_strokes = COALESCE(
                        challenger_strokes,
                        CASE WHEN challenger_id = :user_id THEN :strokes END
                    ),
                    opponent_strokes = COALESCE(
                        opponent_strokes,
                        CASE WHEN opponent_id = :user_id THEN :strokes END
                    ),
                    status = CASE
                        WHEN COALESCE(challenger_strokes, CASE WHEN challenger_id = :user_id THEN :strokes END) IS NOT NULL
                         AND COALESCE(opponent_strokes, CASE WHEN opponent_id = :user_id THEN :strokes END) IS NOT NULL
                        THEN 'complete'
                        ELSE status
                    END
                WHERE id = :duel_id
                """,
                {"user_id": user_id, "strokes": strokes, "duel_id": duel_id},
            )
        updated = self.get_duel(duel_id)
        if updated is None:
            raise LookupError(f"Duel {duel_id} does not exist")
        return updated

    def active_duels(self, guild_id: int, user_id: int, limit: int = ACTIVE_DUELS_LIMIT) -> list[Duel]:
        rows = self.conn.execute(
            """
            SELECT id, guild_id, challenger_id, opponent_id, level,
                   challenger_strokes, opponent_strokes, status, created_at
            FROM duels
            WHERE guild_id = ?
              AND status = ?
              AND (challenger_id = ? OR opponent_id = ?)
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (guild_id, DUEL_PENDING, user_id, user_id, max(limit, 0)),
        ).fetchall()
        return [duel for duel in (self._row_to_duel(row) for row in rows) if duel is not None]
