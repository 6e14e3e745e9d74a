from dataclasses import dataclass


DUEL_PENDING = "pending"
DUEL_COMPLETE = "complete"


@dataclass(slots=True)
class LevelEntry:
    user_id: int
    username: str
    best_strokes: int
    attempts: int


@dataclass(slots=True)
class OverallEntry:
    user_id: int
    username: str
    total_strokes: int
    levels_played: int


@dataclass(slots=True)
class PlayerLevelScore:
    level: int
    best: int
    attempts: int


@dataclass(slots=True)
class PlayerStats:
    levels_played: int
    total_attempts: int
    best_single: int
    avg_strokes: float


@dataclass(slots=True)
class Duel:
    duel_id: int
    guild_id: int
    challenger_id: int
    opponent_id: int
    level: int
    challenger_strokes: int | None
    opponent_strokes: int | None
    status: str  # "pending" | "complete"
    created_at: str

    @property
    def is_complete(self) -> bool:
        return self.status == DUEL_COMPLETE

    def involves(self, user_id: int) -> bool:
        return user_id in (self.challenger_id, self.opponent_id)

    def strokes_for(self, user_id: int) -> int | None:
        if user_id == self.challenger_id:
            return self.challenger_strokes
        if user_id == self.opponent_id:
            return self.opponent_strokes
        return None


@dataclass(slots=True)
class DuelOutcome:
    winner_id: int | None
    loser_id: int | None

    @property
    def is_tie(self) -> bool:
        return self.winner_id is None


@dataclass(slots=True)
class SubmissionResult:
    level: int
    strokes: int
    previous_best: int | None
    duel: Duel | None
    outcome: DuelOutcome | None
    rank: int | None

    @property
    def is_new_best(self) -> bool:
        return self.previous_best is None or self.strokes < self.previous_best


@dataclass(slots=True)
class DailyHole:
    hole_number: int | None
    display_date: str | None
    fetched_at: float
