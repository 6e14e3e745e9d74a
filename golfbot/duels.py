from __future__ import annotations

from .models import Duel, DuelOutcome, SubmissionResult
from .storage import Database


def resolve_duel(duel: Duel) -> DuelOutcome:
    if not duel.is_complete or duel.challenger_strokes is None or duel.opponent_strokes is None:
        raise ValueError(f"Duel {duel.duel_id} is not complete")
    if duel.challenger_strokes == duel.opponent_strokes:
        return DuelOutcome(winner_id=None, loser_id=None)
    if duel.challenger_strokes < duel.opponent_strokes:
        return DuelOutcome(winner_id=duel.challenger_id, loser_id=duel.opponent_id)
    return DuelOutcome(winner_id=duel.opponent_id, loser_id=duel.challenger_id)


def bind_score_to_duel(
    db: Database,
    *,
    guild_id: int,
    user_id: int,
    level: int,
    strokes: int,
) -> Duel | None:
    """Attach a submitted score to the user's most recent pending duel on that level.

    Only one duel is touched per submission. Returns the duel as it stands after
    the write, or None when the user has no pending duel for the level.
    """
    duel = db.find_pending_duel(guild_id, user_id, level)
    if duel is None:
        return None
    return db.submit_duel_result(duel.duel_id, user_id, strokes)


def submit_score(
    db: Database,
    *,
    guild_id: int,
    user_id: int,
    username: str,
    level: int,
    strokes: int,
) -> SubmissionResult:
    previous_best = db.get_best_for_level(guild_id, user_id, level)
    db.record_score(
        guild_id=guild_id,
        user_id=user_id,
        username=username,
        level=level,
        strokes=strokes,
    )

    duel = bind_score_to_duel(db, guild_id=guild_id, user_id=user_id, level=level, strokes=strokes)
    outcome = resolve_duel(duel) if duel is not None and duel.is_complete else None

    return SubmissionResult(
        level=level,
        strokes=strokes,
        previous_best=previous_best,
        duel=duel,
        outcome=outcome,
        rank=db.level_rank(guild_id, level, user_id),
    )
