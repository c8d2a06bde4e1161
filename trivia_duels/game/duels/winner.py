from __future__ import annotations

import math

from trivia_duels.game.duels.types import DuelOutcome, DuelSnapshot


def resolve_round_winner(
    *,
    player1_id: str,
    player2_id: str | None,
    p1_correct: bool,
    p2_correct: bool,
    p1_time_ms: int | None,
    p2_time_ms: int | None,
) -> DuelOutcome:
    """Single-question rule: correctness first, then the lower elapsed time.

    A missing time counts as infinitely slow. Identical times stay a tie.
    """
    if not p1_correct and not p2_correct:
        return DuelOutcome(winner_id=None, reason="tie_both_wrong")
    if p1_correct and not p2_correct:
        return DuelOutcome(winner_id=player1_id, reason="p1_correct")
    if p2_correct and not p1_correct:
        return DuelOutcome(winner_id=player2_id, reason="p2_correct")

    p1_time = math.inf if p1_time_ms is None else p1_time_ms
    p2_time = math.inf if p2_time_ms is None else p2_time_ms
    if p1_time < p2_time:
        return DuelOutcome(winner_id=player1_id, reason="p1_faster")
    if p2_time < p1_time:
        return DuelOutcome(winner_id=player2_id, reason="p2_faster")
    return DuelOutcome(winner_id=None, reason="tie_same_time")


def resolve_final_winner(
    *,
    player1_id: str,
    player2_id: str | None,
    p1_score: int,
    p2_score: int,
) -> DuelOutcome:
    # Series level is score only; total time never breaks a tie here.
    if p1_score > p2_score:
        return DuelOutcome(winner_id=player1_id, reason="p1_higher_score")
    if p2_score > p1_score:
        return DuelOutcome(winner_id=player2_id, reason="p2_higher_score")
    return DuelOutcome(winner_id=None, reason="tie_equal_score")


def resolve_recorded_round(duel: DuelSnapshot, *, correct_answer: str) -> DuelOutcome:
    return resolve_round_winner(
        player1_id=duel.player1_id,
        player2_id=duel.player2_id,
        p1_correct=duel.player1_answer == correct_answer,
        p2_correct=duel.player2_answer == correct_answer,
        p1_time_ms=duel.player1_answer_time,
        p2_time_ms=duel.player2_answer_time,
    )


def resolve_duel_result_for_user(duel: DuelSnapshot, *, user_id: str) -> str:
    if duel.winner_id is None:
        return "tie"
    return "win" if duel.winner_id == user_id else "loss"
