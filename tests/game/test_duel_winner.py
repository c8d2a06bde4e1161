from __future__ import annotations

from dataclasses import replace

from trivia_duels.game.duels.winner import (
    resolve_duel_result_for_user,
    resolve_final_winner,
    resolve_recorded_round,
    resolve_round_winner,
)
from tests.game.duel_snapshots import build_snapshot


def test_round_both_wrong_is_tie() -> None:
    outcome = resolve_round_winner(
        player1_id="p1",
        player2_id="p2",
        p1_correct=False,
        p2_correct=False,
        p1_time_ms=1000,
        p2_time_ms=2000,
    )
    assert outcome.winner_id is None
    assert outcome.reason == "tie_both_wrong"


def test_round_single_correct_answer_wins_even_if_slower() -> None:
    outcome = resolve_round_winner(
        player1_id="p1",
        player2_id="p2",
        p1_correct=False,
        p2_correct=True,
        p1_time_ms=500,
        p2_time_ms=9000,
    )
    assert outcome.winner_id == "p2"
    assert outcome.reason == "p2_correct"


def test_round_both_correct_faster_wins() -> None:
    outcome = resolve_round_winner(
        player1_id="p1",
        player2_id="p2",
        p1_correct=True,
        p2_correct=True,
        p1_time_ms=2100,
        p2_time_ms=2400,
    )
    assert outcome.winner_id == "p1"
    assert outcome.reason == "p1_faster"


def test_round_missing_time_counts_as_slowest() -> None:
    outcome = resolve_round_winner(
        player1_id="p1",
        player2_id="p2",
        p1_correct=True,
        p2_correct=True,
        p1_time_ms=None,
        p2_time_ms=9999,
    )
    assert outcome.winner_id == "p2"
    assert outcome.reason == "p2_faster"


def test_round_identical_times_stay_tied() -> None:
    outcome = resolve_round_winner(
        player1_id="p1",
        player2_id="p2",
        p1_correct=True,
        p2_correct=True,
        p1_time_ms=3000,
        p2_time_ms=3000,
    )
    assert outcome.winner_id is None
    assert outcome.reason == "tie_same_time"


def test_final_equal_scores_tie_regardless_of_time() -> None:
    outcome = resolve_final_winner(player1_id="p1", player2_id="p2", p1_score=3, p2_score=3)
    assert outcome.winner_id is None
    assert outcome.reason == "tie_equal_score"


def test_final_higher_score_wins() -> None:
    outcome = resolve_final_winner(player1_id="p1", player2_id="p2", p1_score=2, p2_score=4)
    assert outcome.winner_id == "p2"
    assert outcome.reason == "p2_higher_score"


def test_resolve_recorded_round_grades_stored_answers() -> None:
    duel = build_snapshot(
        player1_answer="Celtics",
        player2_answer="Lakers",
        player1_answer_time=4000,
        player2_answer_time=1000,
    )
    outcome = resolve_recorded_round(duel, correct_answer="Celtics")
    assert outcome.winner_id == "p1"


def test_result_for_user() -> None:
    duel = build_snapshot(winner_id="p1")
    assert resolve_duel_result_for_user(duel, user_id="p1") == "win"
    assert resolve_duel_result_for_user(duel, user_id="p2") == "loss"
    assert resolve_duel_result_for_user(replace(duel, winner_id=None), user_id="p2") == "tie"
