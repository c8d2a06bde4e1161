from __future__ import annotations

from trivia_duels.game.duels.stats import compute_duel_stats
from tests.game.duel_snapshots import build_snapshot


def test_stats_count_results_and_streak_from_newest() -> None:
    history = [
        build_snapshot(status="completed", winner_id="p1"),
        build_snapshot(status="completed", winner_id="p1"),
        build_snapshot(status="completed", winner_id=None),
        build_snapshot(status="completed", winner_id="p1"),
        build_snapshot(status="completed", winner_id="p2"),
    ]

    stats = compute_duel_stats(history, user_id="p1")

    assert stats.total_duels == 5
    assert stats.wins == 3
    assert stats.losses == 1
    assert stats.ties == 1
    assert stats.win_rate == 60
    assert stats.current_streak == 2


def test_stats_win_rate_rounds_half_up() -> None:
    history = [build_snapshot(status="completed", winner_id="p1")] + [
        build_snapshot(status="completed", winner_id="p2") for _ in range(7)
    ]

    stats = compute_duel_stats(history, user_id="p1")

    assert stats.win_rate == 13
    assert stats.current_streak == 1


def test_stats_empty_history() -> None:
    stats = compute_duel_stats([], user_id="p1")

    assert stats.total_duels == 0
    assert stats.win_rate == 0
    assert stats.current_streak == 0
