from __future__ import annotations

import math
from collections.abc import Iterable

from trivia_duels.game.duels.types import DuelSnapshot, DuelStats
from trivia_duels.game.duels.winner import resolve_duel_result_for_user


def _win_rate_percent(*, wins: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding: 1 of 8 is 13%, not banker's 12%.
    return int(math.floor(wins * 100 / total + 0.5))


def compute_duel_stats(history: Iterable[DuelSnapshot], *, user_id: str) -> DuelStats:
    """Aggregates finished duels given newest first.

    The current streak counts consecutive wins from the most recent duel and
    stops at the first tie or loss.
    """
    stats = DuelStats(total_duels=0, wins=0, losses=0, ties=0, win_rate=0, current_streak=0)
    streak_counting = True
    for duel in history:
        result = resolve_duel_result_for_user(duel, user_id=user_id)
        if result == "win":
            stats.wins += 1
            if streak_counting:
                stats.current_streak += 1
        elif result == "tie":
            stats.ties += 1
            streak_counting = False
        else:
            stats.losses += 1
            streak_counting = False

    stats.total_duels = stats.wins + stats.losses + stats.ties
    stats.win_rate = _win_rate_percent(wins=stats.wins, total=stats.total_duels)
    return stats
