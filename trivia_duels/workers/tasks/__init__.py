from trivia_duels.workers.tasks.duel_expiry import run_duel_expiry_sweep

__all__ = [
    "run_duel_expiry_sweep",
]
