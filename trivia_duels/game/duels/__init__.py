from trivia_duels.game.duels.engine import DuelEngine, build_duel_engine
from trivia_duels.game.duels.lifecycle import DuelLifecycleController
from trivia_duels.game.duels.matchmaking import Matchmaker
from trivia_duels.game.duels.store import DuelStore, Increment

__all__ = [
    "DuelEngine",
    "DuelLifecycleController",
    "DuelStore",
    "Increment",
    "Matchmaker",
    "build_duel_engine",
]
