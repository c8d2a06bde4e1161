from trivia_duels.db.models.base import Base
from trivia_duels.db.models.duels import Duel

__all__ = [
    "Base",
    "Duel",
]
