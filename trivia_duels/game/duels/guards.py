from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

import structlog

from trivia_duels.game.duels.constants import DUEL_PRE_JOIN_STATUSES
from trivia_duels.game.duels.errors import DuelUnauthorizedError
from trivia_duels.game.duels.types import DuelSnapshot

logger = structlog.get_logger("trivia_duels.game.duels.guards")

ROLE_PARTICIPANT = "participant"
ROLE_CREATOR = "creator"
ROLE_INVITEE = "invitee"

T = TypeVar("T")


def caller_has_role(duel: DuelSnapshot, *, caller_id: str, role: str) -> bool:
    if role == ROLE_PARTICIPANT:
        return duel.is_participant(caller_id)
    if role == ROLE_CREATOR:
        return caller_id == duel.player1_id
    if role == ROLE_INVITEE:
        if caller_id == duel.player1_id or duel.status not in DUEL_PRE_JOIN_STATUSES:
            return False
        return duel.player2_id is None or duel.player2_id == caller_id
    raise ValueError(f"unknown duel role: {role}")


def require_role(role: str = ROLE_PARTICIPANT):
    """Loads the duel and checks the caller before the wrapped operation runs.

    The wrapped coroutine method is called with the loaded `DuelSnapshot` in
    place of the duel id: `method(self, duel, caller_id, ...)`.
    """

    def decorator(
        method: Callable[..., Awaitable[T]],
    ) -> Callable[..., Awaitable[T]]:
        @functools.wraps(method)
        async def wrapper(self: Any, duel_id: UUID, caller_id: str, *args: Any, **kwargs: Any) -> T:
            duel = await self.store.get(duel_id)
            if not caller_has_role(duel, caller_id=caller_id, role=role):
                logger.warning(
                    "duel_access_denied",
                    duel_id=str(duel_id),
                    caller_id=caller_id,
                    required_role=role,
                    operation=method.__name__,
                )
                raise DuelUnauthorizedError
            return await method(self, duel, caller_id, *args, **kwargs)

        return wrapper

    return decorator


require_participant = require_role(ROLE_PARTICIPANT)
require_creator = require_role(ROLE_CREATOR)
require_invitee = require_role(ROLE_INVITEE)
