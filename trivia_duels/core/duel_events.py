from __future__ import annotations

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from itertools import count
from uuid import UUID

import structlog

logger = structlog.get_logger("trivia_duels.core.duel_events")


@dataclass(frozen=True, slots=True)
class DuelUpdated:
    duel_id: UUID
    fields_changed: tuple[str, ...]
    status: str | None = None
    deleted: bool = False


DuelUpdateHandler = Callable[[DuelUpdated], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class Subscription:
    duel_id: UUID
    token: int


@dataclass(slots=True)
class DuelEventBus:
    """In-process pub/sub keyed by duel id.

    Delivery is best-effort: a failing handler is logged and skipped, the
    committed duel state is never affected by it.
    """

    _handlers: dict[UUID, dict[int, DuelUpdateHandler]] = field(
        default_factory=lambda: defaultdict(dict)
    )
    _tokens: count = field(default_factory=lambda: count(1))

    def subscribe(self, duel_id: UUID, on_change: DuelUpdateHandler) -> Subscription:
        token = next(self._tokens)
        self._handlers[duel_id][token] = on_change
        return Subscription(duel_id=duel_id, token=token)

    def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.duel_id)
        if handlers is None:
            return
        handlers.pop(subscription.token, None)
        if not handlers:
            self._handlers.pop(subscription.duel_id, None)

    def subscriber_count(self, duel_id: UUID) -> int:
        return len(self._handlers.get(duel_id, {}))

    async def publish(self, event: DuelUpdated) -> int:
        delivered = 0
        for token, handler in list(self._handlers.get(event.duel_id, {}).items()):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(
                    "duel_event_delivery_failed",
                    duel_id=str(event.duel_id),
                    subscription_token=token,
                    fields_changed=list(event.fields_changed),
                )
        return delivered
