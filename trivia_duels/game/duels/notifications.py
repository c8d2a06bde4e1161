from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from uuid import UUID

import httpx
import structlog

from trivia_duels.core.config import get_settings

logger = structlog.get_logger("trivia_duels.game.duels.notifications")

PushTokenResolver = Callable[[str], Awaitable[str | None]]

SPORT_NAMES: dict[str, str] = {
    "nba": "NBA",
    "pl": "Premier League",
    "nfl": "NFL",
    "mlb": "MLB",
}


class DuelNotifier(Protocol):
    async def notify_challenge(
        self, recipient_id: str, duel_id: UUID, challenger_name: str, *, sport: str
    ) -> bool: ...

    async def notify_turn(self, recipient_id: str, duel_id: UUID) -> bool: ...

    async def notify_complete(self, recipient_id: str, duel_id: UUID, result: str) -> bool: ...

    async def notify_declined(
        self, recipient_id: str, duel_id: UUID, decliner_name: str
    ) -> bool: ...


class NullDuelNotifier:
    """Used when push delivery is disabled; clients fall back to polling."""

    async def notify_challenge(
        self, recipient_id: str, duel_id: UUID, challenger_name: str, *, sport: str
    ) -> bool:
        return False

    async def notify_turn(self, recipient_id: str, duel_id: UUID) -> bool:
        return False

    async def notify_complete(self, recipient_id: str, duel_id: UUID, result: str) -> bool:
        return False

    async def notify_declined(self, recipient_id: str, duel_id: UUID, decliner_name: str) -> bool:
        return False


_RESULT_TITLES: dict[str, str] = {
    "win": "You Won!",
    "loss": "Duel Complete",
    "tie": "It's a Tie!",
}


class PushDuelNotifier:
    def __init__(
        self,
        *,
        token_resolver: PushTokenResolver,
        push_url: str,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._token_resolver = token_resolver
        self._push_url = push_url
        self._timeout_seconds = timeout_seconds

    async def notify_challenge(
        self, recipient_id: str, duel_id: UUID, challenger_name: str, *, sport: str
    ) -> bool:
        sport_name = SPORT_NAMES.get(sport, sport.upper())
        return await self._send(
            recipient_id,
            title="New Challenge!",
            body=f"{challenger_name} challenged you to {sport_name} trivia!",
            data={"type": "duel_challenge", "duelId": str(duel_id), "sport": sport},
        )

    async def notify_turn(self, recipient_id: str, duel_id: UUID) -> bool:
        return await self._send(
            recipient_id,
            title="Your turn!",
            body="Your opponent finished their round. Tap to play.",
            data={"type": "duel_turn", "duelId": str(duel_id)},
        )

    async def notify_complete(self, recipient_id: str, duel_id: UUID, result: str) -> bool:
        return await self._send(
            recipient_id,
            title=_RESULT_TITLES.get(result, "Duel Complete"),
            body="Tap to see results.",
            data={"type": "duel_complete", "duelId": str(duel_id), "result": result},
        )

    async def notify_declined(self, recipient_id: str, duel_id: UUID, decliner_name: str) -> bool:
        return await self._send(
            recipient_id,
            title="Challenge Declined",
            body=f"{decliner_name} declined your challenge",
            data={"type": "challenge_declined", "duelId": str(duel_id)},
        )

    async def _send(
        self,
        recipient_id: str,
        *,
        title: str,
        body: str,
        data: dict[str, Any],
    ) -> bool:
        push_token = await self._token_resolver(recipient_id)
        if not push_token:
            logger.info("duel_push_skipped_no_token", recipient_id=recipient_id, type=data["type"])
            return False
        message = {
            "to": push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(self._push_url, json=message)
                response.raise_for_status()
                payload = response.json()
        except Exception:
            logger.exception(
                "duel_push_delivery_failed",
                recipient_id=recipient_id,
                type=data["type"],
            )
            return False
        ticket = payload.get("data") if isinstance(payload, dict) else None
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            logger.warning(
                "duel_push_rejected",
                recipient_id=recipient_id,
                type=data["type"],
                error=ticket.get("message"),
            )
            return False
        return True


class HttpPushTokenResolver:
    """Looks up a user's push token from the profile service."""

    def __init__(self, *, lookup_url: str, timeout_seconds: float = 5.0) -> None:
        self._lookup_url = lookup_url
        self._timeout_seconds = timeout_seconds

    async def __call__(self, user_id: str) -> str | None:
        url = self._lookup_url.format(user_id=user_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.get(url)
                if response.status_code == httpx.codes.NOT_FOUND:
                    return None
                response.raise_for_status()
                payload = response.json()
        except Exception:
            logger.exception("duel_push_token_lookup_failed", recipient_id=user_id)
            return None
        token = payload.get("push_token") if isinstance(payload, dict) else None
        return str(token) if token else None


def build_duel_notifier(token_resolver: PushTokenResolver | None = None) -> DuelNotifier:
    settings = get_settings()
    if not settings.push_notifications_enabled:
        return NullDuelNotifier()
    if token_resolver is None and settings.push_token_lookup_url:
        token_resolver = HttpPushTokenResolver(
            lookup_url=settings.push_token_lookup_url,
            timeout_seconds=settings.push_timeout_seconds,
        )
    if token_resolver is None:
        logger.warning("duel_push_misconfigured", reason="no_push_token_resolver")
        return NullDuelNotifier()
    return PushDuelNotifier(
        token_resolver=token_resolver,
        push_url=settings.push_api_url,
        timeout_seconds=settings.push_timeout_seconds,
    )


async def deliver_best_effort(
    notification: str,
    send: Awaitable[bool],
    **log_fields: Any,
) -> bool:
    """Awaits a notifier call; failures are logged and never reach the caller."""
    try:
        return bool(await send)
    except Exception:
        logger.exception("duel_notification_failed", notification=notification, **log_fields)
        return False
