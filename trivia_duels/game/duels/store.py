from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from trivia_duels.core.duel_events import DuelEventBus, DuelUpdated, DuelUpdateHandler, Subscription
from trivia_duels.db.models.duels import Duel
from trivia_duels.db.repo.duels_repo import DuelsRepo
from trivia_duels.game.duels.errors import (
    DuelConflictError,
    DuelNotFoundError,
    DuelPreconditionFailedError,
)
from trivia_duels.game.duels.types import DuelSnapshot


@dataclass(frozen=True, slots=True)
class Increment:
    """Patch value applied as `column = column + amount` inside the conditional write."""

    amount: int


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_duel_snapshot(duel: Duel) -> DuelSnapshot:
    return DuelSnapshot(
        duel_id=duel.id,
        sport=duel.sport,
        status=duel.status,
        is_async=bool(duel.is_async),
        player1_id=duel.player1_id,
        player2_id=duel.player2_id,
        question_ids=tuple(duel.question_ids or ()),
        question_count=int(duel.question_count),
        current_round=int(duel.current_round),
        player1_answer=duel.player1_answer,
        player2_answer=duel.player2_answer,
        player1_answer_time=duel.player1_answer_time,
        player2_answer_time=duel.player2_answer_time,
        player1_score=int(duel.player1_score),
        player2_score=int(duel.player2_score),
        player1_total_time=int(duel.player1_total_time),
        player2_total_time=int(duel.player2_total_time),
        winner_id=duel.winner_id,
        created_at=_as_utc(duel.created_at),
        updated_at=_as_utc(duel.updated_at),
        invite_code=duel.invite_code,
        player1_completed_at=_as_utc(duel.player1_completed_at),
        player2_completed_at=_as_utc(duel.player2_completed_at),
        player1_result_seen=bool(duel.player1_result_seen),
        round_start_at=_as_utc(duel.round_start_at),
        expires_at=_as_utc(duel.expires_at),
        completed_at=_as_utc(duel.completed_at),
    )


def _resolve_patch_values(patch: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name, value in patch.items():
        if isinstance(value, Increment):
            values[field_name] = getattr(Duel, field_name) + value.amount
        else:
            values[field_name] = value
    return values


class DuelStore:
    """Persistence boundary for duel records.

    Every method runs in its own transaction. Mutations are conditional on
    the state the caller last observed, and each committed mutation is
    published on the event bus.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        event_bus: DuelEventBus | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.event_bus = event_bus or DuelEventBus()

    async def insert(
        self,
        *,
        sport: str,
        player1_id: str,
        status: str,
        question_ids: Sequence[str],
        question_count: int,
        now_utc: datetime,
        player2_id: str | None = None,
        invite_code: str | None = None,
        is_async: bool = False,
        expires_at: datetime | None = None,
        player1_score: int = 0,
        player1_total_time: int = 0,
        player1_completed_at: datetime | None = None,
    ) -> DuelSnapshot:
        row = Duel(
            id=uuid4(),
            sport=sport,
            invite_code=invite_code,
            is_async=is_async,
            player1_id=player1_id,
            player2_id=player2_id,
            question_ids=list(question_ids),
            question_count=max(1, int(question_count)),
            current_round=1,
            player1_answer=None,
            player2_answer=None,
            player1_answer_time=None,
            player2_answer_time=None,
            player1_score=max(0, int(player1_score)),
            player2_score=0,
            player1_total_time=max(0, int(player1_total_time)),
            player2_total_time=0,
            player1_completed_at=player1_completed_at,
            player2_completed_at=None,
            player1_result_seen=False,
            status=status,
            winner_id=None,
            round_start_at=None,
            expires_at=expires_at,
            created_at=now_utc,
            updated_at=now_utc,
            completed_at=None,
        )
        try:
            async with self._session_factory.begin() as session:
                created = await DuelsRepo.create(session, duel=row)
                snapshot = build_duel_snapshot(created)
        except IntegrityError as exc:
            raise DuelConflictError from exc
        return snapshot

    async def get(self, duel_id: UUID) -> DuelSnapshot:
        async with self._session_factory() as session:
            duel = await DuelsRepo.get_by_id(session, duel_id)
            if duel is None:
                raise DuelNotFoundError
            return build_duel_snapshot(duel)

    async def get_by_invite_code(self, invite_code: str) -> DuelSnapshot:
        async with self._session_factory() as session:
            duel = await DuelsRepo.get_by_invite_code(session, invite_code)
            if duel is None:
                raise DuelNotFoundError
            return build_duel_snapshot(duel)

    async def conditional_update(
        self,
        duel_id: UUID,
        *,
        expected_statuses: Collection[str],
        expected_round: int | None = None,
        patch: Mapping[str, Any],
    ) -> DuelSnapshot:
        async with self._session_factory.begin() as session:
            updated = await DuelsRepo.update_if(
                session,
                duel_id=duel_id,
                expected_statuses=expected_statuses,
                expected_round=expected_round,
                values=_resolve_patch_values(patch),
            )
            if updated is None:
                existing = await DuelsRepo.get_by_id(session, duel_id)
                if existing is None:
                    raise DuelNotFoundError
                raise DuelPreconditionFailedError
            snapshot = build_duel_snapshot(updated)

        await self.event_bus.publish(
            DuelUpdated(
                duel_id=duel_id,
                fields_changed=tuple(sorted(name for name in patch if name != "updated_at")),
                status=snapshot.status,
            )
        )
        return snapshot

    async def delete_pre_join(self, duel_id: UUID, *, statuses: Collection[str]) -> bool:
        async with self._session_factory.begin() as session:
            deleted = await DuelsRepo.delete_if_status(
                session,
                duel_id=duel_id,
                statuses=statuses,
            )
        if deleted:
            await self.event_bus.publish(
                DuelUpdated(duel_id=duel_id, fields_changed=(), status=None, deleted=True)
            )
        return deleted

    async def query_waiting(
        self,
        *,
        sport: str,
        question_count: int,
        exclude_owner_id: str,
        created_after: datetime,
        limit: int,
    ) -> list[DuelSnapshot]:
        async with self._session_factory() as session:
            rows = await DuelsRepo.list_waiting(
                session,
                sport=sport,
                question_count=question_count,
                exclude_owner_id=exclude_owner_id,
                created_after=created_after,
                limit=limit,
            )
            return [build_duel_snapshot(row) for row in rows]

    async def list_for_user(
        self,
        *,
        user_id: str,
        statuses: Collection[str],
        created_after: datetime | None = None,
        limit: int | None = None,
    ) -> list[DuelSnapshot]:
        async with self._session_factory() as session:
            rows = await DuelsRepo.list_for_user(
                session,
                user_id=user_id,
                statuses=statuses,
                created_after=created_after,
                limit=limit,
            )
            return [build_duel_snapshot(row) for row in rows]

    async def list_incoming(
        self,
        *,
        user_id: str,
        created_after: datetime,
        limit: int,
    ) -> list[DuelSnapshot]:
        async with self._session_factory() as session:
            rows = await DuelsRepo.list_incoming_invites(
                session,
                user_id=user_id,
                created_after=created_after,
                limit=limit,
            )
            return [build_duel_snapshot(row) for row in rows]

    async def list_async_due_for_expiry(
        self,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[DuelSnapshot]:
        async with self._session_factory() as session:
            rows = await DuelsRepo.list_async_due_for_expiry(
                session,
                now_utc=now_utc,
                limit=limit,
            )
            return [build_duel_snapshot(row) for row in rows]

    def subscribe(self, duel_id: UUID, on_change: DuelUpdateHandler) -> Subscription:
        return self.event_bus.subscribe(duel_id, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.event_bus.unsubscribe(subscription)
