from __future__ import annotations

from collections.abc import Collection, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_duels.db.models.duels import Duel


class DuelsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, duel_id: UUID) -> Duel | None:
        return await session.get(Duel, duel_id, populate_existing=True)

    @staticmethod
    async def get_by_invite_code(session: AsyncSession, invite_code: str) -> Duel | None:
        stmt = select(Duel).where(Duel.invite_code == invite_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, duel: Duel) -> Duel:
        session.add(duel)
        await session.flush()
        return duel

    @staticmethod
    async def update_if(
        session: AsyncSession,
        *,
        duel_id: UUID,
        expected_statuses: Collection[str],
        expected_round: int | None,
        values: Mapping[str, Any],
    ) -> Duel | None:
        stmt = update(Duel).where(
            Duel.id == duel_id,
            Duel.status.in_(tuple(expected_statuses)),
        )
        if expected_round is not None:
            stmt = stmt.where(Duel.current_round == expected_round)
        stmt = (
            stmt.values(**values)
            .returning(Duel)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_if_status(
        session: AsyncSession,
        *,
        duel_id: UUID,
        statuses: Collection[str],
    ) -> bool:
        stmt = (
            delete(Duel)
            .where(Duel.id == duel_id, Duel.status.in_(tuple(statuses)))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0) > 0

    @staticmethod
    async def list_waiting(
        session: AsyncSession,
        *,
        sport: str,
        question_count: int,
        exclude_owner_id: str,
        created_after: datetime,
        limit: int,
    ) -> list[Duel]:
        stmt = (
            select(Duel)
            .where(
                Duel.status == "waiting",
                Duel.sport == sport,
                Duel.question_count == question_count,
                Duel.player1_id != exclude_owner_id,
                Duel.created_at > created_after,
            )
            .order_by(Duel.created_at.asc(), Duel.id.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_for_user(
        session: AsyncSession,
        *,
        user_id: str,
        statuses: Collection[str],
        created_after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Duel]:
        stmt = select(Duel).where(
            or_(Duel.player1_id == user_id, Duel.player2_id == user_id),
            Duel.status.in_(tuple(statuses)),
        )
        if created_after is not None:
            stmt = stmt.where(Duel.created_at > created_after)
        stmt = stmt.order_by(Duel.created_at.desc(), Duel.id.desc())
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_incoming_invites(
        session: AsyncSession,
        *,
        user_id: str,
        created_after: datetime,
        limit: int,
    ) -> list[Duel]:
        stmt = (
            select(Duel)
            .where(
                Duel.status == "invite",
                Duel.player1_id != user_id,
                or_(Duel.player2_id.is_(None), Duel.player2_id == user_id),
                Duel.created_at > created_after,
            )
            .order_by(Duel.created_at.desc(), Duel.id.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_async_due_for_expiry(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[Duel]:
        stmt = (
            select(Duel)
            .where(
                Duel.status == "waiting_for_p2",
                Duel.expires_at.is_not(None),
                Duel.expires_at <= now_utc,
            )
            .order_by(Duel.expires_at.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
