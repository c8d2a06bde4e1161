from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from trivia_duels.game.duels.constants import (
    DUEL_ASYNC_TTL_SECONDS,
    DUEL_INVITE_TTL_SECONDS,
    DUEL_LISTING_WINDOW_SECONDS,
    DUEL_PRE_JOIN_STATUSES,
    DUEL_STATUS_EXPIRED,
    DUEL_STATUS_WAITING_FOR_P2,
)
from trivia_duels.game.duels.types import DuelSnapshot


def async_expires_at(*, now_utc: datetime) -> datetime:
    return now_utc + timedelta(seconds=DUEL_ASYNC_TTL_SECONDS)


def invite_created_after(*, now_utc: datetime) -> datetime:
    return now_utc - timedelta(seconds=DUEL_INVITE_TTL_SECONDS)


def listing_created_after(*, now_utc: datetime) -> datetime:
    return now_utc - timedelta(seconds=DUEL_LISTING_WINDOW_SECONDS)


def is_unjoined_expired(duel: DuelSnapshot, *, now_utc: datetime) -> bool:
    if duel.status not in DUEL_PRE_JOIN_STATUSES:
        return False
    return now_utc - duel.created_at >= timedelta(seconds=DUEL_INVITE_TTL_SECONDS)


def is_async_window_over(duel: DuelSnapshot, *, now_utc: datetime) -> bool:
    if duel.status != DUEL_STATUS_WAITING_FOR_P2 or duel.expires_at is None:
        return False
    return duel.expires_at <= now_utc


def apply_read_time_expiry(duel: DuelSnapshot, *, now_utc: datetime) -> DuelSnapshot:
    """Reports lazily expired duels as `expired` without touching the stored row."""
    if is_unjoined_expired(duel, now_utc=now_utc):
        return replace(duel, status=DUEL_STATUS_EXPIRED, winner_id=None)
    if is_async_window_over(duel, now_utc=now_utc):
        # The challenger finished their pass; the absent opponent forfeits.
        return replace(duel, status=DUEL_STATUS_EXPIRED, winner_id=duel.player1_id)
    return duel


def format_remaining_hhmm(*, now_utc: datetime, expires_at: datetime) -> tuple[int, int]:
    remaining_seconds = max(0, int((expires_at - now_utc).total_seconds()))
    return remaining_seconds // 3600, (remaining_seconds % 3600) // 60
