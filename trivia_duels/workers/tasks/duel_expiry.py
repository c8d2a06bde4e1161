from __future__ import annotations

from datetime import datetime, timezone

import structlog

from trivia_duels.core.config import get_settings
from trivia_duels.db.session import SessionLocal
from trivia_duels.game.duels.constants import DUEL_STATUS_EXPIRED, DUEL_STATUS_WAITING_FOR_P2
from trivia_duels.game.duels.errors import DuelNotFoundError, DuelPreconditionFailedError
from trivia_duels.game.duels.notifications import (
    DuelNotifier,
    PushTokenResolver,
    build_duel_notifier,
    deliver_best_effort,
)
from trivia_duels.game.duels.store import DuelStore
from trivia_duels.workers.asyncio_runner import run_async_job
from trivia_duels.workers.celery_app import celery_app

logger = structlog.get_logger("trivia_duels.workers.tasks.duel_expiry")
settings = get_settings()

EXPIRY_BATCH_SIZE = max(1, int(settings.duel_expiry_batch_size))
SCAN_INTERVAL_SECONDS = max(30, int(settings.duel_expiry_scan_interval_seconds))


async def run_duel_expiry_sweep_async(
    *,
    batch_size: int = EXPIRY_BATCH_SIZE,
    store: DuelStore | None = None,
    notifier: DuelNotifier | None = None,
    token_resolver: PushTokenResolver | None = None,
    now_utc: datetime | None = None,
) -> dict[str, int]:
    """Persists expiry of async duels whose second player ran out of time.

    Player one already finished their pass, so they are recorded as the winner.
    """
    now_utc = now_utc or datetime.now(timezone.utc)
    resolved_batch_size = max(1, int(batch_size))
    store = store or DuelStore(SessionLocal)
    notifier = notifier or build_duel_notifier(token_resolver)

    due = await store.list_async_due_for_expiry(now_utc=now_utc, limit=resolved_batch_size)
    expired_total = 0
    skipped_total = 0
    notices_sent = 0
    notices_failed = 0
    for duel in due:
        try:
            expired = await store.conditional_update(
                duel.duel_id,
                expected_statuses={DUEL_STATUS_WAITING_FOR_P2},
                patch={
                    "status": DUEL_STATUS_EXPIRED,
                    "winner_id": duel.player1_id,
                    "completed_at": now_utc,
                    "updated_at": now_utc,
                },
            )
        except (DuelPreconditionFailedError, DuelNotFoundError):
            # Finished or forfeited after the scan.
            skipped_total += 1
            continue
        expired_total += 1

        recipients = [(expired.player1_id, "win")]
        if expired.player2_id is not None:
            recipients.append((expired.player2_id, "loss"))
        for recipient_id, result in recipients:
            sent = await deliver_best_effort(
                "complete",
                notifier.notify_complete(recipient_id, expired.duel_id, result),
                duel_id=str(expired.duel_id),
                recipient_id=recipient_id,
            )
            if sent:
                notices_sent += 1
            else:
                notices_failed += 1

    result = {
        "batch_size": resolved_batch_size,
        "due_total": len(due),
        "expired_total": expired_total,
        "skipped_total": skipped_total,
        "notice_sent_total": notices_sent,
        "notice_failed_total": notices_failed,
    }
    logger.info("duel_expiry_sweep_processed", **result)
    return result


@celery_app.task(name="trivia_duels.workers.tasks.duel_expiry.run_duel_expiry_sweep")
def run_duel_expiry_sweep(batch_size: int = EXPIRY_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_duel_expiry_sweep_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "duel-expiry-sweep-hourly": {
            "task": "trivia_duels.workers.tasks.duel_expiry.run_duel_expiry_sweep",
            "schedule": float(SCAN_INTERVAL_SECONDS),
            "options": {"queue": "q_normal"},
        },
    }
)
