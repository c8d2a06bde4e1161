from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog

from trivia_duels.game.duels.constants import (
    DUEL_DEFAULT_ANSWER_TIME_MS,
    DUEL_FINISHED_STATUSES,
    DUEL_HISTORY_DEFAULT_LIMIT,
    DUEL_INCOMING_LIMIT,
    DUEL_LIVE_STATUSES,
    DUEL_PRE_JOIN_STATUSES,
    DUEL_STATUS_ACTIVE,
    DUEL_STATUS_COMPLETED,
    DUEL_STATUS_DECLINED,
    DUEL_STATUS_INVITE,
    DUEL_STATUS_WAITING_FOR_P2,
    FORFEIT_ANSWER,
)
from trivia_duels.game.duels.errors import (
    DuelAlreadyJoinedError,
    DuelExpiredError,
    DuelOwnDuelError,
    DuelPreconditionFailedError,
    DuelUnauthorizedError,
)
from trivia_duels.game.duels.guards import require_creator, require_invitee, require_participant
from trivia_duels.game.duels.notifications import DuelNotifier, NullDuelNotifier, deliver_best_effort
from trivia_duels.game.duels.stats import compute_duel_stats
from trivia_duels.game.duels.store import DuelStore, Increment
from trivia_duels.game.duels.timing import (
    apply_read_time_expiry,
    async_expires_at,
    format_remaining_hhmm,
    invite_created_after,
    is_async_window_over,
    is_unjoined_expired,
    listing_created_after,
)
from trivia_duels.game.duels.types import AsyncPassResult, DuelSnapshot, DuelStats
from trivia_duels.game.duels.winner import (
    resolve_duel_result_for_user,
    resolve_final_winner,
    resolve_recorded_round,
)

logger = structlog.get_logger("trivia_duels.game.duels.lifecycle")


def _slot_field(slot: int, name: str) -> str:
    return f"player{slot}_{name}"


class DuelLifecycleController:
    """State transitions of a single duel.

    Every write is a conditional update against the status (and round) that
    was read, so two concurrent transitions of the same duel cannot both
    succeed. Operations that act on behalf of a player go through the role
    guards and receive the freshly loaded snapshot instead of the id.
    """

    def __init__(self, store: DuelStore, notifier: DuelNotifier | None = None) -> None:
        self.store = store
        self.notifier = notifier or NullDuelNotifier()

    async def get_for_user(self, duel_id: UUID, user_id: str, *, now_utc: datetime) -> DuelSnapshot:
        duel = await self.store.get(duel_id)
        # Open lobbies are visible to anyone holding the id so they can join.
        if not duel.is_participant(user_id) and duel.status not in DUEL_PRE_JOIN_STATUSES:
            raise DuelUnauthorizedError
        return apply_read_time_expiry(duel, now_utc=now_utc)

    async def join(self, duel_id: UUID, user_id: str, *, now_utc: datetime) -> DuelSnapshot:
        duel = await self.store.get(duel_id)
        if is_unjoined_expired(duel, now_utc=now_utc):
            raise DuelExpiredError
        if duel.player1_id == user_id:
            raise DuelOwnDuelError
        if duel.status not in DUEL_PRE_JOIN_STATUSES:
            raise DuelAlreadyJoinedError
        if duel.is_async:
            # Async challenges are played in turns, never joined live.
            raise DuelPreconditionFailedError
        if duel.player2_id is not None and duel.player2_id != user_id:
            raise DuelUnauthorizedError

        try:
            joined = await self.store.conditional_update(
                duel.duel_id,
                expected_statuses=DUEL_PRE_JOIN_STATUSES,
                patch={
                    "player2_id": user_id,
                    "status": DUEL_STATUS_ACTIVE,
                    "round_start_at": None,
                    "updated_at": now_utc,
                },
            )
        except DuelPreconditionFailedError as exc:
            logger.info("duel_join_lost_race", duel_id=str(duel.duel_id), user_id=user_id)
            raise DuelAlreadyJoinedError from exc

        logger.info(
            "duel_joined",
            duel_id=str(joined.duel_id),
            player1_id=joined.player1_id,
            player2_id=user_id,
            sport=joined.sport,
        )
        await deliver_best_effort(
            "turn",
            self.notifier.notify_turn(joined.player1_id, joined.duel_id),
            duel_id=str(joined.duel_id),
        )
        return joined

    @require_participant
    async def submit_answer(
        self,
        duel: DuelSnapshot,
        caller_id: str,
        *,
        answer: str,
        elapsed_ms: int,
        now_utc: datetime,
    ) -> DuelSnapshot:
        if duel.status != DUEL_STATUS_ACTIVE:
            raise DuelPreconditionFailedError
        slot = duel.player_slot(caller_id)
        updated = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_ACTIVE},
            expected_round=duel.current_round,
            patch={
                _slot_field(slot, "answer"): answer,
                _slot_field(slot, "answer_time"): max(0, int(elapsed_ms)),
                "updated_at": now_utc,
            },
        )
        logger.info(
            "duel_answer_submitted",
            duel_id=str(duel.duel_id),
            user_id=caller_id,
            round=duel.current_round,
            elapsed_ms=max(0, int(elapsed_ms)),
        )
        return updated

    @require_participant
    async def start_round(self, duel: DuelSnapshot, caller_id: str, *, now_utc: datetime) -> DuelSnapshot:
        if duel.status != DUEL_STATUS_ACTIVE:
            raise DuelPreconditionFailedError
        if duel.round_start_at is not None:
            return duel
        return await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_ACTIVE},
            expected_round=duel.current_round,
            patch={"round_start_at": now_utc, "updated_at": now_utc},
        )

    @require_participant
    async def advance_round(
        self,
        duel: DuelSnapshot,
        caller_id: str,
        *,
        next_question_id: str,
        p1_correct: bool,
        p2_correct: bool,
        p1_time_ms: int,
        p2_time_ms: int,
        now_utc: datetime,
    ) -> DuelSnapshot:
        if duel.status != DUEL_STATUS_ACTIVE:
            raise DuelPreconditionFailedError
        if duel.current_round >= duel.question_count:
            raise DuelPreconditionFailedError

        question_ids = list(duel.question_ids)
        if next_question_id not in question_ids:
            question_ids.append(next_question_id)

        advanced = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_ACTIVE},
            expected_round=duel.current_round,
            patch={
                "player1_score": Increment(1 if p1_correct else 0),
                "player2_score": Increment(1 if p2_correct else 0),
                "player1_total_time": Increment(max(0, int(p1_time_ms))),
                "player2_total_time": Increment(max(0, int(p2_time_ms))),
                "question_ids": question_ids,
                "current_round": duel.current_round + 1,
                "player1_answer": None,
                "player2_answer": None,
                "player1_answer_time": None,
                "player2_answer_time": None,
                "round_start_at": None,
                "updated_at": now_utc,
            },
        )
        logger.info(
            "duel_round_advanced",
            duel_id=str(duel.duel_id),
            round=advanced.current_round,
            question_count=advanced.question_count,
            player1_score=advanced.player1_score,
            player2_score=advanced.player2_score,
        )
        return advanced

    @require_participant
    async def finish(
        self,
        duel: DuelSnapshot,
        caller_id: str,
        *,
        correct_answer: str,
        now_utc: datetime,
    ) -> DuelSnapshot:
        if duel.status != DUEL_STATUS_ACTIVE:
            raise DuelPreconditionFailedError
        if duel.current_round != duel.question_count:
            raise DuelPreconditionFailedError
        # A timed-out player submits a timeout answer; an absent one is handled by forfeit.
        if duel.player1_answer is None or duel.player2_answer is None:
            raise DuelPreconditionFailedError

        p1_correct = duel.player1_answer == correct_answer
        p2_correct = duel.player2_answer == correct_answer
        p1_time = (
            duel.player1_answer_time
            if duel.player1_answer_time is not None
            else DUEL_DEFAULT_ANSWER_TIME_MS
        )
        p2_time = (
            duel.player2_answer_time
            if duel.player2_answer_time is not None
            else DUEL_DEFAULT_ANSWER_TIME_MS
        )
        if duel.question_count == 1:
            outcome = resolve_recorded_round(duel, correct_answer=correct_answer)
        else:
            outcome = resolve_final_winner(
                player1_id=duel.player1_id,
                player2_id=duel.player2_id,
                p1_score=duel.player1_score + int(p1_correct),
                p2_score=duel.player2_score + int(p2_correct),
            )

        finished = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_ACTIVE},
            expected_round=duel.current_round,
            patch={
                "player1_score": Increment(int(p1_correct)),
                "player2_score": Increment(int(p2_correct)),
                "player1_total_time": Increment(p1_time),
                "player2_total_time": Increment(p2_time),
                "status": DUEL_STATUS_COMPLETED,
                "winner_id": outcome.winner_id,
                "completed_at": now_utc,
                "updated_at": now_utc,
            },
        )
        logger.info(
            "duel_completed",
            duel_id=str(duel.duel_id),
            winner_id=outcome.winner_id,
            reason=outcome.reason,
            player1_score=finished.player1_score,
            player2_score=finished.player2_score,
        )
        await self._notify_completed(finished)
        return finished

    @require_participant
    async def submit_async_result(
        self,
        duel: DuelSnapshot,
        caller_id: str,
        *,
        result: AsyncPassResult,
        now_utc: datetime,
    ) -> DuelSnapshot:
        if not duel.is_async:
            raise DuelPreconditionFailedError
        if result.score < 0 or result.score > duel.question_count:
            raise ValueError("score must be between 0 and the duel question count")
        total_time_ms = max(0, int(result.total_time_ms))

        if duel.player_slot(caller_id) == 1:
            if duel.status != DUEL_STATUS_INVITE:
                raise DuelPreconditionFailedError
            if is_unjoined_expired(duel, now_utc=now_utc):
                raise DuelExpiredError
            passed = await self.store.conditional_update(
                duel.duel_id,
                expected_statuses={DUEL_STATUS_INVITE},
                patch={
                    "player1_score": Increment(result.score),
                    "player1_total_time": Increment(total_time_ms),
                    "player1_completed_at": now_utc,
                    "status": DUEL_STATUS_WAITING_FOR_P2,
                    "expires_at": async_expires_at(now_utc=now_utc),
                    "updated_at": now_utc,
                },
            )
            logger.info(
                "duel_async_pass_recorded",
                duel_id=str(duel.duel_id),
                user_id=caller_id,
                score=result.score,
                expires_at=passed.expires_at.isoformat() if passed.expires_at else None,
            )
            if passed.player2_id is not None:
                await deliver_best_effort(
                    "turn",
                    self.notifier.notify_turn(passed.player2_id, passed.duel_id),
                    duel_id=str(passed.duel_id),
                )
            return passed

        if duel.status != DUEL_STATUS_WAITING_FOR_P2:
            raise DuelPreconditionFailedError
        if is_async_window_over(duel, now_utc=now_utc):
            raise DuelExpiredError
        outcome = resolve_final_winner(
            player1_id=duel.player1_id,
            player2_id=duel.player2_id,
            p1_score=duel.player1_score,
            p2_score=result.score,
        )
        completed = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_WAITING_FOR_P2},
            patch={
                "player2_score": Increment(result.score),
                "player2_total_time": Increment(total_time_ms),
                "player2_completed_at": now_utc,
                "status": DUEL_STATUS_COMPLETED,
                "winner_id": outcome.winner_id,
                "completed_at": now_utc,
                "updated_at": now_utc,
            },
        )
        logger.info(
            "duel_completed",
            duel_id=str(duel.duel_id),
            winner_id=outcome.winner_id,
            reason=outcome.reason,
            player1_score=completed.player1_score,
            player2_score=completed.player2_score,
        )
        await self._notify_completed(completed)
        return completed

    @require_participant
    async def forfeit(self, duel: DuelSnapshot, caller_id: str, *, now_utc: datetime) -> DuelSnapshot:
        if duel.status not in DUEL_LIVE_STATUSES:
            raise DuelPreconditionFailedError
        # A designated but never-joined invitee is not an opponent yet.
        winner_id = None if duel.status in DUEL_PRE_JOIN_STATUSES else duel.opponent_of(caller_id)
        slot = duel.player_slot(caller_id)

        forfeited = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={duel.status},
            patch={
                _slot_field(slot, "answer"): FORFEIT_ANSWER,
                "status": DUEL_STATUS_COMPLETED,
                "winner_id": winner_id,
                "completed_at": now_utc,
                "updated_at": now_utc,
            },
        )
        logger.info(
            "duel_forfeited",
            duel_id=str(duel.duel_id),
            user_id=caller_id,
            winner_id=winner_id,
            previous_status=duel.status,
        )
        if winner_id is not None:
            await deliver_best_effort(
                "complete",
                self.notifier.notify_complete(winner_id, forfeited.duel_id, "win"),
                duel_id=str(forfeited.duel_id),
            )
        return forfeited

    @require_creator
    async def cancel(self, duel: DuelSnapshot, caller_id: str) -> None:
        if duel.status not in DUEL_PRE_JOIN_STATUSES:
            raise DuelUnauthorizedError
        deleted = await self.store.delete_pre_join(duel.duel_id, statuses=DUEL_PRE_JOIN_STATUSES)
        if not deleted:
            # Somebody joined between the read and the delete.
            raise DuelUnauthorizedError
        logger.info("duel_cancelled", duel_id=str(duel.duel_id), user_id=caller_id)

    @require_invitee
    async def decline(
        self,
        duel: DuelSnapshot,
        caller_id: str,
        *,
        decliner_name: str,
        now_utc: datetime,
    ) -> DuelSnapshot:
        if is_unjoined_expired(duel, now_utc=now_utc):
            raise DuelExpiredError
        declined = await self.store.conditional_update(
            duel.duel_id,
            expected_statuses=DUEL_PRE_JOIN_STATUSES,
            patch={"status": DUEL_STATUS_DECLINED, "updated_at": now_utc},
        )
        logger.info("duel_declined", duel_id=str(duel.duel_id), user_id=caller_id)
        await deliver_best_effort(
            "declined",
            self.notifier.notify_declined(declined.player1_id, declined.duel_id, decliner_name),
            duel_id=str(declined.duel_id),
        )
        return declined

    @require_creator
    async def mark_result_seen(self, duel: DuelSnapshot, caller_id: str) -> DuelSnapshot:
        if duel.status != DUEL_STATUS_COMPLETED:
            raise DuelPreconditionFailedError
        if duel.player1_result_seen:
            return duel
        return await self.store.conditional_update(
            duel.duel_id,
            expected_statuses={DUEL_STATUS_COMPLETED},
            patch={"player1_result_seen": True},
        )

    async def list_active(self, user_id: str, *, now_utc: datetime) -> list[DuelSnapshot]:
        duels = await self.store.list_for_user(
            user_id=user_id,
            statuses=DUEL_LIVE_STATUSES,
            created_after=listing_created_after(now_utc=now_utc),
        )
        return [apply_read_time_expiry(duel, now_utc=now_utc) for duel in duels]

    async def list_incoming(self, user_id: str, *, now_utc: datetime) -> list[DuelSnapshot]:
        return await self.store.list_incoming(
            user_id=user_id,
            created_after=invite_created_after(now_utc=now_utc),
            limit=DUEL_INCOMING_LIMIT,
        )

    async def list_history(
        self,
        user_id: str,
        *,
        limit: int | None = DUEL_HISTORY_DEFAULT_LIMIT,
    ) -> list[DuelSnapshot]:
        return await self.store.list_for_user(
            user_id=user_id,
            statuses=DUEL_FINISHED_STATUSES - {DUEL_STATUS_DECLINED},
            limit=limit,
        )

    async def get_stats(self, user_id: str) -> DuelStats:
        history = await self.list_history(user_id, limit=None)
        return compute_duel_stats(history, user_id=user_id)

    @staticmethod
    def time_remaining(expires_at: datetime, *, now_utc: datetime) -> tuple[int, int]:
        return format_remaining_hhmm(now_utc=now_utc, expires_at=expires_at)

    async def _notify_completed(self, duel: DuelSnapshot) -> None:
        for recipient_id in (duel.player1_id, duel.player2_id):
            if recipient_id is None:
                continue
            await deliver_best_effort(
                "complete",
                self.notifier.notify_complete(
                    recipient_id,
                    duel.duel_id,
                    resolve_duel_result_for_user(duel, user_id=recipient_id),
                ),
                duel_id=str(duel.duel_id),
                recipient_id=recipient_id,
            )
