from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog

from trivia_duels.core.invite_codes import generate_invite_code, normalize_invite_code
from trivia_duels.game.duels.constants import (
    DUEL_INVITE_CODE_ATTEMPTS,
    DUEL_MATCHMAKING_CANDIDATE_LIMIT,
    DUEL_STATUS_INVITE,
    DUEL_STATUS_WAITING,
    DUEL_STATUS_WAITING_FOR_P2,
)
from trivia_duels.game.duels.errors import (
    DuelAlreadyJoinedError,
    DuelConflictError,
    DuelExpiredError,
    DuelNotFoundError,
    DuelOwnDuelError,
    DuelPreconditionFailedError,
)
from trivia_duels.game.duels.lifecycle import DuelLifecycleController
from trivia_duels.game.duels.notifications import deliver_best_effort
from trivia_duels.game.duels.timing import async_expires_at, invite_created_after
from trivia_duels.game.duels.types import AsyncPassResult, DuelSnapshot
from trivia_duels.game.questions.selector import QuestionSelector
from trivia_duels.game.questions.types import TriviaQuestion

logger = structlog.get_logger("trivia_duels.game.duels.matchmaking")

# Errors meaning "somebody else got this lobby first"; the next candidate is tried.
_LOST_CANDIDATE_ERRORS = (
    DuelAlreadyJoinedError,
    DuelExpiredError,
    DuelNotFoundError,
    DuelPreconditionFailedError,
)


class Matchmaker:
    def __init__(
        self,
        controller: DuelLifecycleController,
        selector: QuestionSelector | None = None,
    ) -> None:
        self.controller = controller
        self.store = controller.store
        self.selector = selector or QuestionSelector()

    async def find_or_create(
        self,
        *,
        sport: str,
        requester_id: str,
        question_count: int,
        catalog: Sequence[TriviaQuestion],
        now_utc: datetime,
    ) -> DuelSnapshot:
        candidates = await self.store.query_waiting(
            sport=sport,
            question_count=question_count,
            exclude_owner_id=requester_id,
            created_after=invite_created_after(now_utc=now_utc),
            limit=DUEL_MATCHMAKING_CANDIDATE_LIMIT,
        )
        for candidate in candidates:
            try:
                joined = await self.controller.join(candidate.duel_id, requester_id, now_utc=now_utc)
            except _LOST_CANDIDATE_ERRORS as exc:
                logger.info(
                    "duel_matchmaking_candidate_lost",
                    duel_id=str(candidate.duel_id),
                    requester_id=requester_id,
                    error=exc.code,
                )
                continue
            logger.info(
                "duel_matchmaking_matched",
                duel_id=str(joined.duel_id),
                requester_id=requester_id,
                sport=sport,
                candidates_total=len(candidates),
            )
            return joined

        created = await self.store.insert(
            sport=sport,
            player1_id=requester_id,
            status=DUEL_STATUS_WAITING,
            question_ids=self.selector.select_questions(sport, catalog, question_count),
            question_count=question_count,
            now_utc=now_utc,
        )
        logger.info(
            "duel_matchmaking_created",
            duel_id=str(created.duel_id),
            requester_id=requester_id,
            sport=sport,
            question_count=question_count,
            candidates_total=len(candidates),
        )
        return created

    async def create_invite_duel(
        self,
        *,
        sport: str,
        creator_id: str,
        question_count: int,
        catalog: Sequence[TriviaQuestion],
        now_utc: datetime,
    ) -> DuelSnapshot:
        question_ids = self.selector.select_questions(sport, catalog, question_count)
        for attempt in range(1, DUEL_INVITE_CODE_ATTEMPTS + 1):
            invite_code = generate_invite_code()
            try:
                created = await self.store.insert(
                    sport=sport,
                    player1_id=creator_id,
                    status=DUEL_STATUS_INVITE,
                    question_ids=question_ids,
                    question_count=question_count,
                    now_utc=now_utc,
                    invite_code=invite_code,
                )
            except DuelConflictError:
                logger.warning("duel_invite_code_collision", attempt=attempt, creator_id=creator_id)
                continue
            logger.info(
                "duel_invite_created",
                duel_id=str(created.duel_id),
                creator_id=creator_id,
                sport=sport,
                invite_code=invite_code,
            )
            return created

        logger.error(
            "duel_invite_code_exhausted",
            creator_id=creator_id,
            attempts=DUEL_INVITE_CODE_ATTEMPTS,
        )
        raise DuelConflictError

    async def create_async_challenge(
        self,
        *,
        challenger_id: str,
        opponent_id: str,
        sport: str,
        question_count: int,
        catalog: Sequence[TriviaQuestion],
        now_utc: datetime,
        challenger_name: str,
        challenger_result: AsyncPassResult | None = None,
    ) -> DuelSnapshot:
        if challenger_id == opponent_id:
            raise DuelOwnDuelError

        question_ids = self.selector.select_questions(sport, catalog, question_count)
        if challenger_result is None:
            created = await self.store.insert(
                sport=sport,
                player1_id=challenger_id,
                player2_id=opponent_id,
                status=DUEL_STATUS_INVITE,
                question_ids=question_ids,
                question_count=question_count,
                now_utc=now_utc,
                is_async=True,
            )
        else:
            if challenger_result.score < 0 or challenger_result.score > question_count:
                raise ValueError("score must be between 0 and the duel question count")
            created = await self.store.insert(
                sport=sport,
                player1_id=challenger_id,
                player2_id=opponent_id,
                status=DUEL_STATUS_WAITING_FOR_P2,
                question_ids=question_ids,
                question_count=question_count,
                now_utc=now_utc,
                is_async=True,
                expires_at=async_expires_at(now_utc=now_utc),
                player1_score=challenger_result.score,
                player1_total_time=challenger_result.total_time_ms,
                player1_completed_at=now_utc,
            )

        logger.info(
            "duel_async_challenge_created",
            duel_id=str(created.duel_id),
            challenger_id=challenger_id,
            opponent_id=opponent_id,
            sport=sport,
            status=created.status,
        )
        await deliver_best_effort(
            "challenge",
            self.controller.notifier.notify_challenge(
                opponent_id,
                created.duel_id,
                challenger_name,
                sport=sport,
            ),
            duel_id=str(created.duel_id),
        )
        return created

    async def join_by_invite_code(
        self,
        invite_code: str,
        user_id: str,
        *,
        now_utc: datetime,
    ) -> DuelSnapshot:
        duel = await self.store.get_by_invite_code(normalize_invite_code(invite_code))
        if duel.status != DUEL_STATUS_INVITE:
            raise DuelAlreadyJoinedError
        return await self.controller.join(duel.duel_id, user_id, now_utc=now_utc)
