from __future__ import annotations

from collections.abc import Awaitable
from datetime import datetime, timezone
from functools import lru_cache
from typing import TypeVar
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from trivia_duels.game.duels.engine import DuelEngine, build_duel_engine
from trivia_duels.game.duels.errors import (
    DuelAlreadyJoinedError,
    DuelConflictError,
    DuelError,
    DuelExpiredError,
    DuelNotFoundError,
    DuelOwnDuelError,
    DuelPreconditionFailedError,
    DuelUnauthorizedError,
)
from trivia_duels.game.duels.timing import format_remaining_hhmm
from trivia_duels.game.duels.types import AsyncPassResult, DuelSnapshot
from trivia_duels.game.questions.catalog import UnknownSportError

router = APIRouter(prefix="/duels", tags=["duels"])
logger = structlog.get_logger(__name__)

T = TypeVar("T")

_ERROR_STATUS_CODES: dict[type[DuelError], int] = {
    DuelUnauthorizedError: 403,
    DuelPreconditionFailedError: 409,
    DuelNotFoundError: 404,
    DuelAlreadyJoinedError: 409,
    DuelExpiredError: 410,
    DuelOwnDuelError: 409,
    DuelConflictError: 409,
}

SPORT_PATTERN = "^(nba|pl|nfl|mlb)$"


class DuelResponse(BaseModel):
    id: UUID
    sport: str
    status: str
    is_async: bool
    invite_code: str | None = None
    player1_id: str
    player2_id: str | None = None
    question_ids: list[str]
    question_count: int = Field(ge=1)
    current_round: int = Field(ge=1)
    current_question_id: str | None = None
    player1_answer: str | None = None
    player2_answer: str | None = None
    player1_answer_time: int | None = None
    player2_answer_time: int | None = None
    player1_score: int = Field(ge=0)
    player2_score: int = Field(ge=0)
    player1_total_time: int = Field(ge=0)
    player2_total_time: int = Field(ge=0)
    player1_result_seen: bool
    winner_id: str | None = None
    round_start_at: datetime | None = None
    expires_at: datetime | None = None
    remaining_hours: int | None = None
    remaining_minutes: int | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class DuelListResponse(BaseModel):
    items: list[DuelResponse]


class DuelStatsResponse(BaseModel):
    total_duels: int = Field(ge=0)
    wins: int = Field(ge=0)
    losses: int = Field(ge=0)
    ties: int = Field(ge=0)
    win_rate: int = Field(ge=0, le=100)
    current_streak: int = Field(ge=0)


class MatchmakingRequest(BaseModel):
    sport: str = Field(pattern=SPORT_PATTERN)
    question_count: int = Field(default=1, ge=1, le=50)


class AsyncChallengeRequest(BaseModel):
    opponent_id: str = Field(min_length=1, max_length=64)
    challenger_name: str = Field(min_length=1, max_length=64)
    sport: str = Field(pattern=SPORT_PATTERN)
    question_count: int = Field(default=5, ge=1, le=50)
    challenger_score: int | None = Field(default=None, ge=0)
    challenger_total_time_ms: int | None = Field(default=None, ge=0)


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(min_length=1, max_length=16)


class SubmitAnswerRequest(BaseModel):
    answer: str = Field(min_length=1, max_length=256)
    elapsed_ms: int = Field(ge=0)


class AdvanceRoundRequest(BaseModel):
    next_question_id: str = Field(min_length=1, max_length=64)
    p1_correct: bool
    p2_correct: bool
    p1_time_ms: int = Field(ge=0)
    p2_time_ms: int = Field(ge=0)


class FinishRequest(BaseModel):
    correct_answer: str = Field(min_length=1, max_length=256)


class AsyncResultRequest(BaseModel):
    score: int = Field(ge=0)
    total_time_ms: int = Field(ge=0)


class DeclineRequest(BaseModel):
    decliner_name: str = Field(min_length=1, max_length=64)


@lru_cache(maxsize=1)
def get_duel_engine() -> DuelEngine:
    return build_duel_engine()


def get_user_id(x_user_id: str = Header(alias="X-User-Id", min_length=1, max_length=64)) -> str:
    return x_user_id


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_response(duel: DuelSnapshot, *, now_utc: datetime) -> DuelResponse:
    remaining: tuple[int, int] | None = None
    if duel.expires_at is not None:
        remaining = format_remaining_hhmm(now_utc=now_utc, expires_at=duel.expires_at)
    return DuelResponse(
        id=duel.duel_id,
        sport=duel.sport,
        status=duel.status,
        is_async=duel.is_async,
        invite_code=duel.invite_code,
        player1_id=duel.player1_id,
        player2_id=duel.player2_id,
        question_ids=list(duel.question_ids),
        question_count=duel.question_count,
        current_round=duel.current_round,
        current_question_id=duel.current_question_id(),
        player1_answer=duel.player1_answer,
        player2_answer=duel.player2_answer,
        player1_answer_time=duel.player1_answer_time,
        player2_answer_time=duel.player2_answer_time,
        player1_score=duel.player1_score,
        player2_score=duel.player2_score,
        player1_total_time=duel.player1_total_time,
        player2_total_time=duel.player2_total_time,
        player1_result_seen=duel.player1_result_seen,
        winner_id=duel.winner_id,
        round_start_at=duel.round_start_at,
        expires_at=duel.expires_at,
        remaining_hours=remaining[0] if remaining is not None else None,
        remaining_minutes=remaining[1] if remaining is not None else None,
        created_at=duel.created_at,
        updated_at=duel.updated_at,
        completed_at=duel.completed_at,
    )


async def _call(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except DuelError as exc:
        status_code = _ERROR_STATUS_CODES.get(type(exc), 409)
        logger.info("duel_request_rejected", code=exc.code, status_code=status_code)
        raise HTTPException(
            status_code=status_code,
            detail={"code": f"E_DUEL_{exc.code.upper()}"},
        ) from exc
    except UnknownSportError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_SPORT_UNSUPPORTED"}) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_DUEL_INVALID_INPUT"}) from exc


@router.post("/matchmaking", response_model=DuelResponse)
async def find_or_create_duel(
    payload: MatchmakingRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()

    async def _run() -> DuelSnapshot:
        return await engine.matchmaker.find_or_create(
            sport=payload.sport,
            requester_id=user_id,
            question_count=payload.question_count,
            catalog=engine.catalogs.get_catalog(payload.sport),
            now_utc=now_utc,
        )

    duel = await _call(_run())
    return _to_response(duel, now_utc=now_utc)


@router.post("/invites", response_model=DuelResponse, status_code=status.HTTP_201_CREATED)
async def create_invite_duel(
    payload: MatchmakingRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()

    async def _run() -> DuelSnapshot:
        return await engine.matchmaker.create_invite_duel(
            sport=payload.sport,
            creator_id=user_id,
            question_count=payload.question_count,
            catalog=engine.catalogs.get_catalog(payload.sport),
            now_utc=now_utc,
        )

    duel = await _call(_run())
    return _to_response(duel, now_utc=now_utc)


@router.post("/challenges", response_model=DuelResponse, status_code=status.HTTP_201_CREATED)
async def create_async_challenge(
    payload: AsyncChallengeRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    challenger_result = None
    if payload.challenger_score is not None:
        challenger_result = AsyncPassResult(
            score=payload.challenger_score,
            total_time_ms=payload.challenger_total_time_ms or 0,
        )

    async def _run() -> DuelSnapshot:
        return await engine.matchmaker.create_async_challenge(
            challenger_id=user_id,
            opponent_id=payload.opponent_id,
            sport=payload.sport,
            question_count=payload.question_count,
            catalog=engine.catalogs.get_catalog(payload.sport),
            now_utc=now_utc,
            challenger_name=payload.challenger_name,
            challenger_result=challenger_result,
        )

    duel = await _call(_run())
    return _to_response(duel, now_utc=now_utc)


@router.post("/join", response_model=DuelResponse)
async def join_duel_by_code(
    payload: JoinByCodeRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.matchmaker.join_by_invite_code(payload.invite_code, user_id, now_utc=now_utc)
    )
    return _to_response(duel, now_utc=now_utc)


@router.get("", response_model=DuelListResponse)
async def list_active_duels(
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelListResponse:
    now_utc = _now_utc()
    duels = await engine.controller.list_active(user_id, now_utc=now_utc)
    return DuelListResponse(items=[_to_response(duel, now_utc=now_utc) for duel in duels])


@router.get("/incoming", response_model=DuelListResponse)
async def list_incoming_duels(
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelListResponse:
    now_utc = _now_utc()
    duels = await engine.controller.list_incoming(user_id, now_utc=now_utc)
    return DuelListResponse(items=[_to_response(duel, now_utc=now_utc) for duel in duels])


@router.get("/history", response_model=DuelListResponse)
async def list_duel_history(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelListResponse:
    now_utc = _now_utc()
    duels = await engine.controller.list_history(user_id, limit=limit)
    return DuelListResponse(items=[_to_response(duel, now_utc=now_utc) for duel in duels])


@router.get("/stats", response_model=DuelStatsResponse)
async def get_duel_stats(
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelStatsResponse:
    stats = await engine.controller.get_stats(user_id)
    return DuelStatsResponse(
        total_duels=stats.total_duels,
        wins=stats.wins,
        losses=stats.losses,
        ties=stats.ties,
        win_rate=stats.win_rate,
        current_streak=stats.current_streak,
    )


@router.get("/{duel_id}", response_model=DuelResponse)
async def get_duel(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(engine.controller.get_for_user(duel_id, user_id, now_utc=now_utc))
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/join", response_model=DuelResponse)
async def join_duel(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(engine.controller.join(duel_id, user_id, now_utc=now_utc))
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/answers", response_model=DuelResponse)
async def submit_answer(
    duel_id: UUID,
    payload: SubmitAnswerRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.controller.submit_answer(
            duel_id,
            user_id,
            answer=payload.answer,
            elapsed_ms=payload.elapsed_ms,
            now_utc=now_utc,
        )
    )
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/round-start", response_model=DuelResponse)
async def start_round(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(engine.controller.start_round(duel_id, user_id, now_utc=now_utc))
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/advance", response_model=DuelResponse)
async def advance_round(
    duel_id: UUID,
    payload: AdvanceRoundRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.controller.advance_round(
            duel_id,
            user_id,
            next_question_id=payload.next_question_id,
            p1_correct=payload.p1_correct,
            p2_correct=payload.p2_correct,
            p1_time_ms=payload.p1_time_ms,
            p2_time_ms=payload.p2_time_ms,
            now_utc=now_utc,
        )
    )
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/finish", response_model=DuelResponse)
async def finish_duel(
    duel_id: UUID,
    payload: FinishRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.controller.finish(
            duel_id,
            user_id,
            correct_answer=payload.correct_answer,
            now_utc=now_utc,
        )
    )
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/async-result", response_model=DuelResponse)
async def submit_async_result(
    duel_id: UUID,
    payload: AsyncResultRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.controller.submit_async_result(
            duel_id,
            user_id,
            result=AsyncPassResult(score=payload.score, total_time_ms=payload.total_time_ms),
            now_utc=now_utc,
        )
    )
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/forfeit", response_model=DuelResponse)
async def forfeit_duel(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(engine.controller.forfeit(duel_id, user_id, now_utc=now_utc))
    return _to_response(duel, now_utc=now_utc)


@router.delete("/{duel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_duel(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> Response:
    await _call(engine.controller.cancel(duel_id, user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{duel_id}/decline", response_model=DuelResponse)
async def decline_duel(
    duel_id: UUID,
    payload: DeclineRequest,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(
        engine.controller.decline(
            duel_id,
            user_id,
            decliner_name=payload.decliner_name,
            now_utc=now_utc,
        )
    )
    return _to_response(duel, now_utc=now_utc)


@router.post("/{duel_id}/result-seen", response_model=DuelResponse)
async def mark_result_seen(
    duel_id: UUID,
    user_id: str = Depends(get_user_id),
    engine: DuelEngine = Depends(get_duel_engine),
) -> DuelResponse:
    now_utc = _now_utc()
    duel = await _call(engine.controller.mark_result_seen(duel_id, user_id))
    return _to_response(duel, now_utc=now_utc)
