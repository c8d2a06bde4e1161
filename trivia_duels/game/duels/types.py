from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class DuelSnapshot:
    duel_id: UUID
    sport: str
    status: str
    is_async: bool
    player1_id: str
    player2_id: str | None
    question_ids: tuple[str, ...]
    question_count: int
    current_round: int
    player1_answer: str | None
    player2_answer: str | None
    player1_answer_time: int | None
    player2_answer_time: int | None
    player1_score: int
    player2_score: int
    player1_total_time: int
    player2_total_time: int
    winner_id: str | None
    created_at: datetime
    updated_at: datetime
    invite_code: str | None = None
    player1_completed_at: datetime | None = None
    player2_completed_at: datetime | None = None
    player1_result_seen: bool = False
    round_start_at: datetime | None = None
    expires_at: datetime | None = None
    completed_at: datetime | None = None

    def is_participant(self, user_id: str) -> bool:
        return user_id == self.player1_id or (
            self.player2_id is not None and user_id == self.player2_id
        )

    def player_slot(self, user_id: str) -> int | None:
        if user_id == self.player1_id:
            return 1
        if self.player2_id is not None and user_id == self.player2_id:
            return 2
        return None

    def opponent_of(self, user_id: str) -> str | None:
        if user_id == self.player1_id:
            return self.player2_id
        if user_id == self.player2_id:
            return self.player1_id
        return None

    def current_question_id(self) -> str | None:
        if len(self.question_ids) < self.current_round:
            return None
        return self.question_ids[self.current_round - 1]


@dataclass(frozen=True, slots=True)
class DuelOutcome:
    winner_id: str | None
    reason: str


@dataclass(frozen=True, slots=True)
class AsyncPassResult:
    """One player's full pass through an async duel."""

    score: int
    total_time_ms: int


@dataclass(slots=True)
class DuelStats:
    total_duels: int
    wins: int
    losses: int
    ties: int
    win_rate: int
    current_streak: int
