from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from trivia_duels.db.models.base import Base


class QuestionIdList(TypeDecorator):
    """Ordered question ids stored as a comma-joined string."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return ""
        return ",".join(str(question_id) for question_id in value)

    def process_result_value(self, value, dialect):
        if not value:
            return []
        return [question_id for question_id in value.split(",") if question_id]


class Duel(Base):
    __tablename__ = "duels"
    __table_args__ = (
        CheckConstraint(
            (
                "status IN ("
                "'waiting','invite','active','waiting_for_p2',"
                "'completed','declined','expired'"
                ")"
            ),
            name="ck_duels_status",
        ),
        CheckConstraint("question_count >= 1", name="ck_duels_question_count_positive"),
        CheckConstraint(
            "current_round >= 1 AND current_round <= question_count",
            name="ck_duels_current_round_in_range",
        ),
        CheckConstraint("player1_score >= 0", name="ck_duels_player1_score_non_negative"),
        CheckConstraint("player2_score >= 0", name="ck_duels_player2_score_non_negative"),
        CheckConstraint(
            "player1_total_time >= 0",
            name="ck_duels_player1_total_time_non_negative",
        ),
        CheckConstraint(
            "player2_total_time >= 0",
            name="ck_duels_player2_total_time_non_negative",
        ),
        Index("idx_duels_matchmaking", "status", "sport", "question_count", "created_at"),
        Index("idx_duels_player1_created", "player1_id", "created_at"),
        Index("idx_duels_player2_created", "player2_id", "created_at"),
        Index("idx_duels_status_expires", "status", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    sport: Mapped[str] = mapped_column(String(16), nullable=False)
    invite_code: Mapped[str | None] = mapped_column(String(6), unique=True, nullable=True)
    is_async: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    player1_id: Mapped[str] = mapped_column(String(64), nullable=False)
    player2_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    question_ids: Mapped[list[str]] = mapped_column(QuestionIdList, nullable=False)
    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
    current_round: Mapped[int] = mapped_column(Integer, nullable=False)
    player1_answer: Mapped[str | None] = mapped_column(String(256), nullable=True)
    player2_answer: Mapped[str | None] = mapped_column(String(256), nullable=True)
    player1_answer_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player2_answer_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    player1_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player2_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player1_total_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player2_total_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    player1_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    player2_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    player1_result_seen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    winner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    round_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
