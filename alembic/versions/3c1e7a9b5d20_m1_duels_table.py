"""m1_duels_table

Revision ID: 3c1e7a9b5d20
Revises:
Create Date: 2026-10-16 10:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "3c1e7a9b5d20"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "duels",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("sport", sa.String(length=16), nullable=False),
        sa.Column("invite_code", sa.String(length=6), nullable=True),
        sa.Column("is_async", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("player1_id", sa.String(length=64), nullable=False),
        sa.Column("player2_id", sa.String(length=64), nullable=True),
        sa.Column("question_ids", sa.Text(), nullable=False, server_default=""),
        sa.Column("question_count", sa.Integer(), nullable=False),
        sa.Column("current_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("player1_answer", sa.String(length=256), nullable=True),
        sa.Column("player2_answer", sa.String(length=256), nullable=True),
        sa.Column("player1_answer_time", sa.Integer(), nullable=True),
        sa.Column("player2_answer_time", sa.Integer(), nullable=True),
        sa.Column("player1_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player2_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player1_total_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player2_total_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player1_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("player2_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "player1_result_seen",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("winner_id", sa.String(length=64), nullable=True),
        sa.Column("round_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invite_code"),
        sa.CheckConstraint(
            (
                "status IN ("
                "'waiting','invite','active','waiting_for_p2',"
                "'completed','declined','expired'"
                ")"
            ),
            name="ck_duels_status",
        ),
        sa.CheckConstraint("question_count >= 1", name="ck_duels_question_count_positive"),
        sa.CheckConstraint(
            "current_round >= 1 AND current_round <= question_count",
            name="ck_duels_current_round_in_range",
        ),
        sa.CheckConstraint("player1_score >= 0", name="ck_duels_player1_score_non_negative"),
        sa.CheckConstraint("player2_score >= 0", name="ck_duels_player2_score_non_negative"),
        sa.CheckConstraint(
            "player1_total_time >= 0",
            name="ck_duels_player1_total_time_non_negative",
        ),
        sa.CheckConstraint(
            "player2_total_time >= 0",
            name="ck_duels_player2_total_time_non_negative",
        ),
    )
    op.create_index(
        "idx_duels_matchmaking",
        "duels",
        ["status", "sport", "question_count", "created_at"],
    )
    op.create_index("idx_duels_player1_created", "duels", ["player1_id", "created_at"])
    op.create_index("idx_duels_player2_created", "duels", ["player2_id", "created_at"])
    op.create_index("idx_duels_status_expires", "duels", ["status", "expires_at"])


def downgrade() -> None:
    op.drop_index("idx_duels_status_expires", table_name="duels")
    op.drop_index("idx_duels_player2_created", table_name="duels")
    op.drop_index("idx_duels_player1_created", table_name="duels")
    op.drop_index("idx_duels_matchmaking", table_name="duels")
    op.drop_table("duels")
