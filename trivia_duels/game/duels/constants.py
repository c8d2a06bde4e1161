from __future__ import annotations

from trivia_duels.core.config import get_settings

DUEL_STATUS_WAITING = "waiting"
DUEL_STATUS_INVITE = "invite"
DUEL_STATUS_ACTIVE = "active"
DUEL_STATUS_WAITING_FOR_P2 = "waiting_for_p2"
DUEL_STATUS_COMPLETED = "completed"
DUEL_STATUS_DECLINED = "declined"
DUEL_STATUS_EXPIRED = "expired"

DUEL_PRE_JOIN_STATUSES: frozenset[str] = frozenset({DUEL_STATUS_WAITING, DUEL_STATUS_INVITE})

DUEL_LIVE_STATUSES: frozenset[str] = frozenset(
    {
        DUEL_STATUS_WAITING,
        DUEL_STATUS_INVITE,
        DUEL_STATUS_ACTIVE,
        DUEL_STATUS_WAITING_FOR_P2,
    }
)

DUEL_FINISHED_STATUSES: frozenset[str] = frozenset(
    {
        DUEL_STATUS_COMPLETED,
        DUEL_STATUS_DECLINED,
        DUEL_STATUS_EXPIRED,
    }
)

FORFEIT_ANSWER = "__forfeit__"

DUEL_INVITE_TTL_SECONDS = max(60, int(get_settings().duel_invite_ttl_hours) * 3600)
DUEL_LISTING_WINDOW_SECONDS = max(60, int(get_settings().duel_listing_window_hours) * 3600)
DUEL_ASYNC_TTL_SECONDS = max(60, int(get_settings().duel_async_ttl_hours) * 3600)
DUEL_INVITE_CODE_ATTEMPTS = max(1, int(get_settings().duel_invite_code_attempts))
DUEL_MATCHMAKING_CANDIDATE_LIMIT = max(1, int(get_settings().duel_matchmaking_candidate_limit))
DUEL_DEFAULT_ANSWER_TIME_MS = max(0, int(get_settings().duel_default_answer_time_ms))
DUEL_HISTORY_DEFAULT_LIMIT = 20
DUEL_INCOMING_LIMIT = 10
