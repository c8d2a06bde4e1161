from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from trivia_duels.core.duel_events import DuelUpdated
from trivia_duels.game.duels.errors import (
    DuelConflictError,
    DuelNotFoundError,
    DuelPreconditionFailedError,
)
from trivia_duels.game.duels.store import Increment
from tests.duel_fixtures import NOW


async def _insert_waiting(store, *, player1_id: str = "p1", **kwargs):
    values = {
        "sport": "nba",
        "player1_id": player1_id,
        "status": "waiting",
        "question_ids": ["nba_001", "nba_002", "nba_003"],
        "question_count": 3,
        "now_utc": NOW,
    }
    values.update(kwargs)
    return await store.insert(**values)


@pytest.mark.asyncio
async def test_insert_and_get_round_trip_question_ids_as_tuple(store) -> None:
    created = await _insert_waiting(store)

    loaded = await store.get(created.duel_id)

    assert loaded.question_ids == ("nba_001", "nba_002", "nba_003")
    assert loaded.current_round == 1
    assert loaded.status == "waiting"
    assert loaded.created_at == NOW


@pytest.mark.asyncio
async def test_get_missing_duel_raises_not_found(store) -> None:
    with pytest.raises(DuelNotFoundError):
        await store.get(uuid4())
    with pytest.raises(DuelNotFoundError):
        await store.get_by_invite_code("ZZZZZZ")


@pytest.mark.asyncio
async def test_duplicate_invite_code_is_conflict(store) -> None:
    await _insert_waiting(store, status="invite", invite_code="ABC234")

    with pytest.raises(DuelConflictError):
        await _insert_waiting(store, player1_id="p9", status="invite", invite_code="ABC234")

    found = await store.get_by_invite_code("ABC234")
    assert found.player1_id == "p1"


@pytest.mark.asyncio
async def test_conditional_update_applies_patch_and_increments(store) -> None:
    created = await _insert_waiting(store, status="active", player2_id="p2")

    updated = await store.conditional_update(
        created.duel_id,
        expected_statuses={"active"},
        expected_round=1,
        patch={
            "player1_score": Increment(1),
            "player1_total_time": Increment(2500),
            "current_round": 2,
            "updated_at": NOW + timedelta(seconds=5),
        },
    )

    assert updated.player1_score == 1
    assert updated.player1_total_time == 2500
    assert updated.current_round == 2
    assert updated.updated_at == NOW + timedelta(seconds=5)


@pytest.mark.asyncio
async def test_conditional_update_rejects_stale_round(store) -> None:
    created = await _insert_waiting(store, status="active", player2_id="p2")

    with pytest.raises(DuelPreconditionFailedError):
        await store.conditional_update(
            created.duel_id,
            expected_statuses={"active"},
            expected_round=2,
            patch={"player1_answer": "late", "updated_at": NOW},
        )

    assert (await store.get(created.duel_id)).player1_answer is None


@pytest.mark.asyncio
async def test_conditional_update_on_missing_row_is_not_found(store) -> None:
    with pytest.raises(DuelNotFoundError):
        await store.conditional_update(
            uuid4(),
            expected_statuses={"active"},
            patch={"status": "completed", "updated_at": NOW},
        )


@pytest.mark.asyncio
async def test_committed_update_is_published_to_subscribers(store) -> None:
    created = await _insert_waiting(store)
    received: list[DuelUpdated] = []
    subscription = store.subscribe(created.duel_id, received.append)

    await store.conditional_update(
        created.duel_id,
        expected_statuses={"waiting"},
        patch={"player2_id": "p2", "status": "active", "updated_at": NOW},
    )
    store.unsubscribe(subscription)
    await store.conditional_update(
        created.duel_id,
        expected_statuses={"active"},
        patch={"round_start_at": NOW, "updated_at": NOW},
    )

    assert len(received) == 1
    assert received[0].fields_changed == ("player2_id", "status")
    assert received[0].status == "active"


@pytest.mark.asyncio
async def test_delete_pre_join_only_deletes_matching_status(store) -> None:
    waiting = await _insert_waiting(store)
    active = await _insert_waiting(store, status="active", player2_id="p2")
    received: list[DuelUpdated] = []
    store.subscribe(waiting.duel_id, received.append)

    assert await store.delete_pre_join(waiting.duel_id, statuses={"waiting", "invite"}) is True
    assert await store.delete_pre_join(active.duel_id, statuses={"waiting", "invite"}) is False

    with pytest.raises(DuelNotFoundError):
        await store.get(waiting.duel_id)
    assert (await store.get(active.duel_id)).status == "active"
    assert received[0].deleted is True


@pytest.mark.asyncio
async def test_query_waiting_is_oldest_first_and_filtered(store) -> None:
    newest = await _insert_waiting(store, player1_id="a", now_utc=NOW - timedelta(minutes=1))
    oldest = await _insert_waiting(store, player1_id="b", now_utc=NOW - timedelta(hours=2))
    await _insert_waiting(store, player1_id="requester", now_utc=NOW - timedelta(hours=3))
    await _insert_waiting(store, player1_id="c", sport="pl", now_utc=NOW - timedelta(hours=3))
    await _insert_waiting(store, player1_id="d", now_utc=NOW - timedelta(hours=30))

    candidates = await store.query_waiting(
        sport="nba",
        question_count=3,
        exclude_owner_id="requester",
        created_after=NOW - timedelta(hours=24),
        limit=5,
    )

    assert [duel.duel_id for duel in candidates] == [oldest.duel_id, newest.duel_id]


@pytest.mark.asyncio
async def test_list_async_due_for_expiry(store) -> None:
    overdue = await _insert_waiting(
        store,
        status="waiting_for_p2",
        player2_id="p2",
        is_async=True,
        expires_at=NOW - timedelta(minutes=5),
    )
    await _insert_waiting(
        store,
        status="waiting_for_p2",
        player2_id="p3",
        is_async=True,
        expires_at=NOW + timedelta(hours=1),
    )

    due = await store.list_async_due_for_expiry(now_utc=NOW, limit=10)

    assert [duel.duel_id for duel in due] == [overdue.duel_id]
