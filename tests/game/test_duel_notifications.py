from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from uuid import uuid4

import pytest

from trivia_duels.game.duels import notifications
from trivia_duels.game.duels.engine import build_duel_engine


class _Response:
    def __init__(self, payload: object) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> object:
        return self._payload


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, payload: object, fail: bool) -> None:
        self._calls = calls
        self._payload = payload
        self._fail = fail

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def post(self, url: str, json: dict[str, object]) -> _Response:
        self._calls.append({"url": url, "json": json})
        if self._fail:
            raise RuntimeError("push gateway timeout")
        return _Response(self._payload)


def _patch_http_client(
    monkeypatch: pytest.MonkeyPatch,
    calls: list[dict[str, Any]],
    *,
    payload: object = None,
    fail: bool = False,
) -> None:
    def factory(timeout: float) -> _Client:  # noqa: ARG001
        return _Client(calls, payload=payload or {"data": {"status": "ok"}}, fail=fail)

    monkeypatch.setattr(notifications.httpx, "AsyncClient", factory)


def _notifier(tokens: dict[str, str]) -> notifications.PushDuelNotifier:
    async def resolve(user_id: str) -> str | None:
        return tokens.get(user_id)

    return notifications.PushDuelNotifier(
        token_resolver=resolve,
        push_url="https://push.example.test/send",
    )


@pytest.mark.asyncio
async def test_challenge_push_names_sport_and_challenger(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)
    duel_id = uuid4()

    sent = await _notifier({"p2": "ExponentPushToken[p2]"}).notify_challenge(
        "p2", duel_id, "Alex", sport="pl"
    )

    assert sent is True
    assert calls == [
        {
            "url": "https://push.example.test/send",
            "json": {
                "to": "ExponentPushToken[p2]",
                "sound": "default",
                "title": "New Challenge!",
                "body": "Alex challenged you to Premier League trivia!",
                "data": {"type": "duel_challenge", "duelId": str(duel_id), "sport": "pl"},
            },
        }
    ]


@pytest.mark.asyncio
async def test_complete_push_title_follows_result(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)
    notifier = _notifier({"p1": "tok-1"})
    duel_id = uuid4()

    assert await notifier.notify_complete("p1", duel_id, "win") is True
    assert await notifier.notify_complete("p1", duel_id, "tie") is True

    assert [call["json"]["title"] for call in calls] == ["You Won!", "It's a Tie!"]
    assert calls[0]["json"]["data"]["result"] == "win"


@pytest.mark.asyncio
async def test_push_is_skipped_without_token(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls)

    sent = await _notifier({}).notify_turn("p2", uuid4())

    assert sent is False
    assert calls == []


@pytest.mark.asyncio
async def test_push_error_ticket_reports_failure(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(
        monkeypatch,
        calls,
        payload={"data": {"status": "error", "message": "DeviceNotRegistered"}},
    )

    sent = await _notifier({"p1": "tok-1"}).notify_declined("p1", uuid4(), "Sam")

    assert sent is False
    assert calls[0]["json"]["body"] == "Sam declined your challenge"


@pytest.mark.asyncio
async def test_push_transport_error_is_contained(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _patch_http_client(monkeypatch, calls, fail=True)

    sent = await _notifier({"p1": "tok-1"}).notify_turn("p1", uuid4())

    assert sent is False
    assert len(calls) == 1


def _push_settings(*, enabled: bool, lookup_url: str = "") -> SimpleNamespace:
    return SimpleNamespace(
        push_notifications_enabled=enabled,
        push_api_url="https://push.example.test/send",
        push_timeout_seconds=1.0,
        push_token_lookup_url=lookup_url,
    )


class _RecordingLogger:
    def __init__(self) -> None:
        self.warnings: list[tuple[str, dict[str, Any]]] = []

    def warning(self, event: str, **fields: Any) -> None:
        self.warnings.append((event, fields))


def test_build_duel_notifier_is_null_when_push_disabled(monkeypatch) -> None:
    async def resolve(user_id: str) -> str | None:
        return "tok"

    monkeypatch.setattr(notifications, "get_settings", lambda: _push_settings(enabled=False))
    assert isinstance(notifications.build_duel_notifier(resolve), notifications.NullDuelNotifier)


def test_build_duel_notifier_warns_when_no_resolver_is_available(monkeypatch) -> None:
    recorder = _RecordingLogger()
    monkeypatch.setattr(notifications, "logger", recorder)
    monkeypatch.setattr(notifications, "get_settings", lambda: _push_settings(enabled=True))

    async def resolve(user_id: str) -> str | None:
        return "tok"

    assert isinstance(notifications.build_duel_notifier(), notifications.NullDuelNotifier)
    assert [event for event, _ in recorder.warnings] == ["duel_push_misconfigured"]
    assert isinstance(notifications.build_duel_notifier(resolve), notifications.PushDuelNotifier)


def test_build_duel_notifier_uses_profile_lookup_url(monkeypatch) -> None:
    monkeypatch.setattr(
        notifications,
        "get_settings",
        lambda: _push_settings(
            enabled=True,
            lookup_url="https://profiles.example.test/users/{user_id}/push-token",
        ),
    )

    assert isinstance(notifications.build_duel_notifier(), notifications.PushDuelNotifier)


class _LookupResponse:
    def __init__(self, status_code: int, payload: object) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self) -> object:
        return self._payload


def _patch_lookup_client(
    monkeypatch: pytest.MonkeyPatch,
    urls: list[str],
    responses: dict[str, _LookupResponse],
) -> None:
    class _LookupClient:
        async def __aenter__(self) -> "_LookupClient":
            return self

        async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
            return None

        async def get(self, url: str) -> _LookupResponse:
            urls.append(url)
            return responses[url]

    def factory(timeout: float) -> _LookupClient:  # noqa: ARG001
        return _LookupClient()

    monkeypatch.setattr(notifications.httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_http_token_resolver_reads_profile_service(monkeypatch) -> None:
    urls: list[str] = []
    _patch_lookup_client(
        monkeypatch,
        urls,
        {
            "https://profiles.example.test/users/p1/push-token": _LookupResponse(
                200, {"push_token": "ExponentPushToken[p1]"}
            ),
            "https://profiles.example.test/users/p2/push-token": _LookupResponse(404, {}),
            "https://profiles.example.test/users/p3/push-token": _LookupResponse(503, {}),
        },
    )
    resolver = notifications.HttpPushTokenResolver(
        lookup_url="https://profiles.example.test/users/{user_id}/push-token",
    )

    assert await resolver("p1") == "ExponentPushToken[p1]"
    assert await resolver("p2") is None
    assert await resolver("p3") is None
    assert len(urls) == 3


@pytest.mark.asyncio
async def test_built_engine_uses_push_notifier_when_enabled(monkeypatch, session_factory) -> None:
    monkeypatch.setattr(notifications, "get_settings", lambda: _push_settings(enabled=True))

    async def resolve(user_id: str) -> str | None:
        return f"tok-{user_id}"

    engine = build_duel_engine(
        session_factory=session_factory,
        catalog_dir="data/questions",
        token_resolver=resolve,
    )

    assert isinstance(engine.controller.notifier, notifications.PushDuelNotifier)


@pytest.mark.asyncio
async def test_deliver_best_effort_swallows_notifier_errors() -> None:
    async def broken() -> bool:
        raise RuntimeError("boom")

    async def delivered() -> bool:
        return True

    assert await notifications.deliver_best_effort("turn", broken(), duel_id="d1") is False
    assert await notifications.deliver_best_effort("turn", delivered(), duel_id="d1") is True
