from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker

from trivia_duels.core.config import get_settings
from trivia_duels.core.duel_events import DuelEventBus
from trivia_duels.db.session import SessionLocal
from trivia_duels.game.duels.lifecycle import DuelLifecycleController
from trivia_duels.game.duels.matchmaking import Matchmaker
from trivia_duels.game.duels.notifications import (
    DuelNotifier,
    PushTokenResolver,
    build_duel_notifier,
)
from trivia_duels.game.duels.store import DuelStore
from trivia_duels.game.questions.catalog import QuestionCatalogProvider
from trivia_duels.game.questions.selector import QuestionSelector


@dataclass(slots=True)
class DuelEngine:
    """Wires the store, controller, matchmaker and catalogs for one process."""

    store: DuelStore
    controller: DuelLifecycleController
    matchmaker: Matchmaker
    catalogs: QuestionCatalogProvider


def build_duel_engine(
    *,
    session_factory: async_sessionmaker | None = None,
    notifier: DuelNotifier | None = None,
    catalog_dir: str | Path | None = None,
    selector: QuestionSelector | None = None,
    event_bus: DuelEventBus | None = None,
    token_resolver: PushTokenResolver | None = None,
) -> DuelEngine:
    store = DuelStore(
        session_factory if session_factory is not None else SessionLocal,
        event_bus=event_bus,
    )
    controller = DuelLifecycleController(
        store,
        notifier=notifier or build_duel_notifier(token_resolver),
    )
    return DuelEngine(
        store=store,
        controller=controller,
        matchmaker=Matchmaker(controller, selector=selector),
        catalogs=QuestionCatalogProvider(catalog_dir or get_settings().question_catalog_dir),
    )
