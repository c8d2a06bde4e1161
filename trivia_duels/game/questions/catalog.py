from __future__ import annotations

import json
from pathlib import Path

import structlog

from trivia_duels.game.questions.types import TriviaQuestion

logger = structlog.get_logger("trivia_duels.game.questions.catalog")

SUPPORTED_SPORTS: frozenset[str] = frozenset({"nba", "pl", "nfl", "mlb"})


class UnknownSportError(ValueError):
    pass


def parse_catalog(raw_items: list[dict[str, object]]) -> tuple[TriviaQuestion, ...]:
    questions: list[TriviaQuestion] = []
    for item in raw_items:
        team = item.get("team")
        questions.append(
            TriviaQuestion(
                question_id=str(item["id"]),
                question=str(item["question"]),
                options=tuple(str(option) for option in item.get("options", ())),
                correct_answer=str(item["correctAnswer"]),
                difficulty=str(item.get("difficulty", "medium")),
                category=str(item.get("category", "general")),
                team=str(team) if team else None,
            )
        )
    return tuple(questions)


class QuestionCatalogProvider:
    """Loads one JSON catalog file per sport (`<dir>/<sport>.json`) and caches it."""

    def __init__(self, catalog_dir: str | Path) -> None:
        self._catalog_dir = Path(catalog_dir)
        self._cache: dict[str, tuple[TriviaQuestion, ...]] = {}

    def get_catalog(self, sport: str) -> tuple[TriviaQuestion, ...]:
        if sport not in SUPPORTED_SPORTS:
            raise UnknownSportError(sport)
        cached = self._cache.get(sport)
        if cached is not None:
            return cached
        path = self._catalog_dir / f"{sport}.json"
        with path.open(encoding="utf-8") as handle:
            catalog = parse_catalog(json.load(handle))
        logger.info("question_catalog_loaded", sport=sport, size=len(catalog), path=str(path))
        self._cache[sport] = catalog
        return catalog

    def get_question(self, sport: str, question_id: str) -> TriviaQuestion | None:
        for question in self.get_catalog(sport):
            if question.question_id == question_id:
                return question
        return None
