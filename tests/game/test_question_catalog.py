from __future__ import annotations

import json

import pytest

from trivia_duels.game.questions.catalog import (
    QuestionCatalogProvider,
    UnknownSportError,
    parse_catalog,
)


def test_parse_catalog_maps_client_json_keys() -> None:
    catalog = parse_catalog(
        [
            {
                "id": "nba_001",
                "question": "Who won the 2016 title?",
                "options": ["Cavaliers", "Warriors"],
                "correctAnswer": "Cavaliers",
                "difficulty": "easy",
                "category": "history",
                "team": "Cavaliers",
            },
            {
                "id": "nba_002",
                "question": "Most career points?",
                "options": ["LeBron James", "Kareem Abdul-Jabbar"],
                "correctAnswer": "LeBron James",
            },
        ]
    )

    assert catalog[0].question_id == "nba_001"
    assert catalog[0].options == ("Cavaliers", "Warriors")
    assert catalog[0].team == "Cavaliers"
    assert catalog[1].difficulty == "medium"
    assert catalog[1].category == "general"
    assert catalog[1].team is None


def test_provider_loads_and_caches_sport_file(tmp_path) -> None:
    (tmp_path / "nba.json").write_text(
        json.dumps(
            [
                {
                    "id": "nba_001",
                    "question": "Q",
                    "options": ["A", "B"],
                    "correctAnswer": "A",
                    "category": "history",
                }
            ]
        ),
        encoding="utf-8",
    )
    provider = QuestionCatalogProvider(tmp_path)

    first = provider.get_catalog("nba")
    (tmp_path / "nba.json").unlink()
    second = provider.get_catalog("nba")

    assert first is second
    assert provider.get_question("nba", "nba_001").correct_answer == "A"
    assert provider.get_question("nba", "missing") is None


def test_provider_rejects_unknown_sport(tmp_path) -> None:
    with pytest.raises(UnknownSportError):
        QuestionCatalogProvider(tmp_path).get_catalog("curling")
