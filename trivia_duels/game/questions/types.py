from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TriviaQuestion:
    question_id: str
    question: str
    options: tuple[str, ...]
    correct_answer: str
    difficulty: str
    category: str
    team: str | None = None
