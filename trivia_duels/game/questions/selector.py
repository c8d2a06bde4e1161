from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from trivia_duels.game.questions.types import TriviaQuestion

logger = structlog.get_logger("trivia_duels.game.questions.selector")

BASE_SCORE = 100.0
SAME_CATEGORY_PENALTY = 50.0
SAME_TEAM_PENALTY = 50.0
SEEN_IN_SESSION_PENALTY = 30.0
JITTER_RANGE = 20.0
TOP_CANDIDATES = 5


@dataclass(slots=True)
class SessionState:
    seen_question_ids: set[str] = field(default_factory=set)
    last_category: str | None = None
    last_team: str | None = None
    used_in_current_duel: set[str] = field(default_factory=set)


class QuestionSelector:
    """Picks duel questions per sport with anti-repetition memory.

    The memory is process-local and keyed by sport: ids seen during this
    process, ids already used in the duel being assembled, and the category
    and team of the previous pick.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._sessions: dict[str, SessionState] = {}

    def session_state(self, sport: str) -> SessionState:
        state = self._sessions.get(sport)
        if state is None:
            state = SessionState()
            self._sessions[sport] = state
        return state

    def reset_duel_session(self, sport: str) -> None:
        state = self.session_state(sport)
        state.used_in_current_duel.clear()
        state.last_category = None
        state.last_team = None

    def clear_seen_questions(self, sport: str) -> None:
        self.session_state(sport).seen_question_ids.clear()

    def mark_question_seen(self, sport: str, question_id: str) -> None:
        self.session_state(sport).seen_question_ids.add(question_id)

    def select_questions(
        self,
        sport: str,
        catalog: Sequence[TriviaQuestion],
        count: int,
    ) -> list[str]:
        if count <= 0:
            raise ValueError("count must be positive")
        self.reset_duel_session(sport)
        selected_ids: list[str] = []
        for _ in range(count):
            selected_ids.append(
                self.select_one(
                    sport,
                    catalog,
                    exclude_ids=selected_ids,
                    diversify=count > 1,
                )
            )
        return selected_ids

    def select_one(
        self,
        sport: str,
        catalog: Sequence[TriviaQuestion],
        exclude_ids: Iterable[str] = (),
        *,
        diversify: bool = True,
    ) -> str:
        if not catalog:
            raise ValueError("question catalog is empty")
        state = self.session_state(sport)
        candidates = self._candidate_pool(sport, catalog, exclude_ids=exclude_ids, state=state)

        if diversify:
            selected = self._pick_diverse(candidates, state=state)
        else:
            selected = self._rng.choice(candidates)

        state.seen_question_ids.add(selected.question_id)
        state.used_in_current_duel.add(selected.question_id)
        state.last_category = selected.category
        state.last_team = selected.team
        return selected.question_id

    def _candidate_pool(
        self,
        sport: str,
        catalog: Sequence[TriviaQuestion],
        *,
        exclude_ids: Iterable[str],
        state: SessionState,
    ) -> list[TriviaQuestion]:
        excluded = set(exclude_ids) | state.used_in_current_duel
        candidates = [question for question in catalog if question.question_id not in excluded]
        if candidates:
            return candidates

        self.clear_seen_questions(sport)
        candidates = [
            question
            for question in catalog
            if question.question_id not in state.used_in_current_duel
        ]
        if candidates:
            logger.info(
                "question_pool_relaxed",
                sport=sport,
                catalog_size=len(catalog),
                excluded_total=len(excluded),
            )
            return candidates

        logger.warning(
            "question_pool_exhausted",
            sport=sport,
            catalog_size=len(catalog),
            used_in_duel=len(state.used_in_current_duel),
        )
        return list(catalog)

    def _pick_diverse(
        self,
        candidates: Sequence[TriviaQuestion],
        *,
        state: SessionState,
    ) -> TriviaQuestion:
        scored = [
            (self._score_candidate(question, state=state), index, question)
            for index, question in enumerate(candidates)
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))
        top = scored[: min(TOP_CANDIDATES, len(scored))]
        return top[self._rng.randrange(len(top))][2]

    def _score_candidate(self, question: TriviaQuestion, *, state: SessionState) -> float:
        score = BASE_SCORE
        if state.last_category is not None and question.category == state.last_category:
            score -= SAME_CATEGORY_PENALTY
        if (
            state.last_team is not None
            and question.team is not None
            and question.team == state.last_team
        ):
            score -= SAME_TEAM_PENALTY
        if question.question_id in state.seen_question_ids:
            score -= SEEN_IN_SESSION_PENALTY
        return score + self._rng.random() * JITTER_RANGE
