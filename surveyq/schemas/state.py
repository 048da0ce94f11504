"""Graph state definition for the regeneration loop (TypedDict).

State is request-scoped: the graph is compiled without a checkpointer and the
state is discarded once the final RegenerationResult has been built.
"""

from __future__ import annotations

import operator
from typing import Annotated, TypedDict

from surveyq.config import QualityThresholds
from surveyq.schemas.evaluation import AttemptSnapshot, EvaluationRecord
from surveyq.schemas.questions import Question, SurveyConfig, VariableModel


class RegenerationState(TypedDict, total=False):
    """State for the generate → evaluate → critic loop."""

    # ----- Input -----
    survey: SurveyConfig
    variable_model: VariableModel
    rejected_questions: list[Question]  # caller-supplied questions to avoid
    thresholds: QualityThresholds

    # ----- Phase tracking -----
    current_phase: str  # generate | evaluate | regenerate | done

    # ----- Current attempt -----
    attempt_number: int
    max_attempts: int
    questions: list[Question]
    evaluations: list[EvaluationRecord] | None
    fallback_used: bool
    evaluation_error: str | None

    # ----- Feedback injected into the next generation -----
    feedback: str

    # ----- Snapshots of every evaluated attempt (these DO accumulate) -----
    # The best attempt is the one with the lowest issue count, earliest on ties
    attempts: Annotated[list[AttemptSnapshot], operator.add]

    # ----- Messages (for debugging and logging; these DO accumulate) -----
    messages: Annotated[list[str], operator.add]
