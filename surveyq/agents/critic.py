"""Critic Agent: quality decision for the regeneration loop.

Owns the issue count used to rank attempts and the pass/fail decision.
Both use one QualityThresholds set, the same one the feedback text uses,
so "needs regeneration" is exactly "issue count above zero".

The critic is a graph node that enforces the attempt budget and writes the
feedback for the next generation; ``critic_router`` is the conditional edge.
"""

from __future__ import annotations

from typing import Literal, Sequence

import structlog

from surveyq.config import QualityThresholds, get_agent_settings
from surveyq.evaluation.feedback import build_regeneration_feedback
from surveyq.schemas.evaluation import AttemptSnapshot, EvaluationRecord
from surveyq.schemas.phases import Phase
from surveyq.schemas.state import RegenerationState
from surveyq.utils.console import print_agent_message, print_phase_transition

logger = structlog.get_logger(__name__)

Route = Literal["question_writer", "evaluator", "done"]


def record_issue_count(record: EvaluationRecord, thresholds: QualityThresholds) -> int:
    """Issue points for one question. Rule and option issues count individually."""
    count = len(record.llm_scores.below(thresholds.min_llm_score))

    role = record.variable_role.value if record.variable_role else None
    if record.variable_relevance < thresholds.relevance_floor(role):
        count += 1
    if record.max_duplicate_similarity > thresholds.max_duplicate_similarity:
        count += 1

    count += len(record.rule_violations)
    count += len(record.response_option_issues)

    if record.skip_logic_issue is not None:
        count += 1
    if record.response_scale_issue is not None:
        count += 1
    return count


def count_issues(
    evaluations: Sequence[EvaluationRecord],
    thresholds: QualityThresholds | None = None,
) -> int:
    """Total issue points for a question set (lower is better)."""
    if thresholds is None:
        thresholds = get_agent_settings().thresholds
    return sum(record_issue_count(r, thresholds) for r in evaluations)


def needs_regeneration(
    evaluations: Sequence[EvaluationRecord],
    thresholds: QualityThresholds | None = None,
) -> bool:
    """True if any question trips any threshold."""
    if thresholds is None:
        thresholds = get_agent_settings().thresholds
    return any(record_issue_count(r, thresholds) > 0 for r in evaluations)


def best_attempt(attempts: Sequence[AttemptSnapshot]) -> AttemptSnapshot | None:
    """Lowest issue count; ties keep the earliest attempt."""
    if not attempts:
        return None
    return min(attempts, key=lambda a: a.issue_count)


def critic_node(state: RegenerationState) -> dict:
    """Critic node: enforces the attempt budget and prepares regeneration feedback.

    On REGENERATE with attempts left, writes feedback for the question writer.
    With the budget spent, finishes with the best (lowest issue count) attempt.
    Other phases pass through to the router.
    """
    current_phase = state.get("current_phase", Phase.GENERATE)
    attempt = state.get("attempt_number", 0)
    max_attempts = state.get("max_attempts", get_agent_settings().workflow.max_regen_attempts)

    logger.info("critic_agent", phase=current_phase, attempt=attempt, max_attempts=max_attempts)

    if current_phase != Phase.REGENERATE:
        print_phase_transition(current_phase)
        return {"messages": [f"[Critic] Routing → {current_phase}"]}

    best = best_attempt(state.get("attempts") or [])
    if attempt >= max_attempts:
        logger.info(
            "critic_budget_exhausted",
            attempts=attempt,
            best_attempt=best.attempt_number if best else None,
            best_issue_count=best.issue_count if best else None,
        )
        print_phase_transition(Phase.DONE)
        update: dict = {
            "current_phase": Phase.DONE,
            "messages": [f"[Critic] Max attempts ({max_attempts}) reached. Returning best attempt."],
        }
        if best is not None:
            update["questions"] = list(best.questions)
            update["evaluations"] = list(best.evaluations)
        return update

    thresholds = state.get("thresholds") or get_agent_settings().thresholds
    feedback = build_regeneration_feedback(
        state.get("evaluations") or [],
        state["survey"].topic,
        thresholds,
    )
    print_agent_message("Critic", "QuestionWriter", feedback)
    print_phase_transition(Phase.REGENERATE)
    return {
        "feedback": feedback,
        "messages": [f"[Critic] Attempt {attempt} failed quality checks. Regenerating."],
    }


def critic_router(state: RegenerationState) -> Route:
    """Conditional edge after the critic.

      evaluate   → evaluator
      regenerate → question_writer
      done       → END
    """
    current_phase = state.get("current_phase", Phase.GENERATE)

    if current_phase == Phase.EVALUATE:
        return "evaluator"

    if current_phase in (Phase.GENERATE, Phase.REGENERATE):
        return "question_writer"

    return "done"
