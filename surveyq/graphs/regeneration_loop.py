"""Regeneration Loop Graph: bounded generate → evaluate → regenerate control loop.

  START → question_writer ──→ critic ──→ END (result)
               ↑                │  ↑
               │                ↓  │
               └─(regenerate)─ evaluator

The Critic is the hub: every worker feeds back into it and ``critic_router``
picks the next step from ``current_phase``.

Termination:
  - the evaluated set passes every threshold
  - the attempt budget (max generation calls) is spent → best attempt wins
  - the first generation fell back to the fixed set → evaluated once, no retry
  - a later generation fell back → best earlier attempt wins
  - the generator returned nothing → empty result, no evaluation
  - the evaluator raised → latest questions, evaluations=None
"""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence

import structlog
from langgraph.constants import END, START
from langgraph.graph import StateGraph

from surveyq.agents.critic import (
    best_attempt,
    count_issues,
    critic_node,
    critic_router,
    needs_regeneration,
)
from surveyq.agents.question_writer import GenerationOutcome, generate_questions
from surveyq.config import QualityThresholds, get_agent_settings
from surveyq.evaluation.embeddings import EmbeddingProvider
from surveyq.evaluation.evaluator import evaluate_questions
from surveyq.schemas.evaluation import AttemptSnapshot, EvaluationRecord, RegenerationResult
from surveyq.schemas.phases import Phase
from surveyq.schemas.questions import Question, SurveyConfig, VariableModel
from surveyq.schemas.state import RegenerationState
from surveyq.utils.console import print_agent_message
from surveyq.utils.structured_output import ModelCaller, build_model_caller

logger = structlog.get_logger(__name__)

GenerateFn = Callable[
    [SurveyConfig, VariableModel, str | None, list[Question]],
    Awaitable[GenerationOutcome],
]
EvaluateFn = Callable[[str, list[Question]], Awaitable[list[EvaluationRecord]]]

# question_writer, critic, evaluator, critic per attempt
_STEPS_PER_ATTEMPT = 4

_CRITIC_EDGES = {
    "question_writer": "question_writer",
    "evaluator": "evaluator",
    "done": END,
}


def _previous_questions(state: RegenerationState, attempt: int) -> list[Question]:
    """Questions the next generation should avoid (caller-rejected + last attempt)."""
    previous = list(state.get("rejected_questions") or [])
    if attempt > 1:
        previous += state.get("questions") or []
    seen: set[str] = set()
    unique = []
    for q in previous:
        if q.text not in seen:
            seen.add(q.text)
            unique.append(q)
    return unique


def make_question_writer_node(generate_fn: GenerateFn):
    """Build the question_writer node around an injected generator."""

    async def question_writer_node(state: RegenerationState) -> dict:
        attempt = state.get("attempt_number", 0) + 1
        feedback = state.get("feedback") or None

        logger.info("regeneration_attempt", attempt=attempt, with_feedback=bool(feedback))
        outcome = await generate_fn(
            state["survey"],
            state.get("variable_model") or VariableModel(),
            feedback,
            _previous_questions(state, attempt),
        )

        if not outcome.questions:
            logger.warning("question_writer_empty", attempt=attempt)
            return {
                "attempt_number": attempt,
                "questions": [],
                "evaluations": None,
                "fallback_used": outcome.fallback_used,
                "current_phase": Phase.DONE,
                "messages": [f"[QuestionWriter] Attempt {attempt}: no questions generated."],
            }

        best = best_attempt(state.get("attempts") or [])
        if outcome.fallback_used and attempt > 1 and best is not None:
            logger.warning(
                "question_writer_late_fallback",
                attempt=attempt,
                best_attempt=best.attempt_number,
            )
            return {
                "attempt_number": attempt,
                "questions": list(best.questions),
                "evaluations": list(best.evaluations),
                "fallback_used": False,
                "current_phase": Phase.DONE,
                "messages": [
                    f"[QuestionWriter] Attempt {attempt} fell back. "
                    f"Returning attempt {best.attempt_number}."
                ],
            }

        print_agent_message(
            "QuestionWriter",
            "Critic",
            "\n".join(f"{i}. {q.text}" for i, q in enumerate(outcome.questions, 1)),
        )
        return {
            "attempt_number": attempt,
            "questions": outcome.questions,
            "evaluations": None,
            "fallback_used": outcome.fallback_used,
            "current_phase": Phase.EVALUATE,
            "messages": [
                f"[QuestionWriter] Attempt {attempt}: {len(outcome.questions)} questions"
                + (" (fallback set)" if outcome.fallback_used else "")
            ],
        }

    return question_writer_node


def make_evaluator_node(evaluate_fn: EvaluateFn):
    """Build the evaluator node around an injected evaluator."""

    async def evaluator_node(state: RegenerationState) -> dict:
        attempt = state.get("attempt_number", 1)
        questions = state.get("questions") or []
        thresholds = state.get("thresholds") or get_agent_settings().thresholds

        try:
            evaluations = await evaluate_fn(state["survey"].topic, questions)
        except Exception as exc:
            logger.warning("evaluation_failed", attempt=attempt, exc_info=True)
            return {
                "evaluations": None,
                "evaluation_error": str(exc) or type(exc).__name__,
                "current_phase": Phase.DONE,
                "messages": [f"[Evaluator] Attempt {attempt}: evaluation failed."],
            }

        issue_count = count_issues(evaluations, thresholds)
        failing = needs_regeneration(evaluations, thresholds)
        snapshot = AttemptSnapshot(
            attempt_number=attempt,
            questions=tuple(questions),
            evaluations=tuple(evaluations),
            issue_count=issue_count,
            needs_regeneration=failing,
        )

        if state.get("fallback_used"):
            next_phase = Phase.DONE
        elif failing:
            next_phase = Phase.REGENERATE
        else:
            next_phase = Phase.DONE

        logger.info(
            "evaluation_scored",
            attempt=attempt,
            issue_count=issue_count,
            needs_regeneration=failing,
            next_phase=next_phase,
        )
        return {
            "evaluations": evaluations,
            "attempts": [snapshot],
            "current_phase": next_phase,
            "messages": [f"[Evaluator] Attempt {attempt}: {issue_count} issues"],
        }

    return evaluator_node


def build_regeneration_graph(generate_fn: GenerateFn, evaluate_fn: EvaluateFn):
    """Build and compile the regeneration loop graph.

    State is request-scoped, so the graph has no checkpointer. Nodes carry no
    retry policy: every generation call counts against the attempt budget.
    """
    builder = StateGraph(RegenerationState)

    builder.add_node("question_writer", make_question_writer_node(generate_fn))
    builder.add_node("evaluator", make_evaluator_node(evaluate_fn))
    builder.add_node("critic", critic_node)

    builder.add_edge(START, "question_writer")
    builder.add_edge("question_writer", "critic")
    builder.add_edge("evaluator", "critic")
    builder.add_conditional_edges("critic", critic_router, _CRITIC_EDGES)

    return builder.compile()


def default_generate_fn(call_model: ModelCaller) -> GenerateFn:
    async def _generate(survey, variable_model, feedback, previous_questions):
        return await generate_questions(
            survey,
            variable_model,
            feedback=feedback,
            previous_questions=previous_questions,
            call_model=call_model,
        )

    return _generate


def default_evaluate_fn(
    call_model: ModelCaller,
    provider: EmbeddingProvider | None,
    thresholds: QualityThresholds,
) -> EvaluateFn:
    async def _evaluate(topic, questions):
        return await evaluate_questions(
            topic,
            questions,
            call_model=call_model,
            provider=provider,
            thresholds=thresholds,
        )

    return _evaluate


async def run_regeneration_loop(
    survey: SurveyConfig,
    variable_model: VariableModel | None = None,
    *,
    rejected_questions: Sequence[Question] | None = None,
    initial_feedback: str | None = None,
    generate_fn: GenerateFn | None = None,
    evaluate_fn: EvaluateFn | None = None,
    writer_model: ModelCaller | None = None,
    judge_model: ModelCaller | None = None,
    provider: EmbeddingProvider | None = None,
    max_attempts: int | None = None,
    thresholds: QualityThresholds | None = None,
) -> RegenerationResult:
    """Run one generate/evaluate/regenerate request to completion.

    Args:
        rejected_questions: Questions the caller already rejected; the first
            generation is told to avoid them.
        initial_feedback: Feedback for the first generation (e.g. from chat).
        generate_fn / evaluate_fn: Replace the question writer or evaluator
            entirely (tests, alternative backends).
        writer_model / judge_model: JSON model callers for the default
            generator and evaluator. None = built from settings.
        max_attempts: Maximum generation calls. None = agents.toml.
    """
    agent_settings = get_agent_settings()
    if thresholds is None:
        thresholds = agent_settings.thresholds
    if max_attempts is None:
        max_attempts = agent_settings.workflow.max_regen_attempts
    max_attempts = max(1, max_attempts)

    if generate_fn is None:
        generate_fn = default_generate_fn(writer_model or build_model_caller("question_writer"))
    if evaluate_fn is None:
        evaluate_fn = default_evaluate_fn(
            judge_model or build_model_caller("quality_judge"), provider, thresholds
        )

    graph = build_regeneration_graph(generate_fn, evaluate_fn)
    initial: RegenerationState = {
        "survey": survey,
        "variable_model": variable_model or VariableModel(),
        "rejected_questions": list(rejected_questions or []),
        "thresholds": thresholds,
        "current_phase": Phase.GENERATE,
        "attempt_number": 0,
        "max_attempts": max_attempts,
        "questions": [],
        "evaluations": None,
        "fallback_used": False,
        "evaluation_error": None,
        "feedback": initial_feedback or "",
        "attempts": [],
        "messages": [],
    }

    final = await graph.ainvoke(
        initial,
        config={"recursion_limit": _STEPS_PER_ATTEMPT * max_attempts + 5},
    )

    evaluations = final.get("evaluations")
    attempts_made = final.get("attempt_number", 0)
    result = RegenerationResult(
        questions=list(final.get("questions") or []),
        evaluations=list(evaluations) if evaluations is not None else None,
        regenerated=attempts_made > 1,
        attempts_made=attempts_made,
        fallback_used=bool(final.get("fallback_used")),
        issue_count=count_issues(evaluations, thresholds) if evaluations is not None else None,
        evaluation_error=final.get("evaluation_error"),
    )
    logger.info(
        "regeneration_done",
        attempts_made=result.attempts_made,
        regenerated=result.regenerated,
        fallback_used=result.fallback_used,
        issue_count=result.issue_count,
    )
    return result
