"""Chat Assistant Agent: survey-design help and feedback-driven regeneration.

Two actions:
  chat                  → a context-aware reply from the model
  regenerate_questions  → the user's feedback plus the current quality issues
                          become regeneration feedback for a full loop run
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog

from surveyq.config import QualityThresholds, get_agent_settings
from surveyq.evaluation.feedback import evaluation_problems
from surveyq.graphs.regeneration_loop import run_regeneration_loop
from surveyq.prompts.templates import (
    CHAT_ASSISTANT_SYSTEM,
    CHAT_REGENERATION_REQUEST,
    CHAT_REGENERATION_WITH_ISSUES,
    CHAT_REGENERATION_WITHOUT_ISSUES,
)
from surveyq.schemas.evaluation import EvaluationRecord, RegenerationResult
from surveyq.schemas.questions import Question, SurveyConfig, VariableModel
from surveyq.utils.structured_output import ModelCaller, build_model_caller

logger = structlog.get_logger(__name__)

NOT_SPECIFIED = "Not specified"
MAX_HISTORY_TURNS = 20

UNAVAILABLE_REPLY = (
    "The assistant model is not available right now. The survey tools still work: "
    "questions are generated from the built-in set and evaluated with local checks."
)


def _join_or_default(values: Sequence[str] | None) -> str:
    return ", ".join(values) if values else NOT_SPECIFIED


def build_chat_system_prompt(
    survey: SurveyConfig | None,
    variable_model: VariableModel | None,
    current_step: int = 1,
) -> str:
    survey = survey or SurveyConfig()
    model = variable_model or VariableModel()
    return CHAT_ASSISTANT_SYSTEM.format(
        title=survey.title or "Untitled Survey",
        goal=survey.goal or NOT_SPECIFIED,
        population=survey.population or NOT_SPECIFIED,
        current_step=current_step,
        dependent=_join_or_default(model.dependent),
        drivers=_join_or_default(model.drivers),
        controls=_join_or_default(model.controls),
    )


def _format_history(history: Sequence[dict[str, str]], message: str) -> str:
    lines = []
    for turn in list(history)[-MAX_HISTORY_TURNS:]:
        role = "User" if turn.get("role") == "user" else "Assistant"
        lines.append(f"{role}: {turn.get('content', '')}")
    lines.append(f"User: {message}")
    return "\n".join(lines)


def _reply_text(raw: Any) -> str:
    if isinstance(raw, dict) and isinstance(raw.get("reply"), str) and raw["reply"].strip():
        return raw["reply"].strip()
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return UNAVAILABLE_REPLY


async def chat_reply(
    message: str,
    *,
    history: Sequence[dict[str, str]] = (),
    survey: SurveyConfig | None = None,
    variable_model: VariableModel | None = None,
    current_step: int = 1,
    call_model: ModelCaller | None = None,
) -> str:
    """Answer one chat message in the context of the survey being built."""
    if call_model is None:
        call_model = build_model_caller("chat_assistant")

    system_prompt = build_chat_system_prompt(survey, variable_model, current_step)
    try:
        raw = await call_model(
            _format_history(history, message),
            system_prompt,
            {"reply": UNAVAILABLE_REPLY},
        )
    except Exception:
        logger.warning("chat_call_failed", exc_info=True)
        raw = None
    return _reply_text(raw)


def build_regeneration_request(
    user_feedback: str,
    evaluations: Sequence[EvaluationRecord] | None,
    thresholds: QualityThresholds | None = None,
) -> str:
    """Combine the user's feedback with the current per-question problems."""
    if thresholds is None:
        thresholds = get_agent_settings().thresholds

    issue_lines = []
    for i, record in enumerate(evaluations or [], start=1):
        problems = evaluation_problems(record, thresholds)
        if problems:
            label = record.question_id or f"q{i}"
            issue_lines.append(f"- {label}: {', '.join(problems)}")

    if issue_lines:
        issues_section = CHAT_REGENERATION_WITH_ISSUES.format(issues="\n".join(issue_lines))
    else:
        issues_section = CHAT_REGENERATION_WITHOUT_ISSUES
    return CHAT_REGENERATION_REQUEST.format(
        user_feedback=user_feedback.strip(),
        issues_section=issues_section,
    )


async def regenerate_from_feedback(
    user_feedback: str,
    *,
    survey: SurveyConfig,
    variable_model: VariableModel | None,
    questions: Sequence[Question] = (),
    evaluations: Sequence[EvaluationRecord] | None = None,
    **loop_kwargs: Any,
) -> RegenerationResult:
    """Run the regeneration loop seeded with the user's feedback.

    The current questions are passed as rejected questions so the first
    generation avoids repeating them. ``loop_kwargs`` go to
    ``run_regeneration_loop`` (model callers, provider, max_attempts).
    """
    feedback = build_regeneration_request(user_feedback, evaluations)
    logger.info("chat_regeneration_start", questions=len(questions))
    return await run_regeneration_loop(
        survey,
        variable_model,
        rejected_questions=list(questions),
        initial_feedback=feedback,
        **loop_kwargs,
    )


def regeneration_reply(result: RegenerationResult) -> str:
    """Short assistant message describing a regeneration result."""
    if result.fallback_used:
        return (
            "I couldn't generate new questions from your feedback, so the built-in "
            "question set is shown instead."
        )
    attempts = "attempt" if result.attempts_made == 1 else "attempts"
    text = (
        f"I regenerated {len(result.questions)} questions based on your feedback "
        f"({result.attempts_made} {attempts})."
    )
    if result.issue_count:
        text += f" {result.issue_count} quality issue(s) remain; review the flagged questions."
    return text
