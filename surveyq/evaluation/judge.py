"""LLM-as-judge rubric scoring for a whole question batch in one model call.

The judge is deliberately permissive: when it cannot score (no model, bad
JSON, wrong array length, call failure) every question gets the neutral
4/4/4/4 so a judge outage never blocks question delivery.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog

from surveyq.prompts.templates import QUALITY_JUDGE_ITEM, QUALITY_JUDGE_SYSTEM, QUALITY_JUDGE_TASK
from surveyq.schemas.evaluation import LLM_SCORE_FIELDS, NEUTRAL_LLM_SCORE, LLMScores
from surveyq.schemas.questions import Question
from surveyq.utils.structured_output import ModelCaller

logger = structlog.get_logger(__name__)


def build_judge_prompt(questions: Sequence[Question | str], topic: str) -> str:
    """Build the batch rubric prompt listing every question with its variable."""
    lines = []
    for i, q in enumerate(questions, start=1):
        if isinstance(q, Question):
            text, variable = q.text, q.variable
            role = q.variable_role.value if q.variable_role else None
        else:
            text, variable, role = str(q), None, None
        lines.append(
            QUALITY_JUDGE_ITEM.format(
                index=i,
                text=text,
                variable=variable or "unknown",
                role=role or "unknown",
            )
        )
    return QUALITY_JUDGE_TASK.format(
        topic=topic,
        questions="\n".join(lines),
        count=len(questions),
    )


def _coerce_score(value: Any) -> int:
    # bool is an int subclass; true/false is not a score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return NEUTRAL_LLM_SCORE
    if not 1 <= value <= 5:
        return NEUTRAL_LLM_SCORE
    return int(round(value))


def parse_scores(entry: Any) -> LLMScores:
    """Validate one judge entry field by field; bad fields fall back to 4."""
    if not isinstance(entry, dict):
        return LLMScores.neutral()
    return LLMScores(**{name: _coerce_score(entry.get(name)) for name in LLM_SCORE_FIELDS})


async def score_batch(
    questions: Sequence[Question | str],
    topic: str,
    call_model: ModelCaller | None,
) -> list[LLMScores]:
    """Score every question in one model call; result[i] belongs to questions[i]."""
    if not questions:
        return []

    neutral = [LLMScores.neutral() for _ in questions]
    if call_model is None:
        return neutral

    prompt = build_judge_prompt(questions, topic)
    try:
        result = await call_model(prompt, QUALITY_JUDGE_SYSTEM, None)
    except Exception:
        logger.warning("judge_call_failed", count=len(questions), exc_info=True)
        return neutral

    if not isinstance(result, list) or len(result) != len(questions):
        logger.warning(
            "judge_fallback_used",
            expected=len(questions),
            received=len(result) if isinstance(result, list) else None,
        )
        return neutral

    return [parse_scores(entry) for entry in result]
