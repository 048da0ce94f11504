"""Question Writer Agent: generates survey questions from a config and variable model.

The model's JSON is never trusted as-is. Entries with a non-string id or
text, an unknown type, non-list options or an unknown role are dropped;
branch references to ids outside the set are cut. An empty result is
replaced by the fixed fallback set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import structlog
from pydantic import ValidationError

from surveyq.prompts.templates import (
    QUESTION_WRITER_ADD,
    QUESTION_WRITER_FEEDBACK_SECTION,
    QUESTION_WRITER_GENERATE,
    QUESTION_WRITER_PREVIOUS_SECTION,
    QUESTION_WRITER_SYSTEM,
    SURVEY_CONTEXT_BLOCK,
    VARIABLE_MODEL_BLOCK,
)
from surveyq.schemas.presets import fallback_questions
from surveyq.schemas.questions import (
    Question,
    QuestionType,
    SurveyConfig,
    VariableModel,
    VariableRole,
    expected_option_count,
)
from surveyq.utils.structured_output import ModelCaller, build_model_caller

logger = structlog.get_logger(__name__)

_EMPTY_RESULT: dict[str, list] = {"questions": []}
_QUESTION_ID_RE = re.compile(r"^q(\d+)$")


@dataclass(frozen=True)
class GenerationOutcome:
    """Questions from one generation call and whether they are the fallback set."""

    questions: list[Question] = field(default_factory=list)
    fallback_used: bool = False


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------


def format_survey_context(survey: SurveyConfig) -> str:
    return SURVEY_CONTEXT_BLOCK.format(
        title=survey.title,
        goal=survey.goal,
        population=survey.population,
        confidence=survey.confidence,
        margin=survey.margin,
        language=survey.language_text,
        tone=survey.tone,
        max_questions=survey.max_questions,
    )


def format_variable_context(variable_model: VariableModel | None) -> str:
    model = variable_model or VariableModel()
    return VARIABLE_MODEL_BLOCK.format(
        dependent=", ".join(model.dependent),
        drivers=", ".join(model.drivers),
        controls=", ".join(model.controls),
    )


def format_option_counts() -> str:
    """One-line option-count guide, e.g. ``likert 5; multiple_choice 3-7``."""
    parts = []
    for question_type in QuestionType:
        low, high = expected_option_count(question_type)
        count = str(low) if low == high else f"{low}-{high}"
        parts.append(f"{question_type.value} {count}")
    return "; ".join(parts)


def _format_question_list(questions: Sequence[Question]) -> str:
    return "\n".join(f'- "{q.text}" ({q.type.value})' for q in questions)


def build_generation_prompt(
    survey: SurveyConfig,
    variable_model: VariableModel | None,
    feedback: str | None = None,
    previous_questions: Sequence[Question] | None = None,
) -> str:
    """Build the user prompt for a (re)generation call."""
    previous_section = ""
    if previous_questions:
        previous_section = QUESTION_WRITER_PREVIOUS_SECTION.format(
            previous_questions=_format_question_list(previous_questions)
        )

    feedback_section = ""
    if feedback and feedback.strip():
        feedback_section = QUESTION_WRITER_FEEDBACK_SECTION.format(feedback=feedback.strip())

    return QUESTION_WRITER_GENERATE.format(
        survey_context=format_survey_context(survey),
        variable_context=format_variable_context(variable_model),
        previous_questions_section=previous_section,
        feedback_section=feedback_section,
        option_counts=format_option_counts(),
        max_questions=survey.max_questions,
    )


# ---------------------------------------------------------------------------
# Output validation
# ---------------------------------------------------------------------------


def _is_well_formed(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    if not isinstance(entry.get("id"), str) or not isinstance(entry.get("text"), str):
        return False
    if entry.get("type") not in QuestionType._value2member_map_:
        return False
    if not isinstance(entry.get("options"), list):
        return False
    role = entry.get("variableRole", entry.get("variable_role"))
    if role is not None and role not in VariableRole._value2member_map_:
        return False
    return True


def repair_branches(questions: list[Question], known_ids: set[str] | None = None) -> list[Question]:
    """Null out branches that point outside the set, and stray conditions."""
    ids = known_ids if known_ids is not None else {q.id for q in questions}
    repaired = []
    for q in questions:
        if q.branch_from and q.branch_from not in ids:
            logger.debug("question_branch_dropped", question_id=q.id, branch_from=q.branch_from)
            q = q.model_copy(update={"branch_from": None, "branch_condition": None})
        elif not q.branch_from and q.branch_condition is not None:
            q = q.model_copy(update={"branch_condition": None})
        repaired.append(q)
    return repaired


def assign_roles(questions: list[Question], variable_model: VariableModel | None) -> list[Question]:
    """Fill a missing variableRole from the variable model when the variable is known."""
    if variable_model is None:
        return questions
    assigned = []
    for q in questions:
        if q.variable_role is None and q.variable:
            role = variable_model.role_of(q.variable)
            if role is not None:
                q = q.model_copy(update={"variable_role": role})
        assigned.append(q)
    return assigned


def validate_generated_questions(raw: Any, known_ids: set[str] | None = None) -> list[Question]:
    """Parse the model's ``{"questions": [...]}`` payload into valid Question models.

    Args:
        raw: Parsed JSON from the model.
        known_ids: Ids branches may point to. None = the ids of the parsed set.
    """
    entries = raw.get("questions") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        return []

    questions: list[Question] = []
    for entry in entries:
        if not _is_well_formed(entry):
            logger.debug("question_entry_dropped", entry=str(entry)[:120])
            continue
        try:
            questions.append(Question.model_validate(entry))
        except ValidationError:
            logger.debug("question_entry_invalid", entry=str(entry)[:120], exc_info=True)

    if known_ids is not None:
        known_ids = known_ids | {q.id for q in questions}
    return repair_branches(questions, known_ids)


# ---------------------------------------------------------------------------
# Agent entry points
# ---------------------------------------------------------------------------


async def _call(call_model: ModelCaller, prompt: str) -> Any:
    try:
        return await call_model(prompt, QUESTION_WRITER_SYSTEM, _EMPTY_RESULT)
    except Exception:
        logger.warning("question_writer_call_failed", exc_info=True)
        return _EMPTY_RESULT


async def generate_questions(
    survey: SurveyConfig,
    variable_model: VariableModel | None,
    feedback: str | None = None,
    previous_questions: Sequence[Question] | None = None,
    call_model: ModelCaller | None = None,
) -> GenerationOutcome:
    """Generate a question set; falls back to the fixed set when nothing usable comes back."""
    if call_model is None:
        call_model = build_model_caller("question_writer")

    prompt = build_generation_prompt(survey, variable_model, feedback, previous_questions)
    logger.info(
        "question_writer_start",
        max_questions=survey.max_questions,
        with_feedback=bool(feedback),
        previous=len(previous_questions or []),
    )

    raw = await _call(call_model, prompt)
    questions = assign_roles(validate_generated_questions(raw), variable_model)

    if not questions:
        logger.warning("question_writer_fallback_used")
        return GenerationOutcome(questions=fallback_questions(), fallback_used=True)

    logger.info("question_writer_done", count=len(questions))
    return GenerationOutcome(questions=questions)


def _next_index(questions: Sequence[Question]) -> int:
    numbers = [
        int(m.group(1)) for q in questions if (m := _QUESTION_ID_RE.match(q.id)) is not None
    ]
    return max(numbers + [len(questions)]) + 1


def _renumber(new: list[Question], existing_ids: set[str], start: int) -> list[Question]:
    """Give colliding ids fresh ``qN`` values, keeping branches between new questions."""
    taken = set(existing_ids)
    mapping: dict[str, str] = {}
    new_ids: list[str] = []
    index = start
    for q in new:
        new_id = q.id
        if new_id in taken:
            while f"q{index}" in taken:
                index += 1
            new_id = f"q{index}"
            mapping.setdefault(q.id, new_id)
        taken.add(new_id)
        new_ids.append(new_id)

    if not mapping:
        return new

    renumbered = []
    for q, new_id in zip(new, new_ids):
        update: dict[str, Any] = {"id": new_id}
        if q.branch_from in mapping:
            update["branch_from"] = mapping[q.branch_from]
            if q.branch_condition is not None:
                update["branch_condition"] = q.branch_condition.model_copy(
                    update={"question_id": mapping[q.branch_from]}
                )
        renumbered.append(q.model_copy(update=update))
    return renumbered


async def add_questions(
    survey: SurveyConfig,
    variable_model: VariableModel | None,
    existing_questions: Sequence[Question],
    count: int,
    call_model: ModelCaller | None = None,
) -> list[Question]:
    """Generate ``count`` supplementary questions numbered after the existing set.

    No fallback substitution: an unusable response yields an empty list.
    """
    if count <= 0:
        return []
    if call_model is None:
        call_model = build_model_caller("question_writer")

    next_index = _next_index(existing_questions)
    prompt = QUESTION_WRITER_ADD.format(
        count=count,
        title=survey.title,
        goal=survey.goal,
        population=survey.population,
        language=survey.language_text,
        tone=survey.tone,
        variable_context=format_variable_context(variable_model),
        existing_questions=_format_question_list(existing_questions) or "None",
        option_counts=format_option_counts(),
        next_index=next_index,
    )

    raw = await _call(call_model, prompt)
    existing_ids = {q.id for q in existing_questions}
    new = validate_generated_questions(raw, known_ids=existing_ids)[:count]
    new = assign_roles(_renumber(new, existing_ids, next_index), variable_model)

    logger.info("question_writer_added", requested=count, added=len(new))
    return new
