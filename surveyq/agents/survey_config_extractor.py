"""Survey Config Extractor Agent: pulls a survey draft out of free text.

Every field is type-checked on its own; a field of the wrong type becomes
empty rather than failing the whole extraction.
"""

from __future__ import annotations

import math
from typing import Any

import structlog

from surveyq.prompts.templates import SURVEY_CONFIG_EXTRACTOR_SYSTEM, SURVEY_CONFIG_EXTRACTOR_TASK
from surveyq.schemas.presets import HEALTHCARE_EXAMPLE_SURVEY
from surveyq.schemas.questions import SurveyConfig
from surveyq.utils.structured_output import ModelCaller, build_model_caller

logger = structlog.get_logger(__name__)

DEFAULT_MAX_QUESTIONS = 10

_TEXT_FIELDS = ("title", "goal", "population", "confidence", "margin", "tone")


def _max_questions(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_MAX_QUESTIONS
    if not math.isfinite(value):
        return DEFAULT_MAX_QUESTIONS
    return min(50, max(1, int(value)))


def coerce_survey_config(raw: Any) -> SurveyConfig:
    """Build a SurveyConfig from loosely typed model output."""
    if not isinstance(raw, dict):
        raw = {}
    fields: dict[str, Any] = {
        name: raw[name] if isinstance(raw.get(name), str) else "" for name in _TEXT_FIELDS
    }
    language = raw.get("language")
    fields["language"] = (
        [str(item) for item in language] if isinstance(language, list) else []
    )
    fields["max_questions"] = _max_questions(raw.get("maxQuestions"))
    return SurveyConfig(**fields)


async def extract_survey_config(
    content: str,
    call_model: ModelCaller | None = None,
) -> SurveyConfig:
    """Extract a survey draft from a free-text description."""
    if call_model is None:
        call_model = build_model_caller("survey_config_extractor")

    prompt = SURVEY_CONFIG_EXTRACTOR_TASK.format(text=content or "")
    default = HEALTHCARE_EXAMPLE_SURVEY.model_dump(by_alias=True)

    try:
        raw = await call_model(prompt, SURVEY_CONFIG_EXTRACTOR_SYSTEM, default)
    except Exception:
        logger.warning("survey_config_extractor_call_failed", exc_info=True)
        raw = default

    survey = coerce_survey_config(raw)
    logger.info("survey_config_extracted", title=survey.title, max_questions=survey.max_questions)
    return survey
