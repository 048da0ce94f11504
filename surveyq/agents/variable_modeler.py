"""Variable Modeler Agent: proposes dependent, driver and control variables."""

from __future__ import annotations

from typing import Any

import structlog

from surveyq.agents.question_writer import format_survey_context
from surveyq.prompts.templates import VARIABLE_MODELER_SYSTEM, VARIABLE_MODELER_TASK
from surveyq.schemas.presets import FALLBACK_VARIABLE_MODEL
from surveyq.schemas.questions import SurveyConfig, VariableModel
from surveyq.utils.structured_output import ModelCaller, build_model_caller

logger = structlog.get_logger(__name__)

_VARIABLE_KEYS = ("dependent", "drivers", "controls")


def parse_variable_model(raw: Any) -> VariableModel | None:
    """Accept only a dict whose three containers are all lists."""
    if not isinstance(raw, dict):
        return None
    if not all(isinstance(raw.get(key), list) for key in _VARIABLE_KEYS):
        return None
    return VariableModel(
        **{key: [str(v) for v in raw[key] if str(v).strip()] for key in _VARIABLE_KEYS}
    )


async def generate_variable_model(
    survey: SurveyConfig,
    call_model: ModelCaller | None = None,
) -> VariableModel:
    """Propose a variable model for the survey; the fixed fallback on any failure."""
    if call_model is None:
        call_model = build_model_caller("variable_modeler")

    prompt = VARIABLE_MODELER_TASK.format(survey_context=format_survey_context(survey))
    fallback = FALLBACK_VARIABLE_MODEL.model_dump()

    try:
        raw = await call_model(prompt, VARIABLE_MODELER_SYSTEM, fallback)
    except Exception:
        logger.warning("variable_modeler_call_failed", exc_info=True)
        raw = fallback

    model = parse_variable_model(raw)
    if model is None:
        logger.warning("variable_modeler_fallback_used")
        return FALLBACK_VARIABLE_MODEL.model_copy(deep=True)

    logger.info(
        "variable_modeler_done",
        dependent=len(model.dependent),
        drivers=len(model.drivers),
        controls=len(model.controls),
    )
    return model
