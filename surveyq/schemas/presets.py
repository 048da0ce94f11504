"""Built-in survey presets and fallback payloads.

Preset: healthcare satisfaction survey for RAK residents. Its variable model
and ten-question set double as the fixed fallbacks substituted whenever the
generative model is unavailable or returns nothing usable.
"""

from __future__ import annotations

import json
from pathlib import Path

from surveyq.schemas.questions import Question, SurveyConfig, VariableModel

HEALTHCARE_EXAMPLE_SURVEY = SurveyConfig(
    title="Healthcare Satisfaction - RAK",
    goal="Identify drivers of dissatisfaction",
    population="RAK Residents (18+)",
    confidence="95",
    margin="5",
    language=["English", "Arabic"],
    tone="Neutral / Government",
    max_questions=10,
)

FALLBACK_VARIABLE_MODEL = VariableModel(
    dependent=["Overall satisfaction (1–5)"],
    drivers=[
        "Waiting time",
        "Staff professionalism",
        "Treatment effectiveness",
        "Facility cleanliness",
        "Accessibility",
        "Cost / process clarity",
    ],
    controls=[
        "Age group",
        "Gender",
        "Area",
        "Visit frequency",
        "Facility type",
    ],
)

_POOR_TO_EXCELLENT = [
    "1 - Very poor",
    "2 - Poor",
    "3 - Average",
    "4 - Good",
    "5 - Excellent",
]

_FALLBACK_QUESTION_DATA: list[dict] = [
    {
        "id": "q1",
        "text": "What is your age group?",
        "type": "multiple_choice",
        "variable": "Age group",
        "variableRole": "control",
        "options": ["18–24", "25–34", "35–44", "45–54", "55–64", "65+"],
        "required": True,
    },
    {
        "id": "q2",
        "text": "What is your gender?",
        "type": "multiple_choice",
        "variable": "Gender",
        "variableRole": "control",
        "options": ["Male", "Female", "Prefer not to say"],
        "required": True,
    },
    {
        "id": "q3",
        "text": "Which area of RAK do you reside in?",
        "type": "open_ended",
        "variable": "Area",
        "variableRole": "control",
        "options": [],
        "required": False,
    },
    {
        "id": "q4",
        "text": "Overall, how satisfied are you with the healthcare services you received?",
        "type": "likert",
        "variable": "Overall satisfaction (1–5)",
        "variableRole": "dependent",
        "options": [
            "1 - Very dissatisfied",
            "2 - Dissatisfied",
            "3 - Neutral",
            "4 - Satisfied",
            "5 - Very satisfied",
        ],
        "required": True,
    },
    {
        "id": "q5",
        "text": "What aspects contributed most to your dissatisfaction?",
        "type": "multi_select",
        "variable": "Treatment effectiveness",
        "variableRole": "driver",
        "options": [
            "Long waiting time",
            "Unprofessional staff",
            "Ineffective treatment",
            "Poor facility conditions",
            "Unclear costs",
        ],
        "required": True,
        "branchFrom": "q4",
        "branchCondition": {"questionId": "q4", "operator": "lte", "value": "2"},
    },
    {
        "id": "q6",
        "text": "How would you rate the waiting time before receiving care?",
        "type": "likert",
        "variable": "Waiting time",
        "variableRole": "driver",
        "options": [
            "1 - Very long",
            "2 - Long",
            "3 - Acceptable",
            "4 - Short",
            "5 - Very short",
        ],
        "required": True,
    },
    {
        "id": "q7",
        "text": "How would you rate the professionalism of the staff?",
        "type": "likert",
        "variable": "Staff professionalism",
        "variableRole": "driver",
        "options": _POOR_TO_EXCELLENT,
        "required": True,
    },
    {
        "id": "q8",
        "text": "How would you rate the cleanliness of the facility?",
        "type": "likert",
        "variable": "Facility cleanliness",
        "variableRole": "driver",
        "options": _POOR_TO_EXCELLENT,
        "required": True,
    },
    {
        "id": "q9",
        "text": "Were the costs and administrative processes clearly communicated?",
        "type": "yes_no",
        "variable": "Cost / process clarity",
        "variableRole": "driver",
        "options": ["Yes", "No"],
        "required": True,
    },
    {
        "id": "q10",
        "text": "What costs or processes were unclear? Please describe.",
        "type": "open_ended",
        "variable": "Cost / process clarity",
        "variableRole": "driver",
        "options": [],
        "required": False,
        "branchFrom": "q9",
        "branchCondition": {"questionId": "q9", "operator": "equals", "value": "No"},
    },
]

FALLBACK_QUESTIONS: tuple[Question, ...] = tuple(
    Question.model_validate(data) for data in _FALLBACK_QUESTION_DATA
)


def fallback_questions() -> list[Question]:
    """Return a fresh list holding the fixed fallback question set."""
    return list(FALLBACK_QUESTIONS)


# ---------------------------------------------------------------------------
# JSON File Loader
# ---------------------------------------------------------------------------


def load_survey_from_file(path: str | Path) -> tuple[SurveyConfig, VariableModel | None]:
    """Load a survey draft (and optionally its variable model) from JSON.

    Expected JSON format::

        {
            "surveyDraft": {"title": "...", "goal": "...", "population": "...",
                            "maxQuestions": 10},
            "variableModel": {"dependent": ["..."], "drivers": ["..."],
                              "controls": ["..."]}
        }

    A bare survey draft object (without the ``surveyDraft`` wrapper) is also
    accepted; the variable model is then None.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the JSON does not match the schema.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if "surveyDraft" not in data:
        return SurveyConfig.model_validate(data), None

    survey = SurveyConfig.model_validate(data["surveyDraft"])
    raw_model = data.get("variableModel")
    variable_model = VariableModel.model_validate(raw_model) if raw_model else None
    return survey, variable_model


def load_questions_from_file(path: str | Path) -> list[Question]:
    """Load the optional ``questions`` array from a survey JSON file."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    raw = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        return []
    return [Question.model_validate(item) for item in raw]
