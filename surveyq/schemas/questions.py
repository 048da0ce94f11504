"""Survey question, variable model and survey configuration schemas.

Field names are snake_case in Python and camelCase on the wire
(``variableRole``, ``branchFrom``, ``branchCondition``, ``maxQuestions``).
Both spellings are accepted on input.

Structural defects (dangling branch references, invalid operators) are kept
as data so the evaluator can flag them; the only thing rejected at parse time
is a question without an id, text or known type.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QuestionType(StrEnum):
    LIKERT = "likert"
    MULTIPLE_CHOICE = "multiple_choice"
    MULTI_SELECT = "multi_select"
    YES_NO = "yes_no"
    OPEN_ENDED = "open_ended"
    RATING = "rating"


class VariableRole(StrEnum):
    DEPENDENT = "dependent"
    DRIVER = "driver"
    CONTROL = "control"


class BranchOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    INCLUDES = "includes"
    GTE = "gte"
    LTE = "lte"


def expected_option_count(question_type: QuestionType) -> tuple[int, int]:
    """Return the (min, max) number of options a question type should carry."""
    match question_type:
        case QuestionType.LIKERT:
            return 5, 5
        case QuestionType.RATING:
            return 10, 10
        case QuestionType.YES_NO:
            return 2, 2
        case QuestionType.MULTIPLE_CHOICE | QuestionType.MULTI_SELECT:
            return 3, 7
        case QuestionType.OPEN_ENDED:
            return 0, 0


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class BranchCondition(BaseModel):
    """Condition on a parent question's answer that makes a question visible."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    question_id: str | None = Field(default=None, alias="questionId")
    operator: BranchOperator | None = None
    value: str | list[str] = ""

    @field_validator("operator", mode="before")
    @classmethod
    def _unknown_operator_is_none(cls, v: Any) -> Any:
        # An unknown operator is a structural defect for the skip-logic
        # validator to report, not a parse error.
        if isinstance(v, str) and v in BranchOperator._value2member_map_:
            return v
        return None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return [str(item) for item in v]
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("question_id", mode="before")
    @classmethod
    def _blank_question_id(cls, v: Any) -> Any:
        return _blank_to_none(v)


class Question(BaseModel):
    """One survey item."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    text: str
    type: QuestionType
    variable: str | None = None
    variable_role: VariableRole | None = Field(default=None, alias="variableRole")
    options: list[str] = Field(default_factory=list)
    required: bool = True
    branch_from: str | None = Field(default=None, alias="branchFrom")
    branch_condition: BranchCondition | None = Field(default=None, alias="branchCondition")

    @field_validator("variable_role", mode="before")
    @classmethod
    def _unknown_role_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v in VariableRole._value2member_map_:
            return v
        return None

    @field_validator("variable", "branch_from", mode="before")
    @classmethod
    def _blank_strings(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("options", mode="before")
    @classmethod
    def _stringify_options(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (list, tuple)):
            return [str(o) for o in v]
        return v

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, as exchanged with clients and the LLM."""
        return self.model_dump(mode="json", by_alias=True)


class VariableModel(BaseModel):
    """Outcome (dependent), driver and control variables a survey measures."""

    dependent: list[str] = Field(default_factory=list)
    drivers: list[str] = Field(default_factory=list)
    controls: list[str] = Field(default_factory=list)

    def role_of(self, variable: str) -> VariableRole | None:
        """Look up which container a variable name belongs to."""
        if variable in self.dependent:
            return VariableRole.DEPENDENT
        if variable in self.drivers:
            return VariableRole.DRIVER
        if variable in self.controls:
            return VariableRole.CONTROL
        return None

    def is_empty(self) -> bool:
        return not (self.dependent or self.drivers or self.controls)


class SurveyConfig(BaseModel):
    """Survey draft produced by the first wizard step."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    goal: str = ""
    population: str = ""
    confidence: str = ""
    margin: str = ""
    language: list[str] = Field(default_factory=list)
    tone: str = ""
    max_questions: int = Field(default=10, alias="maxQuestions", ge=1, le=50)

    @field_validator("confidence", "margin", mode="before")
    @classmethod
    def _number_to_str(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("language", mode="before")
    @classmethod
    def _language_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v

    @property
    def topic(self) -> str:
        """Topic string used by the evaluator (goal, then title)."""
        return self.goal or self.title or "general survey"

    @property
    def language_text(self) -> str:
        return " + ".join(self.language)


# ---------------------------------------------------------------------------
# Branch condition evaluation (respondent-side visibility)
# ---------------------------------------------------------------------------


def _leading_number(raw: Any) -> float | None:
    digits = "".join(ch for ch in str(raw) if ch.isdigit() or ch == ".")
    try:
        return float(digits)
    except ValueError:
        return None


def evaluate_branch_condition(
    condition: BranchCondition | None,
    answers: dict[str, str | list[str]],
) -> bool:
    """Return True if a question guarded by ``condition`` should be shown.

    ``answers`` maps question ids to a single answer or a list of selections.
    An unanswered parent hides the question.
    """
    if condition is None:
        return True

    answer = answers.get(condition.question_id or "")
    if answer is None:
        return False

    values = condition.value if isinstance(condition.value, list) else [condition.value]

    match condition.operator:
        case BranchOperator.EQUALS:
            if isinstance(answer, list):
                return any(len(answer) == 1 and answer[0] == v for v in values)
            return any(str(answer) == v for v in values)
        case BranchOperator.NOT_EQUALS:
            if isinstance(answer, list):
                return all(not (len(answer) == 1 and answer[0] == v) for v in values)
            return all(str(answer) != v for v in values)
        case BranchOperator.INCLUDES:
            if isinstance(answer, list):
                return any(v in answer for v in values)
            return str(answer) in values
        case BranchOperator.GTE | BranchOperator.LTE:
            number = _leading_number(answer)
            threshold = _leading_number(values[0]) if values else None
            if number is None or threshold is None:
                return False
            if condition.operator is BranchOperator.GTE:
                return number >= threshold
            return number <= threshold
        case None:
            return True


def visible_questions(
    questions: list[Question],
    answers: dict[str, str | list[str]],
) -> list[Question]:
    """Filter a question list down to what a respondent would currently see."""
    return [
        q
        for q in questions
        if not q.branch_from
        or q.branch_condition is None
        or evaluate_branch_condition(q.branch_condition, answers)
    ]
