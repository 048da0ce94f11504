"""Request/response Pydantic models for the API layer.

Wire names are camelCase, matching the survey-builder client.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from surveyq.schemas.evaluation import EvaluationRecord
from surveyq.schemas.questions import Question, SurveyConfig, VariableModel


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EvaluateQuestionsRequest(_CamelModel):
    """Evaluate a question set as-is (no generation)."""

    topic: str = ""
    questions: list[Question | str] = Field(default_factory=list, max_length=100)


class GenerateQuestionsRequest(_CamelModel):
    """Generate, evaluate and (if needed) regenerate questions."""

    survey_draft: SurveyConfig = Field(default_factory=SurveyConfig, alias="surveyDraft")
    variable_model: VariableModel | None = Field(default=None, alias="variableModel")
    previous_questions: list[Question] = Field(
        default_factory=list, alias="previousQuestions", max_length=100
    )


class AddQuestionsRequest(_CamelModel):
    """Append supplementary questions to an existing set."""

    survey_draft: SurveyConfig = Field(default_factory=SurveyConfig, alias="surveyDraft")
    variable_model: VariableModel | None = Field(default=None, alias="variableModel")
    existing_questions: list[Question] = Field(
        default_factory=list, alias="existingQuestions", max_length=100
    )
    count: int = Field(default=1, ge=1, le=20)


class ExtractSurveyConfigRequest(BaseModel):
    """Free-text survey description."""

    content: str = Field(default="", max_length=50_000)


class ChatTurn(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""


class ChatContext(_CamelModel):
    """Wizard state the client sends along with a chat message."""

    current_step: int = Field(default=1, alias="currentStep", ge=1, le=8)
    survey_draft: SurveyConfig | None = Field(default=None, alias="surveyDraft")
    variable_model: VariableModel | None = Field(default=None, alias="variableModel")
    questions: list[Question] = Field(default_factory=list)
    evaluations: list[EvaluationRecord] | None = None


class ChatRequest(_CamelModel):
    """One chat message, optionally asking for question regeneration."""

    message: str = Field(..., min_length=1, max_length=10_000)
    context: ChatContext = Field(default_factory=ChatContext)
    conversation_history: list[ChatTurn] | None = Field(
        default=None, alias="conversationHistory"
    )
    action: Literal["chat", "regenerate_questions"] = "chat"
    session_id: str = Field(default="default", alias="sessionId", max_length=200)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class EvaluateQuestionsResponse(BaseModel):
    evaluations: list[dict[str, Any]]


class GenerateQuestionsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    questions: list[dict[str, Any]]
    evaluations: list[dict[str, Any]] | None = None
    regenerated: bool = False
    attempts_made: int = Field(default=0, alias="attemptsMade")
    fallback_used: bool = Field(default=False, alias="fallbackUsed")


class AddQuestionsResponse(BaseModel):
    questions: list[dict[str, Any]]


class VariableModelResponse(BaseModel):
    dependent: list[str]
    drivers: list[str]
    controls: list[str]


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    action: str = "chat"
    regenerated_questions: list[dict[str, Any]] | None = Field(
        default=None, alias="regeneratedQuestions"
    )
    evaluations: list[dict[str, Any]] | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = "healthy"
    model_credentials: bool = Field(default=False, alias="modelCredentials")
    embeddings_enabled: bool = Field(default=True, alias="embeddingsEnabled")
    version: str = "0.1.0"


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
