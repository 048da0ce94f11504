"""Evaluation records and regeneration-loop snapshots.

All models here are frozen: an evaluation pass produces new records and a
regeneration attempt produces a new snapshot; nothing is updated in place.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from surveyq.schemas.questions import Question, VariableRole

LLM_SCORE_FIELDS = ("clarity", "neutrality", "answerability", "relevance")

NEUTRAL_LLM_SCORE = 4


class LLMScores(BaseModel):
    """Rubric scores (1-5) from the quality judge for one question."""

    model_config = ConfigDict(frozen=True)

    clarity: int = Field(default=NEUTRAL_LLM_SCORE, ge=1, le=5)
    neutrality: int = Field(default=NEUTRAL_LLM_SCORE, ge=1, le=5)
    answerability: int = Field(default=NEUTRAL_LLM_SCORE, ge=1, le=5)
    relevance: int = Field(default=NEUTRAL_LLM_SCORE, ge=1, le=5)

    @classmethod
    def neutral(cls) -> LLMScores:
        """Permissive default used whenever the judge cannot score a batch."""
        return cls()

    def below(self, floor: int) -> list[str]:
        """Names of the sub-scores strictly below ``floor``."""
        return [name for name in LLM_SCORE_FIELDS if getattr(self, name) < floor]


class StructuralIssue(BaseModel):
    """A cross-question finding (skip logic or scale), keyed by question text."""

    model_config = ConfigDict(frozen=True)

    question: str
    issue: str


class EvaluationRecord(BaseModel):
    """Quality signals for one question from one evaluation pass."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str
    question_id: str | None = Field(default=None, alias="questionId")
    variable: str | None = None
    variable_role: VariableRole | None = Field(default=None, alias="variableRole")
    variable_relevance: float = Field(default=1.0, ge=0.0, le=1.0)
    readability: float = Field(default=100.0, ge=0.0, le=100.0)
    max_duplicate_similarity: float = 0.0
    rule_violations: list[str] = Field(default_factory=list)
    llm_scores: LLMScores = Field(default_factory=LLMScores.neutral)
    response_option_issues: list[str] = Field(default_factory=list)
    skip_logic_issue: StructuralIssue | None = None
    response_scale_issue: StructuralIssue | None = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AttemptSnapshot(BaseModel):
    """One complete generate + evaluate attempt of the regeneration loop."""

    model_config = ConfigDict(frozen=True)

    attempt_number: int
    questions: tuple[Question, ...]
    evaluations: tuple[EvaluationRecord, ...]
    issue_count: int
    needs_regeneration: bool


class RegenerationResult(BaseModel):
    """Final outcome of one generate/evaluate/regenerate request."""

    questions: list[Question] = Field(default_factory=list)
    evaluations: list[EvaluationRecord] | None = None
    regenerated: bool = False
    attempts_made: int = 0
    fallback_used: bool = False
    issue_count: int | None = None
    evaluation_error: str | None = None

    def to_wire(self) -> dict:
        """Response body of the generate-questions endpoint (camelCase keys)."""
        return {
            "questions": [q.to_wire() for q in self.questions],
            "evaluations": (
                [r.to_wire() for r in self.evaluations] if self.evaluations is not None else None
            ),
            "regenerated": self.regenerated,
            "attemptsMade": self.attempts_made,
            "fallbackUsed": self.fallback_used,
        }
