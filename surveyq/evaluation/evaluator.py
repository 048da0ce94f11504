"""Question Evaluator: runs every analyzer over a question set.

One evaluation pass:
  1. extract question texts
  2. skip-logic and scale-consistency checks (whole set, once)
  3. duplicate-similarity matrix and judge batch (concurrently, once each)
  4. per question: variable relevance, readability, rule violations,
     option issues, duplicate score, structural issue lookup, judge scores

Records come back in input order. Missing dependencies (no embedding model,
no LLM) degrade to neutral values instead of failing the pass.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

import structlog

from surveyq.config import QualityThresholds, get_agent_settings
from surveyq.evaluation.embeddings import EmbeddingProvider, get_embedding_provider
from surveyq.evaluation.judge import score_batch
from surveyq.evaluation.linguistics import readability_score, rule_violations
from surveyq.evaluation.similarity import cosine_similarity, pairwise_similarity_matrix
from surveyq.evaluation.structural import (
    check_response_scale_consistency,
    validate_response_options,
    validate_skip_logic,
)
from surveyq.schemas.evaluation import EvaluationRecord, StructuralIssue
from surveyq.schemas.questions import Question, VariableRole
from surveyq.utils.structured_output import ModelCaller

logger = structlog.get_logger(__name__)


def variable_description(variable: str, role: VariableRole | None) -> str:
    """Role-aware sentence describing what a question on ``variable`` measures."""
    match role:
        case VariableRole.CONTROL:
            return (
                "This is a demographic or background question collecting "
                f"information about: {variable}."
            )
        case VariableRole.DRIVER:
            return f"This question measures a factor that influences the outcome: {variable}."
        case VariableRole.DEPENDENT:
            return f"This question measures the primary outcome variable: {variable}."
        case None:
            return f"This question measures the variable: {variable}."


async def variable_relevance(
    text: str,
    variable: str | None,
    role: VariableRole | None,
    provider: EmbeddingProvider,
) -> float:
    """Cosine similarity between a question and its variable description.

    No assigned variable, or no embedding, means "not penalized" (1.0).
    """
    if not variable:
        return 1.0

    question_vec, variable_vec = await asyncio.gather(
        provider.embed(text),
        provider.embed(variable_description(variable, role)),
    )
    if question_vec is None or variable_vec is None:
        return 1.0

    score = cosine_similarity(question_vec, variable_vec)
    return round(min(1.0, max(0.0, score)), 4)


def _first_issue(issues: list[StructuralIssue], text: str) -> StructuralIssue | None:
    return next((issue for issue in issues if issue.question == text), None)


def _max_off_diagonal(matrix: list[list[float]], i: int) -> float:
    row = [value for j, value in enumerate(matrix[i]) if j != i]
    if not row:
        return 0.0
    return round(max(0.0, max(row)), 4)


async def evaluate_questions(
    topic: str,
    questions: Sequence[Question | str],
    call_model: ModelCaller | None = None,
    provider: EmbeddingProvider | None = None,
    thresholds: QualityThresholds | None = None,
) -> list[EvaluationRecord]:
    """Evaluate a question set and return one record per question, in order.

    Args:
        topic: Survey topic given to the judge.
        questions: Question models, or bare question strings (text-only
            checks; no structural validation applies to them).
        call_model: JSON model caller for the judge. None = neutral scores.
        provider: Embedding provider. None = process-wide provider.
        thresholds: Quality thresholds (double-negative window). None = agents.toml.
    """
    if provider is None:
        provider = get_embedding_provider()
    if thresholds is None:
        thresholds = get_agent_settings().thresholds

    texts = [q.text if isinstance(q, Question) else str(q) for q in questions]
    structured = [q for q in questions if isinstance(q, Question)]

    logger.info("evaluation_start", topic=topic, count=len(texts))

    skip_issues = validate_skip_logic(structured)
    scale_issues = check_response_scale_consistency(structured)

    matrix, judge_scores = await asyncio.gather(
        pairwise_similarity_matrix(texts, provider),
        score_batch(questions, topic, call_model),
    )

    relevances = await asyncio.gather(
        *(
            variable_relevance(
                text,
                q.variable if isinstance(q, Question) else None,
                q.variable_role if isinstance(q, Question) else None,
                provider,
            )
            for text, q in zip(texts, questions)
        )
    )

    records: list[EvaluationRecord] = []
    for i, (text, q) in enumerate(zip(texts, questions)):
        is_structured = isinstance(q, Question)
        records.append(
            EvaluationRecord(
                question=text,
                question_id=q.id if is_structured else None,
                variable=q.variable if is_structured else None,
                variable_role=q.variable_role if is_structured else None,
                variable_relevance=relevances[i],
                readability=readability_score(text),
                max_duplicate_similarity=_max_off_diagonal(matrix, i),
                rule_violations=rule_violations(
                    text, double_negative_window=thresholds.double_negative_window
                ),
                llm_scores=judge_scores[i],
                response_option_issues=(
                    validate_response_options(q.options, q.type) if is_structured else []
                ),
                skip_logic_issue=_first_issue(skip_issues, text),
                response_scale_issue=_first_issue(scale_issues, text),
            )
        )

    logger.info(
        "evaluation_done",
        count=len(records),
        skip_issues=len(skip_issues),
        scale_issues=len(scale_issues),
    )
    return records
