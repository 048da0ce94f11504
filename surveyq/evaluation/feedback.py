"""Turn evaluation records into regeneration feedback for the question writer."""

from __future__ import annotations

from typing import Sequence

from surveyq.config import QualityThresholds, get_agent_settings
from surveyq.prompts.templates import DOUBLE_BARRELED_HINT, REGENERATION_FEEDBACK_CLOSING
from surveyq.schemas.evaluation import EvaluationRecord


def evaluation_problems(record: EvaluationRecord, thresholds: QualityThresholds) -> list[str]:
    """Human-readable problems for one record; empty when the question passes."""
    floor = thresholds.min_llm_score
    scores = record.llm_scores
    problems: list[str] = []

    if scores.relevance < floor:
        problems.append(f"low relevance to topic ({scores.relevance}/5)")
    if scores.clarity < floor:
        problems.append(f"low clarity ({scores.clarity}/5)")
    if scores.neutrality < floor:
        problems.append(f"potential bias or leading language ({scores.neutrality}/5)")
    if scores.answerability < floor:
        problems.append(f"low answerability ({scores.answerability}/5)")

    role = record.variable_role.value if record.variable_role else None
    if record.variable_relevance < thresholds.relevance_floor(role):
        problems.append(
            f'question doesn\'t match its variable "{record.variable}" '
            f"(similarity: {record.variable_relevance})"
        )

    if record.max_duplicate_similarity > thresholds.max_duplicate_similarity:
        problems.append("too similar to another question")
    if record.rule_violations:
        problems.append(f"rule violations: {', '.join(record.rule_violations)}")
    if record.response_option_issues:
        problems.append(f"response option issues: {', '.join(record.response_option_issues)}")
    if record.skip_logic_issue:
        problems.append(record.skip_logic_issue.issue)
    if record.response_scale_issue:
        problems.append(record.response_scale_issue.issue)

    if scores.clarity < floor or scores.answerability < floor:
        problems.append(DOUBLE_BARRELED_HINT)

    return problems


def build_regeneration_feedback(
    evaluations: Sequence[EvaluationRecord],
    topic: str,
    thresholds: QualityThresholds | None = None,
) -> str:
    """Compose the feedback document: topic, flagged questions, closing instruction.

    Questions without problems are left out.
    """
    if thresholds is None:
        thresholds = get_agent_settings().thresholds

    text = f"Survey topic: {topic}\n\n"
    text += "The following questions need improvement:\n\n"
    for record in evaluations:
        problems = evaluation_problems(record, thresholds)
        if problems:
            text += f"- {record.question}\n  Problems: {', '.join(problems)}\n"
    text += f"\n{REGENERATION_FEEDBACK_CLOSING}"
    return text
