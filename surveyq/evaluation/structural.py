"""Structural validators: response options, skip logic, scale consistency.

These never raise on malformed questions. Every defect becomes an issue tag
or a ``StructuralIssue`` so the evaluator can report it and the question
writer can be asked to fix it.
"""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from surveyq.schemas.evaluation import StructuralIssue
from surveyq.schemas.questions import Question, QuestionType


def _requires_options(question_type: QuestionType | None) -> bool:
    match question_type:
        case QuestionType.OPEN_ENDED:
            return False
        case (
            QuestionType.LIKERT
            | QuestionType.RATING
            | QuestionType.YES_NO
            | QuestionType.MULTIPLE_CHOICE
            | QuestionType.MULTI_SELECT
        ):
            return True
        case None:
            return True


def validate_response_options(
    options: Sequence[str],
    question_type: QuestionType | None = None,
) -> list[str]:
    """Return option-set issue tags.

    ``no_valid_options`` is exclusive: when every option is blank (or the
    list is empty for a type that needs options) no other tag is reported.
    An empty list on an open-ended question is not an issue.
    """
    if not options and not _requires_options(question_type):
        return []

    valid = [str(o) for o in options if str(o).strip()]
    if not valid:
        return ["no_valid_options"]

    problems: list[str] = []
    normalized = [o.strip().lower() for o in valid]

    if len(set(normalized)) != len(normalized):
        problems.append("duplicate_options")

    if ("yes" in normalized or "no" in normalized) and len(normalized) > 2:
        problems.append("yes_no_mixed_with_other_choices")

    if len(valid) == 1:
        problems.append("only_one_option")

    return problems


def validate_skip_logic(questions: Sequence[Question]) -> list[StructuralIssue]:
    """Check every branching question against the ids present in the set."""
    ids = {q.id for q in questions}
    issues: list[StructuralIssue] = []

    for q in questions:
        if not q.branch_from:
            continue

        if q.branch_from not in ids:
            issues.append(
                StructuralIssue(
                    question=q.text,
                    issue=f"Branch references non-existent question: {q.branch_from}",
                )
            )

        condition = q.branch_condition
        if condition is None or condition.operator is None:
            issues.append(
                StructuralIssue(question=q.text, issue="Branch condition missing or invalid")
            )
        elif condition.question_id != q.branch_from:
            issues.append(
                StructuralIssue(
                    question=q.text,
                    issue=(
                        f"Branch condition references {condition.question_id} "
                        f"but branchFrom is {q.branch_from}"
                    ),
                )
            )

    return issues


def _scale_issues(questions: list[Question], label: str) -> list[StructuralIssue]:
    sizes = [len(q.options) for q in questions]
    counts = Counter(sizes)
    if len(counts) <= 1:
        return []

    # Counter keeps insertion order, so ties go to the first size seen
    dominant = counts.most_common(1)[0][0]
    return [
        StructuralIssue(
            question=q.text,
            issue=(
                f"Inconsistent {label} scale: uses {len(q.options)}-point scale "
                f"but survey mostly uses {dominant}-point"
            ),
        )
        for q in questions
        if len(q.options) != dominant
    ]


def check_response_scale_consistency(questions: Sequence[Question]) -> list[StructuralIssue]:
    """Flag likert (then rating) questions whose scale size differs from the mode."""
    likert = [q for q in questions if q.type is QuestionType.LIKERT]
    rating = [q for q in questions if q.type is QuestionType.RATING]
    return _scale_issues(likert, "Likert") + _scale_issues(rating, "rating")
