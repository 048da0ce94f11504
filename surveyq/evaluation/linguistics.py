"""Readability scoring and lexical rule checks for question wording.

Both analyzers are deterministic heuristics. Readability is classic Flesch
Reading Ease with a suffix-stripping syllable counter; rule checks are
lexicon and regex matches. Neither needs a model.
"""

from __future__ import annotations

import re

MAX_QUESTION_WORDS = 40
DEFAULT_DOUBLE_NEGATIVE_WINDOW = 3

NEGATION_WORDS = frozenset(
    {"not", "never", "no", "none", "hardly", "rarely", "neither", "nor"}
)

VAGUE_TERMS = (
    "often",
    "usually",
    "sometimes",
    "many",
    "some",
    "a lot",
    "regularly",
)

LEADING_PHRASES = (
    "would you agree",
    "would you say",
    "don't you think",
    "you'd agree",
    "surely",
    "obviously",
    "naturally",
    "it's clear that",
    "as everyone knows",
    "most people",
    "everyone agrees",
)


def _lexicon_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(t) for t in terms)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


_VAGUE_RE = _lexicon_pattern(VAGUE_TERMS)
_LEADING_RE = _lexicon_pattern(LEADING_PHRASES)
_SUFFIX_RE = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]{1,2}")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]")
_NON_WORD_RE = re.compile(r"[^a-z']")


def _normalize_quotes(text: str) -> str:
    return text.replace("’", "'").replace("‘", "'")


# ---------------------------------------------------------------------------
# Readability
# ---------------------------------------------------------------------------


def count_syllables(word: str) -> int:
    """Heuristic syllable count; words of 3 characters or fewer count as 1."""
    word = word.lower()
    if len(word) <= 3:
        return 1
    word = _SUFFIX_RE.sub("", word)
    word = re.sub(r"^y", "", word)
    return len(_VOWEL_GROUP_RE.findall(word)) or 1


def flesch_reading_ease(text: str) -> float:
    """Unclamped Flesch Reading Ease score."""
    sentences = max(1, sum(1 for s in _SENTENCE_SPLIT_RE.split(text) if s))
    words = text.split()
    word_count = len(words) or 1
    syllables = sum(count_syllables(w) for w in words)
    return 206.835 - 1.015 * (word_count / sentences) - 84.6 * (syllables / word_count)


def readability_score(text: str) -> float:
    """Flesch Reading Ease clamped to [0, 100] and rounded to 2 decimals."""
    score = flesch_reading_ease(text)
    return round(min(100.0, max(0.0, score)), 2)


# ---------------------------------------------------------------------------
# Rule violations
# ---------------------------------------------------------------------------


def _is_negation(token: str) -> bool:
    return token in NEGATION_WORDS or token.endswith("n't")


def has_double_negative(text: str, window: int = DEFAULT_DOUBLE_NEGATIVE_WINDOW) -> bool:
    """True if a negation is followed by another within ``window`` tokens."""
    tokens = [_NON_WORD_RE.sub("", t) for t in _normalize_quotes(text).lower().split()]
    for i, token in enumerate(tokens):
        if not _is_negation(token):
            continue
        for j in range(i + 1, min(i + 1 + window, len(tokens))):
            if _is_negation(tokens[j]):
                return True
    return False


def rule_violations(
    text: str,
    double_negative_window: int = DEFAULT_DOUBLE_NEGATIVE_WINDOW,
) -> list[str]:
    """Return the rule tags a question's wording violates, in a fixed order.

    Tags: multiple_questions, too_long, double_negative, vague_language,
    leading_language.
    """
    violations: list[str] = []
    normalized = _normalize_quotes(text)

    if normalized.count("?") > 1:
        violations.append("multiple_questions")

    if len(normalized.split()) > MAX_QUESTION_WORDS:
        violations.append("too_long")

    if has_double_negative(normalized, window=double_negative_window):
        violations.append("double_negative")

    if _VAGUE_RE.search(normalized):
        violations.append("vague_language")

    if _LEADING_RE.search(normalized):
        violations.append("leading_language")

    return violations
