"""
Score normalization and presentation helpers.

Everything here is a pure function of its inputs. Category and badge are
derived from the integer score on demand and never stored on their own.
"""

import math
from typing import Iterable, TypeVar

from ..schemas.match import InterviewQuestion, MatchFeedback


T = TypeVar("T")

DEFAULT_SCORE = 50

# (lower bound inclusive, category), checked top-down.
CATEGORY_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (90, "exceptional"),
    (70, "high"),
    (40, "medium"),
)

BADGES: dict[str, str] = {
    "exceptional": "default",
    "high": "default",
    "medium": "secondary",
    "low": "destructive",
}

FEEDBACK_TEMPLATES: dict[str, tuple[str, str]] = {
    "exceptional": (
        "Exceptional match! Candidate is highly aligned with job requirements.",
        "This candidate demonstrates an exceptional match to the position requirements. "
        "Their skills and experience closely align with what you're looking for, "
        "suggesting they could be a top performer.",
    ),
    "high": (
        "Strong match! Candidate has relevant skills for this position.",
        "This candidate shows strong alignment with the job requirements. Their background "
        "suggests they have most of the key skills needed for success in this role.",
    ),
    "medium": (
        "Potential match. Further screening recommended.",
        "While this candidate shows potential, there may be some skills gaps that should be "
        "explored further. Consider focusing interview questions on these potential gaps.",
    ),
    "low": (
        "Limited alignment with job requirements.",
        "This candidate's experience appears to have limited alignment with the job "
        "requirements. There may be significant skills gaps that would require substantial training.",
    ),
}

GENERIC_QUESTIONS: tuple[tuple[str, str], ...] = (
    (
        "Can you describe your experience with the technologies mentioned in your profile?",
        "Understanding the candidate's practical experience.",
    ),
    (
        "How do you approach learning new technologies or skills?",
        "Assessing adaptability and learning capacity.",
    ),
    (
        "What do you consider your strongest technical skill and why?",
        "Evaluating self-awareness and technical strengths.",
    ),
)

QUESTION_COUNT = len(GENERIC_QUESTIONS)


def normalize_vector_score(cos: float) -> int:
    """Map cosine similarity [-1, 1] onto [0, 100]. Halves round up."""
    c = float(cos)
    if c < -1.0:
        c = -1.0
    if c > 1.0:
        c = 1.0
    return int(math.floor((c + 1.0) / 2.0 * 100.0 + 0.5))


def category_of(score: int) -> str:
    s = int(score)
    for bound, name in CATEGORY_THRESHOLDS:
        if s >= bound:
            return name
    return "low"


def badge_for(category: str) -> str:
    return BADGES.get(category, "outline")


def fallback_score(vector_score: float | None) -> int:
    if vector_score is None:
        return DEFAULT_SCORE
    return normalize_vector_score(vector_score)


def fallback_feedback(score: int) -> MatchFeedback:
    category = category_of(score)
    text, details = FEEDBACK_TEMPLATES[category]
    return MatchFeedback(text=text, category=category, details=details)


def fallback_questions() -> list[InterviewQuestion]:
    return [InterviewQuestion(question=q, rationale=r) for q, r in GENERIC_QUESTIONS]


def sort_by_match_score(items: Iterable[T], key=lambda r: r.match_score) -> list[T]:
    """Descending by score. sorted() is stable, so ties keep their incoming order."""
    return sorted(items, key=lambda r: -int(key(r)))
