"""
LLM-backed match scoring with a deterministic fallback.

Every public operation returns a usable value. Model failures, timeouts and
unparseable replies are logged and replaced by the locally computed
fallback; they never propagate to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ..config import (
    AI_CALL_TIMEOUT_S,
    AI_LOG_PAYLOADS,
    AI_MAX_RETRIES,
    AI_TIMEOUT_S,
    GEMINI_API_KEY,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    GEMINI_MODEL,
)
from ..schemas.match import AIFeedbackOutput, AIScoreOutput, InterviewQuestion, MatchFeedback
from ..utils.error_handlers import ParseFailure, ScoringDegraded
from .ai_client import AIClientError, AIClientTimeout, gemini_generate_content
from .ai_common import extract_first_json_array, extract_first_json_object, parse_score_text
from .ai_prompts import (
    interview_questions_user_prompt,
    match_feedback_user_prompt,
    match_score_user_prompt,
    match_system_prompt,
)
from .score_normalization import (
    GENERIC_QUESTIONS,
    QUESTION_COUNT,
    category_of,
    fallback_feedback,
    fallback_questions,
    fallback_score,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ScoreOutcome:
    score: int
    feedback: MatchFeedback
    questions: list[InterviewQuestion] | None = None
    degraded: list[ScoringDegraded] = field(default_factory=list)
    # Model that produced the score; differs from the configured one after discovery.
    model: str | None = None

    @property
    def provenance(self) -> str:
        return "fallback" if self.degraded else "llm"


def fallback_outcome(vector_score: float | None, include_questions: bool, *, reason: str) -> ScoreOutcome:
    score = fallback_score(vector_score)
    return ScoreOutcome(
        score=score,
        feedback=fallback_feedback(score),
        questions=fallback_questions() if include_questions else None,
        degraded=[ScoringDegraded("score", reason)],
    )


def normalize_questions(items: Any) -> list[InterviewQuestion]:
    """
    Canonical {question, rationale} list of exactly QUESTION_COUNT items.
    Accepts plain strings or objects; pads from the generic set when short.
    """
    if isinstance(items, dict):
        items = items.get("questions") or items.get("interview_questions") or []
    if not isinstance(items, list):
        raise ParseFailure("Questions payload is not a list")

    out: list[InterviewQuestion] = []
    for it in items:
        if isinstance(it, str):
            q, r = it.strip(), ""
        elif isinstance(it, dict):
            q = str(it.get("question") or it.get("q") or "").strip()
            r = str(it.get("rationale") or it.get("reason") or "").strip()
        else:
            continue
        if q:
            out.append(InterviewQuestion(question=q, rationale=r))
        if len(out) >= QUESTION_COUNT:
            break

    if not out:
        raise ParseFailure("No interview questions in AI response")
    seen = {q.question for q in out}
    for q, r in GENERIC_QUESTIONS:
        if len(out) >= QUESTION_COUNT:
            break
        if q not in seen:
            out.append(InterviewQuestion(question=q, rationale=r))
    return out


class ScoreEngine:
    def __init__(
        self,
        *,
        api_key: str | None = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        api_version: str = GEMINI_API_VERSION,
        timeout_s: float = AI_TIMEOUT_S,
        max_retries: int = AI_MAX_RETRIES,
        call_timeout_s: float = AI_CALL_TIMEOUT_S,
        log_payloads: bool = AI_LOG_PAYLOADS,
    ):
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url
        self.api_version = api_version
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.call_timeout_s = call_timeout_s
        self.log_payloads = log_payloads

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _ask(self, user_prompt: str) -> tuple[str, str]:
        """Reply text and the model that actually served it."""
        if not self.enabled:
            raise AIClientError("AI disabled: GEMINI_API_KEY not configured.")
        try:
            text, meta = await asyncio.wait_for(
                gemini_generate_content(
                    api_key=self.api_key,
                    base_url=self.base_url,
                    api_version=self.api_version,
                    model=self.model,
                    user_text=user_prompt,
                    system_text=match_system_prompt(),
                    temperature=0.0,
                    timeout_s=self.timeout_s,
                    max_retries=self.max_retries,
                    log_payloads=self.log_payloads,
                ),
                timeout=self.call_timeout_s,
            )
        except asyncio.TimeoutError:
            raise AIClientTimeout(f"Scoring call exceeded {self.call_timeout_s:.0f}s") from None
        return text, meta.model

    async def _guarded(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> tuple[T, ScoringDegraded | None]:
        try:
            return await call(), None
        except (ParseFailure, PydanticValidationError) as e:
            logger.warning("AI %s parse failed (%s); using fallback", operation, e)
            return fallback(), ScoringDegraded(operation, f"parse: {e}")
        except AIClientError as e:
            if self.enabled:
                logger.warning("AI %s failed (%s: %s); using fallback", operation, type(e).__name__, e)
            return fallback(), ScoringDegraded(operation, type(e).__name__)
        except Exception as e:
            logger.exception("AI %s unexpected error: %s", operation, e)
            return fallback(), ScoringDegraded(operation, type(e).__name__)

    # -------------------- LLM calls --------------------

    async def _llm_score(self, subject_text: str, requirement_text: str) -> tuple[int, str]:
        raw, model = await self._ask(match_score_user_prompt(subject_text=subject_text, requirement_text=requirement_text))
        return AIScoreOutput(score=parse_score_text(raw)).score, model

    async def _llm_feedback(self, subject_text: str, requirement_text: str, score: int) -> MatchFeedback:
        raw, _ = await self._ask(
            match_feedback_user_prompt(subject_text=subject_text, requirement_text=requirement_text, score=score)
        )
        out = AIFeedbackOutput.model_validate(extract_first_json_object(raw))
        return MatchFeedback(text=out.text, category=category_of(score), details=out.details)

    async def _llm_questions(self, subject_text: str, requirement_text: str, score: int) -> list[InterviewQuestion]:
        raw, _ = await self._ask(
            interview_questions_user_prompt(subject_text=subject_text, requirement_text=requirement_text, score=score)
        )
        try:
            payload: Any = extract_first_json_array(raw)
        except ParseFailure:
            # Some replies wrap the list: {"questions": [...]}
            payload = extract_first_json_object(raw)
        return normalize_questions(payload)

    # -------------------- public API --------------------

    async def score(self, subject_text: str, requirement_text: str, vector_score: float | None = None) -> int:
        (value, _), _ = await self._guarded(
            "score",
            lambda: self._llm_score(subject_text, requirement_text),
            lambda: (fallback_score(vector_score), None),
        )
        return value

    async def feedback(self, subject_text: str, requirement_text: str, score: int) -> MatchFeedback:
        value, _ = await self._guarded(
            "feedback",
            lambda: self._llm_feedback(subject_text, requirement_text, score),
            lambda: fallback_feedback(score),
        )
        return value

    async def questions(self, subject_text: str, requirement_text: str, score: int) -> list[InterviewQuestion]:
        value, _ = await self._guarded(
            "questions",
            lambda: self._llm_questions(subject_text, requirement_text, score),
            fallback_questions,
        )
        return value

    async def evaluate(
        self,
        *,
        subject_text: str,
        requirement_text: str,
        vector_score: float | None = None,
        include_questions: bool = False,
    ) -> ScoreOutcome:
        """
        Score first, then feedback and questions concurrently for that score.
        When the score itself falls back, the rest falls back too without
        another model round-trip.
        """
        (score, model), degraded = await self._guarded(
            "score",
            lambda: self._llm_score(subject_text, requirement_text),
            lambda: (fallback_score(vector_score), None),
        )
        if degraded is not None:
            return fallback_outcome(vector_score, include_questions, reason=degraded.reason)

        feedback_call = self._guarded(
            "feedback",
            lambda: self._llm_feedback(subject_text, requirement_text, score),
            lambda: fallback_feedback(score),
        )
        if include_questions:
            (feedback, d1), (questions, d2) = await asyncio.gather(
                feedback_call,
                self._guarded(
                    "questions",
                    lambda: self._llm_questions(subject_text, requirement_text, score),
                    fallback_questions,
                ),
            )
        else:
            feedback, d1 = await feedback_call
            questions, d2 = None, None

        return ScoreOutcome(
            score=score,
            feedback=feedback,
            questions=questions,
            degraded=[d for d in (d1, d2) if d is not None],
            model=model,
        )
