import asyncio

import pytest

from backend.app.services.score_normalization import FEEDBACK_TEMPLATES, GENERIC_QUESTIONS
from backend.app.services.scoring_engine import ScoreEngine, fallback_outcome, normalize_questions
from backend.app.utils.error_handlers import ParseFailure


SKILLS = "React, TypeScript, Node.js, 5 years frontend"
REQUIREMENTS = "Senior React developer with TypeScript"


def test_disabled_engine_falls_back_without_calling_the_model(fake_gemini):
    engine = ScoreEngine(api_key="")
    assert engine.enabled is False

    outcome = asyncio.run(
        engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS, vector_score=0.6, include_questions=True)
    )
    assert outcome.score == 80
    assert outcome.feedback.category == "high"
    assert outcome.feedback.text == FEEDBACK_TEMPLATES["high"][0]
    assert len(outcome.questions) == 3
    assert outcome.provenance == "fallback"
    assert fake_gemini.calls == []


def test_evaluate_uses_model_score_feedback_and_questions(score_engine, fake_gemini):
    fake_gemini.score = 88
    outcome = asyncio.run(
        score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS, vector_score=0.1, include_questions=True)
    )
    assert outcome.score == 88
    assert outcome.feedback.category == "high"
    assert outcome.feedback.text == "Solid overlap with the stack."
    assert [q.question for q in outcome.questions][0] == "Walk me through a React app you shipped."
    assert outcome.provenance == "llm"
    assert outcome.degraded == []
    assert len(fake_gemini.calls) == 3


def test_evaluate_skips_questions_when_not_requested(score_engine, fake_gemini):
    outcome = asyncio.run(score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS))
    assert outcome.questions is None
    assert len(fake_gemini.calls) == 2


def test_score_failure_short_circuits_to_full_fallback(score_engine, fake_gemini):
    fake_gemini.fail_on.add("React")
    outcome = asyncio.run(
        score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS, vector_score=-0.2, include_questions=True)
    )
    assert outcome.score == 40
    assert outcome.feedback.category == "medium"
    assert [(q.question, q.rationale) for q in outcome.questions] == list(GENERIC_QUESTIONS)
    assert outcome.provenance == "fallback"
    # Only the score call was attempted.
    assert len(fake_gemini.calls) == 1


def test_unparseable_feedback_uses_template_for_model_score(monkeypatch, score_engine):
    import backend.app.services.scoring_engine as scoring_engine
    from backend.app.services.ai_client import GeminiMeta

    async def fake_call(**kwargs):
        meta = GeminiMeta(model="gemini-test", latency_ms=1, status_code=200, retries=0)
        if kwargs["user_text"].startswith("Rate how well"):
            return "92", meta
        return "Sorry, I cannot help with that.", meta

    monkeypatch.setattr(scoring_engine, "gemini_generate_content", fake_call)
    outcome = asyncio.run(score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS))
    assert outcome.score == 92
    assert outcome.feedback.category == "exceptional"
    assert outcome.feedback.text == FEEDBACK_TEMPLATES["exceptional"][0]
    assert [d.operation for d in outcome.degraded] == ["feedback"]
    assert outcome.provenance == "fallback"


def test_slow_model_call_times_out_into_fallback(monkeypatch):
    import backend.app.services.scoring_engine as scoring_engine

    async def slow_call(**kwargs):
        await asyncio.sleep(1)
        return "99", None

    monkeypatch.setattr(scoring_engine, "gemini_generate_content", slow_call)
    engine = ScoreEngine(api_key="test-key", call_timeout_s=0.05)
    score = asyncio.run(engine.score(SKILLS, REQUIREMENTS, vector_score=None))
    assert score == 50


def test_single_operations_never_raise(score_engine, fake_gemini):
    fake_gemini.fail_on.add("Explain the score")
    fake_gemini.fail_on.add("interview questions")

    feedback = asyncio.run(score_engine.feedback(SKILLS, REQUIREMENTS, 30))
    questions = asyncio.run(score_engine.questions(SKILLS, REQUIREMENTS, 30))
    assert feedback.category == "low"
    assert feedback.text == FEEDBACK_TEMPLATES["low"][0]
    assert len(questions) == 3


def test_normalize_questions_accepts_strings_and_pads():
    out = normalize_questions(["Tell me about React hooks."])
    assert len(out) == 3
    assert out[0].question == "Tell me about React hooks."
    assert out[0].rationale == ""
    assert out[1].question == GENERIC_QUESTIONS[0][0]


def test_normalize_questions_truncates_and_unwraps():
    payload = {"questions": [{"question": f"Q{i}", "rationale": "r"} for i in range(5)]}
    out = normalize_questions(payload)
    assert [q.question for q in out] == ["Q0", "Q1", "Q2"]


def test_normalize_questions_rejects_empty():
    with pytest.raises(ParseFailure):
        normalize_questions([])
    with pytest.raises(ParseFailure):
        normalize_questions("not a list")


def test_fallback_outcome_marks_degraded():
    outcome = fallback_outcome(None, False, reason="boom")
    assert outcome.score == 50
    assert outcome.questions is None
    assert outcome.provenance == "fallback"


def test_outcome_records_the_model_that_served_the_score(score_engine, fake_gemini):
    fake_gemini.model = "gemini-discovered"
    outcome = asyncio.run(score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS))
    assert outcome.model == "gemini-discovered"
    assert score_engine.model == "gemini-test"

    fake_gemini.fail_on.add("React")
    assert asyncio.run(score_engine.evaluate(subject_text=SKILLS, requirement_text=REQUIREMENTS)).model is None
