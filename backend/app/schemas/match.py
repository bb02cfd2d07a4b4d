from typing import Literal

from pydantic import BaseModel, Field, field_validator


Category = Literal["exceptional", "high", "medium", "low"]
Badge = Literal["default", "secondary", "destructive", "outline"]
Provenance = Literal["llm", "fallback", "cache"]


def _clamp(v) -> int:
    try:
        v2 = int(v)
    except Exception:
        return 0
    if v2 < 0:
        return 0
    if v2 > 100:
        return 100
    return v2


class MatchFeedback(BaseModel):
    text: str = ""
    category: Category = "low"
    details: str = ""


class InterviewQuestion(BaseModel):
    question: str
    rationale: str = ""


class AIScoreOutput(BaseModel):
    score: int = 0

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v) -> int:
        return _clamp(v)


class AIFeedbackOutput(BaseModel):
    # category is not read from the model; it is always derived from the score.
    text: str
    details: str = ""

    @field_validator("text")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("feedback text is empty")
        return v


class MatchResult(BaseModel):
    entity_id: str
    vector_score: float
    match_score: int
    feedback: MatchFeedback
    questions: list[InterviewQuestion] | None = None
    badge: Badge = "outline"
    provenance: Provenance = "fallback"
    # Display fields carried over from index metadata.
    name: str | None = None
    email: str | None = None
    linkedin_url: str | None = None
    skills_experience: str | None = None
    title: str | None = None
    description: str | None = None
    company: str | None = None
    location: str | None = None
    posted_date: str | None = None
    salary: str | None = None
    job_type: str | None = None

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_match_score(cls, v) -> int:
        return _clamp(v)


class CandidateIn(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=150)
    linkedin_url: str = ""
    skills_experience: str = Field(min_length=1, max_length=5000)
    resume_text: str = ""


class JobIn(BaseModel):
    job_id: str = Field(min_length=1, max_length=120)
    title: str = Field(min_length=2, max_length=150)
    description: str = Field(min_length=1, max_length=20000)
    company: str = ""
    location: str = ""
    posted_date: str = ""
    salary: str = ""
    job_type: str = ""


class CandidateSearchIn(BaseModel):
    title: str = ""
    description: str = ""
    top_k: int | None = None
