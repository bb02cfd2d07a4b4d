import logging

from fastapi import APIRouter, Depends, Query

from ..schemas.match import CandidateIn
from ..services.match_orchestrator import MatchOrchestrator
from ..utils.dependencies import get_orchestrator
from ..utils.validation import validate_email, validate_entity_id, validate_string_field, validate_top_k

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/candidates", tags=["Candidates"])


def _candidate_to_public(entity_id: str, metadata: dict[str, str]) -> dict:
    return {
        "email": metadata.get("email") or entity_id,
        "name": metadata.get("name", ""),
        "linkedin_url": metadata.get("linkedin_url", ""),
        "skills_experience": metadata.get("skills_experience") or metadata.get("skill_experience", ""),
    }


@router.post("", status_code=201)
async def store_candidate(payload: CandidateIn, orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    email = validate_email(payload.email)
    name = validate_string_field(payload.name, "Name", max_length=150)
    skills = validate_string_field(payload.skills_experience, "Skills and experience", max_length=5000)
    linkedin = validate_string_field(payload.linkedin_url, "LinkedIn URL", min_length=0, max_length=500, required=False) or ""

    await orchestrator.store_candidate(
        email=email,
        name=name,
        skills_experience=skills,
        linkedin_url=linkedin,
        resume_text=payload.resume_text or "",
    )
    return {
        "success": True,
        "message": "Candidate stored successfully",
        "candidate": {"email": email, "name": name, "linkedin_url": linkedin, "skills_experience": skills},
    }


@router.get("/{email}")
async def get_candidate(email: str, orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    email = validate_email(email)
    stored = await orchestrator.get_entity(email, "candidate")
    return {"success": True, "candidate": _candidate_to_public(stored.id, stored.metadata)}


@router.get("/{email}/matches")
async def match_jobs_for_candidate(
    email: str,
    job_id: str | None = Query(default=None),
    top_k: int | None = Query(default=None),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Jobs ranked for a stored candidate. job_id narrows the result to one match detail."""
    email = validate_email(email)
    k = validate_top_k(top_k, orchestrator.default_top_k)
    if job_id is not None:
        job_id = validate_entity_id(job_id, "job_id")

    stored, matches = await orchestrator.find_matches_for_entity(email, "candidate", top_k=k, filter_entity_id=job_id)
    return {
        "success": True,
        "candidate": _candidate_to_public(stored.id, stored.metadata),
        "matches": [m.model_dump() for m in matches],
    }
