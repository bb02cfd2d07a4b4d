import logging

from fastapi import APIRouter, Depends, Query

from ..schemas.match import JobIn
from ..services.match_orchestrator import JOB_FIELDS, MatchOrchestrator
from ..utils.dependencies import get_orchestrator
from ..utils.validation import validate_email, validate_entity_id, validate_string_field, validate_top_k

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _job_to_public(job_id: str, metadata: dict[str, str]) -> dict:
    payload = {"job_id": job_id}
    payload.update({f: metadata.get(f, "") for f in JOB_FIELDS})
    return payload


@router.post("", status_code=201)
async def store_job(payload: JobIn, orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    job_id = validate_entity_id(payload.job_id)
    title = validate_string_field(payload.title, "Title", min_length=2, max_length=150)
    description = validate_string_field(payload.description, "Description", max_length=20000)
    extra = {
        "company": payload.company,
        "location": payload.location,
        "posted_date": payload.posted_date,
        "salary": payload.salary,
        "job_type": payload.job_type,
    }

    await orchestrator.store_job(job_id=job_id, title=title, description=description, **extra)
    return {
        "success": True,
        "message": "Job stored successfully",
        "job": _job_to_public(job_id, {"title": title, "description": description, **extra}),
    }


@router.get("/{job_id}")
async def get_job(job_id: str, orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    job_id = validate_entity_id(job_id)
    stored = await orchestrator.get_entity(job_id, "job")
    return {"success": True, "job": _job_to_public(stored.id, stored.metadata)}


@router.get("/{job_id}/matches")
async def match_candidates_for_job(
    job_id: str,
    candidate: str | None = Query(default=None, description="Candidate email for a single match detail"),
    top_k: int | None = Query(default=None),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    job_id = validate_entity_id(job_id)
    k = validate_top_k(top_k, orchestrator.default_top_k)
    if candidate is not None:
        candidate = validate_email(candidate)

    stored, matches = await orchestrator.find_matches_for_entity(job_id, "job", top_k=k, filter_entity_id=candidate)
    return {
        "success": True,
        "job": _job_to_public(stored.id, stored.metadata),
        "matches": [m.model_dump() for m in matches],
    }
