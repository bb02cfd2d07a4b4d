from fastapi import APIRouter, Depends

from ..schemas.match import CandidateSearchIn
from ..services.match_orchestrator import MatchOrchestrator
from ..utils.dependencies import get_orchestrator
from ..utils.validation import validate_string_field, validate_top_k

router = APIRouter(prefix="/search", tags=["Search"])


@router.post("/candidates")
async def search_candidates(payload: CandidateSearchIn, orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    """Rank stored candidates against an ad-hoc job description that is not stored."""
    title = validate_string_field(payload.title, "Job title", max_length=150)
    description = validate_string_field(payload.description, "Job description", max_length=20000)
    k = validate_top_k(payload.top_k, orchestrator.default_top_k)

    matches = await orchestrator.find_matches(f"{title} {description}", "job", top_k=k)
    return {
        "success": True,
        "job": {"title": title, "description": description},
        "matches": [m.model_dump() for m in matches],
    }
