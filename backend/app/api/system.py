import asyncio
import logging

from fastapi import APIRouter, Depends

from ..services.match_orchestrator import MatchOrchestrator
from ..utils.dependencies import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.post("/indexes/init")
async def init_indexes(orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    """Create the candidate and job indexes when missing."""
    await asyncio.to_thread(orchestrator.indexes.ensure_ready)
    counts = {
        "candidates": await asyncio.to_thread(orchestrator.indexes.candidates.count),
        "jobs": await asyncio.to_thread(orchestrator.indexes.jobs.count),
    }
    logger.info("Indexes ready: %s", counts)
    return {
        "success": True,
        "message": "Vector indexes initialized successfully",
        "indexes": {
            orchestrator.indexes.candidates.name: counts["candidates"],
            orchestrator.indexes.jobs.name: counts["jobs"],
        },
    }


@router.get("/cache/stats")
def cache_stats(orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    return {"success": True, "cache": orchestrator.cache.stats()}


@router.post("/cache/purge")
def purge_cache(orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    """Drop stale entries; fresh ones are kept."""
    removed = orchestrator.cache.purge_stale()
    return {"success": True, "removed": removed}
