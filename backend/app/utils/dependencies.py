import logging
import threading

from ..services.embeddings import get_embedding_provider
from ..services.match_cache import MatchCache
from ..services.match_orchestrator import MatchOrchestrator
from ..services.scoring_engine import ScoreEngine
from ..services.vector_index import build_indexes

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_orchestrator: MatchOrchestrator | None = None


def build_orchestrator() -> MatchOrchestrator:
    """Wire the pipeline from config. The cache lives as long as the orchestrator."""
    return MatchOrchestrator(
        embedder=get_embedding_provider(),
        indexes=build_indexes(),
        engine=ScoreEngine(),
        cache=MatchCache(),
    )


def get_orchestrator() -> MatchOrchestrator:
    """FastAPI dependency: one orchestrator per process. Tests override it."""
    global _orchestrator
    if _orchestrator is not None:
        return _orchestrator
    with _lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
            logger.info(
                "Match pipeline ready: embeddings=%s scoring_enabled=%s",
                _orchestrator.embedder.name,
                _orchestrator.engine.enabled,
            )
    return _orchestrator
