"""
Candidate <-> job matching pipeline.

query text -> embedding -> top-K from the opposite index -> per-match score,
feedback and questions (cache or ScoreEngine, fanned out concurrently) ->
stable sort by match_score.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..config import MATCH_TOP_K
from ..schemas.match import MatchFeedback, MatchResult
from ..utils.error_handlers import EntityNotFound, ValidationError, get_error_message
from .embeddings import EmbeddingProvider, normalize_text, text_fingerprint
from .match_cache import CacheKey, MatchCache
from .score_normalization import badge_for, category_of, sort_by_match_score
from .scoring_engine import ScoreEngine, fallback_outcome
from .vector_index import IndexPair, QueryMatch, StoredEntity


logger = logging.getLogger(__name__)

QUERY_KINDS = ("job", "candidate")

CANDIDATE_FIELDS = ("name", "email", "linkedin_url", "skills_experience")
JOB_FIELDS = ("title", "description", "company", "location", "posted_date", "salary", "job_type")


def opposite_kind(kind: str) -> str:
    if kind == "job":
        return "candidate"
    if kind == "candidate":
        return "job"
    raise ValidationError(f"Unknown query kind '{kind}' (expected one of {', '.join(QUERY_KINDS)})")


def candidate_skills(metadata: dict[str, str]) -> str:
    # Older records used the singular key.
    return metadata.get("skills_experience") or metadata.get("skill_experience") or ""


def job_requirements(metadata: dict[str, str]) -> str:
    return metadata.get("description") or metadata.get("title") or ""


@dataclass(frozen=True)
class _QueryContext:
    kind: str  # kind of the query entity
    source: str  # cache source: entity id or "q:<fingerprint>"
    query_text: str  # candidate skills (kind=candidate) or job requirements (kind=job)

    def texts_for(self, match: QueryMatch) -> tuple[str, str]:
        """(subject = candidate text, requirement = job text) for one match."""
        if self.kind == "job":
            return candidate_skills(match.metadata), self.query_text
        return self.query_text, job_requirements(match.metadata)


class MatchOrchestrator:
    def __init__(
        self,
        *,
        embedder: EmbeddingProvider,
        indexes: IndexPair,
        engine: ScoreEngine,
        cache: MatchCache | None = None,
        default_top_k: int = MATCH_TOP_K,
    ):
        self.embedder = embedder
        self.indexes = indexes
        self.engine = engine
        self.cache = cache or MatchCache()
        self.default_top_k = default_top_k

    # -------------------- storing --------------------

    async def _store(self, kind: str, entity_id: str, profile_text: str, metadata: dict[str, Any]) -> None:
        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise ValidationError(f"{kind} id is required")
        vector = await self.embedder.embed(profile_text)
        index = self.indexes.for_kind(kind)
        await asyncio.to_thread(index.upsert, entity_id, vector, metadata, normalize_text(profile_text))
        # Scores computed against the old profile are no longer meaningful.
        self.cache.invalidate_entity(entity_id)
        logger.info("Stored %s id=%s in %s (dim=%s)", kind, entity_id, index.name, len(vector))

    async def store_candidate(
        self,
        *,
        email: str,
        name: str,
        skills_experience: str,
        linkedin_url: str = "",
        resume_text: str = "",
    ) -> None:
        email = (email or "").strip().lower()
        metadata = {
            "name": name,
            "email": email,
            "linkedin_url": linkedin_url,
            "skills_experience": skills_experience,
        }
        # The resume is the richer profile; skills alone when no resume was extracted.
        profile = resume_text if normalize_text(resume_text) else skills_experience
        await self._store("candidate", email, profile, metadata)

    async def store_job(
        self,
        *,
        job_id: str,
        title: str,
        description: str,
        **extra: str,
    ) -> None:
        metadata = {"title": title, "description": description}
        metadata.update({k: v for k, v in extra.items() if k in JOB_FIELDS and v is not None})
        await self._store("job", job_id, description, metadata)

    async def get_entity(self, entity_id: str, kind: str) -> StoredEntity:
        index = self.indexes.for_kind(kind)
        stored = await asyncio.to_thread(index.fetch, entity_id)
        if stored is None:
            raise EntityNotFound(get_error_message(f"{kind}_not_found"), details={"id": entity_id})
        return stored

    # -------------------- matching --------------------

    async def find_matches(
        self,
        query_text: str,
        query_kind: str,
        top_k: int | None = None,
        filter_entity_id: str | None = None,
        source_entity_id: str | None = None,
    ) -> list[MatchResult]:
        """
        query_kind is what the query text describes: "job" searches candidates,
        "candidate" searches jobs.
        """
        target_kind = opposite_kind(query_kind)
        if not normalize_text(query_text):
            raise ValidationError("Query text is required")
        vector = await self.embedder.embed(query_text)
        ctx = _QueryContext(
            kind=query_kind,
            source=source_entity_id or f"q:{text_fingerprint(query_text)}",
            query_text=query_text,
        )
        return await self._run(ctx, target_kind, vector, top_k, filter_entity_id)

    async def find_matches_for_entity(
        self,
        entity_id: str,
        entity_kind: str,
        top_k: int | None = None,
        filter_entity_id: str | None = None,
    ) -> tuple[StoredEntity, list[MatchResult]]:
        """Self-lookup: the stored entity's own vector is the query vector."""
        target_kind = opposite_kind(entity_kind)
        stored = await self.get_entity(entity_id, entity_kind)
        if entity_kind == "job":
            query_text = job_requirements(stored.metadata)
        else:
            query_text = candidate_skills(stored.metadata)
        ctx = _QueryContext(kind=entity_kind, source=stored.id, query_text=query_text)
        matches = await self._run(ctx, target_kind, stored.vector, top_k, filter_entity_id)
        return stored, matches

    async def _run(
        self,
        ctx: _QueryContext,
        target_kind: str,
        vector: list[float],
        top_k: int | None,
        filter_entity_id: str | None,
    ) -> list[MatchResult]:
        k = int(top_k or self.default_top_k)
        index = self.indexes.for_kind(target_kind)
        neighbors = await asyncio.to_thread(index.query, vector, top_k=k)
        logger.info("Index %s returned %s neighbors (top_k=%s) for source=%s", index.name, len(neighbors), k, ctx.source)

        if filter_entity_id is not None:
            neighbors = [m for m in neighbors if m.id == filter_entity_id]
            if not neighbors:
                raise EntityNotFound(
                    get_error_message("match_not_found"),
                    details={"id": filter_entity_id, "source": ctx.source},
                )
        if not neighbors:
            return []

        include_questions = ctx.kind == "job"
        results = await asyncio.gather(*(self._enrich(ctx, m, target_kind, include_questions) for m in neighbors))
        return sort_by_match_score(results)

    async def _enrich(self, ctx: _QueryContext, match: QueryMatch, target_kind: str, include_questions: bool) -> MatchResult:
        key = CacheKey(source=ctx.source, target=match.id, model_version=self.engine.model)
        cached = self.cache.get(key)
        if cached is not None and (cached.questions is not None or not include_questions):
            score, feedback, questions, provenance = cached.score, cached.feedback, cached.questions, "cache"
        else:
            subject, requirement = ctx.texts_for(match)
            try:
                outcome = await self.engine.evaluate(
                    subject_text=subject,
                    requirement_text=requirement,
                    vector_score=match.score,
                    include_questions=include_questions,
                )
            except Exception as e:
                # One failing match must not sink its siblings.
                logger.exception("Scoring crashed for %s -> %s: %s", ctx.source, match.id, e)
                outcome = fallback_outcome(match.score, include_questions, reason=type(e).__name__)
            score, feedback, questions, provenance = outcome.score, outcome.feedback, outcome.questions, outcome.provenance
            if outcome.degraded:
                logger.warning(
                    "Scoring degraded for %s -> %s: %s",
                    ctx.source,
                    match.id,
                    "; ".join(str(d) for d in outcome.degraded),
                )
            else:
                self.cache.store(key, score=score, feedback=feedback, questions=questions, served_model=outcome.model or "")
                if outcome.model and outcome.model != key.model_version:
                    logger.info("Match %s -> %s served by %s (configured %s)", ctx.source, match.id, outcome.model, key.model_version)

        logger.info("Match %s -> %s score=%s vector=%.4f provenance=%s", ctx.source, match.id, score, match.score, provenance)
        return self._assemble(match, target_kind, score, feedback, questions if include_questions else None, provenance)

    @staticmethod
    def _assemble(match: QueryMatch, target_kind: str, score: int, feedback: MatchFeedback, questions, provenance: str) -> MatchResult:
        category = category_of(score)
        # Category always follows the score, whatever the cached feedback says.
        feedback = MatchFeedback(text=feedback.text, category=category, details=feedback.details)
        fields = CANDIDATE_FIELDS if target_kind == "candidate" else JOB_FIELDS
        display = {f: match.metadata.get(f, "") for f in fields}
        if target_kind == "candidate":
            display["skills_experience"] = candidate_skills(match.metadata)
            display["email"] = display["email"] or match.id
        return MatchResult(
            entity_id=match.id,
            vector_score=float(match.score),
            match_score=score,
            feedback=feedback,
            questions=questions,
            badge=badge_for(category),
            provenance=provenance,
            **display,
        )
