"""
Vector indexes for candidates and jobs.

Two backends share one interface:
- SqlVectorIndex stores vectors as JSON in the app database and ranks by
  cosine similarity in-process (dev, tests, small deployments).
- PineconeVectorIndex talks to a managed Pinecone serverless index.

All methods are blocking; async callers go through asyncio.to_thread.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import (
    CANDIDATE_INDEX_NAME,
    EMBEDDINGS_DIM,
    JOB_INDEX_NAME,
    PINECONE_API_KEY,
    PINECONE_CLOUD,
    PINECONE_REGION,
    VECTOR_INDEX_BACKEND,
)
from ..models.vector_record import VectorRecord
from ..utils.error_handlers import EntityNotFound, IndexUnavailable, VectorDimensionError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryMatch:
    id: str
    score: float
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StoredEntity:
    id: str
    vector: list[float]
    metadata: dict[str, str]
    profile_text: str = ""


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b:
        return 0.0
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return float(dot / (math.sqrt(na) * math.sqrt(nb)))


def _clean_metadata(metadata: dict[str, Any] | None) -> dict[str, str]:
    return {str(k): "" if v is None else str(v) for k, v in (metadata or {}).items()}


class VectorIndex:
    def __init__(self, name: str, dimension: int = EMBEDDINGS_DIM):
        self.name = name
        self.dimension = int(dimension)

    def check_dimension(self, vector: list[float]) -> None:
        if len(vector or []) != self.dimension:
            raise VectorDimensionError(expected=self.dimension, actual=len(vector or []), index_name=self.name)

    def ensure_ready(self) -> None:
        raise NotImplementedError

    def upsert(self, entity_id: str, vector: list[float], metadata: dict[str, Any], profile_text: str = "") -> None:
        raise NotImplementedError

    def fetch(self, entity_id: str) -> StoredEntity | None:
        raise NotImplementedError

    def _query_vector(self, vector: list[float], top_k: int, metadata_filter: dict[str, str] | None) -> list[QueryMatch]:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def query(
        self,
        vector: list[float] | None = None,
        *,
        entity_id: str | None = None,
        top_k: int = 10,
        metadata_filter: dict[str, str] | None = None,
    ) -> list[QueryMatch]:
        """
        Top-K nearest neighbors, best first. Querying by entity_id uses that
        entity's stored vector; an unknown id raises EntityNotFound.
        """
        if vector is None:
            if entity_id is None:
                raise ValueError("query needs a vector or an entity_id")
            stored = self.fetch(entity_id)
            if stored is None:
                raise EntityNotFound(f"'{entity_id}' not found in {self.name}", details={"id": entity_id})
            vector = stored.vector
        self.check_dimension(vector)
        if top_k <= 0:
            return []
        return self._query_vector(vector, int(top_k), metadata_filter)


class SqlVectorIndex(VectorIndex):
    def __init__(self, name: str, *, session_factory, dimension: int = EMBEDDINGS_DIM):
        super().__init__(name, dimension)
        self.session_factory = session_factory

    def _session(self):
        try:
            return self.session_factory()
        except SQLAlchemyError as e:
            raise IndexUnavailable(f"Vector index '{self.name}' unavailable: {type(e).__name__}") from e

    def ensure_ready(self) -> None:
        from ..database import init_db

        db = self._session()
        try:
            init_db(bind=db.get_bind())
        except SQLAlchemyError as e:
            raise IndexUnavailable(f"Vector index '{self.name}' could not be created: {type(e).__name__}") from e
        finally:
            db.close()

    def _write(self, db, entity_id: str, vector: list[float], metadata: dict[str, Any], profile_text: str) -> None:
        row = (
            db.query(VectorRecord)
            .filter(VectorRecord.index_name == self.name, VectorRecord.entity_id == entity_id)
            .first()
        )
        if row is None:
            row = VectorRecord(index_name=self.name, entity_id=entity_id)
        row.dim = len(vector)
        row.vector_json = json.dumps([float(x) for x in vector])
        row.metadata_json = json.dumps(_clean_metadata(metadata), ensure_ascii=False)
        row.profile_text = profile_text or ""
        db.add(row)
        db.commit()

    def upsert(self, entity_id: str, vector: list[float], metadata: dict[str, Any], profile_text: str = "") -> None:
        self.check_dimension(vector)
        db = self._session()
        try:
            try:
                self._write(db, entity_id, vector, metadata, profile_text)
            except IntegrityError:
                # Another writer inserted the same id first; overwrite its row.
                db.rollback()
                logger.info("Concurrent insert of %s in %s; updating instead", entity_id, self.name)
                self._write(db, entity_id, vector, metadata, profile_text)
        except SQLAlchemyError as e:
            db.rollback()
            raise IndexUnavailable(f"Upsert into '{self.name}' failed: {type(e).__name__}") from e
        finally:
            db.close()

    @staticmethod
    def _to_entity(row: VectorRecord) -> StoredEntity:
        try:
            vector = [float(x) for x in json.loads(row.vector_json or "[]")]
        except ValueError:
            logger.warning("Corrupt vector for %s in %s", row.entity_id, row.index_name)
            vector = []
        try:
            metadata = json.loads(row.metadata_json or "{}")
        except ValueError:
            metadata = {}
        return StoredEntity(id=row.entity_id, vector=vector, metadata=_clean_metadata(metadata), profile_text=row.profile_text or "")

    def fetch(self, entity_id: str) -> StoredEntity | None:
        db = self._session()
        try:
            row = (
                db.query(VectorRecord)
                .filter(VectorRecord.index_name == self.name, VectorRecord.entity_id == entity_id)
                .first()
            )
            return self._to_entity(row) if row else None
        except SQLAlchemyError as e:
            raise IndexUnavailable(f"Fetch from '{self.name}' failed: {type(e).__name__}") from e
        finally:
            db.close()

    def count(self) -> int:
        db = self._session()
        try:
            return db.query(VectorRecord).filter(VectorRecord.index_name == self.name).count()
        except SQLAlchemyError as e:
            raise IndexUnavailable(f"Count on '{self.name}' failed: {type(e).__name__}") from e
        finally:
            db.close()

    def _query_vector(self, vector: list[float], top_k: int, metadata_filter: dict[str, str] | None) -> list[QueryMatch]:
        db = self._session()
        try:
            rows = (
                db.query(VectorRecord)
                .filter(VectorRecord.index_name == self.name)
                .order_by(VectorRecord.id.asc())
                .all()
            )
            entities = [self._to_entity(r) for r in rows]
        except SQLAlchemyError as e:
            raise IndexUnavailable(f"Query on '{self.name}' failed: {type(e).__name__}") from e
        finally:
            db.close()

        scored: list[QueryMatch] = []
        for ent in entities:
            if metadata_filter and any(ent.metadata.get(k) != str(v) for k, v in metadata_filter.items()):
                continue
            if len(ent.vector) != len(vector):
                logger.warning("Skipping %s in %s: stored dim %s != %s", ent.id, self.name, len(ent.vector), len(vector))
                continue
            scored.append(QueryMatch(id=ent.id, score=cosine_similarity(vector, ent.vector), metadata=ent.metadata))
        scored.sort(key=lambda m: -m.score)
        return scored[:top_k]


class PineconeVectorIndex(VectorIndex):
    def __init__(
        self,
        name: str,
        *,
        api_key: str | None = PINECONE_API_KEY,
        dimension: int = EMBEDDINGS_DIM,
        cloud: str = PINECONE_CLOUD,
        region: str = PINECONE_REGION,
    ):
        super().__init__(name, dimension)
        if not api_key:
            raise IndexUnavailable("PINECONE_API_KEY is not configured")
        try:
            from pinecone import Pinecone  # type: ignore
        except ImportError as e:
            raise IndexUnavailable("pinecone is not installed. Install backend requirements.") from e
        self._pc = Pinecone(api_key=api_key)
        self.cloud = cloud
        self.region = region
        self._index = None

    def _get_index(self):
        if self._index is None:
            try:
                self._index = self._pc.Index(self.name)
            except Exception as e:
                raise IndexUnavailable(f"Failed to connect to index '{self.name}': {e}") from e
        return self._index

    def ensure_ready(self) -> None:
        from pinecone import ServerlessSpec  # type: ignore

        try:
            existing = set(self._pc.list_indexes().names())
            if self.name in existing:
                logger.info("Using existing Pinecone index: %s", self.name)
                return
            logger.info("Creating Pinecone index %s (dim=%s)", self.name, self.dimension)
            self._pc.create_index(
                name=self.name,
                dimension=self.dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud=self.cloud, region=self.region),
            )
        except Exception as e:
            raise IndexUnavailable(f"Failed to prepare Pinecone index '{self.name}': {e}") from e

    def upsert(self, entity_id: str, vector: list[float], metadata: dict[str, Any], profile_text: str = "") -> None:
        self.check_dimension(vector)
        try:
            self._get_index().upsert(
                vectors=[{"id": entity_id, "values": [float(x) for x in vector], "metadata": _clean_metadata(metadata)}]
            )
        except IndexUnavailable:
            raise
        except Exception as e:
            raise IndexUnavailable(f"Upsert into '{self.name}' failed: {e}") from e

    def fetch(self, entity_id: str) -> StoredEntity | None:
        try:
            res = self._get_index().fetch(ids=[entity_id])
        except IndexUnavailable:
            raise
        except Exception as e:
            raise IndexUnavailable(f"Fetch from '{self.name}' failed: {e}") from e
        vec = (getattr(res, "vectors", None) or {}).get(entity_id)
        if not vec:
            return None
        return StoredEntity(
            id=entity_id,
            vector=[float(x) for x in (vec.values or [])],
            metadata=_clean_metadata(getattr(vec, "metadata", None)),
        )

    def count(self) -> int:
        try:
            stats = self._get_index().describe_index_stats()
        except IndexUnavailable:
            raise
        except Exception as e:
            raise IndexUnavailable(f"Stats on '{self.name}' failed: {e}") from e
        return int(getattr(stats, "total_vector_count", 0) or 0)

    def _query_vector(self, vector: list[float], top_k: int, metadata_filter: dict[str, str] | None) -> list[QueryMatch]:
        kwargs: dict[str, Any] = {
            "vector": [float(x) for x in vector],
            "top_k": top_k,
            "include_metadata": True,
            "include_values": False,
        }
        if metadata_filter:
            kwargs["filter"] = {k: {"$eq": str(v)} for k, v in metadata_filter.items()}
        try:
            res = self._get_index().query(**kwargs)
        except IndexUnavailable:
            raise
        except Exception as e:
            raise IndexUnavailable(f"Query on '{self.name}' failed: {e}") from e
        return [
            QueryMatch(id=str(m.id), score=float(m.score or 0.0), metadata=_clean_metadata(m.metadata))
            for m in (getattr(res, "matches", None) or [])
        ]


@dataclass(frozen=True)
class IndexPair:
    candidates: VectorIndex
    jobs: VectorIndex

    def for_kind(self, kind: str) -> VectorIndex:
        if kind == "candidate":
            return self.candidates
        if kind == "job":
            return self.jobs
        raise ValueError(f"Unknown entity kind '{kind}'")

    def ensure_ready(self) -> None:
        self.candidates.ensure_ready()
        self.jobs.ensure_ready()


def build_indexes(
    backend: str = VECTOR_INDEX_BACKEND,
    *,
    session_factory=None,
    dimension: int = EMBEDDINGS_DIM,
) -> IndexPair:
    backend = (backend or "").strip().lower()
    if backend == "pinecone":
        return IndexPair(
            candidates=PineconeVectorIndex(CANDIDATE_INDEX_NAME, dimension=dimension),
            jobs=PineconeVectorIndex(JOB_INDEX_NAME, dimension=dimension),
        )
    if backend == "sql":
        if session_factory is None:
            from ..database import SessionLocal

            session_factory = SessionLocal
        return IndexPair(
            candidates=SqlVectorIndex(CANDIDATE_INDEX_NAME, session_factory=session_factory, dimension=dimension),
            jobs=SqlVectorIndex(JOB_INDEX_NAME, session_factory=session_factory, dimension=dimension),
        )
    raise IndexUnavailable(f"Unknown VECTOR_INDEX_BACKEND '{backend}'")
