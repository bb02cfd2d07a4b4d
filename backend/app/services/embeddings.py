import asyncio
import hashlib
import logging
import random
import re

import httpx

from ..config import (
    AI_TIMEOUT_S,
    EMBEDDINGS_DEGRADED_FALLBACK,
    EMBEDDINGS_DIM,
    EMBEDDINGS_FALLBACK_SEED,
    EMBEDDINGS_MODEL,
    EMBEDDINGS_PROVIDER,
    GEMINI_API_KEY,
    GEMINI_API_VERSION,
    GEMINI_BASE_URL,
    HUGGINGFACE_API_KEY,
    HUGGINGFACE_BASE_URL,
)
from ..utils.error_handlers import EmbeddingUnavailable
from .ai_client import AIClientError, gemini_embed_content


logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = _WS_RE.sub(" ", t)
    return t


def text_fingerprint(text: str) -> str:
    """Stable key for free-text queries (whitespace-insensitive)."""
    blob = normalize_text(text).lower().encode("utf-8", errors="ignore")
    return hashlib.sha256(blob).hexdigest()[:32]


class EmbeddingProvider:
    """text -> fixed-length vector. Implementations raise EmbeddingUnavailable on failure."""

    name = "base"

    def __init__(self, *, model: str, dimension: int):
        self.model = model
        self.dimension = int(dimension)

    async def _embed(self, text: str) -> list[float]:
        raise NotImplementedError

    async def embed(self, text: str) -> list[float]:
        t = normalize_text(text)
        if not t:
            raise EmbeddingUnavailable("Cannot embed empty text")
        try:
            vec = await self._embed(t)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.warning("Embedding failed provider=%s model=%s: %s", self.name, self.model, e)
            raise EmbeddingUnavailable(f"Embedding provider '{self.name}' failed: {type(e).__name__}") from e
        if not vec:
            raise EmbeddingUnavailable(f"Embedding provider '{self.name}' returned an empty vector")
        return vec


class LocalEmbeddingProvider(EmbeddingProvider):
    """fastembed on this machine; the model is downloaded on first use."""

    name = "local"

    def __init__(self, *, model: str = EMBEDDINGS_MODEL, dimension: int = EMBEDDINGS_DIM):
        super().__init__(model=model, dimension=dimension)
        self._embedder = None

    def _get_embedder(self):
        if self._embedder is not None:
            return self._embedder
        try:
            from fastembed import TextEmbedding  # type: ignore
        except Exception as e:
            raise EmbeddingUnavailable("fastembed is not installed. Install backend requirements.") from e
        self._embedder = TextEmbedding(model_name=self.model)
        return self._embedder

    def _embed_sync(self, text: str) -> list[float]:
        embedder = self._get_embedder()
        # fastembed returns an iterator of numpy arrays
        vec = next(embedder.embed([text]))
        return [float(x) for x in vec.tolist()]

    async def _embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._embed_sync, text)


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Hugging Face Inference API feature-extraction pipeline."""

    name = "huggingface"

    def __init__(
        self,
        *,
        api_key: str | None = HUGGINGFACE_API_KEY,
        model: str = EMBEDDINGS_MODEL,
        dimension: int = EMBEDDINGS_DIM,
        base_url: str = HUGGINGFACE_BASE_URL,
        timeout_s: float = AI_TIMEOUT_S,
    ):
        super().__init__(model=model, dimension=dimension)
        self.api_key = api_key or ""
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_s = timeout_s

    async def _embed(self, text: str) -> list[float]:
        if not self.api_key:
            raise EmbeddingUnavailable("Missing HUGGINGFACE_API_KEY")
        url = f"{self.base_url}/pipeline/feature-extraction/{self.model}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            r = await client.post(url, json={"inputs": text}, headers=headers)
        if r.status_code >= 400:
            raise EmbeddingUnavailable(f"Hugging Face HTTP {r.status_code}")
        data = r.json()
        # Either [floats] or [[floats]] (batch of one).
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        if not isinstance(data, list) or not all(isinstance(x, (int, float)) for x in data):
            raise EmbeddingUnavailable("Unexpected response format from Hugging Face API")
        return [float(x) for x in data]


class GeminiEmbeddingProvider(EmbeddingProvider):
    name = "gemini"

    def __init__(
        self,
        *,
        api_key: str | None = GEMINI_API_KEY,
        model: str = EMBEDDINGS_MODEL,
        dimension: int = EMBEDDINGS_DIM,
        base_url: str = GEMINI_BASE_URL,
        api_version: str = GEMINI_API_VERSION,
        timeout_s: float = AI_TIMEOUT_S,
    ):
        super().__init__(model=model, dimension=dimension)
        self.api_key = api_key or ""
        self.base_url = base_url
        self.api_version = api_version
        self.timeout_s = timeout_s

    async def _embed(self, text: str) -> list[float]:
        try:
            return await gemini_embed_content(
                api_key=self.api_key,
                base_url=self.base_url,
                api_version=self.api_version,
                model=self.model,
                text=text,
                timeout_s=self.timeout_s,
            )
        except AIClientError as e:
            raise EmbeddingUnavailable(f"Gemini embeddings failed: {e}") from e


class ResilientEmbeddingProvider(EmbeddingProvider):
    """
    Wraps a provider: one retry, then (only when enabled) a fixed-seed
    pseudo-random vector with a logged warning.
    """

    def __init__(self, inner: EmbeddingProvider, *, degraded_fallback: bool = False, seed: int = EMBEDDINGS_FALLBACK_SEED):
        super().__init__(model=inner.model, dimension=inner.dimension)
        self.inner = inner
        self.name = inner.name
        self.degraded_fallback = degraded_fallback
        self.seed = seed

    def degraded_vector(self) -> list[float]:
        rng = random.Random(self.seed)
        return [rng.uniform(-1.0, 1.0) for _ in range(self.dimension)]

    async def embed(self, text: str) -> list[float]:
        try:
            return await self.inner.embed(text)
        except EmbeddingUnavailable as first:
            if not normalize_text(text):
                raise
            logger.warning("Embedding failed (%s); retrying once", first.message)
            try:
                return await self.inner.embed(text)
            except EmbeddingUnavailable:
                if not self.degraded_fallback:
                    raise
                logger.warning(
                    "DEGRADED: embedding provider=%s unavailable; using fixed-seed pseudo-random vector (dim=%s). "
                    "Matches for this request are not meaningful.",
                    self.name,
                    self.dimension,
                )
                return self.degraded_vector()


_PROVIDERS = {
    "local": LocalEmbeddingProvider,
    "huggingface": HuggingFaceEmbeddingProvider,
    "gemini": GeminiEmbeddingProvider,
}


def get_embedding_provider(
    provider: str = EMBEDDINGS_PROVIDER,
    *,
    degraded_fallback: bool = EMBEDDINGS_DEGRADED_FALLBACK,
) -> EmbeddingProvider:
    cls = _PROVIDERS.get((provider or "").strip().lower())
    if cls is None:
        raise ValueError(f"Unknown EMBEDDINGS_PROVIDER '{provider}' (expected one of {sorted(_PROVIDERS)})")
    return ResilientEmbeddingProvider(cls(), degraded_fallback=degraded_fallback)
