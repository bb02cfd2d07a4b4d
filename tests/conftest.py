import hashlib
import json
import math
import os
import re
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before anything imports backend.app.config.
os.environ["DISABLE_DOTENV"] = "1"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
# Ensure tests never call external AI providers even if developer machine has keys set.
os.environ["GEMINI_API_KEY"] = ""
os.environ["HUGGINGFACE_API_KEY"] = ""
os.environ["PINECONE_API_KEY"] = ""
os.environ["VECTOR_INDEX_BACKEND"] = "sql"
os.environ["EMBEDDINGS_DEGRADED_FALLBACK"] = "0"


TEST_DIM = 16

_TOKEN_RE = re.compile(r"[a-z0-9+#]+")


def keyword_vector(text: str, dim: int = TEST_DIM) -> list[float]:
    """Bag-of-words hashed into `dim` buckets, L2-normalized. Shared words -> higher cosine."""
    vec = [0.0] * dim
    for tok in _TOKEN_RE.findall((text or "").lower()):
        bucket = int(hashlib.md5(tok.encode("utf-8")).hexdigest(), 16) % dim
        vec[bucket] += 1.0
    norm = math.sqrt(sum(x * x for x in vec))
    if norm == 0:
        vec[0] = 1.0
        return vec
    return [x / norm for x in vec]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGemini:
    """
    Stand-in for gemini_generate_content. Replies by prompt kind; texts
    containing a marker in `fail_on` raise, simulating a provider error.
    """

    def __init__(self, score: int = 88):
        self.score = score
        self.model = "gemini-test"
        self.scores_by_marker: dict[str, int] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    async def __call__(self, **kwargs):
        from backend.app.services.ai_client import AIClientHTTPError, GeminiMeta

        prompt = kwargs["user_text"]
        self.calls.append(prompt)
        for marker in self.fail_on:
            if marker in prompt:
                raise AIClientHTTPError(status_code=500, message="boom")

        meta = GeminiMeta(model=self.model, latency_ms=1, status_code=200, retries=0)
        if prompt.startswith("Rate how well"):
            score = self.score
            for marker, s in self.scores_by_marker.items():
                if marker in prompt:
                    score = s
            return json.dumps({"score": score}), meta
        if "Explain the score" in prompt:
            payload = {"text": "Solid overlap with the stack.", "details": "Covers most of the listed tools."}
            return "```json\n" + json.dumps(payload) + "\n```", meta
        if "interview questions" in prompt:
            payload = [
                {"question": "Walk me through a React app you shipped.", "rationale": "Depth of frontend experience."},
                {"question": "How do you manage state at scale?", "rationale": "Architecture judgement."},
                {"question": "How do you test components?", "rationale": "Quality practices."},
            ]
            return json.dumps(payload), meta
        return "", meta

    @property
    def score_calls(self) -> int:
        return sum(1 for p in self.calls if p.startswith("Rate how well"))


@pytest.fixture()
def fake_embedder():
    from backend.app.services.embeddings import EmbeddingProvider

    class KeywordEmbeddingProvider(EmbeddingProvider):
        name = "keyword"

        def __init__(self):
            super().__init__(model="keyword-test", dimension=TEST_DIM)
            self.calls = 0

        async def _embed(self, text: str) -> list[float]:
            self.calls += 1
            return keyword_vector(text, self.dimension)

    return KeywordEmbeddingProvider()


@pytest.fixture()
def session_factory(tmp_path: Path):
    from backend.app.database import make_engine

    engine = make_engine(f"sqlite+pysqlite:///{tmp_path / 'vectors.sqlite3'}")
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture()
def indexes(session_factory):
    from backend.app.services.vector_index import build_indexes

    pair = build_indexes("sql", session_factory=session_factory, dimension=TEST_DIM)
    pair.ensure_ready()
    return pair


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_gemini(monkeypatch) -> FakeGemini:
    import backend.app.services.scoring_engine as scoring_engine

    fake = FakeGemini()
    monkeypatch.setattr(scoring_engine, "gemini_generate_content", fake)
    return fake


@pytest.fixture()
def score_engine(fake_gemini):
    from backend.app.services.scoring_engine import ScoreEngine

    return ScoreEngine(api_key="test-key", model="gemini-test", call_timeout_s=5)


@pytest.fixture()
def orchestrator(fake_embedder, indexes, score_engine, fake_clock):
    from backend.app.services.match_cache import MatchCache
    from backend.app.services.match_orchestrator import MatchOrchestrator

    return MatchOrchestrator(
        embedder=fake_embedder,
        indexes=indexes,
        engine=score_engine,
        cache=MatchCache(clock=fake_clock),
        default_top_k=10,
    )


@pytest.fixture()
def app(orchestrator) -> FastAPI:
    """The real app with the orchestrator dependency pointed at the test pipeline."""
    from backend.app.main import app as fastapi_app
    from backend.app.utils.dependencies import get_orchestrator

    fastapi_app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
