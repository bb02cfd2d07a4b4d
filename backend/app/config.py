import os
from datetime import timedelta
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload.
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test settings. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_bool(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# -------------------- Scoring model (Gemini) --------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_API_VERSION = os.getenv("GEMINI_API_VERSION", "v1")

# Per-request HTTP timeout and retry count inside the client.
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "10") or "10")
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "1") or "1")
AI_LOG_PAYLOADS = _env_bool("AI_LOG_PAYLOADS", "0")
# Hard ceiling for one scoring call including retries; expiry triggers the fallback.
AI_CALL_TIMEOUT_S = float(os.getenv("AI_CALL_TIMEOUT_S", "25") or "25")

# -------------------- Embeddings --------------------
# local: fastembed on this machine; huggingface: HF Inference API; gemini: embedContent.
EMBEDDINGS_PROVIDER = (os.getenv("EMBEDDINGS_PROVIDER", "local") or "local").strip().lower()
EMBEDDINGS_MODEL = os.getenv("EMBEDDINGS_MODEL", "BAAI/bge-small-en-v1.5")
EMBEDDINGS_DIM = int(os.getenv("EMBEDDINGS_DIM", "384") or "384")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
HUGGINGFACE_BASE_URL = os.getenv("HUGGINGFACE_BASE_URL", "https://api-inference.huggingface.co")
# Off by default: a pseudo-random vector only produces meaningless matches.
EMBEDDINGS_DEGRADED_FALLBACK = _env_bool("EMBEDDINGS_DEGRADED_FALLBACK", "0")
EMBEDDINGS_FALLBACK_SEED = int(os.getenv("EMBEDDINGS_FALLBACK_SEED", "1337") or "1337")

# -------------------- Vector index --------------------
# sql: vectors stored in DATABASE_URL, cosine computed in-process; pinecone: managed index.
VECTOR_INDEX_BACKEND = (os.getenv("VECTOR_INDEX_BACKEND", "sql") or "sql").strip().lower()
PINECONE_API_KEY = os.getenv("PINECONE_API_KEY")
PINECONE_CLOUD = os.getenv("PINECONE_CLOUD", "aws")
PINECONE_REGION = os.getenv("PINECONE_REGION", "us-east-1")
CANDIDATE_INDEX_NAME = os.getenv("CANDIDATE_INDEX_NAME", "candidate-index")
JOB_INDEX_NAME = os.getenv("JOB_INDEX_NAME", "job-description-index")

# -------------------- Matching --------------------
MATCH_TOP_K = int(os.getenv("MATCH_TOP_K", "10") or "10")
MATCH_CACHE_TTL = timedelta(hours=float(os.getenv("MATCH_CACHE_TTL_HOURS", "24") or "24"))

# Comma-separated extra CORS origins for the frontend.
FRONTEND_ORIGINS = [o.strip() for o in os.getenv("FRONTEND_ORIGINS", "").split(",") if o.strip()]
