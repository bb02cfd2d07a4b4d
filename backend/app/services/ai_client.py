import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)

_RETRY_STATUSES = {408, 429, 500, 502, 503, 504}
_MODEL_CACHE: dict[tuple[str, str], str] = {}


class AIClientError(RuntimeError):
    pass


class AIClientTimeout(AIClientError):
    pass


class AIClientHTTPError(AIClientError):
    def __init__(self, *, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GeminiMeta:
    model: str
    latency_ms: int
    status_code: int | None
    retries: int


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


def _model_path(model: str) -> str:
    m = (model or "").strip()
    if m.startswith("models/"):
        m = m[len("models/") :]
    return m


def _candidate_text(data: dict[str, Any]) -> str:
    # { candidates: [ { content: { parts: [ { text: "..." } ] } } ], ... }
    return (
        (data.get("candidates") or [{}])[0]
        .get("content", {})
        .get("parts", [{}])[0]
        .get("text", "")
    ) or ""


async def _list_models(client: httpx.AsyncClient, *, base: str, api_v: str, headers: dict[str, str]) -> list[dict[str, Any]]:
    r = await client.get(f"{base}/{api_v}/models", headers=headers)
    if r.status_code >= 400:
        raise AIClientHTTPError(status_code=r.status_code, message=_safe_truncate(r.text, 1000))
    return list((r.json() or {}).get("models") or [])


def _pick_best_model(models: list[dict[str, Any]]) -> str | None:
    """
    Prefer a 'flash' model that supports generateContent. Fallback to the first model
    that supports generateContent.
    """
    def supports_generate(m: dict[str, Any]) -> bool:
        methods = m.get("supportedGenerationMethods") or m.get("supported_generation_methods") or []
        # Some responses omit methods; assume generateContent is supported.
        return not methods or any(str(x).lower().endswith("generatecontent") for x in methods)

    candidates = [m for m in models if isinstance(m, dict) and supports_generate(m) and m.get("name")]
    if not candidates:
        return None
    best = sorted(candidates, key=lambda m: 1 if "flash" in str(m.get("name")).lower() else 0, reverse=True)[0]
    return str(best["name"])


async def _post_with_retries(
    *,
    url: str,
    body: dict[str, Any],
    headers: dict[str, str],
    timeout_s: float,
    max_retries: int,
    label: str,
    on_not_found=None,
) -> tuple[dict[str, Any], int, int]:
    """
    POST with exponential backoff on timeouts, network errors and transient statuses.
    Returns (json, status_code, attempts_used).
    on_not_found(client) may return a replacement URL for a 404 (model discovery).
    """
    for attempt in range(max_retries + 1):
        backoff = 0.5 * (2**attempt)
        try:
            async with httpx.AsyncClient(timeout=timeout_s) as client:
                r = await client.post(url, json=body, headers=headers)
                if r.status_code == 404 and on_not_found is not None:
                    new_url = await on_not_found(client, r)
                    if new_url:
                        url = new_url
                        r = await client.post(url, json=body, headers=headers)
                if r.status_code >= 400:
                    if r.status_code in _RETRY_STATUSES and attempt < max_retries:
                        logger.warning("%s HTTP %s; retrying in %.1fs", label, r.status_code, backoff)
                        await asyncio.sleep(backoff)
                        continue
                    raise AIClientHTTPError(status_code=r.status_code, message=_safe_truncate(r.text, 1000))
                return r.json() or {}, r.status_code, attempt
        except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.PoolTimeout):
            if attempt < max_retries:
                logger.warning("%s timeout; retrying in %.1fs", label, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientTimeout(f"{label} request timed out") from None
        except httpx.RequestError as e:
            if attempt < max_retries:
                logger.warning("%s network error (%s); retrying in %.1fs", label, type(e).__name__, backoff)
                await asyncio.sleep(backoff)
                continue
            raise AIClientError(f"{label} request failed: {type(e).__name__}") from e
    raise AIClientError(f"{label} request failed after {max_retries + 1} attempts")


async def gemini_generate_content(
    *,
    api_key: str,
    base_url: str,
    api_version: str = "v1",
    model: str,
    user_text: str,
    system_text: str | None = None,
    temperature: float = 0.0,
    timeout_s: float = 20.0,
    max_retries: int = 2,
    log_payloads: bool = False,
) -> tuple[str, GeminiMeta]:
    """
    Calls Gemini Generative Language API (API key auth) and returns the model text.

    Endpoint:
      POST {base_url}/{api_version}/models/{model}:generateContent
    Auth:
      x-goog-api-key: {api_key}

    The system prompt is inlined into the user prompt; some deployments reject
    systemInstruction and responseMimeType.
    """
    if not api_key:
        raise AIClientError("Missing GEMINI_API_KEY")
    if not model:
        raise AIClientError("Missing GEMINI_MODEL")
    api_v = (api_version or "v1").strip().lstrip("/")
    base = (base_url or "").rstrip("/")
    url = f"{base}/{api_v}/models/{_model_path(model)}:generateContent"

    effective_user = user_text or ""
    if system_text:
        effective_user = f"{system_text.strip()}\n\n{effective_user}"
    body = {
        "contents": [{"role": "user", "parts": [{"text": effective_user}]}],
        "generationConfig": {"temperature": float(temperature)},
    }
    headers = {"x-goog-api-key": api_key, "content-type": "application/json"}
    used_model = {"name": model}

    async def _discover(client: httpx.AsyncClient, r: httpx.Response) -> str | None:
        msg = (r.text or "").lower()
        if "not found" not in msg and "not supported" not in msg:
            return None
        cache_key = (base, api_v)
        try:
            discovered = _MODEL_CACHE.get(cache_key)
            if not discovered:
                discovered = _pick_best_model(await _list_models(client, base=base, api_v=api_v, headers=headers))
                if discovered:
                    _MODEL_CACHE[cache_key] = discovered
        except (AIClientError, httpx.HTTPError) as e:
            logger.warning("Gemini model discovery failed: %s", type(e).__name__)
            return None
        if not discovered:
            return None
        logger.warning("Gemini model not found; switching to discovered model=%s", discovered)
        used_model["name"] = discovered
        return f"{base}/{api_v}/models/{_model_path(discovered)}:generateContent"

    if log_payloads:
        logger.info("Gemini request model=%s url=%s body=%s", model, url, _safe_truncate(json.dumps(body, ensure_ascii=False)))

    start = time.perf_counter()
    data, status, attempts = await _post_with_retries(
        url=url,
        body=body,
        headers=headers,
        timeout_s=timeout_s,
        max_retries=max_retries,
        label="Gemini",
        on_not_found=_discover,
    )
    meta = GeminiMeta(
        model=used_model["name"],
        latency_ms=int((time.perf_counter() - start) * 1000),
        status_code=status,
        retries=attempts,
    )
    logger.info(
        "Gemini ok model=%s status=%s latency_ms=%s retries=%s",
        meta.model,
        meta.status_code,
        meta.latency_ms,
        meta.retries,
    )
    text = _candidate_text(data).strip()
    if log_payloads:
        logger.info("Gemini response model=%s text=%s", meta.model, _safe_truncate(text))
    return text, meta


async def gemini_embed_content(
    *,
    api_key: str,
    base_url: str,
    api_version: str = "v1",
    model: str,
    text: str,
    timeout_s: float = 20.0,
    max_retries: int = 1,
) -> list[float]:
    """
    POST {base_url}/{api_version}/models/{model}:embedContent
    Returns embedding.values.
    """
    if not api_key:
        raise AIClientError("Missing GEMINI_API_KEY")
    api_v = (api_version or "v1").strip().lstrip("/")
    base = (base_url or "").rstrip("/")
    path = _model_path(model)
    url = f"{base}/{api_v}/models/{path}:embedContent"
    body = {"model": f"models/{path}", "content": {"parts": [{"text": text or ""}]}}
    headers = {"x-goog-api-key": api_key, "content-type": "application/json"}
    data, _, _ = await _post_with_retries(
        url=url,
        body=body,
        headers=headers,
        timeout_s=timeout_s,
        max_retries=max_retries,
        label="Gemini embed",
    )
    values = ((data.get("embedding") or {}).get("values")) or []
    if not isinstance(values, list) or not values:
        raise AIClientError("Gemini embed response has no values")
    return [float(x) for x in values]
