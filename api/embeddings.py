from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any

import requests

from .config import get_settings

settings = get_settings()
logger = logging.getLogger("bepit.embeddings")

TASK_QUERY = "RETRIEVAL_QUERY"
TASK_DOCUMENT = "RETRIEVAL_DOCUMENT"


class EmbeddingUnavailableError(RuntimeError):
    """No embedding credentials configured."""


class EmbeddingError(RuntimeError):
    """The embedding provider returned an unusable response."""


def _coerce_vector(data: dict[str, Any]) -> list[float]:
    embedding = data.get("embedding")
    if isinstance(embedding, dict):
        raw = embedding.get("values") or embedding.get("value")
    elif isinstance(embedding, list):
        raw = embedding
    else:
        raw = None
    if not isinstance(raw, list):
        raise EmbeddingError("Gemini embeddings response missing 'embedding.values'")

    vector: list[float] = []
    for value in raw:
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if number == number:
            vector.append(number)
    return vector


@lru_cache(maxsize=2048)
def _cached_embed(
    base_url: str,
    model: str,
    api_key: str,
    text: str,
    task_type: str,
    dimensions: int,
    timeout: int,
) -> tuple[float, ...]:
    start = time.monotonic()
    ok = False
    payload = {
        "model": f"models/{model}",
        "content": {"parts": [{"text": text}]},
        "taskType": task_type,
        "outputDimensionality": dimensions,
    }
    try:
        resp = requests.post(
            f"{base_url}/models/{model}:embedContent",
            params={"key": api_key},
            json=payload,
            timeout=timeout,
        )
        if not resp.ok:
            raise EmbeddingError(f"Gemini embeddings HTTP {resp.status_code}: {resp.text[:300]}")
        vector = _coerce_vector(resp.json())
        if len(vector) != dimensions:
            raise EmbeddingError(
                f"Embedding dimension mismatch: got {len(vector)}, expected {dimensions}"
            )
        ok = True
        return tuple(vector)
    finally:
        logger.info(
            "gemini.embed ok=%s model=%s task=%s chars=%s elapsed=%.2fs",
            ok,
            model,
            task_type,
            len(text),
            time.monotonic() - start,
        )


class GeminiEmbedder:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        timeout: int | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.model = model or settings.gemini_embed_model
        self.dimensions = dimensions or settings.embed_dimensions
        self.timeout = timeout if timeout is not None else settings.embed_timeout

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def embed(self, text: str, task_type: str = TASK_QUERY) -> list[float]:
        if not self.available:
            raise EmbeddingUnavailableError("GEMINI_API_KEY is not set")
        vector = _cached_embed(
            self.base_url,
            self.model,
            self.api_key,
            str(text or ""),
            task_type,
            self.dimensions,
            self.timeout,
        )
        return list(vector)

    def embed_document(self, text: str) -> list[float]:
        return self.embed(text, task_type=TASK_DOCUMENT)
