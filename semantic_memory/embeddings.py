"""Embedding Client: text -> vectors via a local Ollama server.

Single requests retry transient failures (connection errors, non-2xx
responses) with exponential backoff; malformed responses fail at once.
Batches run on a fixed pool of workers so a single-model local server is
never flooded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import numpy as np
import requests

from .config import Config
from .errors import OllamaError

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.1  # seconds; doubles on each retry: 100ms -> 200ms -> 400ms


class OllamaClient:
    """Async client for the Ollama embeddings and tags endpoints.

    Blocking ``requests`` calls run in worker threads via asyncio.to_thread.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "mxbai-embed-large",
        timeout: float = 30.0,
        retries: int = DEFAULT_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        session: requests.Session | None = None,
    ):
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config, session: requests.Session | None = None) -> OllamaClient:
        return cls(
            host=config.ollama_host,
            model=config.ollama_model,
            timeout=config.request_timeout,
            session=session,
        )

    # -------------------------------------------------------------------------
    # Blocking request (runs in a worker thread)
    # -------------------------------------------------------------------------

    def _request_embedding(self, text: str) -> tuple[list[float] | None, OllamaError | None]:
        try:
            response = self._session.post(
                f"{self.host}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return None, OllamaError(f"Connection failed: {e}", transient=True)

        if not response.ok:
            reason = response.text or f"HTTP {response.status_code}"
            return None, OllamaError(
                f"Ollama returned {response.status_code}: {reason}", transient=True
            )

        try:
            data = response.json()
        except ValueError:
            return None, OllamaError("Invalid JSON response")
        return _parse_embedding(data)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def embed(self, text: str) -> tuple[list[float] | None, OllamaError | None]:
        """Generate an embedding for one text, retrying transient failures."""
        delay = self.backoff_base
        for attempt in range(self.retries + 1):
            embedding, error = await asyncio.to_thread(self._request_embedding, text)
            if error is None:
                return embedding, None
            if not error.transient or attempt == self.retries:
                return None, error
            logger.warning(
                "Embedding attempt %d failed (%s), retrying in %.0fms",
                attempt + 1,
                error.reason,
                delay * 1000,
            )
            await asyncio.sleep(delay)
            delay *= 2
        return None, OllamaError("Embedding retries exhausted", transient=True)

    async def embed_batch(
        self, texts: list[str], concurrency: int = 5
    ) -> tuple[list[list[float]] | None, OllamaError | None]:
        """Embed many texts with at most `concurrency` requests in flight.

        Output order matches input order. The first error fails the whole
        batch: workers stop pulling new texts once any of them has failed.
        """
        if concurrency < 1:
            return None, OllamaError(f"concurrency must be at least 1, got {concurrency}")
        if not texts:
            return [], None

        queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        for item in enumerate(texts):
            queue.put_nowait(item)
        slots: list[list[float] | None] = [None] * len(texts)
        failures: list[OllamaError] = []

        async def worker() -> None:
            while not failures:
                try:
                    index, text = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                embedding, error = await self.embed(text)
                if error is not None:
                    failures.append(error)
                    return
                slots[index] = embedding

        workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, len(texts)))]
        await asyncio.gather(*workers)

        if failures:
            return None, failures[0]
        return slots, None

    async def check_health(self) -> OllamaError | None:
        """Verify Ollama is reachable and the configured model has been pulled."""
        return await asyncio.to_thread(self._check_health_sync)

    def _check_health_sync(self) -> OllamaError | None:
        try:
            response = self._session.get(f"{self.host}/api/tags", timeout=self.timeout)
        except requests.RequestException:
            return OllamaError(f"Cannot connect to Ollama at {self.host}", transient=True)
        if not response.ok:
            return OllamaError("Ollama not responding", transient=True)

        try:
            models = response.json()["models"]
            names = [m["name"] for m in models]
        except (ValueError, KeyError, TypeError):
            return OllamaError("Invalid response from Ollama")

        if not any(name == self.model or name.startswith(f"{self.model}:") for name in names):
            return OllamaError(f"Model {self.model} not found. Run: ollama pull {self.model}")
        return None


def _parse_embedding(data: Any) -> tuple[list[float] | None, OllamaError | None]:
    """Extract a non-empty numeric vector from an /api/embeddings response."""
    if not isinstance(data, dict) or "embedding" not in data:
        return None, OllamaError("Response missing 'embedding' field")
    try:
        vector = np.asarray(data["embedding"], dtype=np.float64)
    except (TypeError, ValueError):
        return None, OllamaError("Response 'embedding' is not a numeric vector")
    if vector.ndim != 1 or vector.size == 0:
        return None, OllamaError("Response 'embedding' is not a numeric vector")
    return vector.tolist(), None
