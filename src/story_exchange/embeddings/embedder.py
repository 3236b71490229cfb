"""
Embedding Providers

Two interchangeable providers turn story text into vectors:

- `Embedder` calls a hosted, OpenAI-compatible embeddings API (Jina by
  default). It batches inputs and validates the response strictly.
- `LocalEmbedder` runs a sentence-transformers model in-process. The model is
  loaded once, on first use, and reused for the lifetime of the provider.

Both expose ``model_name`` and an async ``embed``. The model name is stored
with every vector so that vectors from different providers are never
compared.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Sequence

import httpx

from ..config import Settings, settings

logger = logging.getLogger("stories.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class EmbeddingProvider(Protocol):
    model_name: str

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class Embedder:
    """
    Hosted embeddings over HTTP.

    Stories are sent in batches; vectors come back in input order. Any
    transport error or malformed payload aborts the whole call with
    `EmbeddingError`, so callers never see a partial result.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        task: Optional[str] = "text-matching",
        timeout: float = 30.0,
    ) -> None:
        if api_key is None and settings.embedding_api_key is not None:
            api_key = settings.embedding_api_key.get_secret_value()
        self.api_key = api_key or ""
        self.model_name = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        # Jina-specific hint; other providers ignore unknown fields
        self.task = task
        self.timeout = timeout

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Embed ``texts``, ``batch_size`` inputs per request.

        Raises
        ------
        EmbeddingError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                data = await self._post_batch(client, batch)

                batch_vectors = self._extract_embeddings(data)
                if len(batch_vectors) != len(batch):
                    raise EmbeddingError(
                        f"Expected {len(batch)} embeddings, got {len(batch_vectors)}."
                    )
                vectors.extend(batch_vectors)

        return vectors

    async def _post_batch(self, client: httpx.AsyncClient, batch: List[str]) -> Any:
        body: dict = {"model": self.model_name, "input": batch}
        if self.task:
            body["task"] = self.task

        try:
            response = await client.post(
                self.base_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Embedding call to %s failed for %d text(s): %s: %s",
                self.model_name,
                len(batch),
                type(exc).__name__,
                exc,
            )
            raise EmbeddingError(f"Embedding request failed: {type(exc).__name__}") from exc

    @staticmethod
    def _extract_embeddings(data: Any) -> List[List[float]]:
        """
        Validate an OpenAI-style ``{"data": [{"embedding": [...]}, ...]}`` body.
        """
        records = data.get("data") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise EmbeddingError("Embedding response has no 'data' list.")

        vectors: List[List[float]] = []
        for position, record in enumerate(records):
            values = record.get("embedding") if isinstance(record, dict) else None
            if (
                not isinstance(values, list)
                or not values
                or not all(isinstance(v, (float, int)) for v in values)
            ):
                raise EmbeddingError(f"Record {position} carries no numeric embedding.")
            vectors.append([float(v) for v in values])

        return vectors


class LocalEmbedder:
    """
    In-process sentence-transformers provider.

    Requires the ``local`` extra (sentence-transformers). Encoding is CPU
    bound, so it runs in a worker thread.
    """

    def __init__(self, model: Optional[str] = None) -> None:
        self.model_name = model or settings.local_embedding_model
        self._model: Any = None
        self._load_lock = asyncio.Lock()

    async def _get_model(self) -> Any:
        async with self._load_lock:
            if self._model is None:
                logger.info("Loading local embedding model %s", self.model_name)
                self._model = await asyncio.to_thread(self._load)
                logger.info("Local embedding model loaded")
        return self._model

    def _load(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise EmbeddingError(
                "Local embeddings need sentence-transformers; "
                "install the 'local' extra or set EMBEDDING_PROVIDER=hosted."
            ) from exc
        return SentenceTransformer(self.model_name)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []

        model = await self._get_model()
        try:
            vectors = await asyncio.to_thread(
                model.encode,
                list(texts),
                normalize_embeddings=True,
            )
        except Exception as exc:
            raise EmbeddingError(f"Local embedding failed: {type(exc).__name__}") from exc

        return [vector.tolist() for vector in vectors]


def build_embedder(config: Settings) -> EmbeddingProvider:
    """
    Construct the embedding provider selected by configuration.
    """
    if config.embedding_provider == "local":
        return LocalEmbedder(model=config.local_embedding_model)
    return Embedder(model=config.embedding_model, base_url=config.embedding_base_url)
