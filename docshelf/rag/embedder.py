from __future__ import annotations

import time
from enum import Enum
from typing import Dict, List, Optional, Protocol, Type, runtime_checkable

import ollama
from openai import OpenAI

from docshelf.config import Settings, settings


@runtime_checkable
class EmbeddingProvider(Protocol):
    provider_id: str
    model_id: str

    @property
    def dimensions(self) -> int: ...

    def embed(self, text: str) -> List[float]: ...

    def embed_batch(self, texts: List[str]) -> List[List[float]]: ...


class ProviderKind(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"


def _normalize_texts(texts: List[str]) -> List[str]:
    out: List[str] = []
    for t in texts:
        s = (t or "").strip()
        out.append(s if s else " ")
    return out


class OpenAIEmbeddingProvider:
    provider_id = ProviderKind.OPENAI.value

    def __init__(
        self,
        *,
        client: OpenAI,
        model: str = "text-embedding-3-small",
        dimensions: int = 512,
        timeout_s: float = 60.0,
        logger=None,
        price_input_per_1m: float = 0.0,
    ):
        self.client = client
        self.model_id = model
        self._dimensions = int(dimensions)
        self.timeout_s = float(timeout_s)
        self.log = logger
        self.price_input_per_1m = float(price_input_per_1m or 0.0)
        self.input_tokens = 0

    @classmethod
    def from_settings(cls, s: Settings = settings, logger=None) -> "OpenAIEmbeddingProvider":
        if not s.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not set")
        return cls(
            client=OpenAI(api_key=s.OPENAI_API_KEY),
            model=s.EMBEDDING_MODEL,
            dimensions=s.EMBEDDING_DIMENSIONS,
            timeout_s=s.EMBED_TIMEOUT_S,
            logger=logger,
            price_input_per_1m=s.PRICE_EMBED_INPUT,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def cost_usd(self) -> float:
        if self.price_input_per_1m <= 0:
            return 0.0
        return round((self.input_tokens / 1_000_000) * self.price_input_per_1m, 6)

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        batch = _normalize_texts(texts)
        t0 = time.perf_counter()

        resp = self.client.embeddings.create(
            model=self.model_id,
            input=batch,
            dimensions=self._dimensions,
            timeout=self.timeout_s,
        )
        vecs = [list(item.embedding) for item in resp.data]

        if len(vecs) != len(batch):
            raise RuntimeError(
                f"Embeddings length mismatch: got {len(vecs)} vectors for {len(batch)} texts"
            )

        usage_obj = getattr(resp, "usage", None)
        if usage_obj is not None:
            self.input_tokens += int(getattr(usage_obj, "prompt_tokens", 0) or 0)

        if self.log:
            self.log.debug(
                "EMBED openai | model=%s | size=%s | latency_ms=%s",
                self.model_id, len(batch), int((time.perf_counter() - t0) * 1000)
            )
        return vecs


class OllamaEmbeddingProvider:
    provider_id = ProviderKind.OLLAMA.value

    def __init__(
        self,
        *,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        client: Optional[ollama.Client] = None,
        dimensions: Optional[int] = None,
        logger=None,
    ):
        self.model_id = model
        self.base_url = base_url
        self.client = client or ollama.Client(host=base_url)
        self.log = logger
        self._dimensions = dimensions
        if self._dimensions is None:
            # embed once so metadata can record the real vector size
            try:
                self._dimensions = len(self.embed("test"))
            except Exception as e:
                raise RuntimeError(f"Failed to connect to Ollama at {base_url}: {e}") from e
            if self.log:
                self.log.info("EMBED ollama ready | model=%s | dims=%s", model, self._dimensions)

    @classmethod
    def from_settings(cls, s: Settings = settings, logger=None) -> "OllamaEmbeddingProvider":
        return cls(model=s.OLLAMA_MODEL, base_url=s.OLLAMA_BASE_URL, logger=logger)

    @property
    def dimensions(self) -> int:
        return int(self._dimensions or 0)

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        batch = _normalize_texts(texts)
        try:
            response = self.client.embed(model=self.model_id, input=batch)
        except ollama.ResponseError as e:
            raise RuntimeError(f"Ollama embedding failed for model '{self.model_id}': {e}") from e

        vecs = [list(v) for v in response["embeddings"]]
        if len(vecs) != len(batch):
            raise RuntimeError(
                f"Embeddings length mismatch: got {len(vecs)} vectors for {len(batch)} texts"
            )
        if any(not v for v in vecs):
            raise RuntimeError("Ollama returned empty embedding")
        return vecs


_PROVIDERS: Dict[ProviderKind, Type] = {
    ProviderKind.OPENAI: OpenAIEmbeddingProvider,
    ProviderKind.OLLAMA: OllamaEmbeddingProvider,
}


def build_provider(kind: ProviderKind | str | None = None, s: Settings = settings, logger=None) -> EmbeddingProvider:
    k = ProviderKind(kind or s.EMBEDDING_PROVIDER)
    return _PROVIDERS[k].from_settings(s, logger=logger)
