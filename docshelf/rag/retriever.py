from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from docshelf.config import EngineConfig
from docshelf.rag.embedder import EmbeddingProvider
from docshelf.rag.errors import DimensionMismatch, ProviderMismatch
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.store_faiss import build_index, search_all
from docshelf.rag.types import Chunk, KnowledgeBaseMetadata, SearchResult


@dataclass
class RetrieveMetrics:
    embed_latency_ms: int
    search_latency_ms: int
    candidates: int
    returned: int
    top_score: float | None


class DocumentSearchEngine:
    """
    Brute-force cosine search over one document's knowledge base.

    The knowledge base is loaded once at construction and treated as a
    read-only snapshot; searching never mutates it, so concurrent searches
    return consistent results. ``last_metrics`` is assigned whole at the end
    of each call and describes the most recently completed search.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache_path: Path,
        *,
        config: Optional[EngineConfig] = None,
        store: Optional[KnowledgeBaseStore] = None,
        threshold: float | None = None,
        top_k: int | None = None,
        logger=None,
    ):
        cfg = config or EngineConfig()
        self.provider = provider
        self.cache_path = Path(cache_path)
        self.threshold = float(threshold) if threshold is not None else float(cfg.threshold)
        self.top_k = int(top_k) if top_k is not None else int(cfg.top_k)
        self.log = logger or logging.getLogger("docshelf")
        self.last_metrics: Optional[RetrieveMetrics] = None

        res = (store or KnowledgeBaseStore(logger=self.log)).load(self.cache_path, provider)
        self.migrated = res.migrated
        self.provider_mismatch: Optional[ProviderMismatch] = res.provider_mismatch

        kb = res.knowledge_base
        self._metadata = kb.metadata
        self._chunks: List[Chunk] = list(kb.chunks)
        self._index = build_index([c.vector for c in self._chunks], kb.metadata.dimensions)

    @property
    def metadata(self) -> KnowledgeBaseMetadata:
        return self._metadata

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def search(self, query_text: str, top_k: int | None = None) -> List[SearchResult]:
        q = (query_text or "").strip()
        if not q:
            raise ValueError("Empty query")

        emb_t0 = time.perf_counter()
        q_vec = self.provider.embed(q)
        embed_latency_ms = int((time.perf_counter() - emb_t0) * 1000)

        hits, metrics = self._search_vector(q_vec, top_k)
        metrics.embed_latency_ms = embed_latency_ms
        self.last_metrics = metrics
        return hits

    def search_vector(self, query_vector: Sequence[float], top_k: int | None = None) -> List[SearchResult]:
        hits, metrics = self._search_vector(query_vector, top_k)
        self.last_metrics = metrics
        return hits

    def _search_vector(self, query_vector: Sequence[float], top_k: int | None) -> Tuple[List[SearchResult], RetrieveMetrics]:
        k = int(top_k) if top_k is not None else self.top_k
        if k <= 0:
            raise ValueError("top_k must be > 0")

        if len(query_vector) != self._metadata.dimensions:
            raise DimensionMismatch(
                expected=self._metadata.dimensions,
                actual=len(query_vector),
                recorded_provider=self._metadata.provider_id,
                recorded_model=self._metadata.model_id,
                active_provider=self.provider.provider_id,
                active_model=self.provider.model_id,
            )

        t0 = time.perf_counter()
        scores, ids = search_all(self._index, query_vector)

        hits: List[SearchResult] = []
        for s, i in zip(scores, ids):
            if i < 0 or i >= len(self._chunks):
                continue
            sf = float(s)
            if sf > self.threshold:
                c = self._chunks[i]
                hits.append(SearchResult(text=c.content, page=c.page_number, score=sf, chunk_id=c.id))

        hits.sort(key=lambda h: (-h.score, h.chunk_id))
        hits = hits[:k]

        metrics = RetrieveMetrics(
            embed_latency_ms=0,
            search_latency_ms=int((time.perf_counter() - t0) * 1000),
            candidates=len(ids),
            returned=len(hits),
            top_score=hits[0].score if hits else None,
        )
        return hits, metrics
