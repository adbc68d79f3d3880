from __future__ import annotations

import argparse
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from docshelf.config import EngineConfig, settings
from docshelf.rag.embedder import EmbeddingProvider
from docshelf.rag.errors import PerDocumentLoadFailure
from docshelf.rag.retriever import DocumentSearchEngine
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.types import DocumentDescriptor, SearchResult


def _snippet(text: str, n: int = 360) -> str:
    t = " ".join((text or "").split())
    return t if len(t) <= n else t[:n].rstrip() + "…"


class MultiDocumentSearchEngine:
    """Fans a query out to one DocumentSearchEngine per loaded document."""

    def __init__(self, *, config: Optional[EngineConfig] = None, logger=None):
        self.config = config or EngineConfig()
        self.log = logger or logging.getLogger("docshelf")
        self.provider: Optional[EmbeddingProvider] = None
        self.failures: List[PerDocumentLoadFailure] = []
        self._engines: List[Tuple[str, DocumentSearchEngine]] = []

    @property
    def loaded_document_count(self) -> int:
        return len(self._engines)

    @property
    def document_names(self) -> List[str]:
        return [name for name, _ in self._engines]

    def load(self, provider: EmbeddingProvider, documents: Sequence[DocumentDescriptor]) -> int:
        self._engines = []
        self.failures = []
        self.provider = provider
        store = KnowledgeBaseStore(logger=self.log)

        for doc in documents:
            try:
                engine = DocumentSearchEngine(
                    provider, doc.cache_path, config=self.config, store=store, logger=self.log
                )
            except Exception as e:
                failure = PerDocumentLoadFailure(doc.file_path, e)
                self.failures.append(failure)
                self.log.warning("MULTI skip | doc=%s | err=%s: %s", doc.name, type(e).__name__, e)
                continue
            self._engines.append((doc.name, engine))

        self.log.info("MULTI loaded | documents=%s | skipped=%s", len(self._engines), len(self.failures))
        return len(self._engines)

    def search(self, query_text: str, top_k: int | None = None) -> List[SearchResult]:
        k = int(top_k) if top_k is not None else int(self.config.aggregate_top_k)
        if k <= 0:
            raise ValueError("top_k must be > 0")

        if not self._engines or self.provider is None:
            self.log.info("MULTI search | no documents loaded")
            return []

        q = (query_text or "").strip()
        if not q:
            raise ValueError("Empty query")

        # one embedding call serves every document
        q_vec = self.provider.embed(q)

        def _one(entry: Tuple[str, DocumentSearchEngine]) -> List[SearchResult]:
            name, engine = entry
            return [h.model_copy(update={"source_document": name}) for h in engine.search_vector(q_vec)]

        workers = min(int(self.config.search_workers), len(self._engines))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                per_doc = list(pool.map(_one, self._engines))
        else:
            per_doc = [_one(entry) for entry in self._engines]

        ranked: List[Tuple[float, int, int, SearchResult]] = []
        for order, hits in enumerate(per_doc):
            for h in hits:
                ranked.append((-h.score, order, h.chunk_id, h))
        ranked.sort(key=lambda x: x[:3])

        return [r[3] for r in ranked[:k]]


def main(argv: list[str] | None = None) -> int:
    from docshelf.rag.documents import DocumentCatalog
    from docshelf.rag.embedder import build_provider
    from docshelf.rag.index import IngestionPipeline
    from docshelf.utils.logging import setup_logging

    parser = argparse.ArgumentParser(description="Search one or more documents (builds missing caches)")
    parser.add_argument("query", type=str, help="Query string")
    parser.add_argument("files", nargs="+", type=Path, help="Documents to search")
    parser.add_argument("--top_k", type=int, default=None, help="Override AGGREGATE_TOP_K from env")
    parser.add_argument("--provider", type=str, default=None, help="openai | ollama")
    args = parser.parse_args(argv)

    log = setup_logging()
    config = EngineConfig.from_settings(settings)
    provider = build_provider(args.provider, settings, logger=log)

    catalog = DocumentCatalog(config, provider, logger=log)
    docs = catalog.prepare(args.files, IngestionPipeline(config=config, logger=log))

    engine = MultiDocumentSearchEngine(config=config, logger=log)
    engine.load(provider, docs)

    t0 = time.perf_counter()
    try:
        hits = engine.search(args.query, top_k=args.top_k)
    except Exception as e:
        print(f"ERROR: {type(e).__name__}: {e}")
        return 2
    latency_ms = int((time.perf_counter() - t0) * 1000)

    print(f"\nQUERY: {args.query.strip()}")
    print(f"DOCUMENTS: {engine.loaded_document_count}")
    print(f"MIN_SCORE: {config.threshold}\n")

    if not hits:
        print("NOT FOUND: no relevant chunks above threshold.\n")
    else:
        for rank, h in enumerate(hits, start=1):
            print(f"[{rank}] score={h.score:.4f}")
            print(f"    source: {h.source_document}   page: {h.page}   chunk_id: {h.chunk_id}")
            print(f"    snippet: {_snippet(h.text)}")
            print()

    print(f"METRICS: total_latency_ms={latency_ms} returned={len(hits)}")
    print("\nOK\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
