from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from docshelf.config import BatchFailurePolicy, EngineConfig, settings
from docshelf.rag.cache_keys import derive
from docshelf.rag.chunking import chunk_blocks
from docshelf.rag.embedder import EmbeddingProvider
from docshelf.rag.errors import BatchEmbeddingFailure
from docshelf.rag.ingest import extract_blocks
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.types import Chunk, KnowledgeBase, KnowledgeBaseMetadata


@dataclass
class IngestStats:
    file: str
    sections: int = 0
    chunks_extracted: int = 0
    chunks_embedded: int = 0
    batches: int = 0
    failed_batches: List[int] = field(default_factory=list)
    build_time_sec: float = 0.0


class IngestionPipeline:
    """
    file -> page blocks -> paragraph chunks -> batched embeddings -> JSON file.

    Batches run one at a time. What happens to a batch whose provider call
    fails is decided by ``config.batch_failure_policy``; chunks without a
    usable vector are never written.
    """

    def __init__(
        self,
        *,
        config: Optional[EngineConfig] = None,
        store: Optional[KnowledgeBaseStore] = None,
        logger=None,
        sleep=time.sleep,
    ):
        self.config = config or EngineConfig()
        self.log = logger or logging.getLogger("docshelf")
        self.store = store or KnowledgeBaseStore(logger=self.log)
        self._sleep = sleep
        self.last_stats: Optional[IngestStats] = None

    def build(self, file_path: Path, provider: EmbeddingProvider, output_path: Path) -> KnowledgeBase:
        t0 = time.perf_counter()
        file_path = Path(file_path)
        stats = IngestStats(file=str(file_path))

        self.log.info("INGEST start | file=%s | provider=%s/%s", file_path.name, provider.provider_id, provider.model_id)

        blocks = extract_blocks(file_path, window_chars=self.config.window_chars)
        stats.sections = len(blocks)

        chunks = chunk_blocks(blocks, min_chars=self.config.min_chunk_chars)
        stats.chunks_extracted = len(chunks)
        self.log.info("INGEST extracted | sections=%s | chunks=%s", len(blocks), len(chunks))

        embedded = self._embed(chunks, provider, stats)
        stats.chunks_embedded = len(embedded)

        kb = KnowledgeBase(
            metadata=KnowledgeBaseMetadata(
                provider_id=provider.provider_id,
                model_id=provider.model_id,
                dimensions=provider.dimensions,
            ),
            chunks=embedded,
        )
        self.store.save(kb, Path(output_path))

        stats.build_time_sec = round(time.perf_counter() - t0, 3)
        self.last_stats = stats
        self.log.info(
            "INGEST done | file=%s | chunks=%s/%s | failed_batches=%s | out=%s | sec=%s",
            file_path.name, stats.chunks_embedded, stats.chunks_extracted,
            stats.failed_batches, Path(output_path).name, stats.build_time_sec
        )
        return kb

    def _embed(self, chunks: List[Chunk], provider: EmbeddingProvider, stats: IngestStats) -> List[Chunk]:
        size = max(1, int(self.config.batch_size))
        dims = provider.dimensions
        out: List[Chunk] = []

        total_batches = (len(chunks) + size - 1) // size
        for b in range(total_batches):
            batch = chunks[b * size : (b + 1) * size]
            stats.batches += 1

            vectors = self._embed_batch(b, batch, provider)
            if vectors is None:
                stats.failed_batches.append(b)
                continue

            for c, v in zip(batch, vectors):
                if len(v) != dims:
                    self.log.warning("EMBED bad vector | chunk=%s | dims=%s != %s", c.id, len(v), dims)
                    continue
                out.append(c.model_copy(update={"vector": [float(x) for x in v]}))

        return out

    def _embed_batch(self, b: int, batch: List[Chunk], provider: EmbeddingProvider) -> Optional[List[List[float]]]:
        policy = self.config.batch_failure_policy
        attempts = 1 + (self.config.retries if policy is BatchFailurePolicy.RETRY_THEN_EXCLUDE else 0)
        texts = [c.content for c in batch]
        last_err: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                vectors = provider.embed_batch(texts)
                if len(vectors) != len(batch):
                    raise RuntimeError(
                        f"Embeddings length mismatch: got {len(vectors)} vectors for {len(batch)} texts"
                    )
                self.log.info("EMBED batch ok | batch=%s | size=%s | attempt=%s", b + 1, len(batch), attempt)
                return vectors
            except Exception as e:
                last_err = e
                self.log.warning(
                    "EMBED batch err | batch=%s | attempt=%s | err=%s",
                    b + 1, attempt, f"{type(e).__name__}: {e}"
                )
                if attempt < attempts:
                    self._sleep(self.config.retry_sleep_s * attempt)

        if policy is BatchFailurePolicy.FAIL:
            raise BatchEmbeddingFailure(b, len(batch), last_err) from last_err

        self.log.error("EMBED batch excluded | batch=%s | chunks=%s", b + 1, [c.id for c in batch])
        return None


def main(argv: list[str] | None = None) -> int:
    from docshelf.rag.embedder import build_provider
    from docshelf.utils.logging import setup_logging

    parser = argparse.ArgumentParser(description="Build a knowledge base for one document")
    parser.add_argument("file", type=Path, help="PDF / TXT / MD / JSON document")
    parser.add_argument("--out", type=Path, default=None, help="Output path (default: cache path)")
    parser.add_argument("--provider", type=str, default=None, help="openai | ollama")
    args = parser.parse_args(argv)

    log = setup_logging()
    config = EngineConfig.from_settings(settings)
    provider = build_provider(args.provider, settings, logger=log)

    out = args.out or derive(args.file, provider.provider_id, config.cache_dir)
    pipeline = IngestionPipeline(config=config, logger=log)
    pipeline.build(args.file, provider, out)

    st = pipeline.last_stats
    print("OK")
    print(json.dumps({
        "file": st.file,
        "sections": st.sections,
        "chunks_extracted": st.chunks_extracted,
        "chunks_embedded": st.chunks_embedded,
        "batches": st.batches,
        "failed_batches": st.failed_batches,
        "build_time_sec": st.build_time_sec,
        "provider": provider.provider_id,
        "model": provider.model_id,
        "embed_input_tokens": getattr(provider, "input_tokens", None),
        "embed_cost_usd": provider.cost_usd() if hasattr(provider, "cost_usd") else None,
        "out": str(out),
    }, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
