from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence

from docshelf.config import EngineConfig
from docshelf.rag.cache_keys import SUFFIX, derive
from docshelf.rag.embedder import EmbeddingProvider
from docshelf.rag.errors import KnowledgeBaseNotFound
from docshelf.rag.index import IngestionPipeline
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.types import DocumentDescriptor, PageContent


class DocumentCatalog:
    """Maps source documents to their cache files for the active provider."""

    def __init__(self, config: EngineConfig, provider: EmbeddingProvider, *, logger=None):
        self.config = config
        self.provider = provider
        self.log = logger or logging.getLogger("docshelf")

    def descriptor(self, path: Path | str) -> DocumentDescriptor:
        p = Path(path)
        return DocumentDescriptor(
            file_path=p,
            cache_path=derive(p, self.provider.provider_id, self.config.cache_dir),
        )

    def is_indexed(self, path: Path | str) -> bool:
        return self.descriptor(path).cache_path.exists()

    def prepare(self, paths: Iterable[Path | str], pipeline: IngestionPipeline) -> List[DocumentDescriptor]:
        docs: List[DocumentDescriptor] = []
        cached = built = failed = 0

        for path in paths:
            doc = self.descriptor(path)
            docs.append(doc)

            if doc.cache_path.exists():
                cached += 1
                self.log.info("CATALOG cached | doc=%s", doc.name)
                continue

            self.log.info("CATALOG building | doc=%s", doc.name)
            try:
                pipeline.build(doc.file_path, self.provider, doc.cache_path)
                built += 1
            except Exception as e:
                failed += 1
                self.log.error("CATALOG build failed | doc=%s | err=%s: %s", doc.name, type(e).__name__, e)

        self.log.info("CATALOG ready | cached=%s | built=%s | failed=%s", cached, built, failed)
        return docs

    def read_page(
        self,
        documents: Sequence[DocumentDescriptor],
        document_name: str,
        page_number: int,
        *,
        store: KnowledgeBaseStore | None = None,
    ) -> PageContent:
        doc = next((d for d in documents if d.name.lower() == document_name.lower()), None)
        if doc is None:
            available = ", ".join(d.name for d in documents)
            raise KnowledgeBaseNotFound(
                document_name,
                f"Document '{document_name}' not found. Available documents: {available}",
            )

        kb = (store or KnowledgeBaseStore(logger=self.log)).load(doc.cache_path, self.provider).knowledge_base
        texts = [c.content for c in kb.chunks if c.page_number == page_number]
        return PageContent(document=doc.name, page=page_number, texts=texts)

    def clear_cache(self) -> int:
        cache_dir = Path(self.config.cache_dir)
        if not cache_dir.exists():
            return 0
        removed = 0
        for p in cache_dir.glob(f"*{SUFFIX}"):
            p.unlink()
            removed += 1
        self.log.info("CATALOG cache cleared | removed=%s", removed)
        return removed
