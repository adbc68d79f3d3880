from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from docshelf.rag.embedder import EmbeddingProvider
from docshelf.rag.errors import InvalidFormat, KnowledgeBaseNotFound, ProviderMismatch
from docshelf.rag.types import Chunk, KnowledgeBase, KnowledgeBaseMetadata, LegacyChunkList


def try_parse_canonical(raw: str) -> Optional[KnowledgeBase]:
    try:
        return KnowledgeBase.model_validate_json(raw)
    except ValidationError:
        return None


def try_parse_legacy(raw: str) -> Optional[List[Chunk]]:
    try:
        return LegacyChunkList.validate_json(raw)
    except ValidationError:
        return None


@dataclass(frozen=True)
class LoadResult:
    knowledge_base: KnowledgeBase
    migrated: bool = False
    provider_mismatch: Optional[ProviderMismatch] = None


class KnowledgeBaseStore:
    """
    Reads and writes knowledge-base JSON files.

    Two on-disk shapes are understood: the canonical ``{"metadata", "chunks"}``
    object and the legacy bare chunk array. Legacy files are rewritten in
    canonical form the first time they are loaded.
    """

    def __init__(self, *, logger=None):
        self.log = logger or logging.getLogger("docshelf")

    def save(self, kb: KnowledgeBase, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(kb.to_json(), encoding="utf-8")
        os.replace(tmp, path)
        return path

    def load(self, path: Path, provider: EmbeddingProvider) -> LoadResult:
        path = Path(path)
        if not path.exists():
            raise KnowledgeBaseNotFound(path)

        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFormat(path, "not UTF-8 text") from e
        migrated = False

        kb = try_parse_canonical(raw)
        if kb is None:
            legacy = try_parse_legacy(raw)
            if legacy is None:
                raise InvalidFormat(path, "neither canonical nor legacy schema")
            kb = self._migrate(path, legacy, provider)
            migrated = True

        mismatch = None
        if kb.metadata.provider_id != provider.provider_id:
            mismatch = ProviderMismatch(
                recorded_provider=kb.metadata.provider_id,
                recorded_model=kb.metadata.model_id,
                active_provider=provider.provider_id,
                active_model=provider.model_id,
            )
            self.log.warning("KB provider mismatch | path=%s | %s", path.name, mismatch.message)

        self.log.info(
            "KB loaded | path=%s | chunks=%s | provider=%s/%s",
            path.name, len(kb.chunks), kb.metadata.provider_id, kb.metadata.model_id
        )
        return LoadResult(knowledge_base=kb, migrated=migrated, provider_mismatch=mismatch)

    def _migrate(self, path: Path, chunks: List[Chunk], provider: EmbeddingProvider) -> KnowledgeBase:
        # legacy files carry no provenance; stamp the active provider
        meta = KnowledgeBaseMetadata(
            provider_id=provider.provider_id,
            model_id=provider.model_id,
            dimensions=provider.dimensions,
        )
        try:
            kb = KnowledgeBase(metadata=meta, chunks=chunks)
        except ValidationError as e:
            raise InvalidFormat(path, f"legacy chunks do not fit {provider.dimensions}D: {e}") from e

        self.save(kb, path)
        self.log.warning("KB migrated | path=%s | chunks=%s", path.name, len(chunks))
        return kb
