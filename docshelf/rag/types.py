from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chunk(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = Field(ge=0)
    page_number: int = Field(alias="pageNumber", ge=1)
    content: str = Field(min_length=1)
    vector: List[float] = Field(default_factory=list)


class KnowledgeBaseMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    provider_id: str = Field(alias="provider", min_length=1)      # "openai" / "ollama"
    model_id: str = Field(alias="modelName", min_length=1)        # "text-embedding-3-small"
    dimensions: int = Field(gt=0)
    created_at: datetime = Field(alias="createdAt", default_factory=_utcnow)


class KnowledgeBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    metadata: KnowledgeBaseMetadata
    chunks: List[Chunk] = Field(default_factory=list)

    @model_validator(mode="after")
    def _vectors_match_dimensions(self) -> "KnowledgeBase":
        dims = self.metadata.dimensions
        for c in self.chunks:
            if len(c.vector) != dims:
                raise ValueError(
                    f"chunk {c.id} has {len(c.vector)}-dim vector, metadata declares {dims}"
                )
        return self

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# legacy files: a bare array of chunk objects, no metadata wrapper
LegacyChunkList = TypeAdapter(List[Chunk])


class SearchResult(BaseModel):
    text: str
    page: int
    score: float
    chunk_id: int = Field(ge=0)
    source_document: str = ""


class DocumentDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_path: Path
    cache_path: Path

    @property
    def name(self) -> str:
        return self.file_path.stem


class PageContent(BaseModel):
    document: str
    page: int = Field(ge=1)
    texts: List[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.texts)
