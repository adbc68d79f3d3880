from __future__ import annotations

from typing import Optional, List
from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1, le=100)


class SearchItem(BaseModel):
    source_document: str
    page: int
    chunk_id: int
    score: float
    text: str


class SearchResponse(BaseModel):
    ok: bool = True
    request_id: Optional[str] = None
    results: List[SearchItem] = Field(default_factory=list)
    latency_ms: int = 0
    error: Optional[str] = None


class DocumentsResponse(BaseModel):
    documents: List[str] = Field(default_factory=list)
    count: int = 0


class PageResponse(BaseModel):
    document: str
    page: int
    sections: int
    text: str
