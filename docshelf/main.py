from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Tuple

from fastapi import FastAPI, Path
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from docshelf.config import EngineConfig, settings
from docshelf.schemas import DocumentsResponse, PageResponse, SearchItem, SearchRequest, SearchResponse
from docshelf.utils.logging import setup_logging
from docshelf.rag.documents import DocumentCatalog
from docshelf.rag.embedder import build_provider
from docshelf.rag.errors import DimensionMismatch, KnowledgeBaseNotFound
from docshelf.rag.index import IngestionPipeline
from docshelf.rag.ingest import discover
from docshelf.rag.multi_retriever import MultiDocumentSearchEngine
from docshelf.rag.types import DocumentDescriptor


log = setup_logging()
app = FastAPI(title="DocShelf Search", version="1.0")

_state: Dict[str, Any] = {}


def get_engine() -> MultiDocumentSearchEngine:
    if "engine" not in _state:
        config = EngineConfig.from_settings(settings)
        provider = build_provider(None, settings, logger=log)
        catalog = DocumentCatalog(config, provider, logger=log)

        docs_dir = settings.DOCS_DIR
        paths = discover(docs_dir) if docs_dir.exists() else []
        docs = catalog.prepare(paths, IngestionPipeline(config=config, logger=log))

        engine = MultiDocumentSearchEngine(config=config, logger=log)
        engine.load(provider, docs)
        _state["catalog"] = catalog
        _state["documents"] = docs
        _state["engine"] = engine
    return _state["engine"]


def get_catalog() -> Tuple[DocumentCatalog, List[DocumentDescriptor]]:
    get_engine()
    return _state["catalog"], _state["documents"]


def _error(status_code: int, request_id: str, latency_ms: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=SearchResponse(
            ok=False,
            request_id=request_id,
            results=[],
            latency_ms=latency_ms,
            error=error,
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_, __: RequestValidationError):
    return _error(422, str(uuid.uuid4()), 0, "invalid request")


@app.post("/search", response_model=SearchResponse)
def search(req: SearchRequest):
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    q = (req.query or "").strip()
    if not q:
        return _error(422, request_id, 0, "empty query")

    log.info("REQ /search | request_id=%s | q_len=%s | top_k=%s", request_id, len(q), req.top_k)

    try:
        hits = get_engine().search(q, top_k=req.top_k)
    except DimensionMismatch as e:
        latency_ms = int((time.perf_counter() - t0) * 1000)
        log.warning("RES /search | request_id=%s | status=dimension_mismatch | err=%s", request_id, e)
        return _error(409, request_id, latency_ms, str(e))
    except Exception as e:
        latency_ms = int((time.perf_counter() - t0) * 1000)
        log.exception(
            "RES /search | request_id=%s | status=error | latency_ms=%s | err=%s",
            request_id,
            latency_ms,
            f"{type(e).__name__}: {e}",
        )
        return _error(500, request_id, latency_ms, f"{type(e).__name__}: {e}")

    latency_ms = int((time.perf_counter() - t0) * 1000)
    res = SearchResponse(
        ok=True,
        request_id=request_id,
        results=[
            SearchItem(
                source_document=h.source_document,
                page=h.page,
                chunk_id=h.chunk_id,
                score=h.score,
                text=h.text,
            )
            for h in hits
        ],
        latency_ms=latency_ms,
    )
    log.info(
        "RES /search | request_id=%s | status=ok | latency_ms=%s | results=%s",
        request_id, latency_ms, len(res.results)
    )
    return JSONResponse(status_code=200, content=res.model_dump())


@app.get("/documents", response_model=DocumentsResponse)
def documents():
    engine = get_engine()
    return DocumentsResponse(documents=engine.document_names, count=engine.loaded_document_count)


@app.get("/documents/{name}/pages/{page}", response_model=PageResponse)
def read_page(name: str, page: int = Path(..., ge=1)):
    catalog, docs = get_catalog()
    try:
        content = catalog.read_page(docs, name, page)
    except KnowledgeBaseNotFound as e:
        log.warning("RES /documents | doc=%s | page=%s | status=not_found", name, page)
        return JSONResponse(status_code=404, content={"ok": False, "error": str(e)})

    return PageResponse(
        document=content.document,
        page=content.page,
        sections=len(content.texts),
        text=content.text,
    )


@app.get("/")
def root():
    return {"ok": True}
