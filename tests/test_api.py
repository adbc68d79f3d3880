from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

from fastapi.testclient import TestClient

import docshelf.main as main_mod
from docshelf.config import EngineConfig
from docshelf.rag.documents import DocumentCatalog
from docshelf.rag.errors import DimensionMismatch
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.types import Chunk, KnowledgeBase, KnowledgeBaseMetadata, SearchResult


class FakeEngine:
    def __init__(self, hits=None, exc=None):
        self.hits = hits or []
        self.exc = exc
        self.document_names = ["handbook"]
        self.loaded_document_count = 1

    def search(self, query: str, top_k=None):
        if self.exc is not None:
            raise self.exc
        return self.hits[: top_k or 10]


def _hits():
    return [
        SearchResult(text="Fonts: use Arial for notes.", page=10, score=0.91, chunk_id=0, source_document="handbook"),
        SearchResult(text="Title block requirements.", page=18, score=0.52, chunk_id=4, source_document="specs"),
    ]


def test_search_ok_with_mocked_engine(monkeypatch):
    monkeypatch.setattr(main_mod, "get_engine", lambda: FakeEngine(_hits()), raising=True)

    client = TestClient(main_mod.app)

    resp = client.post("/search", json={"query": "text fonts requirements"})
    assert resp.status_code == 200

    data = resp.json()
    assert data["ok"] is True
    assert [r["source_document"] for r in data["results"]] == ["handbook", "specs"]
    assert data["results"][0]["page"] == 10
    assert "request_id" in data


def test_search_422_on_invalid_body():
    client = TestClient(main_mod.app)

    resp = client.post("/search", json={})
    assert resp.status_code == 422
    assert resp.json()["ok"] is False


def test_search_422_on_blank_query(monkeypatch):
    monkeypatch.setattr(main_mod, "get_engine", lambda: FakeEngine(_hits()), raising=True)
    client = TestClient(main_mod.app)

    resp = client.post("/search", json={"query": "   "})
    assert resp.status_code == 422


def test_search_409_on_dimension_mismatch(monkeypatch):
    exc = DimensionMismatch(
        expected=512,
        actual=768,
        recorded_provider="openai",
        recorded_model="text-embedding-3-small",
        active_provider="ollama",
        active_model="nomic-embed-text",
    )
    monkeypatch.setattr(main_mod, "get_engine", lambda: FakeEngine(exc=exc), raising=True)
    client = TestClient(main_mod.app)

    resp = client.post("/search", json={"query": "fonts"})
    assert resp.status_code == 409
    assert "ollama/nomic-embed-text" in resp.json()["error"]


def test_documents_lists_loaded_names(monkeypatch):
    monkeypatch.setattr(main_mod, "get_engine", lambda: FakeEngine(), raising=True)
    client = TestClient(main_mod.app)

    assert client.get("/documents").json() == {"documents": ["handbook"], "count": 1}


def _catalog_with_handbook(tmp_path: Path):
    provider = SimpleNamespace(provider_id="openai", model_id="text-embedding-3-small", dimensions=3)
    catalog = DocumentCatalog(EngineConfig(cache_dir=tmp_path), provider)
    doc = catalog.descriptor(tmp_path / "handbook.pdf")
    kb = KnowledgeBase(
        metadata=KnowledgeBaseMetadata(provider_id="openai", model_id="text-embedding-3-small", dimensions=3),
        chunks=[
            Chunk(id=0, page_number=3, content="Page three text, long enough to be a chunk.", vector=[1.0, 0.0, 0.0]),
            Chunk(id=1, page_number=3, content="A second section that also sits on page three.", vector=[0.0, 1.0, 0.0]),
        ],
    )
    KnowledgeBaseStore().save(kb, doc.cache_path)
    return catalog, [doc]


def test_page_endpoint_reads_through_catalog(tmp_path: Path, monkeypatch):
    catalog, docs = _catalog_with_handbook(tmp_path)
    monkeypatch.setattr(main_mod, "get_catalog", lambda: (catalog, docs), raising=True)
    client = TestClient(main_mod.app)

    page = client.get("/documents/Handbook/pages/3")
    assert page.status_code == 200
    assert page.json()["document"] == "handbook"
    assert page.json()["sections"] == 2
    assert page.json()["text"] == catalog.read_page(docs, "handbook", 3).text


def test_page_endpoint_empty_page_agrees_with_catalog(tmp_path: Path, monkeypatch):
    catalog, docs = _catalog_with_handbook(tmp_path)
    monkeypatch.setattr(main_mod, "get_catalog", lambda: (catalog, docs), raising=True)
    client = TestClient(main_mod.app)

    page = client.get("/documents/handbook/pages/4")
    assert page.status_code == 200
    assert page.json() == {"document": "handbook", "page": 4, "sections": 0, "text": ""}
    assert catalog.read_page(docs, "handbook", 4).texts == []


def test_page_endpoint_404_for_unknown_document(tmp_path: Path, monkeypatch):
    catalog, docs = _catalog_with_handbook(tmp_path)
    monkeypatch.setattr(main_mod, "get_catalog", lambda: (catalog, docs), raising=True)
    client = TestClient(main_mod.app)

    resp = client.get("/documents/other/pages/1")
    assert resp.status_code == 404
    assert resp.json()["ok"] is False
    assert "handbook" in resp.json()["error"]

    assert client.get("/documents/handbook/pages/0").status_code == 422
