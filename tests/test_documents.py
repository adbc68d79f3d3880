from __future__ import annotations

from pathlib import Path

import pytest

from docshelf.config import EngineConfig
from docshelf.rag.documents import DocumentCatalog
from docshelf.rag.errors import KnowledgeBaseNotFound
from docshelf.rag.index import IngestionPipeline


class DummyEmbedder:
    provider_id = "openai"
    model_id = "text-embedding-3-small"
    dimensions = 3

    def __init__(self):
        self.batches = 0

    def embed(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batches += 1
        return [self.embed(t) for t in texts]


def _source(tmp_path: Path, name: str) -> Path:
    p = tmp_path / "docs" / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        "Opening paragraph of the manual, long enough.\n\n"
        "Another paragraph that the search should see.",
        encoding="utf-8",
    )
    return p


def _catalog(tmp_path: Path, emb: DummyEmbedder) -> tuple[DocumentCatalog, IngestionPipeline]:
    cfg = EngineConfig(cache_dir=tmp_path / "cache")
    return DocumentCatalog(cfg, emb), IngestionPipeline(config=cfg)


def test_prepare_builds_missing_and_reuses_cached(tmp_path: Path):
    emb = DummyEmbedder()
    catalog, pipeline = _catalog(tmp_path, emb)
    src = _source(tmp_path, "Manual.txt")

    assert not catalog.is_indexed(src)

    docs = catalog.prepare([src], pipeline)

    assert len(docs) == 1
    assert docs[0].name == "Manual"
    assert docs[0].cache_path.exists()
    assert catalog.is_indexed(src)
    assert emb.batches == 1

    catalog.prepare([src], pipeline)
    assert emb.batches == 1


def test_prepare_keeps_going_after_a_bad_document(tmp_path: Path):
    emb = DummyEmbedder()
    catalog, pipeline = _catalog(tmp_path, emb)
    bad = tmp_path / "docs" / "deck.pptx"
    bad.parent.mkdir(parents=True, exist_ok=True)
    bad.write_bytes(b"x")
    good = _source(tmp_path, "guide.md")

    docs = catalog.prepare([bad, good], pipeline)

    assert [d.name for d in docs] == ["deck", "guide"]
    assert not docs[0].cache_path.exists()
    assert docs[1].cache_path.exists()


def test_read_page_joins_chunks(tmp_path: Path):
    emb = DummyEmbedder()
    catalog, pipeline = _catalog(tmp_path, emb)
    docs = catalog.prepare([_source(tmp_path, "Manual.txt")], pipeline)

    page = catalog.read_page(docs, "manual", 1)

    assert page.document == "Manual"
    assert page.texts == [
        "Opening paragraph of the manual, long enough.",
        "Another paragraph that the search should see.",
    ]
    assert page.text.count("\n") == 1

    assert catalog.read_page(docs, "Manual", 7).texts == []

    with pytest.raises(KnowledgeBaseNotFound) as exc:
        catalog.read_page(docs, "unknown", 1)
    assert "Manual" in str(exc.value)


def test_clear_cache_removes_knowledge_files(tmp_path: Path):
    emb = DummyEmbedder()
    catalog, pipeline = _catalog(tmp_path, emb)
    catalog.prepare([_source(tmp_path, "a.txt"), _source(tmp_path, "b.txt")], pipeline)
    (tmp_path / "cache" / "keep.txt").write_text("x", encoding="utf-8")

    assert catalog.clear_cache() == 2
    assert [p.name for p in (tmp_path / "cache").iterdir()] == ["keep.txt"]
    assert catalog.clear_cache() == 0
