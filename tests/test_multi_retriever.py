from __future__ import annotations

import math
from pathlib import Path

import pytest

from docshelf.config import EngineConfig
from docshelf.rag.errors import DimensionMismatch
from docshelf.rag.multi_retriever import MultiDocumentSearchEngine
from docshelf.rag.store import KnowledgeBaseStore
from docshelf.rag.types import Chunk, DocumentDescriptor, KnowledgeBase, KnowledgeBaseMetadata


class DummyEmbedder:
    provider_id = "openai"
    model_id = "text-embedding-3-small"

    def __init__(self, vec: list[float]):
        self._vec = vec
        self.dimensions = len(vec)
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        return list(self._vec)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [list(self._vec) for _ in texts]


def _unit(cos: float) -> list[float]:
    return [cos, math.sqrt(1.0 - cos * cos), 0.0]


def _doc(tmp_path: Path, name: str, scores: list[float]) -> DocumentDescriptor:
    cache = tmp_path / "cache" / f"{name}_knowledge.json"
    kb = KnowledgeBase(
        metadata=KnowledgeBaseMetadata(provider_id="openai", model_id="text-embedding-3-small", dimensions=3),
        chunks=[
            Chunk(id=i, page_number=i + 1, content=f"{name} chunk {i} with enough text in it.", vector=_unit(s))
            for i, s in enumerate(scores)
        ],
    )
    KnowledgeBaseStore().save(kb, cache)
    return DocumentDescriptor(file_path=tmp_path / f"{name}.pdf", cache_path=cache)


def test_best_document_ranks_first(tmp_path: Path):
    docs = [_doc(tmp_path, "weak", [0.5]), _doc(tmp_path, "strong", [0.9])]
    engine = MultiDocumentSearchEngine()
    engine.load(DummyEmbedder([1.0, 0.0, 0.0]), docs)

    hits = engine.search("what matters", top_k=10)

    assert [h.source_document for h in hits] == ["strong", "weak"]
    assert hits[0].score == pytest.approx(0.9, abs=1e-5)
    assert hits[1].score == pytest.approx(0.5, abs=1e-5)


def test_missing_and_broken_documents_are_skipped(tmp_path: Path):
    good = _doc(tmp_path, "good", [0.8])
    missing = DocumentDescriptor(file_path=tmp_path / "gone.pdf", cache_path=tmp_path / "cache" / "gone.json")
    broken_path = tmp_path / "cache" / "broken_knowledge.json"
    broken_path.write_text("{oops", encoding="utf-8")
    broken = DocumentDescriptor(file_path=tmp_path / "broken.txt", cache_path=broken_path)

    engine = MultiDocumentSearchEngine()
    loaded = engine.load(DummyEmbedder([1.0, 0.0, 0.0]), [missing, good, broken])

    assert loaded == 1
    assert engine.document_names == ["good"]
    assert sorted(f.document.name for f in engine.failures) == ["broken.txt", "gone.pdf"]
    assert [h.source_document for h in engine.search("query")] == ["good"]


def test_global_top_k_caps_merged_results(tmp_path: Path):
    docs = [_doc(tmp_path, f"d{i}", [0.95, 0.9, 0.85, 0.8, 0.75, 0.7]) for i in range(3)]
    engine = MultiDocumentSearchEngine()
    engine.load(DummyEmbedder([1.0, 0.0, 0.0]), docs)

    hits = engine.search("query")

    # five per document, ten overall
    assert len(hits) == 10
    assert all(hits[i].score >= hits[i + 1].score for i in range(len(hits) - 1))
    assert len(engine.search("query", top_k=4)) == 4


def test_no_documents_means_no_results():
    engine = MultiDocumentSearchEngine()

    assert engine.search("anything") == []
    assert engine.loaded_document_count == 0


def test_query_is_embedded_once(tmp_path: Path):
    docs = [_doc(tmp_path, "a", [0.9]), _doc(tmp_path, "b", [0.6])]
    emb = DummyEmbedder([1.0, 0.0, 0.0])
    engine = MultiDocumentSearchEngine()
    engine.load(emb, docs)

    engine.search("query")

    assert emb.calls == 1


def test_parallel_ranking_matches_sequential(tmp_path: Path):
    docs = [_doc(tmp_path, f"doc{i}", [0.9, 0.7, 0.6]) for i in range(4)]
    emb = DummyEmbedder([1.0, 0.0, 0.0])

    seq = MultiDocumentSearchEngine(config=EngineConfig(search_workers=1))
    seq.load(emb, docs)
    par = MultiDocumentSearchEngine(config=EngineConfig(search_workers=4))
    par.load(emb, docs)

    a = [(h.source_document, h.chunk_id) for h in seq.search("query")]
    b = [(h.source_document, h.chunk_id) for h in par.search("query")]

    assert a == b
    # equal scores keep load order
    assert a[:4] == [("doc0", 0), ("doc1", 0), ("doc2", 0), ("doc3", 0)]


def test_dimension_mismatch_aborts_search(tmp_path: Path):
    docs = [_doc(tmp_path, "a", [0.9])]
    engine = MultiDocumentSearchEngine()
    engine.load(DummyEmbedder([1.0, 0.0, 0.0, 0.0]), docs)

    with pytest.raises(DimensionMismatch):
        engine.search("query")
