from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from docshelf.config import EngineConfig, settings
from docshelf.rag.documents import DocumentCatalog
from docshelf.rag.embedder import build_provider
from docshelf.rag.index import IngestionPipeline
from docshelf.rag.ingest import discover
from docshelf.rag.multi_retriever import MultiDocumentSearchEngine
from docshelf.rag.types import SearchResult


CASES_PATH_DEFAULT = Path("eval/cases.jsonl")


@dataclass
class Case:
    id: str
    question: str
    expectation: str  # "should_hit" | "should_miss"
    must_include: List[str]
    pages: List[int]


def load_cases(path: Path) -> List[Case]:
    cases: List[Case] = []
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)

            cid = str(obj.get("id") or f"case_{line_no}")
            q = str(obj.get("question") or "").strip()
            exp = str(obj.get("expectation") or "").strip()
            must = obj.get("must_include") or []
            pages = obj.get("pages") or []

            if not q:
                raise ValueError(f"Empty question in {path}:{line_no}")
            if exp not in {"should_hit", "should_miss"}:
                raise ValueError(f"Bad expectation in {path}:{line_no}: {exp}")

            if not isinstance(must, list):
                raise ValueError(f"must_include must be list in {path}:{line_no}")
            if not isinstance(pages, list):
                raise ValueError(f"pages must be list in {path}:{line_no}")

            cases.append(
                Case(
                    id=cid,
                    question=q,
                    expectation=exp,
                    must_include=[str(x) for x in must],
                    pages=[int(x) for x in pages],
                )
            )
    return cases


def _has_must_include(hits: List[SearchResult], must_include: List[str]) -> bool:
    if not must_include:
        return True
    names = {h.source_document.lower() for h in hits}
    return any(m.lower() in names for m in must_include)


def _has_page(hits: List[SearchResult], pages: List[int]) -> bool:
    if not pages:
        return True
    return any(h.page in pages for h in hits)


def _fmt_bool(x: bool) -> str:
    return "OK" if x else "FAIL"


def main() -> int:
    p = argparse.ArgumentParser(description="Retrieval Eval Runner")
    p.add_argument("--cases", type=str, default=str(CASES_PATH_DEFAULT), help="Path to eval/cases.jsonl")
    p.add_argument("--docs", type=str, default=str(settings.DOCS_DIR), help="Folder with source documents")
    p.add_argument("--top_k", type=int, default=None, help="Override AGGREGATE_TOP_K")
    p.add_argument("--print_failures_only", action="store_true", help="Print only failed cases")
    args = p.parse_args()

    cases_path = Path(args.cases)
    if not cases_path.exists():
        raise RuntimeError(f"Missing cases file: {cases_path}")

    cases = load_cases(cases_path)

    config = EngineConfig.from_settings(settings)
    provider = build_provider(None, settings)
    catalog = DocumentCatalog(config, provider)
    docs = catalog.prepare(discover(Path(args.docs)), IngestionPipeline(config=config))
    engine = MultiDocumentSearchEngine(config=config)
    engine.load(provider, docs)

    total = len(cases)
    should_hit_total = 0
    should_miss_total = 0

    hit_k_ok = 0
    page_ok = 0
    miss_ok = 0

    latencies: List[int] = []

    print("\nEVAL RUN")
    print("--------")
    print(f"cases: {total} | documents: {engine.loaded_document_count}\n")

    for c in cases:
        hits: List[SearchResult] = []
        err: Optional[str] = None

        t0 = time.perf_counter()
        try:
            hits = engine.search(c.question, top_k=args.top_k)
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
        latencies.append(int((time.perf_counter() - t0) * 1000))

        if err is not None:
            print(f"[{c.id}] {c.expectation} | ERROR | {err}")
            continue

        has_must = _has_must_include(hits, c.must_include)
        has_page = _has_page(hits, c.pages)

        case_ok = True
        notes: List[str] = []

        if c.expectation == "should_hit":
            should_hit_total += 1

            if not hits:
                case_ok = False
                notes.append("no_hits")

            if hits and has_must:
                hit_k_ok += 1
            else:
                case_ok = False
                notes.append("missed_must_include")

            if c.pages:
                if has_page:
                    page_ok += 1
                else:
                    case_ok = False
                    notes.append("missed_page")

        else:
            should_miss_total += 1
            if not hits:
                miss_ok += 1
            else:
                case_ok = False
                notes.append("hits_not_empty")

        if (not args.print_failures_only) or (not case_ok):
            top = f"{hits[0].score:.3f}" if hits else "-"
            print(
                f"[{c.id}] exp={c.expectation} | {_fmt_bool(case_ok)} | "
                f"hits={len(hits)} top={top} must={has_must} page={has_page} | "
                f"{', '.join(notes) if notes else '-'}"
            )

    def _rate(x: int, d: int) -> float:
        return (x / d) if d > 0 else 0.0

    avg_latency = round(sum(latencies) / len(latencies), 1) if latencies else None

    print("\nSUMMARY")
    print("-------")
    print(f"should_hit: {should_hit_total}")
    print(f"should_miss: {should_miss_total}")
    print(f"hit@k: {hit_k_ok}/{should_hit_total} = {_rate(hit_k_ok, should_hit_total):.2f}")
    print(f"page_hit: {page_ok}/{should_hit_total} = {_rate(page_ok, should_hit_total):.2f}")
    print(f"miss_quality: {miss_ok}/{should_miss_total} = {_rate(miss_ok, should_miss_total):.2f}")

    if avg_latency is not None:
        print(f"avg_latency_ms: {avg_latency}")

    print("\nOK\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
