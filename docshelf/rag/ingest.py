# docshelf/rag/ingest.py
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Tuple

from docshelf.rag.errors import UnsupportedFormat

PDF_EXTENSIONS = (".pdf",)
TEXT_EXTENSIONS = (".txt", ".md", ".json")
SUPPORTED_EXTENSIONS = PDF_EXTENSIONS + TEXT_EXTENSIONS


def load_text_file(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")

def iter_pdf_pages(path: Path) -> Iterator[Tuple[int, str]]:
    from pypdf import PdfReader
    reader = PdfReader(str(path))
    for i, page in enumerate(reader.pages, start=1):
        text = page.extract_text() or ""

        text = (
            text.replace("\u00A0", " ")
                .replace("\u202F", " ")
                .replace("\x00", "")
        )
        yield i, text

def iter_text_windows(text: str, window_chars: int = 2000) -> Iterator[Tuple[int, str]]:
    """Fixed-size windows; each window is a synthetic page numbered from 1."""
    if window_chars <= 0:
        raise ValueError("window_chars must be > 0")
    for offset in range(0, len(text), window_chars):
        yield offset // window_chars + 1, text[offset : offset + window_chars]

def extract_blocks(path: Path, *, window_chars: int = 2000) -> List[Tuple[int, str]]:
    ext = path.suffix.lower()

    if ext in PDF_EXTENSIONS:
        return list(iter_pdf_pages(path))

    if ext in TEXT_EXTENSIONS:
        return list(iter_text_windows(load_text_file(path), window_chars))

    raise UnsupportedFormat(ext or "(none)", SUPPORTED_EXTENSIONS)

def discover(root: Path) -> List[Path]:
    return sorted(
        p for p in root.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
    )
