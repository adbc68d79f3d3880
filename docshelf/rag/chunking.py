from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from docshelf.rag.types import Chunk

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_INTEGER = re.compile(r"[+-]?\d+")


def clean_text(text: str) -> str:
    if not text:
        return ""

    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_paragraphs(text: str) -> List[str]:
    out: List[str] = []
    for para in _PARAGRAPH_BREAK.split(clean_text(text)):
        s = para.replace("\n", " ").strip()
        if s:
            out.append(s)
    return out


def is_noise(candidate: str, *, min_chars: int = 30) -> bool:
    # running headers, page numbers, stray fragments
    if len(candidate) < min_chars:
        return True
    return _INTEGER.fullmatch(candidate) is not None


def chunk_blocks(
    blocks: Iterable[Tuple[int, str]],
    *,
    min_chars: int = 30,
    start_id: int = 0,
) -> List[Chunk]:
    """
    Paragraph chunks for (page_number, text) blocks, in discovery order.

    Ids increase by one per kept chunk across the whole document. Vectors are
    left empty; the ingestion pipeline fills them in.
    """
    out: List[Chunk] = []
    chunk_id = start_id

    for page, text in blocks:
        for para in split_paragraphs(text):
            if is_noise(para, min_chars=min_chars):
                continue
            out.append(Chunk(id=chunk_id, page_number=page, content=para))
            chunk_id += 1

    return out
