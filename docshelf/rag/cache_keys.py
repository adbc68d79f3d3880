from __future__ import annotations

import hashlib
from pathlib import Path

DIGEST_CHARS = 16
SUFFIX = "_knowledge.json"


def stable_hash(document_path: str) -> str:
    # 8 bytes of sha256 over the lowercased full path
    return hashlib.sha256(document_path.lower().encode("utf-8")).hexdigest()[:DIGEST_CHARS]


def cache_file_name(document_path: str | Path, provider_id: str) -> str:
    p = str(document_path)
    return f"{Path(p).stem}_{stable_hash(p)}_{provider_id}{SUFFIX}"


def derive(document_path: str | Path, provider_id: str, cache_dir: Path) -> Path:
    """Cache file for (document, provider). Pure: never touches the filesystem."""
    return Path(cache_dir) / cache_file_name(document_path, provider_id)
