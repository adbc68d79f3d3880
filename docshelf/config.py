from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _path(name: str, default: Path) -> Path:
    v = os.getenv(name)
    return Path(v).expanduser() if v else default


class BatchFailurePolicy(str, Enum):
    RETRY_THEN_EXCLUDE = "retry_then_exclude"
    EXCLUDE = "exclude"
    FAIL = "fail"


class Settings:
    # --- Auth ---
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")

    # --- Embeddings ---
    EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "openai")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSIONS: int = int(os.getenv("EMBEDDING_DIMENSIONS", "512"))
    EMBED_BATCH_SIZE: int = int(os.getenv("EMBED_BATCH_SIZE", "10"))
    EMBED_TIMEOUT_S: float = float(os.getenv("EMBED_TIMEOUT_S", "60"))
    EMBED_RETRIES: int = int(os.getenv("EMBED_RETRIES", "2"))
    PRICE_EMBED_INPUT: float = float(os.getenv("PRICE_EMBED_INPUT", "0"))
    BATCH_FAILURE_POLICY: str = os.getenv("BATCH_FAILURE_POLICY", BatchFailurePolicy.RETRY_THEN_EXCLUDE.value)

    OLLAMA_BASE_URL: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "nomic-embed-text")

    # --- Documents / cache ---
    DOCS_DIR: Path = _path("DOCS_DIR", Path("data/docs"))
    CACHE_DIR: Path = _path("CACHE_DIR", Path.home() / ".docshelf" / "cache")

    # --- Chunking ---
    TEXT_WINDOW_CHARS: int = int(os.getenv("TEXT_WINDOW_CHARS", "2000"))
    MIN_CHUNK_CHARS: int = int(os.getenv("MIN_CHUNK_CHARS", "30"))

    # --- Retrieval ---
    MIN_SCORE: float = float(os.getenv("MIN_SCORE", "0.45"))
    TOP_K: int = int(os.getenv("TOP_K", "5"))
    AGGREGATE_TOP_K: int = int(os.getenv("AGGREGATE_TOP_K", "10"))
    SEARCH_WORKERS: int = int(os.getenv("SEARCH_WORKERS", "1"))


settings = Settings()


@dataclass(frozen=True)
class EngineConfig:
    cache_dir: Path = Path.home() / ".docshelf" / "cache"
    threshold: float = 0.45
    top_k: int = 5
    aggregate_top_k: int = 10
    batch_size: int = 10
    retries: int = 2
    retry_sleep_s: float = 0.5
    batch_failure_policy: BatchFailurePolicy = BatchFailurePolicy.RETRY_THEN_EXCLUDE
    window_chars: int = 2000
    min_chunk_chars: int = 30
    search_workers: int = 1

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "EngineConfig":
        return cls(
            cache_dir=Path(s.CACHE_DIR),
            threshold=float(s.MIN_SCORE),
            top_k=int(s.TOP_K),
            aggregate_top_k=int(s.AGGREGATE_TOP_K),
            batch_size=max(1, int(s.EMBED_BATCH_SIZE)),
            retries=max(0, int(s.EMBED_RETRIES)),
            batch_failure_policy=BatchFailurePolicy(s.BATCH_FAILURE_POLICY),
            window_chars=int(s.TEXT_WINDOW_CHARS),
            min_chunk_chars=int(s.MIN_CHUNK_CHARS),
            search_workers=max(1, int(s.SEARCH_WORKERS)),
        )
