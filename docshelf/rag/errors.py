from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional


class DocShelfError(Exception):
    pass


class KnowledgeBaseNotFound(DocShelfError, FileNotFoundError):
    def __init__(self, path: Path | str, message: Optional[str] = None):
        self.path = Path(path)
        super().__init__(message or f"Knowledge base not found: {self.path}. Run ingestion first.")


class UnsupportedFormat(DocShelfError, ValueError):
    def __init__(self, extension: str, allowed: Iterable[str]):
        self.extension = extension
        self.allowed = tuple(sorted(allowed))
        super().__init__(
            f"File format '{extension}' is not supported. Supported formats: {', '.join(self.allowed)}"
        )


class InvalidFormat(DocShelfError):
    def __init__(self, path: Path | str, detail: str = ""):
        self.path = Path(path)
        msg = f"Invalid knowledge base format: {self.path}"
        super().__init__(f"{msg} ({detail})" if detail else msg)


class DimensionMismatch(DocShelfError):
    def __init__(
        self,
        *,
        expected: int,
        actual: int,
        recorded_provider: str,
        recorded_model: str,
        active_provider: str,
        active_model: str,
    ):
        self.expected = expected
        self.actual = actual
        self.recorded_provider = recorded_provider
        self.recorded_model = recorded_model
        self.active_provider = active_provider
        self.active_model = active_model
        super().__init__(
            f"Dimension mismatch! Query vector is {actual}D but knowledge base expects {expected}D.\n"
            f"Knowledge base was created with: {recorded_provider}/{recorded_model}\n"
            f"Current provider: {active_provider}/{active_model}\n"
            "Please rebuild the knowledge base with the current embedding provider."
        )


class BatchEmbeddingFailure(DocShelfError):
    def __init__(self, batch_index: int, size: int, cause: BaseException):
        self.batch_index = batch_index
        self.size = size
        self.cause = cause
        super().__init__(
            f"Embedding batch {batch_index} ({size} chunks) failed: {type(cause).__name__}: {cause}"
        )


class PerDocumentLoadFailure(DocShelfError):
    def __init__(self, document: Path | str, cause: BaseException):
        self.document = Path(document)
        self.cause = cause
        super().__init__(f"Error loading {self.document.name}: {cause}")


@dataclass(frozen=True)
class ProviderMismatch:
    """Recorded and active provider differ. Reported, never raised."""

    recorded_provider: str
    recorded_model: str
    active_provider: str
    active_model: str

    @property
    def message(self) -> str:
        return (
            f"Knowledge base was created with '{self.recorded_provider}' "
            f"but using '{self.active_provider}' provider. "
            "Embeddings may not be compatible. Consider rebuilding the knowledge base."
        )
