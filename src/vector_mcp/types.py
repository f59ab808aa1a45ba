"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Document:
    """A document stored in a vector database."""

    url: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    vector: list[float] | None = None
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "text": self.text,
            "metadata": dict(self.metadata),
        }
        if self.vector is not None:
            payload["vector"] = list(self.vector)
        return payload


@dataclass(slots=True)
class SearchResult:
    """A similarity search hit."""

    document: Document
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"document": self.document.to_dict(), "score": self.score}


@dataclass(slots=True)
class WriteStats:
    """Statistics from one write call; never persisted."""

    documents_written: int
    processing_time_ms: float
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents_written": self.documents_written,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "errors": list(self.errors),
        }
