from __future__ import annotations
from typing import Optional


class PeakDistribError(Exception):
    """Base class for all errors raised while building the peak matrix."""

    def __init__(self, message: str, *, record: Optional[str] = None, category: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.record = record
        self.category = category

    def with_category(self, category: str) -> "PeakDistribError":
        self.category = category
        return self

    def __str__(self) -> str:
        msg = self.message
        if self.category:
            msg = f"[{self.category}] {msg}"
        if self.record:
            msg = f"{msg} (record: {self.record})"
        return msg


class MalformedInput(PeakDistribError):
    """Missing gene_id, non-numeric coordinate, start >= end, ..."""


class UnsortedInput(PeakDistribError):
    """Input violates the sort order a sweep or intron pass relies on."""


class EmptyAnnotation(PeakDistribError):
    """No exon rows in the annotation."""


class IOFailure(PeakDistribError):
    """Reading or writing a file failed."""


class ClassificationCancelled(PeakDistribError):
    """A run was stopped through its cancel event."""
