"""
Domain errors raised by the comparison pipeline and lifecycle controller.

Routers translate these into HTTP responses; the lifecycle controller turns
extraction and normalization failures into a ``failed`` record instead of
letting them escape.
"""
from __future__ import annotations


class ComparisonError(Exception):
    """Base class for every comparison-domain error."""


class RecordNotFound(ComparisonError):
    def __init__(self, record_id: str):
        super().__init__(f"Comparison not found: {record_id}")
        self.record_id = record_id


class InvalidSubmission(ComparisonError):
    """The submitted file list cannot start a comparison."""


class ExtractionFailure(ComparisonError):
    """Collaborator unreachable, non-2xx, or missing/malformed payload."""


class NormalizationFailure(ComparisonError):
    """A payload was returned but nothing usable survived cleaning."""


class ConcurrencyConflict(ComparisonError):
    """A transition was attempted against an unexpected status or version."""


class DataAbsent(ComparisonError):
    """The record completed without any priced items."""


class MemoFailure(ComparisonError):
    """The memo collaborator failed or returned no content."""
