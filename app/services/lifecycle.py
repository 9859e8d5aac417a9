"""
Lifecycle controller - owns a comparison's status transitions.

    submitted ──advance──▶ processing ──▶ completed
        ▲                      │
        └──── failed ◀─────────┘
    completed / failed / stale processing ──regenerate──▶ processing

Only the caller that wins the conditional status update runs an extraction,
so at most one attempt is in flight per record. Previous ``items`` and
``total_value`` stay on the record until a new attempt succeeds.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, Iterable, Optional, Protocol, Sequence

from app.clients.extraction import ExtractionResult
from app.clients.storage import DocumentStore
from app.config import settings
from app.errors import (
    ConcurrencyConflict,
    DataAbsent,
    ExtractionFailure,
    InvalidSubmission,
    MemoFailure,
    NormalizationFailure,
)
from app.pipeline import process_extraction
from app.pipeline.normalizer import assign_slots
from app.schemas import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_SUBMITTED,
    ComparisonRecord,
    SourceDocument,
    SourceFile,
)
from app.services.repository import ComparisonRepository, utcnow

logger = logging.getLogger(__name__)

ADVANCE_FROM = (STATUS_SUBMITTED, STATUS_FAILED)
REGENERATE_FROM = (STATUS_SUBMITTED, STATUS_FAILED, STATUS_COMPLETED)


class Extractor(Protocol):
    def extract(self, documents: Sequence[SourceDocument]) -> ExtractionResult: ...


class MemoWriter(Protocol):
    def generate(self, record: ComparisonRecord) -> str: ...


class Publisher(Protocol):
    def publish(self, record: ComparisonRecord) -> int: ...


class LifecycleController:
    def __init__(
        self,
        repository: ComparisonRepository,
        extractor: Extractor,
        documents: DocumentStore,
        notifier: Publisher,
        memo_writer: Optional[MemoWriter] = None,
        stale_after_seconds: Optional[int] = None,
        max_document_chars: Optional[int] = None,
        max_source_files: Optional[int] = None,
    ):
        self.repository = repository
        self.extractor = extractor
        self.documents = documents
        self.notifier = notifier
        self.memo_writer = memo_writer
        self.stale_after = timedelta(
            seconds=stale_after_seconds
            if stale_after_seconds is not None
            else settings.STALE_PROCESSING_SECONDS
        )
        self.max_document_chars = max_document_chars or settings.MAX_DOCUMENT_CHARS
        self.max_source_files = max_source_files or settings.MAX_SOURCE_FILES

    # ── reads ────────────────────────────────────────────────────────────
    def get(self, record_id: str) -> ComparisonRecord:
        return self.repository.get(record_id)

    def list(self) -> list[ComparisonRecord]:
        return self.repository.list()

    # ── submit ───────────────────────────────────────────────────────────
    def submit(self, title: str, files: Iterable[SourceFile]) -> ComparisonRecord:
        """Register file references; extraction is started separately."""
        files = list(files)
        if not files:
            raise InvalidSubmission("At least one file is required")
        if len(files) > self.max_source_files:
            raise InvalidSubmission(
                f"At most {self.max_source_files} files can be compared, got {len(files)}"
            )
        declared = [f.vendor_slot for f in files if f.vendor_slot]
        if len(declared) != len(set(declared)):
            raise InvalidSubmission("Each vendor slot can be declared by one file only")

        record = self.repository.create(title, files)
        logger.info("Submitted comparison %s: %s", record.id, record.title)
        return record

    # ── transitions ──────────────────────────────────────────────────────
    def advance(self, record_id: str) -> ComparisonRecord:
        """Start extraction for a ``submitted`` or ``failed`` record.

        Losing a race is not an error: the current record is returned and
        nothing else happens.
        """
        return self._run(record_id, ADVANCE_FROM, stale_before=None)

    def regenerate(self, record_id: str) -> ComparisonRecord:
        """Like :meth:`advance`, also from ``completed`` or a stale ``processing``."""
        return self._run(record_id, REGENERATE_FROM, stale_before=utcnow() - self.stale_after)

    def _run(self, record_id, from_statuses, stale_before) -> ComparisonRecord:
        version = self.repository.claim(record_id, from_statuses, stale_before)
        if version is None:
            logger.info("Comparison %s not claimable; another attempt owns it", record_id)
            return self.repository.get(record_id)

        # Every claimed attempt ends in completed or failed
        try:
            record = self.repository.get(record_id)
            documents, slots = self._load_documents(record)
            payload = self._extract(record_id, documents).unwrap()
            normalized, aggregation = process_extraction(payload, slots)
        except (ExtractionFailure, NormalizationFailure) as exc:
            logger.warning("Comparison %s failed: %s", record_id, exc)
            return self._fail(record_id, version, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error processing comparison %s", record_id)
            return self._fail(record_id, version, f"Processing error: {exc}")

        if not normalized.items:
            logger.info("Comparison %s completed with no data found", record_id)
        try:
            return self._finish(
                record_id,
                lambda: self.repository.complete(
                    record_id,
                    version,
                    normalized.items,
                    normalized.vendors,
                    aggregation.total_value,
                ),
            )
        except Exception as exc:
            logger.exception("Could not store result for comparison %s", record_id)
            return self._fail(record_id, version, f"Could not store result: {exc}")

    def _fail(self, record_id: str, version: int, reason: str) -> ComparisonRecord:
        return self._finish(record_id, lambda: self.repository.fail(record_id, version, reason))

    def _finish(
        self, record_id: str, write: Callable[[], ComparisonRecord]
    ) -> ComparisonRecord:
        try:
            record = write()
        except ConcurrencyConflict as exc:
            # A stale-processing takeover owns the record now
            logger.info("Discarding superseded attempt: %s", exc)
            return self.repository.get(record_id)
        logger.info("Comparison %s -> %s (v%d)", record.id, record.status, record.version)
        try:
            self.notifier.publish(record)
        except Exception:
            # Subscribers can re-fetch; the stored record is authoritative
            logger.exception("Publishing comparison %s failed", record.id)
        return record

    def _load_documents(
        self, record: ComparisonRecord
    ) -> tuple[list[SourceDocument], list[str]]:
        """Readable documents in file order, with the vendor slot of each."""
        documents: list[SourceDocument] = []
        slots: list[str] = []
        for source, slot in zip(record.source_files, assign_slots(record.source_files)):
            try:
                text = self.documents.read_text(source)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable file %s: %s", source.path, exc)
                continue
            if not text.strip():
                logger.warning("Skipping empty file %s", source.path)
                continue
            documents.append(
                SourceDocument(
                    filename=source.name,
                    content=text[: self.max_document_chars],
                    size=source.size,
                )
            )
            slots.append(slot)
        logger.info(
            "Resolved %d of %d documents for %s",
            len(documents), len(record.source_files), record.id,
        )
        if not documents:
            raise ExtractionFailure("None of the source files could be read")
        return documents, slots

    def _extract(
        self, record_id: str, documents: Sequence[SourceDocument]
    ) -> ExtractionResult:
        try:
            return self.extractor.extract(documents)
        except Exception as exc:
            logger.exception("Extraction collaborator raised for %s", record_id)
            raise ExtractionFailure(f"Extraction collaborator error: {exc}") from exc

    # ── memo ─────────────────────────────────────────────────────────────
    def generate_memo(self, record_id: str) -> ComparisonRecord:
        """Ask the memo collaborator for a narrative and store it verbatim."""
        record = self.repository.get(record_id)
        if record.status != STATUS_COMPLETED or not record.items:
            raise DataAbsent("No comparison data available")
        if self.memo_writer is None:
            raise MemoFailure("Memo generation is not configured")

        memo = self.memo_writer.generate(record)
        updated = self.repository.set_memo(record_id, memo)
        logger.info("Stored memo for %s (%d chars)", record_id, len(memo))
        self.notifier.publish(updated)
        return updated
