"""
Comparison persistence with compare-and-set transitions.

Every status change is a conditional ``UPDATE`` guarded by the row's
``version``; ``rowcount == 1`` means the caller won the transition. Sessions
are short-lived so no transaction stays open across collaborator calls.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.errors import ConcurrencyConflict, RecordNotFound
from app.models.comparison import ComparisonModel
from app.schemas import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SUBMITTED,
    ComparisonItem,
    ComparisonRecord,
    SourceFile,
    VendorRef,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC; SQLite drops tzinfo, so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def transform_comparison(model: ComparisonModel) -> ComparisonRecord:
    """ComparisonModel을 ComparisonRecord로 변환"""
    return ComparisonRecord(
        id=model.id,
        title=model.title,
        status=model.status,
        source_files=[SourceFile(**f) for f in model.source_files_json or []],
        items=[ComparisonItem(**i) for i in model.items_json or []],
        vendors=[VendorRef(**v) for v in model.vendors_json or []],
        total_value=Decimal(str(model.total_value or 0)).quantize(Decimal("0.01")),
        memo=model.memo,
        failure_reason=model.failure_reason,
        version=model.version,
        processing_started_at=model.processing_started_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ComparisonRepository:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    # ── reads ────────────────────────────────────────────────────────────
    def get(self, record_id: str) -> ComparisonRecord:
        with self._session_factory() as db:
            row = db.get(ComparisonModel, record_id)
            if row is None:
                raise RecordNotFound(record_id)
            return transform_comparison(row)

    def list(self) -> list[ComparisonRecord]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(ComparisonModel).order_by(ComparisonModel.created_at.desc())
            ).all()
            return [transform_comparison(r) for r in rows]

    # ── writes ───────────────────────────────────────────────────────────
    def create(self, title: str, files: Sequence[SourceFile]) -> ComparisonRecord:
        now = utcnow()
        row = ComparisonModel(
            id=str(uuid.uuid4()),
            title=title,
            status=STATUS_SUBMITTED,
            version=0,
            source_files_json=[f.model_dump(mode="json") for f in files],
            items_json=[],
            vendors_json=[],
            total_value=Decimal("0.00"),
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info("Stored comparison %s (%d files)", row.id, len(files))
            return transform_comparison(row)

    def claim(
        self,
        record_id: str,
        from_statuses: Iterable[str],
        stale_before: Optional[datetime] = None,
    ) -> Optional[int]:
        """Move *record_id* to ``processing`` if its status allows it.

        ``stale_before`` additionally allows taking over a ``processing``
        record whose claim started before that instant. Returns the version
        now owned by the caller, or ``None`` when another caller owns it.
        """
        from_statuses = tuple(from_statuses)
        eligible = ComparisonModel.status.in_(from_statuses)
        if stale_before is not None:
            eligible = or_(
                eligible,
                and_(
                    ComparisonModel.status == STATUS_PROCESSING,
                    ComparisonModel.processing_started_at < stale_before,
                ),
            )

        now = utcnow()
        with self._session_factory() as db:
            row = db.get(ComparisonModel, record_id)
            if row is None:
                raise RecordNotFound(record_id)
            expected = row.version
            result = db.execute(
                update(ComparisonModel)
                .where(ComparisonModel.id == record_id)
                .where(ComparisonModel.version == expected)
                .where(eligible)
                .values(
                    status=STATUS_PROCESSING,
                    version=expected + 1,
                    processing_started_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            won = result.rowcount == 1
            db.commit()

        if not won:
            return None
        logger.info("Claimed comparison %s at version %d", record_id, expected + 1)
        return expected + 1

    def complete(
        self,
        record_id: str,
        version: int,
        items: Sequence[ComparisonItem],
        vendors: Sequence[VendorRef],
        total_value: Decimal,
    ) -> ComparisonRecord:
        return self._finish(
            record_id,
            version,
            status=STATUS_COMPLETED,
            items_json=[i.model_dump(mode="json") for i in items],
            vendors_json=[v.model_dump(mode="json") for v in vendors],
            total_value=total_value,
            failure_reason=None,
        )

    def fail(self, record_id: str, version: int, reason: str) -> ComparisonRecord:
        # items / vendors / total_value are left as they were
        return self._finish(record_id, version, status=STATUS_FAILED, failure_reason=reason)

    def _finish(self, record_id: str, version: int, **values) -> ComparisonRecord:
        now = utcnow()
        with self._session_factory() as db:
            result = db.execute(
                update(ComparisonModel)
                .where(ComparisonModel.id == record_id)
                .where(ComparisonModel.version == version)
                .where(ComparisonModel.status == STATUS_PROCESSING)
                .values(
                    version=version + 1,
                    processing_started_at=None,
                    updated_at=now,
                    **values,
                )
                .execution_options(synchronize_session=False)
            )
            won = result.rowcount == 1
            db.commit()
            if not won:
                raise ConcurrencyConflict(
                    f"Comparison {record_id} is no longer at version {version}"
                )
            row = db.get(ComparisonModel, record_id)
            return transform_comparison(row)

    def set_memo(self, record_id: str, memo: str) -> ComparisonRecord:
        """Store memo text verbatim. Not a status transition, so ``version`` is untouched."""
        with self._session_factory() as db:
            row = db.get(ComparisonModel, record_id)
            if row is None:
                raise RecordNotFound(record_id)
            row.memo = memo
            row.updated_at = utcnow()
            db.commit()
            db.refresh(row)
            return transform_comparison(row)
