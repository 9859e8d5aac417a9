"""
QuoteCompare core pipeline.

Orchestrates: normalize extraction output → aggregate prices → detail view.
Both stages are synchronous and pure; all I/O lives in the lifecycle
controller and the collaborator clients.
"""
import logging
from typing import Iterable, Optional

from app.schemas import (
    STATUS_COMPLETED,
    Aggregation,
    ComparisonDetail,
    ComparisonRecord,
    ExtractionPayload,
)
from app.pipeline.normalizer import NormalizedComparison, normalize
from app.pipeline.aggregator import aggregate

logger = logging.getLogger(__name__)


def process_extraction(
    payload: ExtractionPayload, slots: Optional[Iterable[str]] = None
) -> tuple[NormalizedComparison, Aggregation]:
    """Run normalization and aggregation on one extraction payload.

    Returns ``(normalized, aggregation)``.
    """
    logger.info("Pipeline start - normalize %d raw items", len(payload.items))
    normalized = normalize(payload, slots)
    logger.info(
        "Normalized to %d items across %d vendors",
        len(normalized.items), len(normalized.vendors),
    )

    logger.info("Pipeline - aggregate")
    aggregation = aggregate(normalized.items, normalized.vendors)
    logger.info("Best achievable total: %s", aggregation.total_value)
    return normalized, aggregation


def build_detail(record: ComparisonRecord) -> ComparisonDetail:
    """Attach a freshly computed aggregation to *record*.

    The total is recomputed from ``items`` rather than trusting the stored
    ``total_value``.
    """
    aggregation = aggregate(record.items, record.vendors)
    data = record.model_dump()
    data["total_value"] = aggregation.total_value
    return ComparisonDetail(
        **data,
        price_ranges=aggregation.price_ranges,
        vendor_totals=aggregation.vendor_totals,
        item_count=len(record.items),
        vendor_count=len(record.vendors),
        no_data=record.status == STATUS_COMPLETED and not record.items,
    )
