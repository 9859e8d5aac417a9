from app.schemas.comparison import (  # noqa: F401
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    STATUS_SUBMITTED,
    VENDOR_SLOTS,
    Aggregation,
    ComparisonCreate,
    ComparisonDetail,
    ComparisonItem,
    ComparisonRecord,
    ComparisonSummary,
    ExtractionPayload,
    ItemPriceRange,
    RawItem,
    RawVendor,
    SourceDocument,
    SourceFile,
    Status,
    VendorRef,
    VendorTotal,
)
