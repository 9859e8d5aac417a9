"""
Canonical JSON schemas for the QuoteCompare pipeline.

Every stage produces and consumes these Pydantic v2 models: the extraction
boundary (``ExtractionPayload``), the canonical record (``ComparisonRecord``),
and the derived views returned by the API and pushed to subscribers.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATUS_SUBMITTED = "submitted"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

Status = Literal["submitted", "processing", "completed", "failed"]

VENDOR_SLOTS = ("A", "B", "C")


# ---------------------------------------------------------------------------
# Record primitives
# ---------------------------------------------------------------------------

class SourceFile(BaseModel):
    """Reference to one uploaded quote document."""
    name: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1, description="Storage path under the upload root")
    size: int = Field(default=0, ge=0)
    vendor_slot: Optional[Literal["A", "B", "C"]] = None


class VendorRef(BaseModel):
    id: str = Field(..., description="Slot letter: A | B | C")
    name: str
    contact: Optional[str] = None


class ComparisonItem(BaseModel):
    """One row of the item x vendor matrix. Absent vendors have no key."""
    name: str
    unit: Optional[str] = None
    prices: dict[str, Decimal] = Field(default_factory=dict)


class ComparisonRecord(BaseModel):
    id: str
    title: str
    status: Status = STATUS_SUBMITTED
    source_files: list[SourceFile] = Field(default_factory=list)
    items: list[ComparisonItem] = Field(default_factory=list)
    vendors: list[VendorRef] = Field(default_factory=list)
    total_value: Decimal = Decimal("0.00")
    memo: Optional[str] = None
    failure_reason: Optional[str] = None
    version: int = 0
    processing_started_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Extraction boundary
# ---------------------------------------------------------------------------

class SourceDocument(BaseModel):
    """A resolved, already-downloaded document handed to the extractor."""
    filename: str
    content: str
    size: int = 0


def _text_or_none(value: Any) -> Optional[str]:
    # true/false is never a name or contact
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    raise ValueError("expected a string")


class RawVendor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    contact: Optional[str] = None

    @field_validator("name", "contact", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class RawItem(BaseModel):
    """An item as the extractor returned it; prices stay untyped until normalized."""
    model_config = ConfigDict(extra="ignore")

    item_name: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    vendor_a_price: Any = None
    vendor_b_price: Any = None
    vendor_c_price: Any = None
    prices: Optional[dict[str, Any]] = None

    @field_validator("item_name", "name", "description", "unit", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)

    def display_name(self) -> Optional[str]:
        return self.item_name or self.name or self.description


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: list[RawItem]
    vendors: Optional[list[RawVendor]] = None


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

class ItemPriceRange(BaseModel):
    name: str
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_vendors: list[str] = Field(default_factory=list)
    max_vendors: list[str] = Field(default_factory=list)
    spread_pct: Optional[Decimal] = None


class VendorTotal(BaseModel):
    vendor_id: str
    quoted_total: Decimal = Decimal("0.00")
    quoted_items: int = 0
    lowest_items: int = 0


class Aggregation(BaseModel):
    price_ranges: list[ItemPriceRange] = Field(default_factory=list)
    total_value: Decimal = Decimal("0.00")
    vendor_totals: list[VendorTotal] = Field(default_factory=list)


class ComparisonDetail(ComparisonRecord):
    """The record plus its aggregation; what the API returns and subscribers receive."""
    price_ranges: list[ItemPriceRange] = Field(default_factory=list)
    vendor_totals: list[VendorTotal] = Field(default_factory=list)
    item_count: int = 0
    vendor_count: int = 0
    no_data: bool = False


class ComparisonSummary(BaseModel):
    id: str
    title: str
    status: Status
    item_count: int
    vendor_count: int
    total_value: Decimal
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# API request envelopes
# ---------------------------------------------------------------------------

class ComparisonCreate(BaseModel):
    title: str = Field(..., min_length=1)
    files: list[SourceFile]
