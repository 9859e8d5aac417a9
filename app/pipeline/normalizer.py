"""
Normalizer - raw extraction output to canonical items and vendors.

Extraction output is heterogeneous: prices arrive either as positional
``vendor_a_price`` / ``vendor_b_price`` / ``vendor_c_price`` fields or as a
``prices`` mapping keyed by slot letter or vendor name. This module folds all
of it into ``ComparisonItem`` rows keyed by vendor slot, never raising on
partial data.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from app.errors import NormalizationFailure
from app.schemas import (
    VENDOR_SLOTS,
    ComparisonItem,
    ExtractionPayload,
    RawItem,
    SourceFile,
    VendorRef,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
# Largest amount the Numeric(14,2) money columns hold
MAX_PRICE = Decimal("999999999999.99")

_POSITIONAL_FIELDS: dict[str, str] = {
    "A": "vendor_a_price",
    "B": "vendor_b_price",
    "C": "vendor_c_price",
}
_WHITESPACE = re.compile(r"\s+")
_CURRENCY_NOISE = re.compile(r"[\s,$€£¥₩]")
# "A", "vendor_a", "Vendor B", "vendor_c_price"
_SLOT_KEY = re.compile(r"^(?:vendor[\s_-]*)?([abc])(?:[\s_-]*price)?$", re.IGNORECASE)


@dataclass
class NormalizedComparison:
    items: list[ComparisonItem] = field(default_factory=list)
    vendors: list[VendorRef] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def clean_name(name: Optional[str]) -> str:
    """Collapse internal whitespace and trim."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name).strip()


def name_key(name: Optional[str]) -> str:
    """Identity used for de-duplication: cleaned and case-folded."""
    return clean_name(name).casefold()


def parse_price(value: Any) -> Optional[Decimal]:
    """Return a positive cent-quantized price, or ``None`` when absent/unusable.

    Zero, negative, non-numeric, NaN and infinite values are all treated as
    "no bid" rather than a legitimate $0 quote. Amounts above ``MAX_PRICE``
    are misreads and treated the same way.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = _CURRENCY_NOISE.sub("", value)
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite():
        return None
    try:
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if amount <= 0 or amount > MAX_PRICE:
        return None
    return amount


def slot_for_key(key: str) -> Optional[str]:
    m = _SLOT_KEY.match(clean_name(key))
    return m.group(1).upper() if m else None


def assign_slots(source_files: Iterable[SourceFile]) -> list[str]:
    """Vendor slot of each file, in file order.

    Declared slots are honoured; undeclared files take the remaining slots in
    order.
    """
    files = list(source_files)
    declared = {f.vendor_slot for f in files if f.vendor_slot}
    free = iter([s for s in VENDOR_SLOTS if s not in declared])
    slots = [f.vendor_slot or next(free, None) for f in files]
    return [s for s in slots if s]


# ---------------------------------------------------------------------------
# Vendor resolution
# ---------------------------------------------------------------------------
# The extractor labels vendors by document position: ``vendor_a_price`` and
# the first metadata entry belong to the first document it was shown, and so
# on. ``labels`` maps those positional labels onto the record's real slots.

def _slot_labels(slots: Optional[Iterable[str]]) -> dict[str, str]:
    if slots is None:
        return {s: s for s in VENDOR_SLOTS}
    ordered = [s for s in slots if s in VENDOR_SLOTS]
    if len(set(ordered)) != len(ordered):
        raise ValueError(f"duplicate vendor slots: {ordered}")
    return dict(zip(VENDOR_SLOTS, ordered))


def _positional_prices(raw: RawItem, labels: dict[str, str]) -> Iterable[tuple[Optional[str], Any]]:
    for label, attr in _POSITIONAL_FIELDS.items():
        yield labels.get(label), getattr(raw, attr)


def _resolve_vendors(
    payload: ExtractionPayload, labels: dict[str, str]
) -> tuple[list[VendorRef], dict[str, str]]:
    """Return ``(vendors, name_lookup)``; lookup maps folded vendor name -> slot."""
    if payload.vendors:
        if len(payload.vendors) > len(labels):
            logger.warning(
                "Extractor returned %d vendors for %d documents; keeping the first %d",
                len(payload.vendors), len(labels), len(labels),
            )
        by_slot = {
            labels[label]: raw
            for label, raw in zip(VENDOR_SLOTS, payload.vendors)
            if label in labels
        }
        vendors = [
            VendorRef(id=s, name=by_slot[s].name or f"Vendor {s}", contact=by_slot[s].contact)
            for s in VENDOR_SLOTS
            if s in by_slot
        ]
        return vendors, {name_key(v.name): v.id for v in vendors}

    # No metadata: slots come from the price fields actually present.
    used: set[str] = set()
    named: list[str] = []
    for raw in payload.items:
        for slot, value in _positional_prices(raw, labels):
            if slot and parse_price(value) is not None:
                used.add(slot)
        for key, value in (raw.prices or {}).items():
            if parse_price(value) is None:
                continue
            label = slot_for_key(key)
            if label:
                if label in labels:
                    used.add(labels[label])
            elif clean_name(key) and name_key(key) not in {name_key(n) for n in named}:
                named.append(clean_name(key))

    names = {s: f"Vendor {s}" for s in used}
    free = [s for s in labels.values() if s not in used]
    if len(named) > len(free):
        logger.warning("No free vendor slot for %s", ", ".join(named[len(free):]))
    lookup: dict[str, str] = {}
    for vendor_name, slot in zip(named, free):
        names[slot] = vendor_name
        lookup[name_key(vendor_name)] = slot

    vendors = [VendorRef(id=s, name=names[s]) for s in VENDOR_SLOTS if s in names]
    return vendors, lookup


def _item_prices(
    raw: RawItem, labels: dict[str, str], vendor_ids: set[str], lookup: dict[str, str]
) -> dict[str, Decimal]:
    prices: dict[str, Decimal] = {}
    for slot, value in _positional_prices(raw, labels):
        price = parse_price(value)
        if slot is not None and price is not None:
            prices[slot] = price
    for key, value in (raw.prices or {}).items():
        label = slot_for_key(key)
        slot = labels.get(label) if label else lookup.get(name_key(key))
        price = parse_price(value)
        if slot is not None and price is not None:
            prices[slot] = price

    dropped = set(prices) - vendor_ids
    if dropped:
        logger.debug("Dropping prices for unknown vendors %s", sorted(dropped))
    return {slot: price for slot, price in prices.items() if slot in vendor_ids}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(
    payload: ExtractionPayload | dict,
    slots: Optional[Iterable[str]] = None,
) -> NormalizedComparison:
    """Fold raw extraction output into canonical items and vendors.

    ``slots`` lists the slot of each document shown to the extractor, in the
    order it saw them (see :func:`assign_slots`). The extractor's positional
    vendor labels are mapped onto those slots and anything beyond them is
    dropped; ``None`` keeps the labels as they are.

    Items sharing a cleaned, case-insensitive name are merged into the first
    occurrence; for each vendor the last present price wins. Items without any
    price are kept. Raises ``NormalizationFailure`` only when raw items were
    returned but none carried a usable name.
    """
    if not isinstance(payload, ExtractionPayload):
        try:
            payload = ExtractionPayload.model_validate(payload)
        except ValidationError as exc:
            raise NormalizationFailure(f"Unusable extraction payload: {exc}") from exc

    labels = _slot_labels(slots)
    vendors, lookup = _resolve_vendors(payload, labels)
    vendor_ids = {v.id for v in vendors}

    merged: dict[str, ComparisonItem] = {}
    unnamed = 0
    duplicates = 0
    for raw in payload.items:
        display = clean_name(raw.display_name())
        if not display:
            unnamed += 1
            continue
        prices = _item_prices(raw, labels, vendor_ids, lookup)
        key = display.casefold()
        existing = merged.get(key)
        if existing is None:
            merged[key] = ComparisonItem(name=display, unit=raw.unit, prices=prices)
            continue
        duplicates += 1
        existing.prices.update(prices)
        if raw.unit:
            existing.unit = raw.unit

    if payload.items and not merged:
        raise NormalizationFailure(
            f"None of the {len(payload.items)} extracted items had a usable name"
        )
    if unnamed or duplicates:
        logger.info("Normalize: skipped %d unnamed, merged %d duplicate items", unnamed, duplicates)

    return NormalizedComparison(items=list(merged.values()), vendors=vendors)
