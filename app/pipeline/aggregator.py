"""
Aggregation engine - per-item min/max and the best achievable total.

Pure functions of the normalized items: same input, same output, no I/O.
Money is handled as ``Decimal`` and quantized to cents on output so long
item lists never accumulate binary floating-point drift.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from app.schemas import (
    Aggregation,
    ComparisonItem,
    ItemPriceRange,
    VendorRef,
    VendorTotal,
)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
# One mis-keyed unit or typo should not dominate the spread column
MAX_SPREAD_PCT = Decimal("500.00")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def price_range(item: ComparisonItem) -> ItemPriceRange:
    """Min/max over the vendors that actually quoted *item*.

    Every vendor tied at the minimum (or maximum) is flagged. An item with no
    quotes has no min/max and flags nobody.
    """
    present = {vendor: _money(price) for vendor, price in item.prices.items() if price is not None}
    if not present:
        return ItemPriceRange(name=item.name)

    low = min(present.values())
    high = max(present.values())
    spread = None
    if low > 0:
        spread = min(((high - low) / low * 100), MAX_SPREAD_PCT).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )

    return ItemPriceRange(
        name=item.name,
        min_price=low,
        max_price=high,
        min_vendors=sorted(v for v, p in present.items() if p == low),
        max_vendors=sorted(v for v, p in present.items() if p == high),
        spread_pct=spread,
    )


def total_value(ranges: Iterable[ItemPriceRange]) -> Decimal:
    """Sum of per-item minimums; unquoted items contribute nothing."""
    return _money(sum((r.min_price for r in ranges if r.min_price is not None), ZERO))


def vendor_totals(
    items: Sequence[ComparisonItem],
    ranges: Sequence[ItemPriceRange],
    vendors: Sequence[VendorRef] = (),
) -> list[VendorTotal]:
    """Per-vendor quoted total, quoted item count and (co-)lowest item count."""
    vendor_ids = [v.id for v in vendors] or sorted({v for item in items for v in item.prices})
    totals = {vid: VendorTotal(vendor_id=vid) for vid in vendor_ids}

    for item, rng in zip(items, ranges):
        for vid, price in item.prices.items():
            entry = totals.get(vid)
            if entry is None or price is None:
                continue
            entry.quoted_total += price
            entry.quoted_items += 1
            if vid in rng.min_vendors:
                entry.lowest_items += 1

    for entry in totals.values():
        entry.quoted_total = _money(entry.quoted_total)
    return list(totals.values())


def aggregate(
    items: Sequence[ComparisonItem], vendors: Sequence[VendorRef] = ()
) -> Aggregation:
    """Compute price ranges, vendor totals and the best achievable total."""
    items = list(items)
    ranges = [price_range(item) for item in items]
    return Aggregation(
        price_ranges=ranges,
        total_value=total_value(ranges),
        vendor_totals=vendor_totals(items, ranges, vendors),
    )
