"""
Memo collaborator client - finalized comparison → procurement approval memo.

The returned text is stored verbatim on the record and never parsed back.
"""
from __future__ import annotations

import logging

import httpx

from app.clients.base import GatewayClient
from app.errors import MemoFailure
from app.pipeline.aggregator import aggregate
from app.schemas import ComparisonRecord

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional procurement analyst. Generate detailed, actionable "
    "procurement memos with specific recommendations and financial analysis."
)


def build_memo_prompt(record: ComparisonRecord) -> str:
    names = {v.id: v.name for v in record.vendors}
    aggregation = aggregate(record.items, record.vendors)

    lines = []
    for item in record.items:
        prices = ", ".join(
            f"{names.get(vid, vid)}: ${price}" for vid, price in sorted(item.prices.items())
        )
        lines.append(f"{item.name}: {prices or 'N/A'}")

    totals = "\n".join(
        f"{names.get(t.vendor_id, t.vendor_id)}: ${t.quoted_total} "
        f"({t.quoted_items} items quoted, lowest on {t.lowest_items})"
        for t in aggregation.vendor_totals
    )

    return (
        "Analyze the following vendor price comparison and generate a professional "
        "procurement approval memo.\n\n"
        "COMPARISON DATA:\n"
        f"Title: {record.title}\n"
        f"Total Items: {len(record.items)}\n"
        f"Number of Vendors: {len(record.vendors)}\n"
        f"Total Value: ${aggregation.total_value}\n\n"
        "ITEM PRICING:\n"
        + "\n".join(lines)
        + "\n\nVENDOR TOTALS:\n"
        + totals
        + "\n\nGenerate a comprehensive procurement approval memo that includes:\n"
        "1. Executive Summary with clear recommendation\n"
        "2. Detailed vendor analysis with pricing breakdowns\n"
        "3. Financial impact assessment\n"
        "4. Risk assessment\n"
        "5. Next steps\n\n"
        "Format the memo professionally with proper sections and make specific "
        "recommendations based on the lowest prices for each item."
    )


class MemoClient(GatewayClient):
    """Client for the narrative memo collaborator."""

    def generate(self, record: ComparisonRecord) -> str:
        payload = {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_memo_prompt(record)},
            ],
        }
        logger.info("Calling memo gateway for comparison %s", record.id)
        try:
            data = self.chat(payload)
        except httpx.HTTPStatusError as exc:
            raise MemoFailure(f"AI generation failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise MemoFailure(f"Memo request failed: {exc}") from exc
        except ValueError as exc:
            raise MemoFailure("Memo response is not JSON") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            raise MemoFailure("No memo content generated")
        return content
