"""
Extraction gateway client.

Sends the resolved quote documents to the LLM gateway with a forced
``extract_vendor_prices`` tool call and validates the returned arguments
against ``ExtractionPayload``. The outcome is a tagged ``ExtractionResult``;
nothing untyped crosses this boundary.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import httpx
from pydantic import ValidationError

from app.clients.base import GatewayClient
from app.errors import ExtractionFailure
from app.schemas import ExtractionPayload, SourceDocument

logger = logging.getLogger(__name__)

TOOL_NAME = "extract_vendor_prices"

SYSTEM_PROMPT = (
    "You are a procurement data extraction specialist. "
    "Extract vendor pricing data and return it in structured format."
)

EXTRACTION_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": "Extract vendor pricing data from documents",
        "parameters": {
            "type": "object",
            "properties": {
                "items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "item_name": {"type": "string", "description": "Name/description of the item"},
                            "vendor_a_price": {"type": "number", "description": "Price from first vendor"},
                            "vendor_b_price": {"type": "number", "description": "Price from second vendor"},
                            "vendor_c_price": {"type": "number", "description": "Price from third vendor"},
                            "unit": {"type": "string", "description": "Unit of measurement"},
                        },
                        "required": ["item_name"],
                    },
                },
                "vendors": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "contact": {"type": "string"},
                        },
                    },
                },
            },
            "required": ["items"],
        },
    },
}


@dataclass
class ExtractionResult:
    """``ok`` carries a validated payload; the other kinds carry a reason."""
    kind: Literal["ok", "schema_mismatch", "collaborator_error"]
    payload: Optional[ExtractionPayload] = None
    reason: str = ""

    @classmethod
    def ok(cls, payload: ExtractionPayload) -> "ExtractionResult":
        return cls(kind="ok", payload=payload)

    @classmethod
    def schema_mismatch(cls, reason: str) -> "ExtractionResult":
        return cls(kind="schema_mismatch", reason=reason)

    @classmethod
    def collaborator_error(cls, reason: str) -> "ExtractionResult":
        return cls(kind="collaborator_error", reason=reason)

    def unwrap(self) -> ExtractionPayload:
        if self.kind != "ok" or self.payload is None:
            raise ExtractionFailure(self.reason or self.kind)
        return self.payload


def build_prompt(documents: Sequence[SourceDocument]) -> str:
    body = "\n\n".join(f"\n--- {doc.filename} ---\n{doc.content}" for doc in documents)
    return (
        "You are a procurement data extraction assistant. Analyze the following "
        "vendor documents and extract pricing information.\n\n"
        f"Documents:\n{body}\n\n"
        "Extract all items with their prices from each vendor. "
        "Return the data in a structured format."
    )


def parse_response(data: Any) -> ExtractionResult:
    """Validate a chat-completions body carrying the extraction tool call."""
    try:
        call = data["choices"][0]["message"]["tool_calls"][0]["function"]
        arguments = call["arguments"]
    except (KeyError, IndexError, TypeError):
        return ExtractionResult.schema_mismatch("No tool call in extraction response")

    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as exc:
            return ExtractionResult.schema_mismatch(f"Tool arguments are not JSON: {exc}")

    try:
        payload = ExtractionPayload.model_validate(arguments)
    except ValidationError as exc:
        logger.warning("Extraction payload failed validation: %s", exc)
        return ExtractionResult.schema_mismatch(
            f"Extraction payload does not match schema ({exc.error_count()} errors)"
        )
    return ExtractionResult.ok(payload)


class ExtractionClient(GatewayClient):
    """Client for the document extraction collaborator."""

    def extract(self, documents: Sequence[SourceDocument]) -> ExtractionResult:
        if not documents:
            return ExtractionResult.collaborator_error("No documents to extract from")

        payload = {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(documents)},
            ],
            "tools": [EXTRACTION_TOOL],
            "tool_choice": {"type": "function", "function": {"name": TOOL_NAME}},
        }

        logger.info(
            "Calling extraction gateway: %d documents, %d chars",
            len(documents), sum(len(d.content) for d in documents),
        )
        try:
            data = self.chat(payload)
        except httpx.HTTPStatusError as exc:
            return ExtractionResult.collaborator_error(
                f"Extraction gateway error: {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            logger.error("Extraction request failed: %s", exc)
            return ExtractionResult.collaborator_error(f"Extraction request failed: {exc}")
        except ValueError:
            return ExtractionResult.schema_mismatch("Extraction response is not JSON")

        return parse_response(data)
