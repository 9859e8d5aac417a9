"""Shared HTTP plumbing for the OpenAI-compatible LLM gateway."""
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class GatewayClient:
    """Thin synchronous client for a chat-completions endpoint."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url or settings.LLM_API_URL
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS
        self.client = httpx.Client(timeout=self.timeout, transport=transport)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST *payload* and return the decoded JSON body.

        Raises ``httpx.HTTPError`` on transport failures and non-2xx answers,
        ``ValueError`` when the body is not JSON.
        """
        payload = {"model": self.model, **payload}
        response = self.client.post(self.api_url, json=payload, headers=self._headers())
        if response.is_error:
            logger.error("Gateway error %s: %s", response.status_code, response.text[:500])
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self.client.close()
