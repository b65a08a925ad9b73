"""Base adapter classes for API providers."""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, NoReturn, Optional

import aiohttp

from tabpilot.agents.exceptions import ApiError
from tabpilot.models.response_models import HarmonizedResponse

logger = logging.getLogger(__name__)


class APIProviderAdapter(ABC):
    """Abstract base class for API provider adapters"""

    provider: str = "unknown"

    def __init__(self, model_name: str, **provider_config):
        self.model_name = model_name
        # Each adapter handles its own config in __init__

    # Abstract methods that each provider must implement
    @abstractmethod
    def get_headers(self) -> Dict[str, str]:
        """Return provider-specific headers"""
        pass

    @abstractmethod
    def format_request_payload(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        """Convert standard format to provider-specific request payload"""
        pass

    @abstractmethod
    def get_endpoint_url(self) -> str:
        """Return provider-specific endpoint URL"""
        pass

    @abstractmethod
    def handle_api_error(
        self,
        error: Optional[BaseException] = None,
        status: Optional[int] = None,
        body: Any = None,
    ) -> NoReturn:
        """Translate a transport error or non-200 response into ``ApiError`` and raise it"""
        pass

    @abstractmethod
    def harmonize_response(
        self, raw_response: Dict[str, Any], request_start_time: float
    ) -> HarmonizedResponse:
        """
        Convert provider response to standardized Pydantic model with validation.

        Args:
            raw_response: Original API response
            request_start_time: Unix timestamp when request started

        Returns:
            HarmonizedResponse: Validated Pydantic model with standardized structure
        """
        pass

    def extract_stream_delta(self, event: Dict[str, Any]) -> str:
        """Return the text carried by one decoded streaming event."""
        return ""


class AsyncBaseAPIAdapter(APIProviderAdapter):
    """
    Async adapter using aiohttp.

    Requests are made once; retry policy belongs to the caller, which knows
    whether an ``ApiError`` is worth retrying (see ``ApiError.is_retriable``).
    """

    def __init__(self, *args, timeout: float = 120.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """
        Ensure aiohttp session exists.

        Creates a persistent session for connection pooling and efficiency.
        """
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,  # Total connection limit
                limit_per_host=30,  # Per-host connection limit
                ttl_dns_cache=300  # DNS cache timeout
            )
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    @staticmethod
    async def _read_error_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        try:
            return json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return text

    async def arun(self, messages: List[Dict], **kwargs) -> HarmonizedResponse:
        """
        Execute a single non-streaming request.

        Raises:
            ApiError: For non-200 responses and network failures
        """
        request_start_time = time.time()
        headers = self.get_headers()
        payload = self.format_request_payload(messages, **kwargs)
        url = self.get_endpoint_url()

        session = await self._ensure_session()
        try:
            async with session.post(
                url,
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    body = await self._read_error_body(response)
                    self.handle_api_error(status=response.status, body=body)
                try:
                    raw_response = await response.json(content_type=None)
                except ValueError:
                    raw_response = None
                if not isinstance(raw_response, dict):
                    # Proxies can answer 200 with an HTML page
                    self.handle_api_error(
                        status=response.status,
                        body={"error": {"message": "Invalid JSON response"}},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.handle_api_error(error=e)

        return self.harmonize_response(raw_response, request_start_time)

    async def astream(self, messages: List[Dict], **kwargs) -> AsyncIterator[str]:
        """
        Execute a streaming request and yield text deltas as they arrive.

        The response is read as server-sent events: ``data: {...}`` lines,
        terminated by ``data: [DONE]``.

        Raises:
            ApiError: For non-200 responses, error events and network failures
        """
        headers = self.get_headers()
        payload = self.format_request_payload(messages, **kwargs)
        payload["stream"] = True
        url = self.get_endpoint_url()

        session = await self._ensure_session()
        try:
            async with session.post(
                url,
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    body = await self._read_error_body(response)
                    self.handle_api_error(status=response.status, body=body)

                async for raw_line in response.content:
                    line = raw_line.decode("utf-8", errors="replace").strip()
                    if not line.startswith("data:"):
                        continue

                    data = line[5:].strip()
                    if data == "[DONE]":
                        break

                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed stream event: {data[:200]}")
                        continue

                    if isinstance(event, dict) and event.get("error"):
                        self.handle_api_error(body=event)

                    delta = self.extract_stream_delta(event)
                    if delta:
                        yield delta
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.handle_api_error(error=e)

    async def cleanup(self):
        """
        Clean up aiohttp session on shutdown.

        Important for proper resource cleanup and avoiding warnings.
        """
        if self._session and not self._session.closed:
            await self._session.close()
