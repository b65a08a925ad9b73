"""
Adapter for OpenAI-compatible ``/chat/completions`` endpoints.

Used for both the vision model and the reasoning model; the two only differ
in base URL, key and the extra payload fields they send.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, NoReturn, Optional, Union

import aiohttp

from tabpilot.agents.exceptions import APIErrorClassification, ApiError
from tabpilot.models.adapters.base import AsyncBaseAPIAdapter
from tabpilot.models.response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    UsageInfo,
)

logger = logging.getLogger(__name__)

# Payload keys passed through to the API when given as kwargs
PASSTHROUGH_PARAMS = (
    "temperature",
    "max_completion_tokens",
    "max_tokens",
    "frequency_penalty",
    "response_format",
    "tools",
    "tool_choice",
    "parallel_tool_calls",
)


def text_part(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def image_part(base64_data: str, mime_type: str = "image/jpeg") -> Dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{base64_data}"}}


def chat_message(content: Union[str, List[Dict[str, Any]]], role: str = "user") -> Dict[str, Any]:
    return {"role": role, "content": content}


class OpenAICompatibleAdapter(AsyncBaseAPIAdapter):
    """Chat-completions adapter for any OpenAI-compatible provider."""

    def __init__(
        self,
        model_name: str,
        base_url: str,
        api_key: Optional[str] = None,
        provider: str = "openai",
        default_params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(model_name, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.provider = provider
        self.default_params = dict(default_params or {})

    def get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def get_endpoint_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def format_request_payload(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model_name, "messages": messages}
        params = {**self.default_params, **kwargs}
        for key in PASSTHROUGH_PARAMS:
            if params.get(key) is not None:
                payload[key] = params[key]
        return payload

    def handle_api_error(
        self,
        error: Optional[BaseException] = None,
        status: Optional[int] = None,
        body: Any = None,
    ) -> NoReturn:
        if error is not None:
            if isinstance(error, asyncio.TimeoutError):
                message = f"Request to {self.provider} timed out after {self.timeout:.0f}s"
            else:
                message = f"Network error calling {self.provider}: {error}"
            logger.error(message)
            raise ApiError(
                message,
                status=None,
                provider=self.provider,
                classification=APIErrorClassification.NETWORK_ERROR.value,
            ) from error

        api_error = ApiError.from_response(status, body, provider=self.provider)
        logger.error(f"{self.provider} API error (status {status}): {api_error.message}")
        raise api_error

    def extract_stream_delta(self, event: Dict[str, Any]) -> str:
        parts = []
        for choice in event.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if content:
                parts.append(content)
        return "".join(parts)

    def harmonize_response(
        self, raw_response: Dict[str, Any], request_start_time: float
    ) -> HarmonizedResponse:
        """Convert a chat-completions response to the standardized model"""
        choices = raw_response.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            tool_calls.append(
                ToolCall(
                    id=tc.get("id", ""),
                    type=tc.get("type", "function"),
                    function=tc.get("function", {}),
                )
            )

        usage_data = raw_response.get("usage") or {}
        usage = None
        if usage_data:
            usage = UsageInfo(
                prompt_tokens=usage_data.get("prompt_tokens"),
                completion_tokens=usage_data.get("completion_tokens"),
                total_tokens=usage_data.get("total_tokens"),
            )

        metadata = ResponseMetadata(
            provider=self.provider,
            model=raw_response.get("model") or self.model_name,
            request_id=raw_response.get("id"),
            created=raw_response.get("created"),
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            response_time=time.time() - request_start_time,
        )

        return HarmonizedResponse(
            role=message.get("role") or "assistant",
            content=message.get("content"),
            tool_calls=tool_calls,
            reasoning=message.get("reasoning"),
            metadata=metadata,
        )
