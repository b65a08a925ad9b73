"""Provider adapters for chat-completion APIs."""

from .base import APIProviderAdapter, AsyncBaseAPIAdapter
from .openai_compatible import OpenAICompatibleAdapter, chat_message, image_part, text_part

__all__ = [
    "APIProviderAdapter",
    "AsyncBaseAPIAdapter",
    "OpenAICompatibleAdapter",
    "chat_message",
    "image_part",
    "text_part",
]
