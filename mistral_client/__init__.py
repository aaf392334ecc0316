"""
Async client for the Mistral AI API with an incremental stream decoder.
"""

from __future__ import annotations

from .client import MistralClient, parse_error, parse_response
from .config import ClientOptions, Configuration
from .llm.caching import ChatCompletionCache, MemoryChatCompletionCache
from .llm.streaming import decode_stream, decode_stream_collect
from .session import ChatSession

__all__ = [
    "ChatCompletionCache",
    "ChatSession",
    "ClientOptions",
    "Configuration",
    "MemoryChatCompletionCache",
    "MistralClient",
    "decode_stream",
    "decode_stream_collect",
    "parse_error",
    "parse_response",
]
