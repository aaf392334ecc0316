"""
Response caching for non-streaming chat completions.

Only successful responses are stored. Entries expire a fixed time after they
were stored, or earlier when they go unread for half that time.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from .models import ChatCompletionRequest, MistralResponse

CACHE_KEY_PREFIX = "mistral:chat:"
DEFAULT_EXPIRATION_MINUTES = 5.0


class ChatCompletionCache(Protocol):
    """
    Interface for caching chat completion responses by request.
    """

    async def get(self, request: ChatCompletionRequest) -> MistralResponse | None:
        """
        Return the cached response for an equivalent request, or None.
        """
        ...

    async def set(
        self, request: ChatCompletionRequest, response: MistralResponse
    ) -> None:
        """
        Store a response. Implementations may ignore unsuccessful responses.
        """
        ...

    def clear(self) -> None:
        """
        Drop every cached entry.
        """
        ...


def cache_key(request: ChatCompletionRequest) -> str:
    """Deterministic key over the request fields that affect the answer."""
    key_data = {
        "model": request.model,
        "messages": [
            message.model_dump(mode="json", include={"role", "content"})
            for message in request.messages
        ],
        "temperature": request.temperature,
        "top_p": request.top_p,
        "max_tokens": request.max_tokens,
        "safe_prompt": request.safe_prompt,
        "random_seed": request.random_seed,
    }
    encoded = json.dumps(key_data, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(encoded.encode("utf-8")).digest()
    return CACHE_KEY_PREFIX + base64.b64encode(digest).decode("ascii")


@dataclass
class CacheEntry:
    response: MistralResponse
    stored_at: datetime
    last_access: datetime


class MemoryChatCompletionCache:
    """
    In-process cache with absolute and sliding expiration.

    Cached responses are copied on the way in and out so callers cannot
    mutate stored entries.
    """

    def __init__(
        self,
        expiration_minutes: float = DEFAULT_EXPIRATION_MINUTES,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if expiration_minutes <= 0:
            raise ValueError("Cache expiration must be greater than 0.")
        self.expiration = timedelta(minutes=expiration_minutes)
        self.sliding_expiration = self.expiration / 2
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def get(self, request: ChatCompletionRequest) -> MistralResponse | None:
        async with self._lock:
            now = self._clock()
            self._clean_expired_entries(now)

            entry = self._entries.get(cache_key(request))
            if entry is None:
                self.misses += 1
                return None

            entry.last_access = now
            self.hits += 1
            return entry.response.model_copy(deep=True)

    async def set(
        self, request: ChatCompletionRequest, response: MistralResponse
    ) -> None:
        if not response.is_success:
            return

        async with self._lock:
            now = self._clock()
            self._entries[cache_key(request)] = CacheEntry(
                response=response.model_copy(deep=True),
                stored_at=now,
                last_access=now,
            )

    def clear(self) -> None:
        self._entries.clear()

    def _is_expired(self, entry: CacheEntry, now: datetime) -> bool:
        return (
            now - entry.stored_at >= self.expiration
            or now - entry.last_access >= self.sliding_expiration
        )

    def _clean_expired_entries(self, now: datetime) -> None:
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]

    def get_statistics(self) -> dict[str, int]:
        """Get cache statistics for monitoring."""
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        return len(self._entries)
