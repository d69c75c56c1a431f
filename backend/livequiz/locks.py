from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")

USER = "user"
GAME = "game"
SESSION = "session"


class LockCoordinator:
    """One lock per resource domain.

    Callers hold exactly one domain at a time. ``asyncio.Lock`` wakes waiters
    in arrival order and is not reentrant.
    """

    def __init__(self):
        self.locks: Dict[str, asyncio.Lock] = {
            USER: asyncio.Lock(),
            GAME: asyncio.Lock(),
            SESSION: asyncio.Lock(),
        }

    def __call__(self, domain: str) -> asyncio.Lock:
        """Look a domain lock up by name."""
        return self.locks[domain]

    @property
    def user(self) -> asyncio.Lock:
        return self.locks[USER]

    @property
    def game(self) -> asyncio.Lock:
        return self.locks[GAME]

    @property
    def session(self) -> asyncio.Lock:
        return self.locks[SESSION]

    async def run(self, domain: str, body: Callable[[], Awaitable[T]]) -> T:
        """Callback-style entry point: await ``body()`` while holding ``domain``.

        The controller holds domains with ``async with``; this is for callers that
        hand over a coroutine function instead. The lock is released whatever
        ``body`` raises.
        """
        async with self.locks[domain]:
            return await body()
