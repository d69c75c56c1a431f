from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from .db import Store
from .locks import LockCoordinator

logger = logging.getLogger(__name__)


class SessionTimers:
    """Reveal the answers of a session's current question once its time is up."""

    def __init__(self, store: Store, locks: LockCoordinator):
        self.store = store
        self.locks = locks
        self._tasks: Dict[str, asyncio.Task] = {}

    def arm(self, session_id: str, duration: float) -> None:
        self.cancel(session_id)
        logger.info("[timer-set] session=%s duration=%ss", session_id, duration)
        self._tasks[session_id] = asyncio.create_task(self._fire(session_id, duration))

    def cancel(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()
            logger.info("[timer-cancel] session=%s", session_id)

    def cancel_all(self) -> None:
        for session_id in list(self._tasks):
            self.cancel(session_id)

    def pending(self, session_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(session_id)

    async def _fire(self, session_id: str, duration: float) -> None:
        await asyncio.sleep(max(duration, 0))
        async with self.locks.session:
            if self._tasks.get(session_id) is not asyncio.current_task():
                return
            del self._tasks[session_id]
            session = self.store.sessions.get(session_id)
            if session is None or not session.active:
                logger.info("[timer-abort] session=%s no longer active", session_id)
                return
            session.answer_available = True
            logger.info("[timer-fire] session=%s position=%s", session_id, session.position)
