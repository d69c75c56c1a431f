from __future__ import annotations

import asyncio
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import PersistenceError
from .models import Admin, Game, Session

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_FILE: str = "database.json"
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


class Store:
    """All admins, games and sessions of the process, keyed by id."""

    def __init__(self):
        self.admins: Dict[str, Admin] = {}
        self.games: Dict[str, Game] = {}
        self.sessions: Dict[str, Session] = {}

    def clear(self) -> None:
        self.admins.clear()
        self.games.clear()
        self.sessions.clear()

    def player_ids(self) -> set[str]:
        return {pid for s in self.sessions.values() for pid in s.players}

    def session_id_for_player(self, player_id: str) -> Optional[str]:
        for session_id, session in self.sessions.items():
            if player_id in session.players:
                return session_id
        return None

    def active_session_ids(self, game_id: str) -> List[str]:
        return [sid for sid, s in self.sessions.items() if s.game_id == game_id and s.active]

    def active_session_id(self, game_id: str) -> Optional[str]:
        """The single active session of a game; ``None`` if there is none or several."""
        active = self.active_session_ids(game_id)
        return active[0] if len(active) == 1 else None

    def inactive_session_ids(self, game_id: str) -> List[str]:
        return [sid for sid, s in self.sessions.items() if s.game_id == game_id and not s.active]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "admins": {k: v.model_dump(by_alias=True) for k, v in self.admins.items()},
            "games": {k: v.model_dump(by_alias=True) for k, v in self.games.items()},
            "sessions": {k: v.model_dump(by_alias=True) for k, v in self.sessions.items()},
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "Store":
        store = cls()
        store.admins = {k: Admin.model_validate(v) for k, v in (data.get("admins") or {}).items()}
        store.games = {k: Game.model_validate(v) for k, v in (data.get("games") or {}).items()}
        store.sessions = {k: Session.model_validate(v) for k, v in (data.get("sessions") or {}).items()}
        return store


class JsonFileSink:
    """Write store snapshots to a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def load(self) -> Store:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Store.from_snapshot(data)
        except (OSError, ValueError, AttributeError):
            logger.warning("No usable database found at %s, creating a new one", self.path)
            store = Store()
            try:
                self._write(store.snapshot())
            except PersistenceError:
                logger.exception("Could not create %s", self.path)
            return store

    async def save(self, store: Store) -> None:
        # snapshot is taken before the first await so it is consistent
        data = store.snapshot()
        async with self._lock:
            await asyncio.to_thread(self._write, data)

    async def reset(self, store: Store) -> None:
        store.clear()
        await self.save(store)

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except (OSError, TypeError) as exc:
            raise PersistenceError("Writing to database failed") from exc
