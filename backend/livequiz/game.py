from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .auth import TokenRegistry, hash_password, verify_password
from .db import Store
from .errors import AccessError, InputError
from .locks import LockCoordinator
from .models import Admin, Answer, Game, Player, Session
from .timers import SessionTimers
from .utils import SESSION_ID_MAX, new_id, now_iso

logger = logging.getLogger(__name__)

GAME_ID_KEYS = ("id", "gameId", "gameID")
DERIVED_GAME_KEYS = GAME_ID_KEYS + ("active", "oldSessions")


def _as_number(key: str) -> int | str:
    return int(key) if key.isdigit() else key


def is_correct(submitted: Iterable[str], expected: Iterable[str]) -> bool:
    """Compare both answer lists after sorting; duplicates count."""
    return sorted(submitted) == sorted(expected)


class GameController:
    def __init__(self, store: Store, locks: Optional[LockCoordinator] = None):
        self.store = store
        self.locks = locks or LockCoordinator()
        self.timers = SessionTimers(store, self.locks)
        self.tokens = TokenRegistry()

    # ------------------------------------------------------------------
    # admins

    async def register(self, email: str, password: str, name: str) -> str:
        async with self.locks.user:
            if not email or not password or not name:
                raise InputError("Email, password and name must be supplied")
            if email in self.store.admins:
                raise InputError("Email address already registered")
            self.store.admins[email] = Admin(
                name=name, password=hash_password(password), session_active=True
            )
            logger.info("[admin-register] email=%s", email)
            return self.tokens.issue(email)

    async def login(self, email: str, password: str) -> str:
        async with self.locks.user:
            admin = self.store.admins.get(email) if email else None
            if admin is None or not password or not verify_password(password, admin.password):
                raise InputError("Invalid username or password")
            admin.session_active = True
            return self.tokens.issue(email)

    async def logout(self, email: str) -> None:
        async with self.locks.user:
            admin = self.store.admins.get(email)
            if admin is None:
                raise AccessError("Invalid token")
            admin.session_active = False
            self.tokens.revoke(email)

    def email_from_authorization(self, authorization: Optional[str]) -> str:
        token = (authorization or "").replace("Bearer ", "", 1).strip()
        email = self.tokens.resolve(token) if token else None
        if email is None or email not in self.store.admins:
            raise AccessError("Invalid token")
        return email

    # ------------------------------------------------------------------
    # games

    async def assert_owns_game(self, email: str, game_id: str) -> None:
        async with self.locks.game:
            self._assert_owns_game(email, str(game_id))

    def _assert_owns_game(self, email: str, game_id: str) -> None:
        game = self.store.games.get(game_id)
        if game is None:
            raise InputError("Invalid game ID")
        if game.owner != email:
            raise AccessError("Admin does not own this Game")

    async def assert_owns_session(self, email: str, session_id: str) -> None:
        async with self.locks.session:
            session = self.store.sessions.get(str(session_id))
            if session is None:
                raise InputError("Invalid session ID")
            game_id = session.game_id
        await self.assert_owns_game(email, game_id)

    async def get_games_from_admin(self, email: str) -> List[Dict[str, Any]]:
        async with self.locks.game:
            return [
                self._game_out(game_id, game)
                for game_id, game in self.store.games.items()
                if game.owner == email
            ]

    def _game_out(self, game_id: str, game: Game) -> Dict[str, Any]:
        active = self.store.active_session_id(game_id)
        return {
            **game.model_dump(by_alias=True),
            "id": _as_number(game_id),
            "active": int(active) if active is not None else None,
            "oldSessions": [int(s) for s in self.store.inactive_session_ids(game_id)],
        }

    async def update_games_from_admin(self, games: Optional[List[Dict[str, Any]]], email: str) -> None:
        async with self.locks.game:
            if games is None:
                raise InputError("Games must be supplied")
            for requested in games:
                if not isinstance(requested, dict) or not requested.get("owner"):
                    raise InputError("Game must have owner")
                if requested["owner"] != email:
                    raise InputError("Cannot modify games owned by other admins")

            others = {gid: g for gid, g in self.store.games.items() if g.owner != email}
            owned = set(self.store.games) - set(others)
            # ids of deleted games still name their old sessions
            orphaned = {s.game_id for s in self.store.sessions.values()} - owned
            replaced: Dict[str, Game] = {}
            for requested in games:
                requested_id = next(
                    (requested[k] for k in GAME_ID_KEYS if requested.get(k) not in (None, "")), None
                )
                if requested_id is not None and str(requested_id) not in set(others) | orphaned:
                    game_id = str(requested_id)
                else:
                    game_id = new_id(set(self.store.games) | set(replaced) | orphaned)
                payload = {k: v for k, v in requested.items() if k not in DERIVED_GAME_KEYS}
                try:
                    replaced[game_id] = Game.model_validate(payload)
                except ValidationError as exc:
                    raise InputError(f"Invalid game: {exc.errors()[0]['msg']}") from exc

            self.store.games = {**replaced, **others}
            logger.info("[games-update] owner=%s games=%s", email, len(replaced))

    # ------------------------------------------------------------------
    # session lifecycle (admin)

    def _active_session(self, game_id: str) -> tuple[str, Session]:
        session_id = self.store.active_session_id(game_id)
        if session_id is None:
            raise InputError("Game has no active session")
        return session_id, self.store.sessions[session_id]

    async def start_game(self, game_id: str) -> str:
        game_id = str(game_id)
        async with self.locks.game:
            game = self.store.games.get(game_id)
            if game is None:
                raise InputError("Invalid game ID")
            if self.store.active_session_ids(game_id):
                raise InputError("Game already has active session")
            session_id = new_id(self.store.sessions.keys(), SESSION_ID_MAX)
            self.store.sessions[session_id] = Session(
                game_id=game_id,
                questions=[q.model_copy(deep=True) for q in game.questions],
            )
            logger.info("[session-start] game=%s session=%s", game_id, session_id)
            return session_id

    async def advance_game(self, game_id: str) -> int:
        async with self.locks.game:
            session_id, session = self._active_session(str(game_id))
            position = session.position + 1
            total = len(session.questions)
            duration = None
            if position < total:
                duration = session.questions[position].duration
                if duration is None:
                    raise InputError("Question duration not found")

            session.position = position
            session.answer_available = False
            session.iso_time_last_question_started = now_iso()
            if position >= total:
                self._end(session_id, session)
            else:
                self.timers.arm(session_id, duration)
            return position

    async def end_game(self, game_id: str) -> None:
        async with self.locks.game:
            session_id, session = self._active_session(str(game_id))
            self._end(session_id, session)

    def _end(self, session_id: str, session: Session) -> None:
        self.timers.cancel(session_id)
        session.active = False
        logger.info("[session-end] session=%s position=%s", session_id, session.position)

    async def mutate_game(self, game_id: str, mutation_type: Optional[str]) -> Dict[str, Any]:
        mutation = (mutation_type or "").upper()
        try:
            if mutation == "START":
                return {"status": "started", "sessionId": await self.start_game(game_id)}
            if mutation == "ADVANCE":
                return {"status": "advanced", "position": await self.advance_game(game_id)}
            if mutation == "END":
                await self.end_game(game_id)
                return {"status": "ended"}
        except (InputError, AccessError):
            raise
        except Exception as exc:
            raise RuntimeError(f"Failed to mutate game: {exc}") from exc
        raise InputError("Invalid mutation type")

    # ------------------------------------------------------------------
    # sessions (admin views)

    def _session(self, session_id: str) -> Session:
        session = self.store.sessions.get(str(session_id))
        if session is None:
            raise InputError("Invalid session ID")
        return session

    async def session_status(self, session_id: str) -> Dict[str, Any]:
        async with self.locks.session:
            session = self._session(session_id)
            return {
                "active": session.active,
                "answerAvailable": session.answer_available,
                "isoTimeLastQuestionStarted": session.iso_time_last_question_started,
                "position": session.position,
                "questions": [q.model_dump(by_alias=True) for q in session.questions],
                "players": [p.name for p in session.players.values()],
            }

    async def session_results(self, session_id: str) -> List[Dict[str, Any]]:
        async with self.locks.session:
            session = self._session(session_id)
            if session.active:
                raise InputError("Cannot get results for active session")
            return [p.model_dump(by_alias=True) for p in session.players.values()]

    # ------------------------------------------------------------------
    # players

    def _player_session(self, player_id: str) -> tuple[str, Session]:
        session_id = self.store.session_id_for_player(str(player_id))
        if session_id is None:
            raise InputError("Player ID does not refer to valid player id")
        return session_id, self.store.sessions[session_id]

    def _active_player_session(self, player_id: str) -> Session:
        _, session = self._player_session(player_id)
        if not session.active:
            raise InputError("Session ID is not an active session")
        return session

    async def player_join(self, name: Optional[str], session_id: str) -> int:
        async with self.locks.session:
            if not name:
                raise InputError("Name must be supplied")
            session = self.store.sessions.get(str(session_id))
            if session is None or not session.active:
                raise InputError("Session ID is not an active session")
            if session.position >= 0:
                raise InputError("Session has already begun")
            player_id = new_id(self.store.player_ids())
            session.players[player_id] = Player(
                name=name, answers=[Answer() for _ in session.questions]
            )
            return int(player_id)

    async def has_started(self, player_id: str) -> bool:
        async with self.locks.session:
            session = self._active_player_session(player_id)
            return session.iso_time_last_question_started is not None

    async def get_question(self, player_id: str) -> Dict[str, Any]:
        async with self.locks.session:
            session = self._active_player_session(player_id)
            if session.position == -1:
                raise InputError("Session has not started yet")
            if not 0 <= session.position < len(session.questions):
                raise InputError("Question not found")
            question = session.questions[session.position].model_dump(by_alias=True)
            question.pop("correctAnswers", None)
            question["isoTimeLastQuestionStarted"] = session.iso_time_last_question_started
            return question

    async def get_answers(self, player_id: str) -> List[str]:
        async with self.locks.session:
            session = self._active_player_session(player_id)
            if session.position == -1:
                raise InputError("Session has not started yet")
            if not session.answer_available:
                raise InputError("Answers are not available yet")
            if not 0 <= session.position < len(session.questions):
                raise InputError("Question not found")
            return list(session.questions[session.position].correct_answers)

    async def submit_answers(self, player_id: str, answers: Optional[List[str]]) -> None:
        async with self.locks.session:
            if not answers:
                raise InputError("Answers must be provided")
            session = self._active_player_session(player_id)
            if session.position == -1:
                raise InputError("Session has not started yet")
            if session.answer_available:
                raise InputError("Can't answer question once answer is available")
            if not 0 <= session.position < len(session.questions):
                raise InputError("Question not found")
            question = session.questions[session.position]
            session.players[str(player_id)].answers[session.position] = Answer(
                question_started_at=session.iso_time_last_question_started,
                answered_at=now_iso(),
                answers=list(answers),
                correct=is_correct(answers, question.correct_answers),
            )

    async def get_results(self, player_id: str) -> List[Dict[str, Any]]:
        async with self.locks.session:
            _, session = self._player_session(player_id)
            if session.active:
                raise InputError("Session is ongoing, cannot get results yet")
            if session.position == -1:
                raise InputError("Session has not started yet")
            player = session.players[str(player_id)]
            return [a.model_dump(by_alias=True) for a in player.answers]
