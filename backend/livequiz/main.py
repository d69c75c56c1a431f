import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import JsonFileSink, Settings, get_settings
from .errors import AccessError, InputError
from .game import GameController
from .schemas import (
    AnswersIn,
    GamesIn,
    JoinIn,
    JoinOut,
    LoginIn,
    MutateIn,
    RegisterIn,
    TokenOut,
)

logger = logging.getLogger(__name__)


def get_controller(request: Request) -> GameController:
    return request.app.state.controller


def require_admin(
    authorization: Optional[str] = Header(default=None),
    controller: GameController = Depends(get_controller),
) -> str:
    return controller.email_from_authorization(authorization)


async def persist(request: Request) -> None:
    await request.app.state.sink.save(request.app.state.controller.store)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    sink = JsonFileSink(settings.DATABASE_FILE)
    controller = GameController(sink.load())

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        controller.timers.cancel_all()

    app = FastAPI(title="LiveQuiz API", lifespan=lifespan)
    app.state.controller = controller
    app.state.sink = sink

    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InputError)
    async def input_error(_: Request, exc: InputError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def invalid_body(_: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": detail})

    @app.exception_handler(AccessError)
    async def access_error(_: Request, exc: AccessError):
        return JSONResponse(status_code=403, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def system_error(_: Request, exc: Exception):
        logger.exception("Unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "A system error occurred"})

    # ---------------------------------------------------------------- admin

    @app.post("/admin/auth/register", response_model=TokenOut)
    async def register(request: Request, payload: Optional[RegisterIn] = None):
        payload = payload or RegisterIn()
        token = await controller.register(payload.email, payload.password, payload.name)
        await persist(request)
        return TokenOut(token=token)

    @app.post("/admin/auth/login", response_model=TokenOut)
    async def login(request: Request, payload: Optional[LoginIn] = None):
        payload = payload or LoginIn()
        token = await controller.login(payload.email, payload.password)
        await persist(request)
        return TokenOut(token=token)

    @app.post("/admin/auth/logout")
    async def logout(request: Request, email: str = Depends(require_admin)):
        await controller.logout(email)
        await persist(request)
        return {}

    @app.get("/admin/games")
    async def list_games(email: str = Depends(require_admin)):
        return {"games": await controller.get_games_from_admin(email)}

    @app.put("/admin/games")
    async def update_games(
        request: Request, payload: Optional[GamesIn] = None, email: str = Depends(require_admin)
    ):
        games = payload.games if payload else None
        await controller.update_games_from_admin(games, email)
        await persist(request)
        return {}

    @app.post("/admin/game/{game_id}/mutate")
    async def mutate(
        request: Request,
        game_id: str,
        payload: Optional[MutateIn] = None,
        email: str = Depends(require_admin),
    ):
        await controller.assert_owns_game(email, game_id)
        data = await controller.mutate_game(game_id, payload.mutationType if payload else None)
        await persist(request)
        return {"data": data}

    @app.get("/admin/session/{session_id}/status")
    async def session_status(session_id: str, email: str = Depends(require_admin)):
        await controller.assert_owns_session(email, session_id)
        return {"results": await controller.session_status(session_id)}

    @app.get("/admin/session/{session_id}/results")
    async def session_results(session_id: str, email: str = Depends(require_admin)):
        await controller.assert_owns_session(email, session_id)
        return {"results": await controller.session_results(session_id)}

    # ----------------------------------------------------------------- play

    @app.post("/play/join/{session_id}", response_model=JoinOut)
    async def join(request: Request, session_id: str, payload: Optional[JoinIn] = None):
        player_id = await controller.player_join(payload.name if payload else None, session_id)
        await persist(request)
        return JoinOut(playerId=player_id)

    @app.get("/play/{player_id}/status")
    async def player_status(player_id: str):
        return {"started": await controller.has_started(player_id)}

    @app.get("/play/{player_id}/question")
    async def question(player_id: str):
        return {"question": await controller.get_question(player_id)}

    @app.get("/play/{player_id}/answer")
    async def answers(player_id: str):
        return {"answers": await controller.get_answers(player_id)}

    @app.put("/play/{player_id}/answer")
    async def submit(request: Request, player_id: str, payload: Optional[AnswersIn] = None):
        await controller.submit_answers(player_id, payload.answers if payload else None)
        await persist(request)
        return {}

    @app.get("/play/{player_id}/results")
    async def results(player_id: str):
        return await controller.get_results(player_id)

    return app
