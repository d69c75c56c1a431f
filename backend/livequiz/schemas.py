from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class RegisterIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TokenOut(BaseModel):
    token: str


class GamesIn(BaseModel):
    games: Optional[List[Dict[str, Any]]] = None


class MutateIn(BaseModel):
    mutationType: Optional[str] = None


class JoinIn(BaseModel):
    name: Optional[str] = None


class AnswersIn(BaseModel):
    answers: Optional[List[str]] = None


class JoinOut(BaseModel):
    playerId: int
