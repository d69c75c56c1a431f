from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Admin(CamelModel):
    name: Optional[str] = None
    password: str  # bcrypt hash, or plaintext in older files
    session_active: bool = False


class Question(CamelModel):
    # display fields (text, options, media...) are kept verbatim
    model_config = ConfigDict(extra="allow")

    duration: Optional[Union[int, float]] = None
    correct_answers: List[str] = Field(default_factory=list)


class Game(CamelModel):
    model_config = ConfigDict(extra="allow")

    owner: str
    name: Optional[str] = None
    thumbnail: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)


class Answer(CamelModel):
    question_started_at: Optional[str] = None
    answered_at: Optional[str] = None
    answers: List[str] = Field(default_factory=list)
    correct: bool = False


class Player(CamelModel):
    name: str
    answers: List[Answer] = Field(default_factory=list)


# position: -1 before the first advance, len(questions) once exhausted
class Session(CamelModel):
    game_id: str
    position: int = -1
    iso_time_last_question_started: Optional[str] = None
    players: Dict[str, Player] = Field(default_factory=dict)
    questions: List[Question] = Field(default_factory=list)
    active: bool = True
    answer_available: bool = False
