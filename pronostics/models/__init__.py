from pronostics import db  # noqa: F401 - imported for model imports

from .bet import Bet
from .competition import Competition
from .competition_user import CompetitionUser
from .game import Game
from .team import Team
from .user import User

__all__ = [
    "User",
    "Team",
    "Competition",
    "CompetitionUser",
    "Game",
    "Bet",
]
