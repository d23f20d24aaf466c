from hallcup.models.bracket_state import BracketState
from hallcup.models.tournament import Tournament

__all__ = [
    "Tournament",
    "BracketState",
]
