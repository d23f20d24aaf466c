# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from hallcup.models.bracket_state import BracketState  # noqa: F401
from hallcup.models.tournament import Tournament  # noqa: F401
