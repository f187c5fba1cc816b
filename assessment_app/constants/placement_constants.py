"""Placement test constants."""

SESSION_ID_PREFIX: str = "FT"
SESSION_ID_NAME_CHARS: int = 3
SESSION_ID_TIMESTAMP_DIGITS: int = 6

MIN_PLACEMENT_OPTIONS: int = 2

# Unfinished sessions untouched for this long are dropped from memory.
PLACEMENT_SESSION_IDLE_SECONDS: int = 2 * 60 * 60
