"""Live quiz constants shared by the timer, scoring and leaderboard layers."""

OPTIONS_PER_QUESTION: int = 4
DEFAULT_TIME_LIMIT_SECONDS: int = 15
TICK_INTERVAL_SECONDS: float = 1.0
REVEAL_DELAY_SECONDS: float = 1.5

# Selected index recorded when the countdown runs out. Never a valid option.
TIMEOUT_SENTINEL: int = -1

BASE_POINTS: int = 1000
SPEED_BONUS_POINTS: int = 500

LEADERBOARD_SIZE: int = 10

# Plays nobody has polled for this long are dropped, including unrecorded results.
PLAY_IDLE_SECONDS: int = 30 * 60
