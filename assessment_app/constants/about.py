"""Static metadata describing ELC Assessment."""

APP_NAME = "ELC Assessment"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ELC Assessment runs the public CEFR placement test with oral-test booking "
    "and the live quiz game with its daily and all-time leaderboards."
)

HELP_TEXT = (
    "Live quizzes can be authored as plain text and imported through the admin API:\n\n"
    "TITLE: Grammar Warm-up\n"
    "DESCRIPTION: Five quick questions\n\n"
    "Q: She ___ to school every day.\n"
    "A: go\nB: goes\nC: going\nD: gone\n"
    "CORRECT: B\nTIMELIMIT: 15\n\n"
    "Q: Pick the past tense of *eat*.\n"
    "A: eated\nB: ate\nC: eaten\nD: eats\n"
    "CORRECT: B"
)
