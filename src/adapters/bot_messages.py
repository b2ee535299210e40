"""User-facing bot replies.

Keeping the texts here prevents drift between the command handlers and makes
them easy to adjust in one place.
"""

from __future__ import annotations

# Telegram rejects messages longer than this.
MAX_MESSAGE_CHARS = 4096

COMMANDS = ("start", "getnews")

WELCOME = "Welcome! You are now subscribed to the news bot."
ALREADY_SUBSCRIBED = "You are already subscribed to the news bot."
NO_NEWS = "Sorry, there is no news available yet."
STORE_ERROR = "Sorry, something went wrong. Please try again later."


def unknown_command() -> str:
    available = ", ".join(f"/{name}" for name in COMMANDS)
    return f"Unknown command. Available commands: {available}"


def fit_message(text: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    """Clip text to the Telegram limit, marking the cut with an ellipsis."""

    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"
