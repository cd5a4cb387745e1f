# src/runstream/telemetry/logger/processors.py

"""
Custom structlog processors.
"""

import logging
from typing import Any

from structlog.typing import EventDict

LOG_EMOJIS: dict[int, str] = {
    logging.DEBUG: "🐛",
    logging.INFO: "ℹ️",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "💥",
}


def add_emoji_processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Prefixes the event with an emoji matching its level."""
    level = logging.getLevelName(str(event_dict.get("level", "info")).upper())
    emoji = LOG_EMOJIS.get(level) if isinstance(level, int) else None
    event = event_dict.get("event")
    if emoji and isinstance(event, str) and not event.startswith(emoji):
        event_dict["event"] = f"{emoji} {event}"
    return event_dict


def remove_extra_keys_processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Drops keys bound to None so console lines stay short."""
    for key in [key for key, value in event_dict.items() if value is None]:
        del event_dict[key]
    return event_dict

# 🔼⚙️
