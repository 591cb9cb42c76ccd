"""Loading an initial conversation history from a JSON file."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def load_conversation_from_file(filepath: str) -> Optional[list[Any]]:
    """Read a JSON array of conversation entries.

    Returns None when no path is given, when the file cannot be read or
    parsed, or when it holds null; problems are logged as warnings.
    """
    if not filepath:
        return None
    try:
        with open(filepath, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        logger.warning(
            "Error reading conversation file %r: %s. Starting with empty history.",
            filepath,
            exc,
        )
        return None
    try:
        entries = json.loads(data)
        if entries is not None and not isinstance(entries, list):
            raise ValueError(f"expected a JSON array, got {type(entries).__name__}")
        if entries is not None and any(
            entry is not None and not isinstance(entry, dict) for entry in entries
        ):
            raise ValueError("every entry must be a JSON object")
    except ValueError as exc:
        logger.warning(
            "Error unmarshalling conversation JSON from %r: %s. "
            "Starting with empty history.",
            filepath,
            exc,
        )
        return None

    count = len(entries) if entries is not None else 0
    print(f"Loaded {count} initial conversation entries from {filepath}")
    return entries