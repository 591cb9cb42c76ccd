"""Persistent conversation history stored in a SQLite database."""

from __future__ import annotations

import dataclasses
import json
import os
import re
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

DEFAULT_DATABASE_PATH = ".smolcode/history.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT NOT NULL,
    sequence_number INTEGER NOT NULL,
    payload TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id),
    UNIQUE (conversation_id, sequence_number)
);
"""

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"\s*(Z|[+-]\d{2}:?\d{2})?$"
)


class HistoryError(Exception):
    """Raised when the history database cannot be read or written."""


class ConversationNotFoundError(HistoryError, LookupError):
    """Raised when a requested conversation does not exist."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """A single message of a conversation with its timestamp."""

    payload: Any
    created_at: datetime = field(default_factory=_now)


@dataclass
class Conversation:
    """A conversation: its ID, its messages and when it was created."""

    id: str
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)

    def append(self, payload: Any) -> None:
        """Add a payload to the end of the in-memory message list."""
        self.messages.append(Message(payload=payload, created_at=_now()))


@dataclass
class ConversationMetadata:
    """Summary information about a stored conversation."""

    id: str
    latest_message_time: datetime
    message_count: int
    created_at: datetime


def new_conversation() -> Conversation:
    """Create a conversation with a fresh random ID and no messages."""
    return Conversation(id=str(uuid.uuid4()))


def _format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(sep=" ", timespec="microseconds")


def _parse_timestamp(text: str) -> datetime:
    match = _TIMESTAMP_RE.match(text.strip())
    if match is None:
        raise HistoryError(f"failed to parse timestamp {text!r} with known formats")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    tz = timezone.utc
    if zone and zone != "Z":
        sign = -1 if zone[0] == "-" else 1
        digits = zone[1:].replace(":", "")
        offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        tz = timezone(sign * offset)
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
    except ValueError as exc:
        raise HistoryError(f"failed to parse timestamp {text!r}: {exc}") from exc


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _encode_payload(payload: Any) -> str:
    try:
        return json.dumps(
            payload, default=_json_default, separators=(",", ":"), ensure_ascii=False
        )
    except (TypeError, ValueError) as exc:
        raise HistoryError(f"cannot serialize message payload: {exc}") from exc


@contextmanager
def _database(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open the database, creating its directory and schema when missing."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as exc:
        raise HistoryError(f"failed to open database at {db_path}: {exc}") from exc
    try:
        try:
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise HistoryError(
                f"failed to initialize database at {db_path}: {exc}"
            ) from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise HistoryError(f"database error at {db_path}: {exc}") from exc
    finally:
        conn.close()


def save_to(conversation: Conversation, db_path: str) -> None:
    """Persist the conversation, replacing any messages stored for its ID."""
    rows = [
        (conversation.id, sequence, _encode_payload(message.payload),
         _format_timestamp(message.created_at))
        for sequence, message in enumerate(conversation.messages)
    ]
    with _database(db_path) as db:
        with db:
            db.execute(
                "INSERT OR IGNORE INTO conversations (id, created_at) VALUES (?, ?)",
                (conversation.id, _format_timestamp(conversation.created_at)),
            )
            db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation.id,)
            )
            db.executemany(
                "INSERT INTO messages (conversation_id, sequence_number, payload, created_at)"
                " VALUES (?, ?, ?, ?)",
                rows,
            )


def save(conversation: Conversation) -> None:
    """Persist the conversation to the default database."""
    save_to(conversation, DEFAULT_DATABASE_PATH)


def load_from(conversation_id: str, db_path: str) -> Conversation:
    """Load a conversation and its messages from the database at db_path."""
    with _database(db_path) as db:
        row = db.execute(
            "SELECT created_at FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        if row is None:
            raise ConversationNotFoundError(
                f"conversation with ID '{conversation_id}' not found"
            )
        created_at = _parse_timestamp(str(row[0]))
        message_rows = db.execute(
            "SELECT sequence_number, payload, created_at FROM messages"
            " WHERE conversation_id = ? ORDER BY sequence_number ASC",
            (conversation_id,),
        ).fetchall()

    messages = []
    for _, payload, message_time in sorted(message_rows, key=lambda r: r[0]):
        try:
            decoded = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise HistoryError(
                f"failed to unmarshal message payload for conversation ID "
                f"'{conversation_id}': {exc}"
            ) from exc
        messages.append(
            Message(payload=decoded, created_at=_parse_timestamp(str(message_time)))
        )
    return Conversation(id=conversation_id, messages=messages, created_at=created_at)


def load(conversation_id: str) -> Conversation:
    """Load a conversation from the default database."""
    return load_from(conversation_id, DEFAULT_DATABASE_PATH)


def get_latest_conversation_id(db_path: str) -> str:
    """Return the ID of the most recently created conversation."""
    with _database(db_path) as db:
        row = db.execute(
            "SELECT id FROM conversations ORDER BY created_at DESC LIMIT 1"
        ).fetchone()
    if row is None:
        raise ConversationNotFoundError("history: conversation not found")
    return row[0]


_LIST_QUERY = """
SELECT
    c.id,
    c.created_at,
    COUNT(m.id) AS message_count,
    COALESCE(MAX(m.created_at), c.created_at) AS latest_message_at
FROM conversations c
LEFT JOIN messages m ON c.id = m.conversation_id
GROUP BY c.id
ORDER BY latest_message_at DESC
"""


def list_conversations(db_path: str) -> list[ConversationMetadata]:
    """Return metadata for every stored conversation, most recently active first."""
    if not os.path.exists(db_path):
        raise HistoryError(f"database file does not exist: {db_path}")
    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as exc:
        raise HistoryError(f"failed to open database: {exc}") from exc
    try:
        try:
            rows = conn.execute(_LIST_QUERY).fetchall()
        except sqlite3.Error as exc:
            try:
                table = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name='conversations'"
                ).fetchone()
            except sqlite3.Error:
                table = ()
            if table is None:
                return []
            raise HistoryError(f"failed to query conversations: {exc}") from exc
    finally:
        conn.close()

    return [
        ConversationMetadata(
            id=conv_id,
            latest_message_time=_parse_timestamp(str(latest)),
            message_count=count,
            created_at=_parse_timestamp(str(created)),
        )
        for conv_id, created, count, latest in rows
    ]