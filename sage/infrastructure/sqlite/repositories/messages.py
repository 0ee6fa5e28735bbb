"""
Message persistence.

Writing a message counts as activity on its conversation: insert and
update_content bump the conversation's updated_at in the same worker
operation, which is what orders conversation lists.
"""

import logging
import sqlite3
from dataclasses import replace
from typing import Optional

from sage.core.coaching.models import Message, Role, utcnow

from ..database import Database
from ..errors import DeleteFailed, InsertFailed, QueryFailed, UpdateFailed
from ..serialization import format_timestamp
from ._rows import row_timestamp


logger = logging.getLogger(__name__)

_COLUMNS = "id, conversation_id, role, content, created_at"


def _message_from_row(row: sqlite3.Row) -> Optional[Message]:
    try:
        role = Role(row["role"])
    except ValueError:
        logger.warning(
            "Skipping message with unknown role",
            extra={"message_id": row["id"], "role": row["role"]}
        )
        return None

    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=role,
        content=row["content"],
        created_at=row_timestamp(row, "created_at"),
    )


def _touch_conversation(conn: sqlite3.Connection, conversation_id: int, timestamp: str) -> None:
    conn.execute(
        "UPDATE conversations SET updated_at = ? WHERE id = ?",
        (timestamp, conversation_id),
    )


class MessageRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def insert(self, message: Message) -> Message:
        """Store a new message and return a copy carrying its id."""
        created_at = format_timestamp(message.created_at)
        touched_at = format_timestamp(utcnow())

        def operation(conn: sqlite3.Connection) -> int:
            try:
                cursor = conn.execute(
                    "INSERT INTO messages (conversation_id, role, content, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (message.conversation_id, Role(message.role).value, message.content, created_at),
                )
                _touch_conversation(conn, message.conversation_id, touched_at)
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                conn.rollback()
                raise InsertFailed(f"Failed to insert message: {e}") from e

        message_id = self._db.run(operation)
        logger.debug(
            "Message stored",
            extra={"message_id": message_id, "conversation_id": message.conversation_id}
        )
        return replace(message, id=message_id)

    def list_for_conversation(self, conversation_id: int) -> list[Message]:
        """A conversation's messages, oldest first."""

        def operation(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            try:
                return conn.execute(
                    f"SELECT {_COLUMNS} FROM messages WHERE conversation_id = ? "
                    "ORDER BY created_at ASC, id ASC",
                    (conversation_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise QueryFailed(f"Failed to list messages: {e}") from e

        messages = (_message_from_row(row) for row in self._db.run(operation))
        return [message for message in messages if message is not None]

    def update_content(self, message: Message) -> Message:
        """
        Store the message's current content. Role and timestamps are kept.

        Raises:
            UpdateFailed: The message has no id, or no row matches it.
        """
        if message.id is None:
            raise UpdateFailed("Cannot update a message without an id")

        touched_at = format_timestamp(utcnow())

        def operation(conn: sqlite3.Connection) -> sqlite3.Row:
            try:
                cursor = conn.execute(
                    "UPDATE messages SET content = ? WHERE id = ?",
                    (message.content, message.id),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise UpdateFailed(f"Message {message.id} does not exist")
                _touch_conversation(conn, message.conversation_id, touched_at)
                conn.commit()
                return conn.execute(
                    f"SELECT {_COLUMNS} FROM messages WHERE id = ?", (message.id,)
                ).fetchone()
            except sqlite3.Error as e:
                conn.rollback()
                raise UpdateFailed(f"Failed to update message {message.id}: {e}") from e

        updated = _message_from_row(self._db.run(operation))
        if updated is None:
            raise UpdateFailed(f"Message {message.id} has an unreadable role")
        return updated

    def delete(self, message_id: int) -> None:
        """Remove a message. Deleting a missing message is not an error."""

        def operation(conn: sqlite3.Connection) -> None:
            try:
                conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise DeleteFailed(f"Failed to delete message {message_id}: {e}") from e

        self._db.run(operation)
