"""Conversation persistence."""

import logging
import sqlite3
from dataclasses import replace
from typing import Optional

from sage.core.coaching.models import Conversation, utcnow

from ..database import Database
from ..errors import InsertFailed, QueryFailed, RecordNotFound, UpdateFailed
from ..serialization import format_timestamp
from ._rows import row_timestamp


logger = logging.getLogger(__name__)

_COLUMNS = "id, skill_goal_id, title, created_at, updated_at"


def _conversation_from_row(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        goal_id=row["skill_goal_id"],
        title=row["title"],
        created_at=row_timestamp(row, "created_at"),
        updated_at=row_timestamp(row, "updated_at"),
    )


class ConversationRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def insert(self, conversation: Conversation) -> Conversation:
        """Store a new conversation and return a copy carrying its id."""

        def operation(conn: sqlite3.Connection) -> int:
            try:
                cursor = conn.execute(
                    "INSERT INTO conversations (skill_goal_id, title, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        conversation.goal_id,
                        conversation.title,
                        format_timestamp(conversation.created_at),
                        format_timestamp(conversation.updated_at),
                    ),
                )
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                conn.rollback()
                raise InsertFailed(f"Failed to insert conversation: {e}") from e

        conversation_id = self._db.run(operation)
        logger.info(
            "Conversation created",
            extra={"conversation_id": conversation_id, "goal_id": conversation.goal_id}
        )
        return replace(conversation, id=conversation_id)

    def get(self, conversation_id: int) -> Conversation:
        row = self._db.run(lambda conn: self._select(conn, conversation_id))
        if row is None:
            raise RecordNotFound(f"Conversation {conversation_id} not found")
        return _conversation_from_row(row)

    def list_for_goal(self, goal_id: int) -> list[Conversation]:
        """A goal's conversations, most recently active first."""

        def operation(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            try:
                return conn.execute(
                    f"SELECT {_COLUMNS} FROM conversations WHERE skill_goal_id = ? "
                    "ORDER BY updated_at DESC, id DESC",
                    (goal_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise QueryFailed(f"Failed to list conversations: {e}") from e

        return [_conversation_from_row(row) for row in self._db.run(operation)]

    def update_title(self, conversation: Conversation) -> Conversation:
        """
        Store a new title and refresh updated_at. Other fields are ignored.

        Raises:
            UpdateFailed: The conversation has no id, or no row matches it.
        """
        if conversation.id is None:
            raise UpdateFailed("Cannot update a conversation without an id")

        updated_at = format_timestamp(utcnow())

        def operation(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            try:
                cursor = conn.execute(
                    "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                    (conversation.title, updated_at, conversation.id),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise UpdateFailed(f"Failed to update conversation {conversation.id}: {e}") from e

            if cursor.rowcount == 0:
                raise UpdateFailed(f"Conversation {conversation.id} does not exist")
            return self._select(conn, conversation.id)

        return _conversation_from_row(self._db.run(operation))

    def _select(self, conn: sqlite3.Connection, conversation_id: int) -> Optional[sqlite3.Row]:
        try:
            return conn.execute(
                f"SELECT {_COLUMNS} FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryFailed(f"Failed to fetch conversation {conversation_id}: {e}") from e
