"""
Goal persistence.

Goals live in the skill_goals table; their metrics are embedded as a
JSON column (see serialization.encode_metrics).
"""

import logging
import sqlite3
from dataclasses import replace
from typing import Optional

from sage.core.coaching.models import Goal, utcnow

from ..database import Database
from ..errors import DeleteFailed, InsertFailed, QueryFailed, RecordNotFound, UpdateFailed
from ..serialization import decode_metrics, encode_metrics, format_timestamp
from ._rows import row_timestamp


logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, skill_name, skill_description, skill_category, current_level, "
    "target_level, custom_metrics, created_at, updated_at"
)


def _goal_from_row(row: sqlite3.Row) -> Goal:
    return Goal(
        id=row["id"],
        name=row["skill_name"],
        description=row["skill_description"],
        category=row["skill_category"],
        current_level=row["current_level"],
        target_level=row["target_level"],
        metrics=decode_metrics(row["custom_metrics"]),
        created_at=row_timestamp(row, "created_at"),
        updated_at=row_timestamp(row, "updated_at"),
    )


class GoalRepository:
    """CRUD for skill goals."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def insert(self, goal: Goal) -> Goal:
        """Store a new goal and return a copy carrying its assigned id."""
        metrics = encode_metrics(goal.metrics)

        def operation(conn: sqlite3.Connection) -> int:
            try:
                cursor = conn.execute(
                    "INSERT INTO skill_goals (skill_name, skill_description, skill_category, "
                    "current_level, target_level, custom_metrics, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        goal.name,
                        goal.description,
                        goal.category,
                        goal.current_level,
                        goal.target_level,
                        metrics,
                        format_timestamp(goal.created_at),
                        format_timestamp(goal.updated_at),
                    ),
                )
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                conn.rollback()
                raise InsertFailed(f"Failed to insert goal: {e}") from e

        goal_id = self._db.run(operation)
        logger.info("Goal created", extra={"goal_id": goal_id})
        return replace(goal, id=goal_id)

    def list_all(self) -> list[Goal]:
        """All goals, newest first."""

        def operation(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            try:
                return conn.execute(
                    f"SELECT {_COLUMNS} FROM skill_goals ORDER BY created_at DESC, id DESC"
                ).fetchall()
            except sqlite3.Error as e:
                raise QueryFailed(f"Failed to list goals: {e}") from e

        return [_goal_from_row(row) for row in self._db.run(operation)]

    def get(self, goal_id: int) -> Goal:
        """
        Fetch one goal.

        Raises:
            RecordNotFound: No goal has this id.
        """
        row = self._db.run(lambda conn: self._select(conn, goal_id))
        if row is None:
            raise RecordNotFound(f"Goal {goal_id} not found")
        return _goal_from_row(row)

    def update(self, goal: Goal) -> Goal:
        """
        Overwrite every stored field of the goal and refresh updated_at.

        Raises:
            UpdateFailed: The goal has no id, or no row matches it.
        """
        if goal.id is None:
            raise UpdateFailed("Cannot update a goal without an id")

        metrics = encode_metrics(goal.metrics)
        updated_at = format_timestamp(utcnow())

        def operation(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            try:
                cursor = conn.execute(
                    "UPDATE skill_goals SET skill_name = ?, skill_description = ?, "
                    "skill_category = ?, current_level = ?, target_level = ?, "
                    "custom_metrics = ?, updated_at = ? WHERE id = ?",
                    (
                        goal.name,
                        goal.description,
                        goal.category,
                        goal.current_level,
                        goal.target_level,
                        metrics,
                        updated_at,
                        goal.id,
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise UpdateFailed(f"Failed to update goal {goal.id}: {e}") from e

            if cursor.rowcount == 0:
                raise UpdateFailed(f"Goal {goal.id} does not exist")
            return self._select(conn, goal.id)

        return _goal_from_row(self._db.run(operation))

    def delete(self, goal_id: int) -> None:
        """Remove a goal. Deleting a missing goal is not an error."""

        def operation(conn: sqlite3.Connection) -> None:
            try:
                conn.execute("DELETE FROM skill_goals WHERE id = ?", (goal_id,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise DeleteFailed(f"Failed to delete goal {goal_id}: {e}") from e

        self._db.run(operation)
        logger.info("Goal deleted", extra={"goal_id": goal_id})

    def _select(self, conn: sqlite3.Connection, goal_id: int) -> Optional[sqlite3.Row]:
        try:
            return conn.execute(
                f"SELECT {_COLUMNS} FROM skill_goals WHERE id = ?", (goal_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryFailed(f"Failed to fetch goal {goal_id}: {e}") from e
