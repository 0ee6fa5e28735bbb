"""
Versioned schema migrations.

The schema version lives in SQLite's PRAGMA user_version. Each migration
is applied at most once, in increasing version order, and the version
is bumped right after its script succeeds. Adding a table or column
means appending a Migration here; applied ones are never edited.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Sequence

from .errors import MigrationFailed


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    script: str


# Tables reference each other by id only. No foreign keys are declared:
# a conversation can outlive its goal and is simply never listed again.
MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Create skill_goals table",
        script="""
            CREATE TABLE IF NOT EXISTS skill_goals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                skill_name TEXT NOT NULL,
                skill_description TEXT,
                skill_category TEXT,
                current_level TEXT,
                target_level TEXT,
                custom_metrics TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """,
    ),
    Migration(
        version=2,
        description="Create conversations and messages tables",
        script="""
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                skill_goal_id INTEGER,
                title TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_goal
                ON conversations (skill_goal_id);
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages (conversation_id);
        """,
    ),
)


def get_user_version(connection: sqlite3.Connection) -> int:
    return connection.execute("PRAGMA user_version").fetchone()[0]


def migrate(connection: sqlite3.Connection, migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """
    Bring the schema up to the newest version in migrations.

    Returns:
        The schema version after migrating.

    Raises:
        ValueError: Two migrations share a version.
        MigrationFailed: A script failed. user_version stays at the last
            migration that succeeded.
    """
    versions = [m.version for m in migrations]
    if len(versions) != len(set(versions)):
        raise ValueError("Duplicate migration versions")

    current = get_user_version(connection)

    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= current:
            continue

        logger.info(
            "Applying migration",
            extra={"version": migration.version, "description": migration.description}
        )
        try:
            # executescript commits any pending transaction first, so
            # each script runs on its own.
            connection.executescript(migration.script)
            # PRAGMA can't take bound parameters; version is an int.
            connection.execute(f"PRAGMA user_version = {int(migration.version)}")
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.error(
                "Migration failed",
                extra={"version": migration.version, "error": str(e)}
            )
            raise MigrationFailed(migration.version, str(e)) from e

        current = migration.version

    return current
