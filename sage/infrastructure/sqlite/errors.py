"""
Errors raised by the persistence layer.

Every sqlite3 exception is re-raised as one of these, tagged with the
operation that failed. Nothing here is retried: the caller decides.
"""


class DatabaseError(Exception):
    """Base class for persistence failures."""
    pass


class ConnectionFailed(DatabaseError):
    """The database file couldn't be opened, or isn't open."""
    pass


class QueryFailed(DatabaseError):
    pass


class InsertFailed(DatabaseError):
    pass


class UpdateFailed(DatabaseError):
    pass


class DeleteFailed(DatabaseError):
    pass


class RecordNotFound(DatabaseError):
    """Raised when a requested row doesn't exist."""

    def __init__(self, message: str = "Record not found") -> None:
        super().__init__(message)


class MigrationFailed(DatabaseError):
    """A schema migration couldn't be applied."""

    def __init__(self, version: int, detail: str) -> None:
        self.version = version
        self.detail = detail
        super().__init__(f"Migration v{version} failed: {detail}")


class EncodingFailed(DatabaseError):
    """A field couldn't be serialized for storage."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Failed to encode {field}")


class DecodingFailed(DatabaseError):
    """A stored field couldn't be read back."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Failed to decode {field}")
