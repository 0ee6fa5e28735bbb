import sqlite3
from datetime import datetime

from ..errors import DecodingFailed
from ..serialization import TimestampParseError, parse_timestamp


def row_timestamp(row: sqlite3.Row, column: str) -> datetime:
    """Parse a timestamp column, reporting the column on failure."""
    try:
        return parse_timestamp(row[column])
    except (TimestampParseError, TypeError) as e:
        raise DecodingFailed(column) from e
