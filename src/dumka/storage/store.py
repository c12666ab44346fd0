"""SQLite storage for interactions, notes and quotas."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import StorageError
from .models import ChannelKind, InteractionRecord, NoteRecord, UserQuota

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        id             INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp      DATETIME NOT NULL DEFAULT (datetime('now')),
        user_id        INTEGER NOT NULL,
        username       TEXT,
        message_type   TEXT NOT NULL,
        input_text     TEXT NOT NULL,
        response_type  TEXT NOT NULL,
        response_text  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notes (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp  DATETIME NOT NULL DEFAULT (datetime('now')),
        note_text  TEXT NOT NULL,
        category   TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_limits (
        user_id        INTEGER PRIMARY KEY,
        username       TEXT,
        date           TEXT NOT NULL,
        request_count  INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_notes_timestamp ON notes(timestamp)",
)


class Store:
    """Process-wide handle on the SQLite file.

    Opened once at startup and shared by the access controller, the query
    executor and the pipeline. Records are append-only: nothing here updates
    or deletes messages or notes.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        try:
            conn = self._get_connection()
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize schema: {e}") from e
        logger.info("Database ready: %s", self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements under one write transaction.

        BEGIN IMMEDIATE takes the write lock up front, so a read followed by
        a write inside the block cannot interleave with another writer.
        """
        conn = self._get_connection()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def run_query(self, sql: str) -> sqlite3.Cursor:
        """Execute a raw query and return the open cursor."""
        return self._get_connection().execute(sql)

    def save_interaction(self, record: InteractionRecord) -> InteractionRecord:
        """Append an interaction record.

        Args:
            record: The exchange to store.

        Returns:
            The record with its id and timestamp.
        """
        try:
            conn = self._get_connection()
            cursor = conn.execute(
                """
                INSERT INTO messages (
                    user_id, username, message_type, input_text,
                    response_type, response_text
                )
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id, timestamp
                """,
                (
                    record.user_id,
                    record.username,
                    record.input_kind.value,
                    record.input_text,
                    record.output_kind.value,
                    record.output_text,
                ),
            )
            row = cursor.fetchone()
            conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StorageError(f"Failed to save message: {e}") from e

        return InteractionRecord(
            user_id=record.user_id,
            username=record.username,
            input_kind=record.input_kind,
            input_text=record.input_text,
            output_kind=record.output_kind,
            output_text=record.output_text,
            id=row["id"],
            timestamp=row["timestamp"],
        )

    def save_note(self, note: NoteRecord) -> NoteRecord:
        """Append a note.

        Args:
            note: The note to store.

        Returns:
            The note with its id and timestamp.
        """
        try:
            conn = self._get_connection()
            cursor = conn.execute(
                """
                INSERT INTO notes (note_text, category)
                VALUES (?, ?)
                RETURNING id, timestamp
                """,
                (note.text, note.category),
            )
            row = cursor.fetchone()
            conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StorageError(f"Failed to save note: {e}") from e

        return NoteRecord(
            text=note.text,
            category=note.category,
            id=row["id"],
            timestamp=row["timestamp"],
        )

    def get_interactions(self) -> list[InteractionRecord]:
        """Get all interaction records, oldest first."""
        cursor = self._get_connection().execute(
            """
            SELECT id, timestamp, user_id, username, message_type, input_text,
                   response_type, response_text
            FROM messages ORDER BY id
            """
        )
        return [self._row_to_interaction(row) for row in cursor.fetchall()]

    def get_notes(self) -> list[NoteRecord]:
        """Get all notes, oldest first."""
        cursor = self._get_connection().execute(
            "SELECT id, timestamp, note_text, category FROM notes ORDER BY id"
        )
        return [
            NoteRecord(
                text=row["note_text"],
                category=row["category"],
                id=row["id"],
                timestamp=row["timestamp"],
            )
            for row in cursor.fetchall()
        ]

    def get_quota(self, user_id: int) -> UserQuota | None:
        """Get the quota row for a user, if any."""
        row = self._get_connection().execute(
            "SELECT user_id, username, date, request_count FROM user_limits WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return UserQuota(
            user_id=row["user_id"],
            username=row["username"],
            window_date=row["date"],
            count=row["request_count"],
        )

    def _rollback(self) -> None:
        """Discard a transaction left open by a failed write."""
        if self._conn is not None and self._conn.in_transaction:
            self._conn.rollback()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_interaction(self, row: sqlite3.Row) -> InteractionRecord:
        """Convert a database row to an InteractionRecord."""
        return InteractionRecord(
            user_id=row["user_id"],
            username=row["username"],
            input_kind=ChannelKind(row["message_type"]),
            input_text=row["input_text"],
            output_kind=ChannelKind(row["response_type"]),
            output_text=row["response_text"],
            id=row["id"],
            timestamp=row["timestamp"],
        )
