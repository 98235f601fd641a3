"""Notes repository - persistence for submitted notes."""

from __future__ import annotations

from typing import Any, Literal, Protocol

import psycopg2

from notelink.domain.notes import NoteDraft, SubmissionRecord
from notelink.infra.db import txn

_COLUMNS = "id, content, sender_name, user_email, created_at, user_id, ai_comment, audio_url"


class PersistError(Exception):
    """Raised when the notes table cannot be read or written."""

    pass


class NoteStore(Protocol):
    """Protocol for the durable notes store."""

    def insert(self, draft: NoteDraft) -> SubmissionRecord:
        ...

    def query(self, order: Literal["asc", "desc"] = "desc") -> list[SubmissionRecord]:
        ...

    def delete(self, note_id: str) -> None:
        ...


def _row_to_record(row: tuple[Any, ...]) -> SubmissionRecord:
    return SubmissionRecord(
        id=str(row[0]),
        content=row[1],
        sender_name=row[2],
        user_email=row[3],
        created_at=row[4],
        user_id=row[5],
        ai_comment=row[6],
        audio_url=row[7],
    )


class PostgresNoteStore:
    """Notes table in PostgreSQL (DATABASE_URL)."""

    def insert(self, draft: NoteDraft) -> SubmissionRecord:
        """Insert a note and return the stored row.

        Raises:
            PersistError: On connection or query failure.
        """
        try:
            with txn() as cur:
                cur.execute(
                    f"""
                    INSERT INTO notes
                        (content, sender_name, user_email, user_id, ai_comment, audio_url)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        draft.content,
                        draft.sender_name,
                        draft.user_email,
                        draft.user_id,
                        draft.ai_comment,
                        draft.audio_url,
                    ),
                )
                row = cur.fetchone()
        except (psycopg2.Error, RuntimeError) as e:
            raise PersistError(f"note insert failed: {type(e).__name__}") from e

        if row is None:
            raise PersistError("note insert returned no row")
        return _row_to_record(row)

    def query(self, order: Literal["asc", "desc"] = "desc") -> list[SubmissionRecord]:
        """List notes ordered by created_at.

        Raises:
            PersistError: On connection or query failure.
        """
        direction = "ASC" if order == "asc" else "DESC"
        try:
            with txn() as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM notes ORDER BY created_at {direction}")
                rows = cur.fetchall()
        except (psycopg2.Error, RuntimeError) as e:
            raise PersistError(f"note query failed: {type(e).__name__}") from e
        return [_row_to_record(row) for row in rows]

    def delete(self, note_id: str) -> None:
        """Delete a note. Deleting a missing id is a no-op.

        Raises:
            PersistError: On connection or query failure.
        """
        try:
            with txn() as cur:
                cur.execute("DELETE FROM notes WHERE id = %s", (note_id,))
        except (psycopg2.Error, RuntimeError) as e:
            raise PersistError(f"note delete failed: {type(e).__name__}") from e
