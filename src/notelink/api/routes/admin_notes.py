"""Admin note viewer: list and delete submitted notes."""

from __future__ import annotations

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from notelink.api.auth import CurrentUser, require_admin
from notelink.infra.repositories.notes_repository import (
    NoteStore,
    PersistError,
    PostgresNoteStore,
)
from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import hash_identifier, safe_log_context

router = APIRouter(prefix="/admin", tags=["admin"])

logger = get_logger(__name__)

_note_store: NoteStore = PostgresNoteStore()


def _get_note_store() -> NoteStore:
    """Get note store instance (allows test injection)."""
    return _note_store


@router.get("/notes")
def list_notes(
    order: Literal["asc", "desc"] = Query("desc"),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    """List notes by creation time, newest first unless order=asc."""
    try:
        records = _get_note_store().query(order=order)
    except PersistError:
        logger.error(
            "admin note query failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=502, detail="Archive connection failed")

    return {"notes": [record.to_dict() for record in records]}


@router.delete("/notes/{note_id}", status_code=204)
def delete_note(
    note_id: str,
    admin: CurrentUser = Depends(require_admin),
) -> None:
    """Delete one note by id."""
    try:
        uuid.UUID(note_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Note not found")

    try:
        _get_note_store().delete(note_id)
    except PersistError:
        logger.error(
            "admin note delete failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=502, detail="Archive connection failed")

    logger.info(
        "note deleted",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                note_id=note_id,
                admin_hash=hash_identifier(admin.id),
            )
        },
    )
