"""
Notes API Router — /api/notes

Generated notes are the one artifact users may edit.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from study_assistant.auth.dependencies import DB, CurrentUser
from study_assistant.core.errors import Forbidden, NotFound, ValidationFailed
from study_assistant.models import Note
from study_assistant.schemas.common import ERROR_RESPONSES
from study_assistant.schemas.documents import NoteOut, NoteUpdateResponse, UpdateNoteRequest

router = APIRouter(prefix="/notes", tags=["Notes"], responses=ERROR_RESPONSES)


@router.patch("/{note_id}", response_model=NoteUpdateResponse)
async def update_note(note_id: UUID, body: UpdateNoteRequest, user: CurrentUser, db: DB) -> NoteUpdateResponse:
    if not body.content:
        raise ValidationFailed("Content is required", field="content")

    note = await db.get(Note, note_id)
    if note is None:
        raise NotFound("Note not found")
    if note.user_id != user.id:
        raise Forbidden("You do not have access to this note")

    note.title   = body.title or note.title
    note.content = body.content
    await db.flush()
    return NoteUpdateResponse(note=NoteOut.model_validate(note))
