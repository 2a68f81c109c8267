"""
Folders API Router — /api/folders

Folder names are unique per user. Deleting a folder never deletes
documents: they move back to the root (folder_id = NULL).
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.auth.dependencies import DB, CurrentUser
from study_assistant.core.errors import NotFound, ValidationFailed
from study_assistant.models import Document, Folder
from study_assistant.schemas.common import ERROR_RESPONSES, MessageResponse
from study_assistant.schemas.study import (
    FolderListResponse,
    FolderOut,
    FolderRequest,
    FolderResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/folders", tags=["Folders"], responses=ERROR_RESPONSES)

DEFAULT_COLOR = "#8B5CF6"


def _required_name(body: FolderRequest) -> str:
    name = (body.name or "").strip()
    if not name:
        raise ValidationFailed("Folder name is required", field="name")
    return name


async def _ensure_unique(db: AsyncSession, user_id: UUID, name: str, exclude: UUID | None = None) -> None:
    stmt = select(Folder.id).where(Folder.user_id == user_id, Folder.name == name)
    if exclude is not None:
        stmt = stmt.where(Folder.id != exclude)
    if await db.scalar(stmt) is not None:
        raise ValidationFailed("A folder with this name already exists", field="name")


async def _owned_folder(db: AsyncSession, user_id: UUID, folder_id: UUID) -> Folder:
    folder = await db.scalar(select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id))
    if folder is None:
        raise NotFound("Folder not found")
    return folder


@router.get("", response_model=FolderListResponse)
async def list_folders(user: CurrentUser, db: DB) -> FolderListResponse:
    folders = (await db.scalars(
        select(Folder).where(Folder.user_id == user.id).order_by(Folder.created_at.desc())
    )).all()
    return FolderListResponse(folders=[FolderOut.model_validate(f) for f in folders])


@router.post("", response_model=FolderResponse)
async def create_folder(body: FolderRequest, user: CurrentUser, db: DB) -> FolderResponse:
    name = _required_name(body)
    await _ensure_unique(db, user.id, name)

    folder = Folder(user_id=user.id, name=name, color=body.color or DEFAULT_COLOR)
    db.add(folder)
    await db.flush()
    await db.refresh(folder)

    logger.info("Folder created | user=%s folder=%s", user.id, folder.id)
    return FolderResponse(folder=FolderOut.model_validate(folder))


@router.put("/{folder_id}", response_model=FolderResponse)
async def update_folder(folder_id: UUID, body: FolderRequest, user: CurrentUser, db: DB) -> FolderResponse:
    name = _required_name(body)
    folder = await _owned_folder(db, user.id, folder_id)

    if name != folder.name:
        await _ensure_unique(db, user.id, name, exclude=folder.id)

    folder.name = name
    if body.color:
        folder.color = body.color
    await db.flush()
    await db.refresh(folder)
    return FolderResponse(folder=FolderOut.model_validate(folder))


@router.delete("/{folder_id}", response_model=MessageResponse)
async def delete_folder(folder_id: UUID, user: CurrentUser, db: DB) -> MessageResponse:
    folder = await _owned_folder(db, user.id, folder_id)

    moved = await db.execute(
        update(Document)
        .where(Document.user_id == user.id, Document.folder_id == folder.id)
        .values(folder_id=None)
    )
    await db.delete(folder)
    await db.flush()

    logger.info("Folder deleted | user=%s folder=%s moved_documents=%d", user.id, folder_id, moved.rowcount)
    return MessageResponse(message="Folder deleted successfully")
