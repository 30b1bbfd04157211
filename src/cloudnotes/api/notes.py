"""Notes API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse

from ..config import Settings
from ..core.live_query import LiveQuery
from ..core.push_channel import SSE_HEADERS, SSE_MEDIA_TYPE, PushChannelRegistry
from ..core.schemas.notes import NoteCreate, NoteRecord, NoteUpdate
from ..core.services import NoteService
from ..core.store import NoteStore
from ..dependencies import get_app_settings, get_channels, get_note_service, get_store

router = APIRouter(prefix="/notes", tags=["notes"])


@router.get("", response_class=StreamingResponse)
async def stream_notes(
    user_id: Optional[str] = Query(None, alias="userId", max_length=128),
    store: NoteStore = Depends(get_store),
    channels: PushChannelRegistry = Depends(get_channels),
    settings: Settings = Depends(get_app_settings),
):
    """Stream the full notes collection, newest first, on every change."""
    live_query = LiveQuery(store, user_id=user_id, date_format=settings.date_display_format)
    channel = channels.open(live_query)
    return StreamingResponse(channel.events(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)


@router.post("", response_model=NoteRecord, status_code=201)
async def create_note(
    request: NoteCreate,
    note_service: NoteService = Depends(get_note_service),
):
    """Create a new note."""
    return await note_service.create_note(request)


@router.get("/{note_id}", response_model=NoteRecord)
async def get_note(
    note_id: str,
    note_service: NoteService = Depends(get_note_service),
):
    """Get a specific note."""
    return await note_service.get_note(note_id)


@router.put("/{note_id}", response_model=NoteRecord)
async def update_note(
    note_id: str,
    request: NoteUpdate,
    note_service: NoteService = Depends(get_note_service),
):
    """Update a note's text."""
    return await note_service.update_note(note_id, request)


@router.delete("/{note_id}", status_code=204)
async def delete_note(
    note_id: str,
    note_service: NoteService = Depends(get_note_service),
):
    """Delete a note; succeeds whether or not it existed."""
    await note_service.delete_note(note_id)
    return Response(status_code=204)
