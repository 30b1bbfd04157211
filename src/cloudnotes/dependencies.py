"""FastAPI dependencies resolving the process-wide components built in the lifespan."""

from fastapi import Depends, Request

from .config import Settings
from .core.change_feed import ChangeFeed
from .core.push_channel import PushChannelRegistry
from .core.services import HealthService, NoteService
from .core.store import NoteStore
from .database import Database


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with."""
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_store(request: Request) -> NoteStore:
    return request.app.state.store


def get_channels(request: Request) -> PushChannelRegistry:
    return request.app.state.channels


def get_note_service(
    store: NoteStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> NoteService:
    return NoteService(store, settings)


def get_health_service(
    database: Database = Depends(get_database),
    change_feed: ChangeFeed = Depends(get_change_feed),
    channels: PushChannelRegistry = Depends(get_channels),
    settings: Settings = Depends(get_app_settings),
) -> HealthService:
    return HealthService(database, change_feed, channels, settings)
