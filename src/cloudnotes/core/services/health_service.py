"""Health service implementation."""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from ...config import Settings
from ...database import Database
from ..change_feed import ChangeFeed
from ..push_channel import PushChannelRegistry
from ..schemas.common import HealthCheckResponse
from .interfaces import IHealthService


class HealthService(IHealthService):
    """Health check service implementation."""

    def __init__(
        self,
        database: Database,
        change_feed: ChangeFeed,
        channels: PushChannelRegistry,
        settings: Settings,
    ):
        self.database = database
        self.change_feed = change_feed
        self.channels = channels
        self.settings = settings

    async def get_health_status(self) -> HealthCheckResponse:
        """Get app health status."""
        db_health = await self.check_database_health()
        feed_health = await self.check_change_feed_health()

        overall_status = "healthy"
        if not db_health["connected"] or not feed_health["connected"]:
            overall_status = "unhealthy"

        return HealthCheckResponse(
            status=overall_status,
            timestamp=datetime.now(timezone.utc),
            version=self.settings.app_version,
            checks={
                "database": db_health,
                "change_feed": feed_health,
                "push_channels": self.check_push_channels(),
            },
        )

    async def check_database_health(self) -> Dict[str, Any]:
        """Check DB connection."""
        try:
            start_time = time.perf_counter()
            await self.database.ping()
            response_time = (time.perf_counter() - start_time) * 1000

            return {
                "connected": True,
                "status": "healthy",
                "response_time_ms": round(response_time, 2),
            }
        except Exception as e:
            return {
                "connected": False,
                "status": "unhealthy",
                "error": str(e),
                "response_time_ms": 0.0,
            }

    async def check_change_feed_health(self) -> Dict[str, Any]:
        """Check the change feed backend."""
        report = await self.change_feed.health()
        report["status"] = "healthy" if report.get("connected") else "unhealthy"
        return report

    def check_push_channels(self) -> Dict[str, Any]:
        """Open channels vs. live feed listeners; listeners beyond channels hint at a leak."""
        return {
            "status": "healthy",
            "open": len(self.channels),
            "feed_listeners": self.change_feed.listener_count,
        }
