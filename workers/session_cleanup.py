"""
Periodic session cleanup.

Runs SessionStore.cleanup_expired() every SESSION_CLEANUP_INTERVAL_SECONDS
as an asyncio task owned by the app lifespan. The TTL index on expires_at
already removes expired sessions; this loop also drops sessions revoked more
than 24 hours ago.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from services.session_service import SessionStore
from shared.logging import get_logger

log = get_logger(__name__)


async def run_cleanup_loop(sessions: SessionStore, interval_seconds: int) -> None:
    log.info("session_cleanup_started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sessions.cleanup_expired()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Keep the loop alive; the next tick retries.
            log.error("session_cleanup_failed", error=str(exc), error_type=type(exc).__name__)


def start_cleanup_task(
    sessions: SessionStore, interval_seconds: int
) -> Optional[asyncio.Task]:
    """Schedule the cleanup loop; an interval of 0 or less disables it."""
    if interval_seconds <= 0:
        log.info("session_cleanup_disabled")
        return None
    return asyncio.create_task(run_cleanup_loop(sessions, interval_seconds))


async def stop_cleanup_task(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    log.info("session_cleanup_stopped")
