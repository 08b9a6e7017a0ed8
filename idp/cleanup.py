"""
Periodic removal of expired sessions, authorization codes and refresh tokens.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import delete
from idp.constants import CLEANUP_INTERVAL_SECONDS
from idp.database import get_session, utcnow
from idp.oauth.schemas import AuthorizationCode, RefreshToken
from idp.session.schemas import UserSession


class CleanupResult(BaseModel):
    sessions: int = 0
    auth_codes: int = 0
    refresh_tokens: int = 0

    @property
    def total(self) -> int:
        return self.sessions + self.auth_codes + self.refresh_tokens


async def cleanup_expired_data() -> CleanupResult:
    """
    Delete every expired row from the three expiring tables in one transaction.
    """
    now = utcnow()
    counts = {}
    async with get_session() as session:
        for key, model in (
            ("sessions", UserSession),
            ("auth_codes", AuthorizationCode),
            ("refresh_tokens", RefreshToken),
        ):
            result = await session.execute(
                delete(model)
                .where(model.expires_at < now)
                .execution_options(synchronize_session=False)
            )
            counts[key] = result.rowcount or 0
        await session.commit()
    return CleanupResult(**counts)


class CleanupJob:
    """
    Runs the cleanup once on start and then every `interval` seconds. Each run is
    its own task, so a slow run never delays the next tick.
    """

    def __init__(
        self,
        interval: float = CLEANUP_INTERVAL_SECONDS,
        cleanup: Callable[[], Awaitable[CleanupResult]] = cleanup_expired_data,
    ):
        self.interval = interval
        self._cleanup = cleanup
        self._scheduler: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = asyncio.create_task(self._schedule())
        logger.info(f"Started cleanup job (interval={self.interval}s)")

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.cancel()
        self._scheduler = None
        for task in list(self._runs):
            task.cancel()
        self._runs.clear()
        logger.info("Stopped cleanup job")

    async def _schedule(self) -> None:
        initial = True
        while True:
            task = asyncio.create_task(self.run_once(initial=initial))
            self._runs.add(task)
            task.add_done_callback(self._runs.discard)
            initial = False
            await asyncio.sleep(self.interval)

    async def run_once(self, initial: bool = False) -> Optional[CleanupResult]:
        try:
            result = await self._cleanup()
        except Exception as exc:
            logger.error(f"Cleanup of expired data failed: {exc}")
            return None
        if initial or result.total:
            logger.info(
                f"Cleaned up expired data: sessions={result.sessions} "
                f"auth_codes={result.auth_codes} refresh_tokens={result.refresh_tokens}"
            )
        return result
