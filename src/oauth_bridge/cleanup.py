from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from oauth_bridge.storage.adapter import AlchemyOAuthAdapter

logger = logging.getLogger(__name__)


class AuthorizationCodeSweeper:
    """Periodically deletes authorization codes that expired without being redeemed.

    Redemption re-checks expiry on its own, so a missed or failed sweep only
    leaves dead rows behind for the next one.
    """

    def __init__(
        self,
        adapter: AlchemyOAuthAdapter,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: float = 300.0,
    ) -> None:
        self.adapter = adapter
        self.session_maker = session_maker
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        async with self.session_maker() as session:
            deleted = await self.adapter.delete_expired_oauth_authorization_codes(session)
        if deleted:
            logger.info("Swept %d expired authorization codes", deleted)
        return deleted

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="oauth-bridge-code-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("Authorization code sweep failed")
