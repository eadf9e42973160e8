"""Scheduled price refresh for open positions.

Runs on Celery Beat. Users are processed one after another and every quote
lookup goes through the shared limiter, so a refresh never bursts against the
providers.
"""

import asyncio
import logging

from folio.tasks import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine from synchronous Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def refresh_all_prices_async(portfolio=None, session_factory=None) -> dict:
    """Refresh prices for every user holding positions. Returns counts."""
    from folio.database import session_scope
    from folio.errors import StorageUnavailableError
    from folio.services.portfolio.service import PortfolioService
    from folio.services.portfolio.store import PositionStore

    portfolio = portfolio or PortfolioService(session_factory=session_factory)

    async with session_scope(session_factory) as session:
        user_ids = await PositionStore(session).list_user_ids()

    updated = 0
    failed_users = 0
    for user_id in user_ids:
        try:
            result = await portfolio.update_prices(user_id)
            updated += result["updated"]
        except StorageUnavailableError as e:
            failed_users += 1
            logger.error("Price refresh failed for user %d: %s", user_id, e)

    return {"users": len(user_ids), "updated": updated, "failed_users": failed_users}


async def _refresh_and_dispose() -> dict:
    from folio.database import engine

    try:
        return await refresh_all_prices_async()
    finally:
        # Pooled connections belong to this task's event loop
        await engine.dispose()


@celery_app.task(bind=True, max_retries=2, default_retry_delay=60)
def refresh_all_prices(self) -> dict:
    """Refresh current_price on all open positions from the quote providers."""
    try:
        result = _run_async(_refresh_and_dispose())
        logger.info(
            "refresh_all_prices: %d positions updated across %d users",
            result["updated"], result["users"],
        )
        return {"status": "ok", **result}
    except Exception as e:
        logger.error("refresh_all_prices failed: %s", e)
        raise self.retry(exc=e)
