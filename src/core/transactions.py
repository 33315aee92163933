"""Transaction boundaries and bounded retry of transient store failures."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.settings import get_settings
from src.services.errors import TransientError

logger = logging.getLogger(__name__)
settings = get_settings()


def is_transient(exc: BaseException) -> bool:
    """Check whether a store failure leaves the outcome retryable."""
    if isinstance(exc, (OperationalError, InterfaceError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run one read-check-write unit as a single transaction.

    Commits when the block exits cleanly and rolls back on any exception.
    Transient store failures are re-raised as TransientError so callers can
    retry the whole unit; everything else propagates unchanged.
    """
    if session.in_transaction():
        # Close out any implicit read transaction so the unit starts fresh.
        await session.commit()

    try:
        yield session
        await session.commit()
    except Exception as e:
        try:
            await session.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback failed after {type(e).__name__}: {rollback_error}")
        if is_transient(e):
            logger.error(f"Transient store failure: {e}")
            raise TransientError(f"Store operation did not complete: {type(e).__name__}") from e
        raise


transactional_retry = retry(
    retry=retry_if_exception_type(TransientError),
    stop=stop_after_attempt(settings.transaction_max_attempts),
    wait=wait_exponential(
        multiplier=settings.transaction_retry_min_wait_seconds,
        min=settings.transaction_retry_min_wait_seconds,
        max=settings.transaction_retry_max_wait_seconds,
    ),
    reraise=True,
)
