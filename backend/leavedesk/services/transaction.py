"""Bounded, all-or-nothing scope for engine operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError, OperationalError

from leavedesk.config import get_settings
from leavedesk.exceptions import AppError, TransientError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or exc.connection_invalidated


@asynccontextmanager
async def operation_scope(session: AsyncSession, name: str) -> AsyncIterator[None]:
    """Run one engine operation under the configured timeout.

    Lock waits, timeouts and dropped connections roll the transaction back and
    surface as a retryable TransientError. Domain errors propagate untouched;
    they are raised before anything is written.
    """
    settings = get_settings()
    try:
        async with asyncio.timeout(settings.operation_timeout_seconds):
            yield
    except TransientError:
        await session.rollback()
        raise
    except AppError:
        raise
    except TimeoutError as exc:
        logger.warning("%s timed out after %.1fs", name, settings.operation_timeout_seconds)
        await session.rollback()
        raise TransientError(f"{name} timed out, please retry") from exc
    except DBAPIError as exc:
        await session.rollback()
        if _is_transient(exc):
            logger.warning("%s hit a transient database error: %s", name, exc)
            raise TransientError(f"{name} could not acquire its locks, please retry") from exc
        raise
    except Exception:
        await session.rollback()
        raise
