"""Fire-and-forget notification delivery for BackgroundTasks."""

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


async def deliver(description: str, send: Callable[..., Awaitable[Any]], *args) -> bool:
    """
    Await ``send(*args)`` and log instead of raising on failure.

    Returns False when delivery failed.
    """
    try:
        await send(*args)
    except Exception as e:
        logger.error(f"Failed to send {description}: {e}")
        return False
    return True
