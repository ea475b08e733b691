"""Bounded worker pool for blocking catalog and persistence calls.

The catalog is a synchronous SQLAlchemy store. Coroutines hand blocking
calls to a dedicated thread pool so they never stall the event loop.
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from .config import Config, get_config

T = TypeVar("T")


def create_store_executor(config: Optional[Config] = None) -> ThreadPoolExecutor:
    """Create the thread pool sized by ``BOOKENGINE_STORE_WORKERS``."""
    config = config or get_config()
    return ThreadPoolExecutor(
        max_workers=max(1, config.store_workers),
        thread_name_prefix="bookengine-store",
    )


async def run_blocking(
    executor: Optional[ThreadPoolExecutor],
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run ``func`` on ``executor`` and await its result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, functools.partial(func, *args, **kwargs))
