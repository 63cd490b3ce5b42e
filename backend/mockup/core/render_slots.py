import asyncio
from contextlib import asynccontextmanager

from mockup.core.config import settings

# Caps how many full-buffer renders the API runs at once; each one holds
# several base-sized float arrays.
_render_semaphore = asyncio.Semaphore(settings.max_concurrent_renders)


@asynccontextmanager
async def render_slot():
    """
    Async context manager around one render.
    Usage:
        async with render_slot():
            await run_in_threadpool(session.render)
    """
    async with _render_semaphore:
        yield
