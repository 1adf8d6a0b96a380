"""
Small aiohttp helpers shared by the prober, transports and discovery.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import aiohttp

from upnp_errors import CastError, Timeout


@asynccontextmanager
async def client_session(session: aiohttp.ClientSession | None) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield the caller's session, or a throwaway one when none was given."""
    if session is not None:
        yield session
        return
    async with aiohttp.ClientSession() as owned:
        yield owned


async def request_text(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    timeout: aiohttp.ClientTimeout,
    on_error: Callable[[str], CastError],
    **kwargs,
) -> tuple[int, str]:
    """
    Perform one HTTP request and return (status, body text).
    Timeouts raise Timeout; any other client failure raises on_error(message).
    """
    try:
        async with session.request(method, url, timeout=timeout, **kwargs) as resp:
            data = await resp.read()
            return resp.status, data.decode("utf-8", errors="ignore")
    except asyncio.TimeoutError as err:
        raise Timeout(f"{method} {url} timed out") from err
    except aiohttp.ClientError as err:
        raise on_error(f"{method} {url}: {err}") from err


def is_success(status: int) -> bool:
    return 200 <= status < 300
