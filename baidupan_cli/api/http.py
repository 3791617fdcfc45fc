"""
Owns the shared aiohttp connection pool used by every remote session.
"""

import asyncio
import logging

import aiohttp

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_connections: int = 16) -> aiohttp.ClientSession:
    """
    Gets or creates the shared aiohttp ClientSession.

    Cookies are managed per credential by each RemoteSession, so the pool uses a
    DummyCookieJar and never carries cookies from one credential to another.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_connections,
            limit_per_host=max_connections // 2 or 1,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            cookie_jar=aiohttp.DummyCookieJar(),
            timeout=aiohttp.ClientTimeout(total=60, connect=15, sock_read=30),
            headers={"Accept-Encoding": "gzip, deflate"},
        )
        log.debug(f"Created HTTP connection pool (limit={max_connections})")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared HTTP connection pool closed.")
