# stationdb/services/database.py
"""Database connection services."""

import time
from typing import Any

import asyncpg


async def create_pool(
    dsn: str,
    min_size: int = 1,
    max_size: int = 10,
    ssl: bool = False,
    timeout: int = 30,
    schema: str = "public"
) -> asyncpg.Pool:
    """Create the asyncpg pool backing the Postgres table backend.

    Args:
        dsn: Database connection string.
        min_size: Minimum pool size.
        max_size: Maximum pool size.
        ssl: Whether to use SSL.
        timeout: Command timeout in seconds.
        schema: Schema placed first on the search path.

    Returns:
        An asyncpg connection pool.
    """
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=min_size,
        max_size=max_size,
        ssl=ssl if ssl else None,
        command_timeout=timeout,
        server_settings={"search_path": schema}
    )


async def measure_latency(pool: asyncpg.Pool) -> float:
    """Run a trivial query and return its round-trip time.

    Args:
        pool: The connection pool to probe.

    Returns:
        Latency in milliseconds.
    """
    start_time = time.perf_counter()
    async with pool.acquire() as conn:
        await conn.fetchval("SELECT 1")
    return (time.perf_counter() - start_time) * 1000


async def check_connection(pool: asyncpg.Pool) -> dict[str, Any]:
    """Check whether a database connection is available.

    Args:
        pool: The connection pool to check.

    Returns:
        Dictionary with ``connected``, ``latency_ms`` and ``error``.
    """
    try:
        latency_ms = await measure_latency(pool)
        return {"connected": True, "latency_ms": latency_ms, "error": None}
    except Exception as e:
        return {"connected": False, "latency_ms": None, "error": str(e)}


async def close_pool(pool: asyncpg.Pool) -> None:
    """Close a connection pool.

    Args:
        pool: The connection pool to close.
    """
    await pool.close()
