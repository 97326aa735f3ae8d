# stationdb/main.py
"""Main entry point for the stationdb server."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from mcp.server.fastmcp import FastMCP

from stationdb.config import Settings
from stationdb.services.admission import AdmissionPool
from stationdb.services.backend import MemoryBackend, PostgresBackend, TableBackend
from stationdb.services.database import close_pool, create_pool
from stationdb.services.discovery import DiscoveryProvider, FileDiscoveryProvider, StructureRegistry
from stationdb.services.metrics import OperationMetrics
from stationdb.services.pooled_api import PooledApi
from stationdb.services.reconciler import SchemaReconciler
from stationdb.tools import register_pool_tools, register_sync_tools, register_table_tools

logger = logging.getLogger("stationdb")


@dataclass
class Services:
    """Wired core services."""
    pool: AdmissionPool
    api: PooledApi
    reconciler: SchemaReconciler
    registry: StructureRegistry


def build_services(
    settings: Settings,
    backend: TableBackend,
    registry: Optional[StructureRegistry] = None
) -> Services:
    """Construct the admission pool, façade and reconciler from settings.

    Args:
        settings: Application settings.
        backend: Table backend collaborator.
        registry: Structure registry; a fresh one is created if omitted.

    Returns:
        The wired services.
    """
    pool = AdmissionPool(
        maximum=settings.pool_max_connections,
        warning_threshold=settings.pool_warning_threshold,
        critical_threshold=settings.pool_critical_threshold
    )
    api = PooledApi(
        pool,
        backend,
        wait_for_slot=settings.pool_wait_for_slot,
        acquire_timeout=settings.pool_acquire_timeout,
        operation_timeout=settings.operation_timeout,
        metrics=OperationMetrics(window_seconds=settings.metrics_window)
        if settings.metrics_enabled else None
    )

    registry = registry if registry is not None else StructureRegistry()
    providers: list[DiscoveryProvider] = [registry]
    if settings.structures_file:
        providers.append(FileDiscoveryProvider(settings.structures_file))

    reconciler = SchemaReconciler(
        api,
        providers,
        auto_sync=settings.sync_auto,
        sync_interval=settings.sync_interval,
        backup_enabled=settings.sync_backup_enabled,
        history_size=settings.sync_history_size
    )
    return Services(pool=pool, api=api, reconciler=reconciler, registry=registry)


def register_tools(mcp: FastMCP, services: Services) -> None:
    """Register all MCP tools.

    Args:
        mcp: The FastMCP instance.
        services: The wired services.
    """
    register_pool_tools(mcp, services.api)
    register_sync_tools(mcp, services.reconciler)
    register_table_tools(mcp, services.api)


def main() -> None:
    """Main entry point for the server."""
    import argparse

    parser = argparse.ArgumentParser(description="Station database sync server")
    parser.add_argument(
        "--dsn",
        type=str,
        help="Database DSN"
    )
    parser.add_argument(
        "--structures",
        type=str,
        help="JSON file listing declared structures"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use the in-memory backend instead of PostgreSQL"
    )
    parser.add_argument(
        "--no-auto-sync",
        action="store_true",
        help="Scan once on startup without arming the sync timer"
    )

    args = parser.parse_args()

    # Load settings
    settings = Settings()
    if args.dsn:
        settings.postgres_dsn = args.dsn
    if args.structures:
        settings.structures_file = args.structures
    if args.no_auto_sync:
        settings.sync_auto = False

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logger.info("Starting stationdb server initialization")

    asyncio.run(run_server(settings, demo=args.demo))


async def run_server(settings: Settings, demo: bool = False) -> None:
    """Run the MCP server.

    Args:
        settings: Application settings.
        demo: Use the in-memory backend.
    """
    mcp = FastMCP("stationdb", host=settings.mcp_host, port=settings.mcp_port)

    db_pool = None
    if demo:
        logger.info("Using in-memory backend")
        backend: TableBackend = MemoryBackend()
    else:
        db_pool = await create_pool(
            dsn=settings.get_dsn(),
            max_size=settings.postgres_pool_size,
            ssl=settings.postgres_ssl,
            schema=settings.postgres_schema
        )
        backend = PostgresBackend(db_pool, schema=settings.postgres_schema)

    services = build_services(settings, backend)
    register_tools(mcp, services)

    try:
        await services.reconciler.start()
        logger.info("stationdb server ready; starting event loop")
        await mcp.run_sse_async()
    finally:
        await services.reconciler.aclose()
        if db_pool is not None:
            await close_pool(db_pool)


if __name__ == "__main__":
    main()
