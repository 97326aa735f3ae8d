"""MCP tools for stationdb."""

from stationdb.tools.pool import register_pool_tools
from stationdb.tools.sync import register_sync_tools
from stationdb.tools.tables import register_table_tools

__all__ = [
    "register_pool_tools",
    "register_sync_tools",
    "register_table_tools",
]
