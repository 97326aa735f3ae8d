"""MCP pool introspection tools."""

from mcp.server.fastmcp import FastMCP

from stationdb.services.pooled_api import PooledApi


def register_pool_tools(mcp: FastMCP, api: PooledApi) -> None:
    """Register the pool diagnostics tools with the MCP server.

    Args:
        mcp: The FastMCP server instance.
        api: The pooled API façade.
    """

    @mcp.tool()
    async def pool_stats() -> dict:
        """
        Get admission pool accounting: active, maximum, pressure and status.

        Returns:
            Pool statistics.
        """
        return {
            "status": "success",
            "data": api.get_connection_stats().model_dump(mode="json")
        }

    @mcp.tool()
    async def health_check() -> dict:
        """
        Check pool pressure, backend reachability and recent operation metrics.

        Returns:
            Health report.
        """
        return (await api.health_check()).model_dump(mode="json")
