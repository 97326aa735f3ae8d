"""MCP schema auto-sync tools."""

from mcp.server.fastmcp import FastMCP

from stationdb.services.reconciler import SchemaReconciler


def register_sync_tools(mcp: FastMCP, reconciler: SchemaReconciler) -> None:
    """Register the schema reconciler tools with the MCP server.

    Args:
        mcp: The FastMCP server instance.
        reconciler: The schema reconciler.
    """

    @mcp.tool()
    async def sync_status() -> dict:
        """
        Get the schema auto-sync status and the most recent run.

        Returns:
            Reconciler status.
        """
        return {
            "status": "success",
            "data": reconciler.get_status().model_dump(mode="json")
        }

    @mcp.tool()
    async def detected_structures() -> dict:
        """
        List the table structures last applied to the backend.

        Returns:
            Structure descriptors.
        """
        structures = reconciler.get_detected_structures()
        return {
            "status": "success",
            "count": len(structures),
            "structures": [s.model_dump(mode="json") for s in structures]
        }

    @mcp.tool()
    async def trigger_sync() -> dict:
        """
        Scan declared structures now and apply creates/updates.

        Joins the running scan if one is already in progress.

        Returns:
            The finished sync run.
        """
        run = await reconciler.trigger_sync()
        return {
            "status": "success" if run.succeeded else "error",
            "run": run.model_dump(mode="json"),
            "failed": run.failed
        }
