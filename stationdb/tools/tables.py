"""MCP table data tools."""

from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from stationdb.models.api import ApiResponse
from stationdb.services.pooled_api import PooledApi


def _result(response: ApiResponse) -> dict:
    payload = response.model_dump(mode="json")
    payload["status"] = "success" if response.ok else "error"
    return payload


def register_table_tools(mcp: FastMCP, api: PooledApi) -> None:
    """Register the table data tools with the MCP server.

    Args:
        mcp: The FastMCP server instance.
        api: The pooled API façade.
    """

    @mcp.tool()
    async def table_page(
        table: str,
        page_no: int = 1,
        page_size: int = 20,
        order_by: Optional[str] = "id",
        is_asc: bool = True,
        filters: Optional[list[dict]] = None
    ) -> dict:
        """
        Read one page of rows from a table.

        Args:
            table: Table name.
            page_no: 1-based page number.
            page_size: Rows per page.
            order_by: Column to order by.
            is_asc: Ascending order when true.
            filters: List of {name, op, value}; op is eq, ne, gt, ge, lt, le, like or ilike.

        Returns:
            {data: {list, total, page_no, page_size}} or {error}.
        """
        return _result(await api.table_page(table, {
            "page_no": page_no,
            "page_size": page_size,
            "order_by": order_by,
            "is_asc": is_asc,
            "filters": filters or []
        }))

    @mcp.tool()
    async def table_create(table: str, data: dict[str, Any]) -> dict:
        """
        Insert a row into a table.

        Args:
            table: Table name.
            data: Column values.

        Returns:
            {data: {id}} or {error}.
        """
        return _result(await api.table_create(table, data))

    @mcp.tool()
    async def table_update(table: str, data: dict[str, Any]) -> dict:
        """
        Update a row; data must include its id.

        Args:
            table: Table name.
            data: Column values including id.

        Returns:
            {data: {id}} or {error}.
        """
        return _result(await api.table_update(table, data))

    @mcp.tool()
    async def table_delete(table: str, id: int) -> dict:
        """
        Delete a row by id.

        Args:
            table: Table name.
            id: Row id.

        Returns:
            {data: {id}} or {error}.
        """
        return _result(await api.table_delete(table, {"id": id}))

    @mcp.tool()
    async def bulk_table_operations(operations: list[dict]) -> dict:
        """
        Run several create/update/delete requests on one pooled connection.

        Args:
            operations: List of {type: create|update|delete, table, data}.

        Returns:
            Per-item results; check each item's success flag.
        """
        return _result(await api.bulk_table_operations(operations))
