"""Backend collaborators consumed by the pooled API."""

import json
import logging
import operator
import re
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

import asyncpg
from sqlglot import exp

from stationdb.models.api import Filter, PageQuery
from stationdb.models.structure import ScalarType, TableDefinitionRequest
from stationdb.services.database import measure_latency
from stationdb.utils.exceptions import BackendError, InvalidRequestError

logger = logging.getLogger("backend")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# Declared type -> (DDL type, information_schema.columns.data_type)
_COLUMN_TYPES: dict[ScalarType, tuple[str, str]] = {
    ScalarType.STRING: ("TEXT", "text"),
    ScalarType.NUMBER: ("DOUBLE PRECISION", "double precision"),
    ScalarType.INTEGER: ("BIGINT", "bigint"),
    ScalarType.BOOLEAN: ("BOOLEAN", "boolean"),
    ScalarType.DATETIME: ("TIMESTAMPTZ", "timestamp with time zone"),
}

_SQL_OPERATORS = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "ge": ">=",
    "lt": "<",
    "le": "<=",
    "like": "LIKE",
    "ilike": "ILIKE",
}

RESERVED_COLUMNS = frozenset({"id"})


@runtime_checkable
class TableBackend(Protocol):
    """Protocol implemented by table storage backends."""

    async def table_page(self, table: str, query: PageQuery) -> Any:
        """Read one page of rows."""

    async def table_create(self, table: str, data: dict[str, Any]) -> Any:
        """Insert a row."""

    async def table_update(self, table: str, data: dict[str, Any]) -> Any:
        """Update the row identified by ``data["id"]``."""

    async def table_delete(self, table: str, params: dict[str, Any]) -> Any:
        """Delete the row identified by ``params["id"]``."""

    async def define_table(self, request: TableDefinitionRequest) -> Any:
        """Create or redeclare a table. Must be idempotent."""

    async def backup_table(self, name: str) -> Optional[str]:
        """Snapshot a table's data; returns the backup name or None."""


@runtime_checkable
class AuthBackend(Protocol):
    """Protocol implemented by authentication collaborators."""

    async def login(self, email: str, password: str) -> Any:
        """Authenticate a user."""

    async def register(self, email: str, password: str) -> Any:
        """Register a user."""

    async def get_user_info(self) -> Any:
        """Return the current user."""

    async def logout(self) -> Any:
        """End the current session."""


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol implemented by file storage collaborators."""

    async def upload(
        self,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None
    ) -> Any:
        """Store a file and return its reference."""


def quote_identifier(name: str) -> str:
    """Validate and quote a Postgres identifier.

    Args:
        name: Table or column name.

    Returns:
        The double-quoted identifier.

    Raises:
        InvalidRequestError: If the name is not a plain identifier.
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidRequestError(f"Invalid identifier: {name!r}")
    return exp.to_identifier(name, quoted=True).sql(dialect="postgres")


def quote_literal(value: str) -> str:
    """Render a string as a Postgres literal."""
    return exp.Literal.string(value).sql(dialect="postgres")


def _require_id(values: dict[str, Any], action: str) -> Any:
    if values.get("id") is None:
        raise InvalidRequestError(f"{action} requires an 'id'")
    return values["id"]


def _affected(status: str) -> int:
    """Parse the row count out of an asyncpg command status like ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresBackend:
    """Table backend that talks to PostgreSQL via asyncpg."""

    _COLUMNS_QUERY = """
        SELECT column_name, data_type
        FROM information_schema.columns
        WHERE table_schema = $1 AND table_name = $2
        ORDER BY ordinal_position
    """

    def __init__(self, pool: asyncpg.Pool, schema: str = "public"):
        """Initialize the backend.

        Args:
            pool: asyncpg pool used for every statement.
            schema: Schema that owns the managed tables.
        """
        self.pool = pool
        self.schema = schema

    def _table(self, name: str) -> str:
        return f"{quote_identifier(self.schema)}.{quote_identifier(name)}"

    async def ping(self) -> float:
        """Probe the database and return latency in milliseconds."""
        return await measure_latency(self.pool)

    async def table_page(self, table: str, query: PageQuery) -> dict[str, Any]:
        """Read one page of rows.

        Args:
            table: Table name.
            query: Paging, ordering and filter parameters.

        Returns:
            Dictionary with ``list``, ``total``, ``page_no`` and ``page_size``.
        """
        target = self._table(table)
        where, args = self._where(query.filters)
        order = ""
        if query.order_by:
            direction = "ASC" if query.is_asc else "DESC"
            order = f" ORDER BY {quote_identifier(query.order_by)} {direction}"
        limit_pos = len(args) + 1
        offset = (query.page_no - 1) * query.page_size

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM {target}{where}", *args)
            rows = await conn.fetch(
                f"SELECT * FROM {target}{where}{order} "
                f"LIMIT ${limit_pos} OFFSET ${limit_pos + 1}",
                *args, query.page_size, offset
            )

        return {
            "list": [dict(row) for row in rows],
            "total": total,
            "page_no": query.page_no,
            "page_size": query.page_size,
        }

    async def table_create(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return its new id."""
        if not data:
            raise InvalidRequestError("Create requires at least one column value")
        columns = ", ".join(quote_identifier(k) for k in data)
        placeholders = ", ".join(f"${i}" for i in range(1, len(data) + 1))
        async with self.pool.acquire() as conn:
            new_id = await conn.fetchval(
                f"INSERT INTO {self._table(table)} ({columns}) "
                f"VALUES ({placeholders}) RETURNING id",
                *data.values()
            )
        return {"id": new_id}

    async def table_update(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update the row identified by ``data["id"]``."""
        row_id = _require_id(data, "Update")
        values = {k: v for k, v in data.items() if k != "id"}
        if not values:
            raise InvalidRequestError("Update requires at least one column value")
        assignments = ", ".join(
            f"{quote_identifier(k)} = ${i}" for i, k in enumerate(values, start=1)
        )
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                f"UPDATE {self._table(table)} SET {assignments} "
                f"WHERE id = ${len(values) + 1}",
                *values.values(), row_id
            )
        if _affected(status) == 0:
            raise BackendError(f"No row with id {row_id} in {table}")
        return {"id": row_id}

    async def table_delete(self, table: str, params: dict[str, Any]) -> dict[str, Any]:
        """Delete the row identified by ``params["id"]``."""
        row_id = _require_id(params, "Delete")
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                f"DELETE FROM {self._table(table)} WHERE id = $1", row_id
            )
        if _affected(status) == 0:
            raise BackendError(f"No row with id {row_id} in {table}")
        return {"id": row_id}

    async def define_table(self, request: TableDefinitionRequest) -> dict[str, Any]:
        """Create or redeclare a table in one transaction.

        Missing columns are added and columns whose stored type differs are
        converted in place. Columns absent from the request are kept.

        Args:
            request: Full table shape.

        Returns:
            Dictionary with the table name and applied column changes.
        """
        target = self._table(request.name)
        for field in request.fields:
            if field.name in RESERVED_COLUMNS:
                raise InvalidRequestError(f"Column name {field.name!r} is reserved")

        added: list[str] = []
        altered: list[str] = []
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {target} (id BIGSERIAL PRIMARY KEY)"
                )
                rows = await conn.fetch(self._COLUMNS_QUERY, self.schema, request.name)
                existing = {row["column_name"]: row["data_type"] for row in rows}

                for field in request.fields:
                    column = quote_identifier(field.name)
                    ddl_type, info_type = _COLUMN_TYPES[field.type]
                    current = existing.get(field.name)
                    if current is None:
                        await conn.execute(
                            f"ALTER TABLE {target} ADD COLUMN IF NOT EXISTS {column} {ddl_type}"
                        )
                        added.append(field.name)
                    elif current != info_type:
                        await conn.execute(
                            f"ALTER TABLE {target} ALTER COLUMN {column} "
                            f"TYPE {ddl_type} USING {column}::{ddl_type}"
                        )
                        altered.append(field.name)

                    comment = json.dumps({
                        "display_name": field.display_name,
                        "description": field.description,
                        "default_value": field.default_value,
                        "render_hint": field.render_hint.value,
                    })
                    await conn.execute(
                        f"COMMENT ON COLUMN {target}.{column} IS {quote_literal(comment)}"
                    )

                table_comment = json.dumps({
                    "display_name": request.display_name,
                    "description": request.description,
                })
                await conn.execute(
                    f"COMMENT ON TABLE {target} IS {quote_literal(table_comment)}"
                )

        logger.info(
            "Defined table %s (added=%s, altered=%s)", request.name, added, altered
        )
        return {"table": request.name, "added": added, "altered": altered}

    async def backup_table(self, name: str) -> Optional[str]:
        """Copy a table's rows into a timestamped backup table.

        Returns:
            The backup table name, or None if the source table does not exist.
        """
        target = self._table(name)
        suffix = f"__backup_{datetime.now(timezone.utc):%Y%m%d%H%M%S}"
        backup_name = name[:63 - len(suffix)] + suffix

        async with self.pool.acquire() as conn:
            exists = await conn.fetchval("SELECT to_regclass($1)", target)
            if exists is None:
                return None
            await conn.execute(
                f"CREATE TABLE {self._table(backup_name)} AS TABLE {target}"
            )

        logger.info("Backed up %s to %s", name, backup_name)
        return backup_name

    def _where(self, filters: list[Filter]) -> tuple[str, list[Any]]:
        if not filters:
            return "", []
        clauses = [
            f"{quote_identifier(f.name)} {_SQL_OPERATORS[f.op]} ${i}"
            for i, f in enumerate(filters, start=1)
        ]
        return " WHERE " + " AND ".join(clauses), [f.value for f in filters]


_PY_OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}


def _like(value: Any, pattern: Any, ignore_case: bool = False) -> bool:
    regex = "^" + re.escape(str(pattern)).replace("%", ".*").replace("_", ".") + "$"
    flags = re.IGNORECASE if ignore_case else 0
    return value is not None and re.match(regex, str(value), flags) is not None


def _matches(row: dict[str, Any], f: Filter) -> bool:
    value = row.get(f.name)
    if f.op == "like":
        return _like(value, f.value)
    if f.op == "ilike":
        return _like(value, f.value, ignore_case=True)
    if value is None or f.value is None:
        return f.op == "eq" and value == f.value
    return _PY_OPERATORS[f.op](value, f.value)


class MemoryBackend:
    """In-process table backend for demos and tests.

    Keeps every ``define_table`` request and backup so callers can inspect
    exactly what a reconciler applied.
    """

    def __init__(self, latency_ms: float = 0.0):
        self.latency_ms = latency_ms
        self.tables: dict[str, dict[str, Any]] = {}
        self.definitions: list[TableDefinitionRequest] = []
        self.backups: list[str] = []

    async def ping(self) -> float:
        return self.latency_ms

    def _rows(self, table: str) -> dict[int, dict[str, Any]]:
        try:
            return self.tables[table]["rows"]
        except KeyError:
            raise BackendError(f"Table {table} does not exist")

    async def table_page(self, table: str, query: PageQuery) -> dict[str, Any]:
        rows = [
            row for row in self._rows(table).values()
            if all(_matches(row, f) for f in query.filters)
        ]
        if query.order_by:
            rows.sort(
                key=lambda r: (r.get(query.order_by) is None, r.get(query.order_by)),
                reverse=not query.is_asc
            )
        start = (query.page_no - 1) * query.page_size
        return {
            "list": [dict(r) for r in rows[start:start + query.page_size]],
            "total": len(rows),
            "page_no": query.page_no,
            "page_size": query.page_size,
        }

    async def table_create(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        rows = self._rows(table)
        new_id = self.tables[table]["next_id"]
        self.tables[table]["next_id"] += 1
        rows[new_id] = {**data, "id": new_id}
        return {"id": new_id}

    async def table_update(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        row_id = _require_id(data, "Update")
        rows = self._rows(table)
        if row_id not in rows:
            raise BackendError(f"No row with id {row_id} in {table}")
        rows[row_id].update(data)
        return {"id": row_id}

    async def table_delete(self, table: str, params: dict[str, Any]) -> dict[str, Any]:
        row_id = _require_id(params, "Delete")
        rows = self._rows(table)
        if rows.pop(row_id, None) is None:
            raise BackendError(f"No row with id {row_id} in {table}")
        return {"id": row_id}

    async def define_table(self, request: TableDefinitionRequest) -> dict[str, Any]:
        self.definitions.append(request)
        entry = self.tables.setdefault(
            request.name, {"rows": {}, "next_id": 1, "definition": request}
        )
        entry["definition"] = request
        return {"table": request.name}

    async def backup_table(self, name: str) -> Optional[str]:
        if name not in self.tables:
            return None
        backup_name = f"{name}__backup_{len(self.backups) + 1}"
        source = self.tables[name]
        self.tables[backup_name] = {
            "rows": {k: dict(v) for k, v in source["rows"].items()},
            "next_id": source["next_id"],
            "definition": source["definition"],
        }
        self.backups.append(backup_name)
        return backup_name

    def definitions_for(self, name: str) -> list[TableDefinitionRequest]:
        """Get every define request issued for one table."""
        return [d for d in self.definitions if d.name == name]
