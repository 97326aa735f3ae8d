"""Pooled API request and response models."""

from collections.abc import Mapping
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Uniform ``{data, error}`` envelope returned by the pooled API."""

    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the response carries no error."""
        return self.error is None

    @classmethod
    def coerce(cls, value: Any) -> "ApiResponse":
        """Normalise a backend return value into an ApiResponse.

        A mapping whose keys are a subset of ``{"data", "error"}`` is read
        as a conventional envelope; anything else is treated as data.

        Args:
            value: Raw value returned by a backend collaborator.

        Returns:
            The normalised response.
        """
        if isinstance(value, ApiResponse):
            return value
        if (
            isinstance(value, Mapping)
            and value
            and set(value.keys()) <= {"data", "error"}
        ):
            error = value.get("error")
            return cls(
                data=value.get("data"),
                error=str(error) if error else None
            )
        return cls(data=value)


class Filter(BaseModel):
    """Single column filter for paged table reads."""

    name: str
    op: Literal["eq", "ne", "gt", "ge", "lt", "le", "like", "ilike"] = "eq"
    value: Any = None


class PageQuery(BaseModel):
    """Paged table read parameters."""

    page_no: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=1000)
    order_by: Optional[str] = "id"
    is_asc: bool = True
    filters: list[Filter] = Field(default_factory=list)


class BulkOperation(BaseModel):
    """One create, update or delete request inside a bulk batch."""

    type: Literal["create", "update", "delete"]
    table: str
    data: dict[str, Any] = Field(default_factory=dict)


class BulkItemResult(BaseModel):
    """Outcome of a single bulk batch item."""

    success: bool
    result: Any = None
    error: Optional[str] = None
