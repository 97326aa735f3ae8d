"""Structure descriptor models used by discovery and reconciliation."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ScalarType(str, Enum):
    """Scalar field types understood by the backend."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


class RenderHint(str, Enum):
    """How a field is rendered by UI collaborators."""

    PLAIN = "plain"
    IMAGE = "image"
    FILE = "file"


class StructureCategory(str, Enum):
    """Where a structure was declared."""

    FORM = "form"
    TABLE = "table"
    COMPONENT = "component"


def format_display_name(name: str) -> str:
    """Title-case each underscore-separated word.

    Empty segments are kept, so ``a__b`` becomes ``A  B``.

    >>> format_display_name("product_catalog")
    'Product Catalog'
    """
    return " ".join(word[:1].upper() + word[1:] for word in name.split("_"))


class FieldDescriptor(BaseModel):
    """Expected shape of one column."""

    name: str = Field(..., min_length=1)
    type: ScalarType = ScalarType.STRING
    default_value: Any = None
    required: bool = False
    description: str = ""
    render_hint: RenderHint = RenderHint.PLAIN


class FieldDefinition(BaseModel):
    """Field entry of a create/update table request."""

    name: str
    display_name: str
    description: str
    default_value: str
    type: ScalarType
    render_hint: RenderHint


class TableDefinitionRequest(BaseModel):
    """Full table shape sent to the backend on create or update."""

    name: str
    display_name: str
    description: str
    fields: list[FieldDefinition]


class StructureDescriptor(BaseModel):
    """Expected shape of one remote table, as declared by application code."""

    name: str = Field(..., min_length=1)
    fields: list[FieldDescriptor] = Field(default_factory=list)
    category: StructureCategory = StructureCategory.TABLE
    source: str = "application"
    last_modified: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("fields")
    @classmethod
    def _unique_field_names(cls, fields: list[FieldDescriptor]) -> list[FieldDescriptor]:
        seen: set[str] = set()
        for f in fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field name: {f.name}")
            seen.add(f.name)
        return fields

    def signature(self) -> tuple[tuple[str, ScalarType, RenderHint], ...]:
        """Ordered identity used for change detection."""
        return tuple((f.name, f.type, f.render_hint) for f in self.fields)

    def differs_from(self, other: "StructureDescriptor") -> bool:
        """Check whether field count, order, names, types or hints differ."""
        return self.signature() != other.signature()

    def to_table_definition(self) -> TableDefinitionRequest:
        """Build the create/update request for this structure."""
        return TableDefinitionRequest(
            name=self.name,
            display_name=format_display_name(self.name),
            description=f"Auto-generated table for {self.source}",
            fields=[
                FieldDefinition(
                    name=f.name,
                    display_name=format_display_name(f.name),
                    description=f.description,
                    default_value="" if f.default_value is None else str(f.default_value),
                    type=f.type,
                    render_hint=f.render_hint
                )
                for f in self.fields
            ]
        )
