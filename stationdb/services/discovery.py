"""Structure discovery providers feeding the schema reconciler."""

import json
import logging
import re
import types
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol, Union, get_args, get_origin, runtime_checkable

from pydantic import BaseModel, ValidationError

from stationdb.models.structure import (
    FieldDescriptor,
    RenderHint,
    ScalarType,
    StructureCategory,
    StructureDescriptor,
)
from stationdb.utils.exceptions import DiscoveryError

logger = logging.getLogger("structure-discovery")

# Checked in order: bool before int, datetime before date.
_PYTHON_TYPES: list[tuple[type, ScalarType]] = [
    (bool, ScalarType.BOOLEAN),
    (int, ScalarType.INTEGER),
    (float, ScalarType.NUMBER),
    (Decimal, ScalarType.NUMBER),
    (datetime, ScalarType.DATETIME),
    (date, ScalarType.DATETIME),
    (str, ScalarType.STRING),
]


@runtime_checkable
class DiscoveryProvider(Protocol):
    """Source of expected table structures."""

    async def discover(self) -> list[StructureDescriptor]:
        """Return every structure this source currently declares."""


def snake_case(name: str) -> str:
    """Convert a class name like ``SalesReportForm`` to ``sales_report_form``."""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def _scalar_for(annotation: Any) -> tuple[ScalarType, bool]:
    """Map a field annotation to a scalar type.

    Returns:
        Tuple of (scalar type, whether the annotation allows None).
    """
    optional = False
    if get_origin(annotation) in (Union, types.UnionType):
        args = get_args(annotation)
        non_null = [a for a in args if a is not type(None)]
        if len(non_null) != 1:
            raise DiscoveryError(f"Unsupported union annotation: {annotation!r}")
        optional = len(non_null) < len(args)
        annotation = non_null[0]

    if isinstance(annotation, type) and get_origin(annotation) is None:
        for python_type, scalar in _PYTHON_TYPES:
            if issubclass(annotation, python_type):
                return scalar, optional
        if issubclass(annotation, Enum):
            return ScalarType.STRING, optional
    raise DiscoveryError(f"Unsupported field annotation: {annotation!r}")


def descriptor_from_model(
    model: type[BaseModel],
    *,
    name: Optional[str] = None,
    category: StructureCategory = StructureCategory.FORM,
    source: Optional[str] = None
) -> StructureDescriptor:
    """Derive a structure descriptor from a pydantic model.

    Fields keep their declaration order. The render hint is read from
    ``Field(json_schema_extra={"render_hint": "image"})``.

    Args:
        model: Pydantic model describing a form or table.
        name: Structure name; defaults to the snake-cased class name.
        category: Where the structure is declared.
        source: Provenance; defaults to the model's dotted path.

    Returns:
        The derived descriptor.

    Raises:
        DiscoveryError: If a field type has no scalar mapping.
    """
    fields = []
    for field_name, info in model.model_fields.items():
        try:
            scalar, optional = _scalar_for(info.annotation)
        except DiscoveryError as e:
            raise DiscoveryError(f"{model.__name__}.{field_name}: {e.message}")
        extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
        required = info.is_required()
        fields.append(FieldDescriptor(
            name=field_name,
            type=scalar,
            default_value=None if required else info.get_default(call_default_factory=True),
            required=required and not optional,
            description=info.description or "",
            render_hint=RenderHint(extra.get("render_hint", RenderHint.PLAIN.value))
        ))

    return StructureDescriptor(
        name=name or snake_case(model.__name__),
        fields=fields,
        category=category,
        source=source or f"{model.__module__}.{model.__qualname__}"
    )


class StaticDiscoveryProvider:
    """Provider returning a fixed list of structures."""

    def __init__(self, structures: Iterable[Union[StructureDescriptor, dict]]):
        self._structures = [
            s if isinstance(s, StructureDescriptor) else StructureDescriptor.model_validate(s)
            for s in structures
        ]

    async def discover(self) -> list[StructureDescriptor]:
        return [s.model_copy(deep=True) for s in self._structures]


class StructureRegistry:
    """Registry where application code declares its forms and tables.

    Usage:
        registry = StructureRegistry()

        @registry.model(category=StructureCategory.FORM)
        class ContactForm(BaseModel):
            name: str
            attachment: Optional[str] = Field(None, json_schema_extra={"render_hint": "file"})
    """

    def __init__(self):
        self._structures: dict[str, StructureDescriptor] = {}

    def register(self, descriptor: Union[StructureDescriptor, dict]) -> StructureDescriptor:
        """Register or replace a structure by name."""
        if not isinstance(descriptor, StructureDescriptor):
            descriptor = StructureDescriptor.model_validate(descriptor)
        if descriptor.name in self._structures:
            logger.info("Replacing registered structure: %s", descriptor.name)
        self._structures[descriptor.name] = descriptor
        return descriptor

    def register_model(
        self,
        model: type[BaseModel],
        *,
        name: Optional[str] = None,
        category: StructureCategory = StructureCategory.FORM,
        source: Optional[str] = None
    ) -> StructureDescriptor:
        """Register a structure derived from a pydantic model."""
        return self.register(
            descriptor_from_model(model, name=name, category=category, source=source)
        )

    def model(
        self,
        *,
        name: Optional[str] = None,
        category: StructureCategory = StructureCategory.FORM,
        source: Optional[str] = None
    ) -> Callable[[type[BaseModel]], type[BaseModel]]:
        """Class decorator form of ``register_model``."""
        def decorator(cls: type[BaseModel]) -> type[BaseModel]:
            self.register_model(cls, name=name, category=category, source=source)
            return cls
        return decorator

    def unregister(self, name: str) -> bool:
        """Remove a structure; returns False if it was not registered."""
        return self._structures.pop(name, None) is not None

    def __contains__(self, name: object) -> bool:
        return name in self._structures

    def __len__(self) -> int:
        return len(self._structures)

    async def discover(self) -> list[StructureDescriptor]:
        return [s.model_copy(deep=True) for s in self._structures.values()]


class FileDiscoveryProvider:
    """Provider reading structures from a JSON file on every scan.

    The file holds either a list of descriptors or an object with a
    ``structures`` list.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def discover(self) -> list[StructureDescriptor]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise DiscoveryError(f"Structures file not found: {self.path}")
        except json.JSONDecodeError as e:
            raise DiscoveryError(f"Invalid JSON in {self.path}: {e}")

        items = raw.get("structures", []) if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise DiscoveryError(f"Expected a list of structures in {self.path}")
        try:
            return [StructureDescriptor.model_validate(item) for item in items]
        except ValidationError as e:
            raise DiscoveryError(f"Invalid structure in {self.path}: {e}")
