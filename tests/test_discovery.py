"""Tests for structure discovery providers."""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

import pytest
from pydantic import BaseModel, Field

from stationdb.models.structure import RenderHint, ScalarType, StructureCategory
from stationdb.services.discovery import (
    DiscoveryProvider,
    FileDiscoveryProvider,
    StaticDiscoveryProvider,
    StructureRegistry,
    descriptor_from_model,
    snake_case,
)
from stationdb.utils.exceptions import DiscoveryError

from conftest import PRODUCT_CATALOG


class FuelGrade(str, Enum):
    REGULAR = "regular"
    DIESEL = "diesel"


class FuelDeliveryForm(BaseModel):
    supplier: str = Field(..., description="Supplier name")
    litres: float
    tank_number: int = 1
    grade: FuelGrade = FuelGrade.REGULAR
    delivered_at: datetime
    unit_cost: Optional[Decimal] = None
    verified: bool = False
    receipt: Optional[str] = Field(None, json_schema_extra={"render_hint": "file"})


class TestSnakeCase:

    @pytest.mark.parametrize("name,expected", [
        ("FuelDeliveryForm", "fuel_delivery_form"),
        ("HTTPLog", "http_log"),
        ("Shift2Report", "shift2_report"),
        ("already_snake", "already_snake"),
    ])
    def test_conversion(self, name, expected):
        assert snake_case(name) == expected


class TestDescriptorFromModel:
    """Tests for deriving descriptors from pydantic models."""

    def setup_method(self):
        """Set up test fixtures."""
        self.descriptor = descriptor_from_model(FuelDeliveryForm)
        self.fields = {f.name: f for f in self.descriptor.fields}

    def test_name_category_and_source(self):
        assert self.descriptor.name == "fuel_delivery_form"
        assert self.descriptor.category == StructureCategory.FORM
        assert self.descriptor.source.endswith("test_discovery.FuelDeliveryForm")

    def test_field_order_is_declaration_order(self):
        assert [f.name for f in self.descriptor.fields] == [
            "supplier", "litres", "tank_number", "grade",
            "delivered_at", "unit_cost", "verified", "receipt",
        ]

    def test_types(self):
        """Test the annotation to scalar mapping."""
        assert self.fields["supplier"].type == ScalarType.STRING
        assert self.fields["litres"].type == ScalarType.NUMBER
        assert self.fields["tank_number"].type == ScalarType.INTEGER
        assert self.fields["grade"].type == ScalarType.STRING
        assert self.fields["delivered_at"].type == ScalarType.DATETIME
        assert self.fields["unit_cost"].type == ScalarType.NUMBER
        assert self.fields["verified"].type == ScalarType.BOOLEAN

    def test_required_and_defaults(self):
        assert self.fields["supplier"].required is True
        assert self.fields["supplier"].description == "Supplier name"
        assert self.fields["tank_number"].required is False
        assert self.fields["tank_number"].default_value == 1
        assert self.fields["unit_cost"].default_value is None
        assert self.fields["verified"].default_value is False

    def test_render_hint(self):
        assert self.fields["receipt"].render_hint == RenderHint.FILE
        assert self.fields["supplier"].render_hint == RenderHint.PLAIN

    def test_overrides(self):
        descriptor = descriptor_from_model(
            FuelDeliveryForm,
            name="deliveries",
            category=StructureCategory.TABLE,
            source="Database Schema"
        )
        assert descriptor.name == "deliveries"
        assert descriptor.category == StructureCategory.TABLE
        assert descriptor.source == "Database Schema"

    def test_unsupported_type(self):
        """Test that a field with no scalar mapping is rejected."""
        class Broken(BaseModel):
            tags: list[str]

        with pytest.raises(DiscoveryError) as exc_info:
            descriptor_from_model(Broken)
        assert "Broken.tags" in exc_info.value.message

    def test_ambiguous_union(self):
        class Broken(BaseModel):
            value: Optional[int | str] = None

        with pytest.raises(DiscoveryError):
            descriptor_from_model(Broken)


class TestStructureRegistry:
    """Tests for the in-process registry."""

    def setup_method(self):
        """Set up test fixtures."""
        self.registry = StructureRegistry()

    def test_satisfies_provider_protocol(self):
        assert isinstance(self.registry, DiscoveryProvider)

    @pytest.mark.asyncio
    async def test_decorator_registers_model(self):
        @self.registry.model(category=StructureCategory.COMPONENT)
        class ShiftHandover(BaseModel):
            cashier: str
            float_amount: float = 0.0

        assert ShiftHandover.__name__ == "ShiftHandover"
        assert "shift_handover" in self.registry

        structures = await self.registry.discover()
        assert len(structures) == 1
        assert structures[0].category == StructureCategory.COMPONENT

    @pytest.mark.asyncio
    async def test_register_replaces_by_name(self):
        self.registry.register(PRODUCT_CATALOG)
        self.registry.register({"name": "product_catalog", "fields": [{"name": "sku"}]})

        assert len(self.registry) == 1
        structures = await self.registry.discover()
        assert [f.name for f in structures[0].fields] == ["sku"]

    def test_unregister(self):
        self.registry.register(PRODUCT_CATALOG)
        assert self.registry.unregister("product_catalog") is True
        assert self.registry.unregister("product_catalog") is False
        assert len(self.registry) == 0

    @pytest.mark.asyncio
    async def test_discover_returns_copies(self):
        self.registry.register(PRODUCT_CATALOG)
        first = await self.registry.discover()
        first[0].fields.clear()

        second = await self.registry.discover()
        assert len(second[0].fields) == 5


class TestStaticDiscoveryProvider:

    @pytest.mark.asyncio
    async def test_accepts_models_and_dicts(self):
        provider = StaticDiscoveryProvider([
            PRODUCT_CATALOG,
            {"name": "pump_log", "fields": [{"name": "pump", "type": "integer"}]},
        ])

        structures = await provider.discover()

        assert [s.name for s in structures] == ["product_catalog", "pump_log"]
        assert structures[1].fields[0].type == ScalarType.INTEGER
        assert structures[0] is not PRODUCT_CATALOG


class TestFileDiscoveryProvider:
    """Tests for the JSON file provider."""

    @pytest.mark.asyncio
    async def test_reads_list(self, tmp_path):
        path = tmp_path / "structures.json"
        path.write_text(json.dumps([
            {"name": "tank_levels", "fields": [
                {"name": "tank", "type": "integer", "required": True},
                {"name": "photo", "render_hint": "image"},
            ]}
        ]))

        structures = await FileDiscoveryProvider(path).discover()

        assert structures[0].name == "tank_levels"
        assert structures[0].fields[1].render_hint == RenderHint.IMAGE

    @pytest.mark.asyncio
    async def test_reads_wrapped_object(self, tmp_path):
        path = tmp_path / "structures.json"
        path.write_text(json.dumps({"structures": [{"name": "a"}, {"name": "b"}]}))

        structures = await FileDiscoveryProvider(str(path)).discover()

        assert [s.name for s in structures] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_rereads_on_each_scan(self, tmp_path):
        path = tmp_path / "structures.json"
        provider = FileDiscoveryProvider(path)
        path.write_text(json.dumps([{"name": "a"}]))
        assert len(await provider.discover()) == 1

        path.write_text(json.dumps([{"name": "a"}, {"name": "b"}]))
        assert len(await provider.discover()) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content,message", [
        (None, "not found"),
        ("{not json", "Invalid JSON"),
        ('{"structures": {"name": "a"}}', "Expected a list"),
        ('[{"name": ""}]', "Invalid structure"),
        ('[{"name": "a", "fields": [{"name": "x"}, {"name": "x"}]}]', "Invalid structure"),
    ])
    async def test_errors(self, tmp_path, content, message):
        path = tmp_path / "structures.json"
        if content is not None:
            path.write_text(content)

        with pytest.raises(DiscoveryError) as exc_info:
            await FileDiscoveryProvider(path).discover()
        assert message in exc_info.value.message
