"""Pytest configuration and fixtures for stationdb tests."""

import asyncio
from typing import Any, Optional

import pytest

from stationdb.models.structure import (
    FieldDescriptor,
    RenderHint,
    ScalarType,
    StructureCategory,
    StructureDescriptor,
)
from stationdb.services.backend import MemoryBackend


# Markers for test categorization
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running tests"
    )


def pytest_collection_modifyitems(config, items):
    """Run integration tests last."""
    items.sort(key=lambda item: item.get_closest_marker("integration") is not None)


def make_structure(
    name: str,
    fields: list[tuple[str, ScalarType]],
    category: StructureCategory = StructureCategory.TABLE,
    **overrides: Any
) -> StructureDescriptor:
    """Build a descriptor from (name, type) pairs."""
    return StructureDescriptor(
        name=name,
        fields=[FieldDescriptor(name=n, type=t, **overrides) for n, t in fields],
        category=category,
        source="tests"
    )


PRODUCT_CATALOG = StructureDescriptor(
    name="product_catalog",
    category=StructureCategory.TABLE,
    source="Database Schema",
    fields=[
        FieldDescriptor(name="product_name", type=ScalarType.STRING, default_value="", required=True, description="Product name"),
        FieldDescriptor(name="sku", type=ScalarType.STRING, default_value="", required=True, description="Product SKU"),
        FieldDescriptor(name="price", type=ScalarType.NUMBER, default_value=0, required=True, description="Product price"),
        FieldDescriptor(name="quantity", type=ScalarType.INTEGER, default_value=0, required=True, description="Stock quantity"),
        FieldDescriptor(name="image_url", type=ScalarType.STRING, default_value="", description="Product image", render_hint=RenderHint.IMAGE),
    ]
)


class FlakyBackend(MemoryBackend):
    """Memory backend with switchable failures and an optional delay."""

    def __init__(self, delay: float = 0.0):
        super().__init__()
        self.delay = delay
        self.fail_define: set[str] = set()
        self.fail_backup = False
        self.fail_create_tables: set[str] = set()

    async def define_table(self, request):
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.name in self.fail_define:
            raise RuntimeError(f"define rejected for {request.name}")
        return await super().define_table(request)

    async def backup_table(self, name: str) -> Optional[str]:
        if self.fail_backup:
            raise RuntimeError("backup storage offline")
        return await super().backup_table(name)

    async def table_create(self, table, data):
        if table in self.fail_create_tables:
            raise ValueError(f"insert into {table} rejected")
        return await super().table_create(table, data)


class FakeAuth:
    """Auth collaborator returning conventional envelopes."""

    def __init__(self):
        self.user: Optional[dict] = None

    async def login(self, email: str, password: str):
        if password != "secret":
            return {"error": "Invalid credentials"}
        self.user = {"email": email}
        return {"data": self.user}

    async def register(self, email: str, password: str):
        return {"data": {"email": email}}

    async def get_user_info(self):
        if self.user is None:
            raise PermissionError("not authenticated")
        return {"data": self.user}

    async def logout(self):
        self.user = None
        return {"data": None}


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()
