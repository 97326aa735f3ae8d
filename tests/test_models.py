# tests/test_models.py
"""Tests for data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from stationdb.models.api import ApiResponse, BulkOperation, Filter, PageQuery
from stationdb.models.pool import ConnectionHandle, PoolStats, PoolStatus
from stationdb.models.structure import (
    FieldDescriptor,
    RenderHint,
    ScalarType,
    StructureDescriptor,
    format_display_name,
)
from stationdb.models.sync import StructureResult, SyncOutcome, SyncRun, SyncTrigger

from conftest import PRODUCT_CATALOG, make_structure


class TestStructureModels:
    """Structure descriptor tests."""

    @pytest.mark.parametrize("name,expected", [
        ("product_catalog", "Product Catalog"),
        ("sku", "Sku"),
        ("image_url", "Image Url"),
        ("double__underscore", "Double  Underscore"),
        ("_leading", " Leading"),
        ("already Spaced", "Already Spaced"),
    ])
    def test_format_display_name(self, name, expected):
        """Test display name formatting."""
        assert format_display_name(name) == expected

    def test_field_defaults(self):
        """Test FieldDescriptor default values."""
        field = FieldDescriptor(name="notes")
        assert field.type == ScalarType.STRING
        assert field.render_hint == RenderHint.PLAIN
        assert field.required is False
        assert field.default_value is None

    def test_empty_names_rejected(self):
        with pytest.raises(ValidationError):
            FieldDescriptor(name="")
        with pytest.raises(ValidationError):
            StructureDescriptor(name="")

    def test_duplicate_field_names_rejected(self):
        """Test that a structure cannot declare the same column twice."""
        with pytest.raises(ValidationError) as exc_info:
            make_structure("t", [("sku", ScalarType.STRING), ("sku", ScalarType.INTEGER)])
        assert "Duplicate field name: sku" in str(exc_info.value)

    def test_signature(self):
        """Test that the signature carries name, type and hint in order."""
        assert PRODUCT_CATALOG.signature()[-1] == (
            "image_url", ScalarType.STRING, RenderHint.IMAGE
        )
        assert len(PRODUCT_CATALOG.signature()) == 5

    def test_differs_from(self):
        """Test change detection between two descriptors."""
        base = make_structure("t", [("a", ScalarType.STRING), ("b", ScalarType.NUMBER)])
        same = make_structure("t", [("a", ScalarType.STRING), ("b", ScalarType.NUMBER)])
        fewer = make_structure("t", [("a", ScalarType.STRING)])
        renamed = make_structure("t", [("a", ScalarType.STRING), ("c", ScalarType.NUMBER)])
        reordered = make_structure("t", [("b", ScalarType.NUMBER), ("a", ScalarType.STRING)])

        assert not base.differs_from(same)
        assert base.differs_from(fewer)
        assert base.differs_from(renamed)
        assert base.differs_from(reordered)

    def test_source_and_timestamp_do_not_affect_signature(self):
        other = PRODUCT_CATALOG.model_copy(update={
            "source": "elsewhere",
            "last_modified": datetime(2020, 1, 1, tzinfo=timezone.utc)
        })
        assert not PRODUCT_CATALOG.differs_from(other)

    def test_to_table_definition(self):
        """Test conversion into a create/update request."""
        request = PRODUCT_CATALOG.to_table_definition()

        assert request.name == "product_catalog"
        assert request.display_name == "Product Catalog"
        assert request.description == "Auto-generated table for Database Schema"
        price = request.fields[2]
        assert price.display_name == "Price"
        assert price.description == "Product price"
        assert price.default_value == "0"
        assert price.type == ScalarType.NUMBER

    def test_to_table_definition_none_default(self):
        request = make_structure("t", [("a", ScalarType.BOOLEAN)]).to_table_definition()
        assert request.fields[0].default_value == ""


class TestApiModels:
    """Pooled API model tests."""

    def test_response_ok(self):
        assert ApiResponse(data=1).ok
        assert not ApiResponse(error="boom").ok

    @pytest.mark.parametrize("value,data,error", [
        ({"data": [1, 2]}, [1, 2], None),
        ({"error": "Invalid credentials"}, None, "Invalid credentials"),
        ({"data": None, "error": None}, None, None),
        ({"id": 3}, {"id": 3}, None),
        ({}, {}, None),
        ([1, 2], [1, 2], None),
        (None, None, None),
    ])
    def test_coerce(self, value, data, error):
        """Test normalisation of raw backend values."""
        response = ApiResponse.coerce(value)
        assert response.data == data
        assert response.error == error

    def test_coerce_passes_responses_through(self):
        response = ApiResponse(error="x", code="ERR_BACKEND")
        assert ApiResponse.coerce(response) is response

    def test_page_query_defaults(self):
        query = PageQuery()
        assert query.page_no == 1
        assert query.page_size == 20
        assert query.order_by == "id"
        assert query.is_asc is True
        assert query.filters == []

    @pytest.mark.parametrize("params", [
        {"page_no": 0},
        {"page_size": 0},
        {"page_size": 1001},
        {"filters": [{"name": "a", "op": "between"}]},
    ])
    def test_page_query_validation(self, params):
        with pytest.raises(ValidationError):
            PageQuery(**params)

    def test_filter_default_op(self):
        assert Filter(name="grade", value="diesel").op == "eq"

    def test_bulk_operation(self):
        op = BulkOperation(type="delete", table="t")
        assert op.data == {}
        with pytest.raises(ValidationError):
            BulkOperation(type="upsert", table="t")


class TestPoolModels:
    """Pool model tests."""

    def test_handle_defaults(self):
        handle = ConnectionHandle(id="conn_1_abc", tag="read", acquired_at=1.0)
        assert handle.released is False
        assert handle.acquired_wall.tzinfo is not None

    def test_stats_serialises(self):
        stats = PoolStats(
            active=70, maximum=100, pressure=0.7, status=PoolStatus.WARNING,
            peak_active=70, total_acquired=70, total_released=0, rejected=0,
            waiting=0, oldest_in_flight_seconds=None
        )
        dumped = stats.model_dump(mode="json")
        assert dumped["status"] == "warning"


class TestSyncModels:
    """Sync run model tests."""

    def test_run_properties(self):
        run = SyncRun(
            trigger=SyncTrigger.MANUAL,
            started_at=datetime.now(timezone.utc),
            results=[
                StructureResult(name="a", outcome=SyncOutcome.CREATED),
                StructureResult(name="b", outcome=SyncOutcome.FAILED, error="x"),
            ]
        )
        assert run.failed == ["b"]
        assert not run.succeeded
        assert run.outcome_of("a") == SyncOutcome.CREATED
        assert run.outcome_of("missing") is None

    def test_discovery_errors_mark_run_unsuccessful(self):
        run = SyncRun(
            trigger=SyncTrigger.TIMER,
            started_at=datetime.now(timezone.utc),
            discovery_errors=["FileDiscoveryProvider: missing"]
        )
        assert run.failed == []
        assert not run.succeeded
