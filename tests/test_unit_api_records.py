"""
Tests for the generic records API and its request parsing helpers.

Tests cover:
- Bracket-notation filter parsing (filters, orFilters, repeated keys)
- Comma separated list parameters
- Listing envelope and JSON serialization of records and relations
- Error body and status codes for engine errors
- Single record fetch, hard delete and soft delete
- Health endpoints
"""

import uuid
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from fieldops.api.schemas import parse_bracket_params, split_list_param

API = "/api/v1"


# ============================================================================
# Request parsing
# ============================================================================


class TestParseBracketParams:
    def test_nested_filters(self):
        filters, or_filters = parse_bracket_params(
            [
                ("filters[branch][city][name]", "Riyadh"),
                ("filters[created_at][gte]", "2024-01-01"),
                ("page", "2"),
            ]
        )
        assert filters == {
            "branch": {"city": {"name": "Riyadh"}},
            "created_at": {"gte": "2024-01-01"},
        }
        assert or_filters == []

    def test_repeated_key_becomes_list(self):
        filters, _ = parse_bracket_params(
            [
                ("filters[status]", "approved"),
                ("filters[status]", "rejected"),
                ("filters[status]", "pending"),
            ]
        )
        assert filters == {"status": ["approved", "rejected", "pending"]}

    def test_or_groups_ordered_by_index(self):
        _, or_filters = parse_bracket_params(
            [
                ("orFilters[10][status]", "rejected"),
                ("orFilters[1][status]", "pending"),
                ("orFilters[0][project][id]", "p1"),
                ("orFilters[0][status]", "approved"),
            ]
        )
        assert or_filters == [
            {"project": {"id": "p1"}, "status": "approved"},
            {"status": "pending"},
            {"status": "rejected"},
        ]

    def test_malformed_keys_are_ignored(self):
        filters, or_filters = parse_bracket_params(
            [
                ("filters[]", "x"),
                ("filters[status", "x"),
                ("orFilters[0]", "x"),
                ("other[status]", "x"),
            ]
        )
        assert filters == {}
        assert or_filters == []


class TestSplitListParam:
    def test_comma_and_repeat(self):
        assert split_list_param(["branch.city, promoter", "product", " "]) == [
            "branch.city",
            "promoter",
            "product",
        ]

    def test_empty(self):
        assert split_list_param(None) == []
        assert split_list_param([]) == []


# ============================================================================
# Listing endpoint
# ============================================================================


class TestListRecords:
    @pytest.mark.anyio
    async def test_envelope_with_defaults(self, api_client: httpx.AsyncClient):
        resp = await api_client.get(f"{API}/records/audit")

        assert resp.status_code == 200
        body = resp.json()
        assert body["total_records"] == 5
        assert body["current_page"] == 1
        assert body["per_page"] == 10
        assert len(body["records"]) == 5
        assert body["records"][0]["status"] == "rejected"

    @pytest.mark.anyio
    async def test_bracket_filters_sort_and_relations(
        self, api_client: httpx.AsyncClient, seeded: SimpleNamespace
    ):
        resp = await api_client.get(
            f"{API}/records/audit",
            params=[
                ("filters[branch][city][name]", "Riyadh"),
                ("sortBy", "audit_date"),
                ("sortOrder", "asc"),
                ("relations", "branch.city,promoter"),
            ],
        )

        assert resp.status_code == 200
        records = resp.json()["records"]
        assert [r["id"] for r in records] == [
            str(seeded.audits[n].id) for n in ("a1", "a2", "a5")
        ]
        assert records[0]["branch"]["city"]["name"] == "Riyadh"
        assert records[0]["promoter"]["username"] == "sara"
        assert records[0]["audit_date"] == "2024-01-05"
        assert "product" not in records[0]

    @pytest.mark.anyio
    async def test_repeated_filter_and_or_filters(self, api_client: httpx.AsyncClient):
        resp = await api_client.get(
            f"{API}/records/audit",
            params=[
                ("filters[status][ne]", "pending"),
                ("orFilters[0][branch][name]", "Panda Olaya"),
                ("orFilters[1][is_available]", "false"),
            ],
        )

        assert resp.status_code == 200
        statuses = sorted(r["status"] for r in resp.json()["records"])
        assert statuses == ["approved", "approved"]

    @pytest.mark.anyio
    async def test_search_and_paging(self, api_client: httpx.AsyncClient):
        resp = await api_client.get(
            f"{API}/records/audit",
            params={"search": "milk", "searchFields": "product_name", "limit": "2", "page": "2"},
        )

        body = resp.json()
        assert body["total_records"] == 3
        assert body["current_page"] == 2
        assert body["per_page"] == 2
        assert len(body["records"]) == 1

    @pytest.mark.anyio
    async def test_search_without_search_fields_lists_everything(
        self, api_client: httpx.AsyncClient, seeded: SimpleNamespace
    ):
        resp = await api_client.get(f"{API}/records/audit", params={"search": "milk"})

        assert resp.status_code == 200
        assert resp.json()["total_records"] == 5

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("params", "error"),
        [
            ({"page": "0"}, "InvalidPaginationError"),
            ({"limit": "abc"}, "InvalidPaginationError"),
            ({"sortOrder": "up"}, "InvalidSortOrderError"),
            ({"sortBy": "bogus"}, "UnknownSortFieldError"),
            ({"relations": "branch.bogus"}, "UnknownRelationSegmentError"),
            ({"filters[current_price][gt]": "cheap"}, "InvalidFilterValueError"),
        ],
    )
    async def test_invalid_parameters_return_400(
        self, api_client: httpx.AsyncClient, params: dict, error: str
    ):
        resp = await api_client.get(f"{API}/records/audit", params=params)

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == error
        assert body["message"]
        assert isinstance(body["details"], dict)

    @pytest.mark.anyio
    async def test_unknown_entity_returns_404(self, api_client: httpx.AsyncClient):
        resp = await api_client.get(f"{API}/records/spaceship")

        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] == "UnknownEntityError"
        assert "audit" in body["details"]["available"]


# ============================================================================
# Single record endpoints
# ============================================================================


class TestRecordEndpoints:
    @pytest.mark.anyio
    async def test_get_with_collection_relation(
        self, api_client: httpx.AsyncClient, seeded: SimpleNamespace
    ):
        brand_id = seeded.brands["lays"].id
        resp = await api_client.get(
            f"{API}/records/brand/{brand_id}", params={"relations": "categories"}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Lays"
        assert sorted(c["name"] for c in body["categories"]) == ["Dairy", "Snacks"]

    @pytest.mark.anyio
    async def test_get_missing_returns_404(self, api_client: httpx.AsyncClient):
        missing = uuid.uuid4()
        resp = await api_client.get(f"{API}/records/audit/{missing}")

        assert resp.status_code == 404
        assert resp.json()["message"] == f"audit with ID {missing} not found."

    @pytest.mark.anyio
    async def test_delete_then_get(self, api_client: httpx.AsyncClient, seeded: SimpleNamespace):
        audit_id = seeded.audits["a4"].id

        resp = await api_client.delete(f"{API}/records/audit/{audit_id}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "audit deleted successfully."}

        resp = await api_client.get(f"{API}/records/audit/{audit_id}")
        assert resp.status_code == 404

    @pytest.mark.anyio
    async def test_soft_delete(self, api_client: httpx.AsyncClient, seeded: SimpleNamespace):
        journey_id = seeded.journeys["j2"].id

        resp = await api_client.delete(
            f"{API}/records/journey/{journey_id}", params={"soft": "true"}
        )
        assert resp.status_code == 200
        assert resp.json() == {"message": "journey soft-deleted successfully."}

        resp = await api_client.get(f"{API}/records/journey/{journey_id}")
        assert resp.status_code == 404

        listing = (await api_client.get(f"{API}/records/journey")).json()
        assert listing["total_records"] == 2
        assert str(journey_id) not in {r["id"] for r in listing["records"]}

        resp = await api_client.get(
            f"{API}/records/journey/{journey_id}", params={"withDeleted": "true"}
        )
        assert resp.status_code == 200
        assert resp.json()["deleted_at"] is not None

        listing = (
            await api_client.get(f"{API}/records/journey", params={"withDeleted": "true"})
        ).json()
        assert listing["total_records"] == 3


# ============================================================================
# Health
# ============================================================================


class TestHealth:
    @pytest.mark.anyio
    async def test_health_ok(self, api_client: httpx.AsyncClient):
        resp = await api_client.get(f"{API}/health")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    @pytest.mark.anyio
    async def test_readyz_ok(self, api_client: httpx.AsyncClient, async_engine: AsyncEngine):
        with patch("fieldops.api.routes.health.get_async_engine", return_value=async_engine):
            resp = await api_client.get(f"{API}/readyz")

        assert resp.status_code == 200
        body = resp.json()
        assert body["db"] == "ok"
        assert body["entities"] >= 10

    @pytest.mark.anyio
    async def test_readyz_unavailable(self, api_client: httpx.AsyncClient):
        with patch(
            "fieldops.api.routes.health.get_async_engine",
            side_effect=RuntimeError("no database"),
        ):
            resp = await api_client.get(f"{API}/readyz")

        assert resp.status_code == 503
        assert resp.json() == {"ok": False, "db": "unavailable"}
