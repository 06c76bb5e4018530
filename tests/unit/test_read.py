"""
Unit tests for read reconstruction.

Tests cover:
- Order grouping by order number
- Customer snapshot extraction
- Media enrichment order, defaults and degraded lookups
"""

import pytest

from storefront.mall_core.errors import RemoteFailure
from storefront.mall_core.gateway import InMemoryGateway
from storefront.mall_core.read import customer_snapshot, enrich_with_media, group_order_lines
from storefront.mall_core.schema import STORE_TABLES


class TestGroupOrderLines:
    """Tests for group_order_lines."""

    def test_groups_by_order_number(self):
        orders = group_order_lines([
            {"zcommandeno": "A", "zcommandestatut": "paid"},
            {"zcommandeno": "A", "zcommandestatut": "paid"},
            {"zcommandeno": "B", "zcommandestatut": "pending"},
        ])

        assert [o.order_number for o in orders] == ["A", "B"]
        assert len(orders[0].items) == 2
        assert len(orders[1].items) == 1
        assert orders[0].status == "paid"
        assert orders[1].status == "pending"

    def test_header_from_first_line(self):
        orders = group_order_lines([
            {"zcommandeid": 1, "zcommandeno": "A", "zcommandedate": "2024-01-02",
             "zcommandelivraisondate": "2024-01-09", "zcommandestatut": "paid"},
            {"zcommandeid": 2, "zcommandeno": "A", "zcommandedate": "2024-01-03",
             "zcommandelivraisondate": "2024-01-10", "zcommandestatut": "shipped"},
        ])

        order = orders[0]
        assert order.order_id == 1
        assert order.ordered_at == "2024-01-02"
        assert order.delivery_date == "2024-01-09"
        assert order.status == "paid"

    def test_non_contiguous_lines_join_their_group(self):
        orders = group_order_lines([
            {"zcommandeid": 1, "zcommandeno": "A"},
            {"zcommandeid": 2, "zcommandeno": "B"},
            {"zcommandeid": 3, "zcommandeno": "A"},
        ])

        assert [o.order_number for o in orders] == ["A", "B"]
        assert [line["zcommandeid"] for line in orders[0].items] == [1, 3]

    def test_empty_input(self):
        assert group_order_lines([]) == []

    def test_to_dict(self):
        order = group_order_lines([{"zcommandeid": 1, "zcommandeno": "A", "zcommandestatut": "paid"}])[0]

        data = order.to_dict()

        assert data["order_number"] == "A"
        assert data["status"] == "paid"
        assert data["customer"] is None
        assert data["items"] == [{"zcommandeid": 1, "zcommandeno": "A", "zcommandestatut": "paid"}]

    def test_customer_snapshot(self):
        row = {
            "zcommandeno": "A",
            "ycompte": {"ycompteid": 5, "yvisiteur": {"yvisiteurnom": "Ada", "yvisiteuremail": "ada@example.com"}},
        }

        assert customer_snapshot(row) == {"yvisiteurnom": "Ada", "yvisiteuremail": "ada@example.com"}
        assert group_order_lines([row])[0].customer["yvisiteurnom"] == "Ada"

    def test_customer_snapshot_missing(self):
        assert customer_snapshot({"zcommandeno": "A"}) is None
        assert customer_snapshot({"zcommandeno": "A", "ycompte": None}) is None
        assert customer_snapshot({"zcommandeno": "A", "ycompte": {"yvisiteur": None}}) is None


class TestEnrichWithMedia:
    """Tests for enrich_with_media."""

    @pytest.fixture
    def store(self):
        store = InMemoryGateway(STORE_TABLES)
        store.seed("ymedia", [
            {"ymediaid": 1, "ymediaurl": "a-front.jpg"},
            {"ymediaid": 2, "ymediaurl": "a-back.jpg"},
            {"ymediaid": 3, "ymediaurl": "b.jpg"},
        ])
        store.seed("yvarprodmedia", [
            {"yvarprodmediaid": 1, "yvarprodidfk": 10, "ymediaidfk": 1},
            {"yvarprodmediaid": 2, "yvarprodidfk": 10, "ymediaidfk": 2},
            {"yvarprodmediaid": 3, "yvarprodidfk": 20, "ymediaidfk": 3},
        ])
        return store

    @pytest.mark.asyncio
    async def test_attaches_one_media_per_variant(self, store):
        rows = [
            {"ypanierid": 1, "yvarprod": {"yvarprodid": 10}},
            {"ypanierid": 2, "yvarprod": {"yvarprodid": 20}},
        ]

        enriched = await enrich_with_media(store, rows)

        assert [r["ypanierid"] for r in enriched] == [1, 2]
        assert enriched[0]["yvarprod"]["yvarprodmedia"] == [{"ymedia": {"ymediaid": 1, "ymediaurl": "a-front.jpg"}}]
        assert enriched[1]["yvarprod"]["yvarprodmedia"][0]["ymedia"]["ymediaurl"] == "b.jpg"

    @pytest.mark.asyncio
    async def test_absent_media_is_empty_list(self, store):
        enriched = await enrich_with_media(store, [{"ypanierid": 1, "yvarprod": {"yvarprodid": 99}}])

        assert enriched[0]["yvarprod"]["yvarprodmedia"] == []

    @pytest.mark.asyncio
    async def test_foreign_key_only_rows(self, store):
        """Rows without an embedded variant carry media at the top level."""
        enriched = await enrich_with_media(store, [{"zcommandeid": 1, "yvarprodidfk": 20}])

        assert enriched[0]["yvarprodmedia"][0]["ymedia"]["ymediaid"] == 3

    @pytest.mark.asyncio
    async def test_row_without_variant(self, store):
        enriched = await enrich_with_media(store, [{"zcommandeid": 1, "yvarprod": None}])

        assert enriched[0]["yvarprodmedia"] == []
        assert store.call_count("select", "yvarprodmedia") == 0

    @pytest.mark.asyncio
    async def test_failed_lookup_degrades(self, store):
        """A failed lookup yields [] for its row without failing the others."""
        rows = [
            {"ypanierid": 1, "yvarprod": {"yvarprodid": 10}},
            {"ypanierid": 2, "yvarprod": {"yvarprodid": 20}},
        ]
        store.fail_next(RemoteFailure("timeout"))

        enriched = await enrich_with_media(store, rows)

        assert [r["ypanierid"] for r in enriched] == [1, 2]
        media_counts = sorted(len(r["yvarprod"]["yvarprodmedia"]) for r in enriched)
        assert media_counts == [0, 1]

    @pytest.mark.asyncio
    async def test_input_rows_untouched(self, store):
        rows = [{"ypanierid": 1, "yvarprod": {"yvarprodid": 10}}]

        await enrich_with_media(store, rows)

        assert rows == [{"ypanierid": 1, "yvarprod": {"yvarprodid": 10}}]

    @pytest.mark.asyncio
    async def test_empty_input(self, store):
        assert await enrich_with_media(store, []) == []
