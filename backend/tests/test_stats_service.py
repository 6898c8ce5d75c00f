"""Dashboard aggregates and the order read/update queries behind the API."""

from datetime import datetime

import pytest

from orderhub.models import Order
from orderhub.services import order_query_service, stats_service
from orderhub.services.order_query_service import OrderQueryError
from orderhub.services.order_service import OrderNormalizer
from orderhub.services.result_cache import DASHBOARD_CACHE_KEY


@pytest.fixture
def ingest(store, cache):
    normalizer = OrderNormalizer(store, cache)
    return normalizer.ingest


class TestDashboardStats:
    def test_top_clients_ranked_by_spend(self, ingest, make_order):
        ingest(make_order(order_id=1, client_id=1, client_first_name="Small", total_price=5))
        ingest(make_order(order_id=2, client_id=2, client_first_name="Big", total_price=40))
        ingest(make_order(order_id=3, client_id=1, total_price=6))

        stats = stats_service.compute_dashboard_stats()

        top = stats["top_clients"]
        assert [(c["first_name"], c["total_orders"], c["total_spent_cents"]) for c in top] == [
            ("Big", 1, 4000),
            ("Small", 2, 1100),
        ]
        assert stats["today"]["avg_order_value_cents"] == 1700

    def test_recent_orders_carry_client_names(self, ingest, make_order):
        ingest(make_order(order_id=1, client_id=9, client_first_name="Ana", client_last_name="Lopez"))

        recent = stats_service.compute_dashboard_stats()["recent_orders"]

        assert recent[0]["client_first_name"] == "Ana"
        assert recent[0]["client_last_name"] == "Lopez"

    def test_empty_store(self, db_session):
        stats = stats_service.compute_dashboard_stats()
        assert stats["month"] == {"orders": 0, "revenue_cents": 0, "avg_order_value_cents": 0}
        assert stats["orders_by_type"] == {"pickup": 0, "delivery": 0}

    def test_cached_until_invalidated(self, ingest, make_order, cache):
        assert stats_service.get_dashboard_stats()["today"]["orders"] == 0
        cache.put(DASHBOARD_CACHE_KEY, {"today": {"orders": 99}})

        assert stats_service.get_dashboard_stats()["today"]["orders"] == 99

        ingest(make_order())
        assert stats_service.get_dashboard_stats()["today"]["orders"] == 1


class TestOrderQueries:
    def test_status_update_invalidates_dashboard(self, ingest, make_order, cache, db_session):
        order_id = ingest(make_order()).internal_id
        cache.put(DASHBOARD_CACHE_KEY, {"stale": True})

        order = order_query_service.update_order_status(order_id, " ready ")

        assert order.status == "ready"
        assert cache.get(DASHBOARD_CACHE_KEY) is None

    def test_status_update_unknown_order(self, db_session):
        assert order_query_service.update_order_status(12345, "ready") is None

    def test_status_too_long(self, db_session):
        with pytest.raises(OrderQueryError):
            order_query_service.update_order_status(1, "x" * 33)

    def test_list_filters_by_status_and_clamps_limit(self, ingest, make_order):
        ingest(make_order(order_id=1))
        ingest(make_order(order_id=2, status="completed"))

        orders, total = order_query_service.list_orders(status="completed", limit=1000)

        assert total == 1
        assert orders[0].external_order_id == 2

    def test_detail_lists_coupons_and_taxes(self, ingest, make_order):
        order_id = ingest(make_order(coupons=["WELCOME"], tax_list=[{"type": "item", "rate": 0.2, "value": 2.5}])).internal_id

        details = order_query_service.get_order_with_details(order_id)

        assert details["coupons"] == ["WELCOME"]
        assert details["taxes"][0]["value_cents"] == 250
        assert details["billing"] is None


class TestReports:
    NOW = datetime(2026, 10, 16, 12, 0, 0)

    def _at(self, db_session, internal_id, when):
        order = db_session.get(Order, internal_id)
        order.created_at = when
        db_session.commit()

    def test_sales_by_day_groups_oldest_first(self, ingest, make_order, db_session):
        self._at(db_session, ingest(make_order(order_id=1, total_price=10)).internal_id, datetime(2026, 10, 15, 9, 0))
        self._at(db_session, ingest(make_order(order_id=2, total_price=20)).internal_id, datetime(2026, 10, 15, 21, 0))
        self._at(db_session, ingest(make_order(order_id=3, total_price=5)).internal_id, datetime(2026, 10, 14, 8, 0))
        self._at(db_session, ingest(make_order(order_id=4, total_price=99)).internal_id, datetime(2026, 8, 1, 8, 0))

        rows = stats_service.sales_by_day(30, now=self.NOW)

        assert rows == [
            {"date": "2026-10-14", "orders": 1, "revenue_cents": 500, "avg_order_value_cents": 500},
            {"date": "2026-10-15", "orders": 2, "revenue_cents": 3000, "avg_order_value_cents": 1500},
        ]

    def test_sales_by_hour(self, ingest, make_order, db_session):
        self._at(db_session, ingest(make_order(order_id=1, total_price=10)).internal_id, datetime(2026, 10, 15, 9, 5))
        self._at(db_session, ingest(make_order(order_id=2, total_price=20)).internal_id, datetime(2026, 10, 14, 9, 55))
        self._at(db_session, ingest(make_order(order_id=3, total_price=5)).internal_id, datetime(2026, 10, 14, 18, 0))

        rows = stats_service.sales_by_hour(now=self.NOW)

        assert rows == [
            {"hour": 9, "orders": 2, "revenue_cents": 3000},
            {"hour": 18, "orders": 1, "revenue_cents": 500},
        ]

    def test_top_products_counts_items_only(self, ingest, make_order, db_session):
        ingest(make_order(order_id=1, items=[
            {"type": "item", "name": "Burger", "price": 10, "quantity": 2},
            {"type": "delivery_fee", "name": "Delivery", "price": 3, "quantity": 1},
        ]))
        ingest(make_order(order_id=2, items=[
            {"type": "item", "name": "Burger", "price": 10, "quantity": 1},
            {"type": "item", "name": "Fries", "price": 4, "quantity": 1},
        ]))

        rows = stats_service.top_products(10)

        assert rows == [
            {"name": "Burger", "total_quantity": 3, "total_revenue_cents": 3000, "order_count": 2},
            {"name": "Fries", "total_quantity": 1, "total_revenue_cents": 400, "order_count": 1},
        ]
        assert stats_service.top_products(1) == rows[:1]

    def test_payment_stats_skip_unknown_methods(self, ingest, make_order, db_session):
        ingest(make_order(order_id=1, pickup_payment="CASH", total_price=10))
        ingest(make_order(order_id=2, pickup_payment="CASH", total_price=5))
        ingest(make_order(order_id=3, pickup_payment="CARD", total_price=7))
        ingest(make_order(order_id=4, total_price=1))

        assert stats_service.payment_stats() == [
            {"payment_method": "CASH", "count": 2, "total_cents": 1500},
            {"payment_method": "CARD", "count": 1, "total_cents": 700},
        ]

    def test_delivery_zone_stats(self, ingest, make_order, db_session):
        ingest(make_order(order_id=1, type="delivery", delivery_zone_name="Center", total_price=20, items=[
            {"type": "item", "name": "Burger", "price": 17, "quantity": 1},
            {"type": "delivery_fee", "name": "Delivery", "price": 3, "quantity": 1},
        ]))
        ingest(make_order(order_id=2, type="delivery", delivery_zone_name="Center", total_price=10))
        ingest(make_order(order_id=3, type="delivery", delivery_zone_name="North", total_price=8))
        ingest(make_order(order_id=4, type="delivery", total_price=8))
        ingest(make_order(order_id=5, delivery_zone_name="Center", total_price=8))

        rows = stats_service.delivery_zone_stats()

        assert [(r["zone"], r["orders"], r["revenue_cents"]) for r in rows] == [
            ("Center", 2, 3000),
            ("North", 1, 800),
        ]

    def test_empty_store(self, db_session):
        assert stats_service.sales_by_day(now=self.NOW) == []
        assert stats_service.sales_by_hour(now=self.NOW) == []
        assert stats_service.top_products() == []
        assert stats_service.payment_stats() == []
        assert stats_service.delivery_zone_stats() == []
