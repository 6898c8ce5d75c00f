"""
CLI command tests (flask menu / orders / events / maintenance groups).
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from orderhub.models import IngestionEvent, MenuItem, MenuSyncLease
from orderhub.services import maintenance_service
from orderhub.services.gloriafood_client import GloriaFoodClient, RemoteFetchError
from orderhub.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def platform(monkeypatch):
    fake = Mock(name="GloriaFoodClient")
    monkeypatch.setattr(GloriaFoodClient, "from_config", classmethod(lambda cls, config: fake))
    return fake


class TestMenuSyncCommand:
    def test_sync_reports_counts(self, runner, db_session, platform, make_snapshot):
        platform.fetch_menu.return_value = make_snapshot()

        result = runner.invoke(args=["menu", "sync", "--trigger", "manual"])

        assert result.exit_code == 0, result.output
        assert "PASS Menu synchronized: 1 categories, 2 items" in result.output
        assert db_session.query(MenuItem).count() == 2

    def test_sync_failure_exits_non_zero(self, runner, db_session, platform):
        platform.fetch_menu.side_effect = RemoteFetchError("Error fetching menu: 503 Service Unavailable")

        result = runner.invoke(args=["menu", "sync"])

        assert result.exit_code == 1
        assert "FAIL Menu sync failed" in result.output


class TestOrdersPollCommand:
    def test_poll_summary_lists_rejections(self, runner, db_session, platform, make_order):
        bad = make_order(order_id=2)
        del bad["type"]
        platform.poll_orders.return_value = {"count": 2, "orders": [make_order(order_id=1), bad]}

        result = runner.invoke(args=["orders", "poll"])

        assert result.exit_code == 0, result.output
        assert "1 new, 0 duplicate, 1 rejected" in result.output
        assert "rejected 2: order.type is required" in result.output


class TestEventsCommand:
    def test_list_filtered(self, runner, db_session, platform):
        platform.poll_orders.return_value = {"count": 0, "orders": []}
        runner.invoke(args=["orders", "poll"])

        result = runner.invoke(args=["events", "list", "--event-type", "order_poll"])

        assert "order_poll" in result.output
        assert "success" in result.output

    def test_empty(self, runner, db_session):
        assert "No events." in runner.invoke(args=["events", "list"]).output


class TestMaintenance:
    def test_cleanup_events_respects_retention(self, db_session):
        db_session.add_all([
            IngestionEvent(event_type="order_poll", status="success", created_at=utcnow() - timedelta(days=120)),
            IngestionEvent(event_type="order_poll", status="success", created_at=utcnow() - timedelta(days=10)),
        ])
        db_session.commit()

        assert maintenance_service.cleanup_ingestion_events(retention_days=90) == 1
        assert db_session.query(IngestionEvent).count() == 1

    def test_cleanup_events_rejects_zero_retention(self, db_session):
        with pytest.raises(ValueError):
            maintenance_service.cleanup_ingestion_events(retention_days=0)

    def test_cleanup_events_command(self, runner, db_session):
        result = runner.invoke(args=["maintenance", "cleanup-events", "--retention-days", "30"])
        assert result.exit_code == 0
        assert "Deleted 0 ingestion events older than 30 days." in result.output

    def test_cleanup_leases_keeps_live_ones(self, runner, db_session):
        now = utcnow()
        db_session.add_all([
            MenuSyncLease(lock_key="menu:1", owner_token="a", acquired_at=now, expires_at=now + timedelta(minutes=5)),
            MenuSyncLease(lock_key="menu:2", owner_token="b", acquired_at=now, expires_at=now - timedelta(minutes=5)),
        ])
        db_session.commit()

        result = runner.invoke(args=["maintenance", "cleanup-leases"])

        assert "Deleted 1 expired menu sync leases." in result.output
        assert [lease.lock_key for lease in db_session.query(MenuSyncLease).all()] == ["menu:1"]
