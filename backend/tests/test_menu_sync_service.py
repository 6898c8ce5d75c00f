"""
Menu sync tests.

The rebuild is all-or-nothing: each failure case below asserts the previous
tree is still there afterwards.
"""

import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderhub.models import (
    IngestionEvent,
    Menu,
    MenuCategory,
    MenuItem,
    MenuItemOptionGroup,
    MenuItemSize,
    MenuOption,
    MenuOptionGroup,
    MenuSyncLease,
)
from orderhub.services import menu_service
from orderhub.services.concurrency import Deadline, DeadlineExceeded, PersistenceError
from orderhub.services.gloriafood_client import RemoteFetchError
from orderhub.services.menu_sync_service import (
    MenuSyncInProgressError,
    MenuTreeSynchronizer,
    SyncState,
    SyncStats,
)
from orderhub.services.result_cache import MENU_CACHE_KEY
from orderhub.time_utils import utcnow
from orderhub.validation import ValidationError


@pytest.fixture
def synchronizer(store, cache, remote):
    return MenuTreeSynchronizer(store, cache, remote)


def _sync(synchronizer, remote, snapshot, **kwargs):
    remote.fetch_menu.return_value = snapshot
    return synchronizer.sync(**kwargs)


def _menu_events(db_session):
    return (
        db_session.query(IngestionEvent)
        .filter_by(event_type="menu_sync")
        .order_by(IngestionEvent.id)
        .all()
    )


class TestSharedGroups:
    def test_group_referenced_by_two_items_stored_once(self, synchronizer, remote, make_snapshot, db_session):
        stats = _sync(synchronizer, remote, make_snapshot())

        assert db_session.query(MenuOptionGroup).count() == 1
        assert db_session.query(MenuOption).count() == 2
        assert db_session.query(MenuItemOptionGroup).count() == 2
        assert stats.option_groups == 1
        assert stats.options == 2
        assert stats.associations == 2

    def test_group_listed_twice_on_one_item_associated_once(self, synchronizer, remote, make_snapshot, db_session):
        group = make_snapshot.group
        snapshot = make_snapshot(categories=[{
            "id": 10,
            "name": "Burgers",
            "items": [{"id": 100, "name": "Classic", "price": 9, "groups": [group(), group()]}],
        }])
        _sync(synchronizer, remote, snapshot)

        assert db_session.query(MenuItemOptionGroup).count() == 1

    def test_size_level_groups_attach_to_size(self, synchronizer, remote, make_snapshot, db_session):
        group = make_snapshot.group
        snapshot = make_snapshot(categories=[{
            "id": 10,
            "name": "Pizza",
            "items": [{
                "id": 200,
                "name": "Margherita",
                "price": 8,
                "sizes": [
                    {"id": 1, "name": "Small", "price": 8, "default": True},
                    {"id": 2, "name": "Large", "price": 11, "groups": [group(group_id=12, name="Crust")]},
                ],
            }],
        }])
        stats = _sync(synchronizer, remote, snapshot)

        large = db_session.query(MenuItemSize).filter_by(name="Large").one()
        link = db_session.query(MenuItemOptionGroup).one()
        assert link.size_id == large.id
        assert link.item_id is None
        assert stats.sizes == 2
        assert db_session.query(MenuItemSize).filter_by(name="Small").one().is_default is True

    def test_category_level_group_saved_without_association(self, synchronizer, remote, make_snapshot, db_session):
        group = make_snapshot.group
        snapshot = make_snapshot(categories=[{
            "id": 10,
            "name": "Sides",
            "groups": [group(group_id=30, name="Dips")],
            "items": [],
        }])
        _sync(synchronizer, remote, snapshot)

        assert db_session.query(MenuOptionGroup).filter_by(external_id=30).one().name == "Dips"
        assert db_session.query(MenuItemOptionGroup).count() == 0

    def test_existing_group_updated_but_options_untouched(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot())

        group = make_snapshot.group
        renamed = make_snapshot(categories=[{
            "id": 10,
            "name": "Burgers",
            "items": [{
                "id": 100,
                "name": "Classic",
                "price": 9,
                "groups": [group(name="Extras", required=True, options=[{"id": 901, "name": "Cheese", "price": 9}])],
            }],
        }])
        stats = _sync(synchronizer, remote, renamed)

        stored = db_session.query(MenuOptionGroup).one()
        assert stored.name == "Extras"
        assert stored.required is True
        assert sorted(o.price_cents for o in stored.options) == [50, 125]
        assert stats.option_groups == 0
        assert stats.options == 0

    def test_group_insert_race_falls_back_to_existing_row(self, synchronizer, store, remote, make_snapshot, db_session, monkeypatch):
        _sync(synchronizer, remote, make_snapshot())
        existing = db_session.query(MenuOptionGroup).one()

        # The pre-check misses once, so the insert hits the unique key inside its savepoint
        calls = {"n": 0}
        original = store.find_option_group

        def racing_find(external_id):
            calls["n"] += 1
            return None if calls["n"] == 1 else original(external_id)

        monkeypatch.setattr(store, "find_option_group", racing_find)
        renamed = make_snapshot(categories=[{
            "id": 10,
            "name": "Burgers",
            "items": [
                {"id": 100, "name": "Classic", "groups": [make_snapshot.group(name="Extras")]},
                {"id": 101, "name": "Double", "groups": [make_snapshot.group(name="Extras")]},
            ],
        }])
        stats = _sync(synchronizer, remote, renamed)

        group = db_session.query(MenuOptionGroup).one()
        assert group.id == existing.id
        assert group.name == "Extras"
        assert db_session.query(MenuOption).count() == 2
        assert {a.option_group_id for a in db_session.query(MenuItemOptionGroup).all()} == {existing.id}
        assert db_session.query(MenuItemOptionGroup).count() == 2
        assert stats.option_groups == 0
        assert stats.associations == 2


class TestRebuild:
    def test_removed_category_is_gone_after_resync(self, synchronizer, remote, make_snapshot, db_session):
        group = make_snapshot.group
        both = make_snapshot(categories=[
            {"id": 10, "name": "Burgers", "items": [{"id": 100, "name": "Classic", "price": 9, "groups": [group()]}]},
            {"id": 11, "name": "Drinks", "items": [{"id": 110, "name": "Cola", "price": 2, "groups": [group()]}]},
        ])
        _sync(synchronizer, remote, both)
        assert db_session.query(MenuCategory).count() == 2

        only_burgers = make_snapshot(categories=[both["categories"][0]])
        _sync(synchronizer, remote, only_burgers)

        assert [c.name for c in db_session.query(MenuCategory).all()] == ["Burgers"]
        assert [i.name for i in db_session.query(MenuItem).all()] == ["Classic"]
        assert db_session.query(MenuItemOptionGroup).count() == 1
        # Groups are global and survive
        assert db_session.query(MenuOptionGroup).count() == 1

    def test_menu_row_reused_and_stamped(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot())
        first = db_session.query(Menu).one()
        first_synced = first.synced_at

        snapshot = make_snapshot()
        snapshot["currency"] = "USD"
        snapshot["active"] = False
        _sync(synchronizer, remote, snapshot)

        menu = db_session.query(Menu).one()
        assert menu.external_id == 77
        assert menu.currency == "USD"
        assert menu.is_active is False
        assert menu.synced_at >= first_synced

    def test_sort_order_follows_snapshot_order(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot())
        items = db_session.query(MenuItem).order_by(MenuItem.sort_order).all()
        assert [(i.name, i.sort_order) for i in items] == [("Classic", 0), ("Double", 1)]

    def test_item_attributes_and_blobs(self, synchronizer, remote, make_snapshot, db_session):
        snapshot = make_snapshot(categories=[{
            "id": 10,
            "name": "Burgers",
            "items": [{
                "id": 100,
                "name": "Classic",
                "price": "9.99",
                "tags": ["SPICY"],
                "picture": "https://img.example.test/classic.png",
                "extras": {
                    "menu_item_kitchen_internal_name": "CLS",
                    "menu_item_allergens_values": [{"id": 1, "name": "Gluten"}],
                    "menu_item_color": "red",
                },
            }],
        }])
        _sync(synchronizer, remote, snapshot)

        item = db_session.query(MenuItem).one()
        assert item.price_cents == 999
        assert item.kitchen_internal_name == "CLS"
        assert item.tags == ["SPICY"]
        assert item.allergens == [{"id": 1, "name": "Gluten"}]
        assert json.loads(item.extras_blob) == {"menu_item_color": "red"}
        assert item.image_url == "https://img.example.test/classic.png"

    def test_missing_active_defaults_to_true(self, synchronizer, remote, make_snapshot, db_session):
        snapshot = make_snapshot(categories=[{"id": 10, "name": "Burgers", "items": [{"id": 100, "name": "Classic"}]}])
        del snapshot["active"]
        _sync(synchronizer, remote, snapshot)

        assert db_session.query(Menu).one().is_active is True
        assert db_session.query(MenuCategory).one().is_active is True
        assert db_session.query(MenuItem).one().is_active is True


class TestFailures:
    def test_fetch_failure_leaves_menu_and_logs_error(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot())
        remote.fetch_menu.side_effect = RemoteFetchError("Error fetching menu: 503 Service Unavailable", status_code=503)

        with pytest.raises(RemoteFetchError):
            synchronizer.sync()

        assert synchronizer.state == SyncState.FAILED
        assert db_session.query(MenuItem).count() == 2
        events = _menu_events(db_session)
        assert [e.status for e in events] == ["success", "error"]
        assert "503" in events[-1].error_message

    def test_invalid_snapshot_writes_nothing(self, synchronizer, remote, make_snapshot, db_session):
        snapshot = make_snapshot(categories=[{"id": 10, "items": []}])

        with pytest.raises(ValidationError):
            _sync(synchronizer, remote, snapshot)

        assert db_session.query(Menu).count() == 0
        assert db_session.query(MenuSyncLease).count() == 0

    def test_deadline_mid_rebuild_rolls_back(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot())
        before = db_session.query(Menu).one().synced_at

        # Budget runs out after the first two nodes have been written
        ticks = iter([0, 0, 0])
        deadline = Deadline(10, clock=lambda: next(ticks, 100))
        replacement = make_snapshot(categories=[{
            "id": 20,
            "name": "Salads",
            "items": [{"id": 300, "name": "Greek", "groups": [make_snapshot.group(group_id=40, name="Dressing")]}],
        }])

        with pytest.raises(DeadlineExceeded):
            _sync(synchronizer, remote, replacement, deadline=deadline)

        assert [c.name for c in db_session.query(MenuCategory).all()] == ["Burgers"]
        assert db_session.query(MenuItem).count() == 2
        assert db_session.query(MenuOptionGroup).filter_by(external_id=40).count() == 0
        assert db_session.query(Menu).one().synced_at == before
        assert db_session.query(MenuSyncLease).count() == 0
        assert _menu_events(db_session)[-1].status == "error"

    def test_store_failure_mid_rebuild_rolls_back(self, synchronizer, store, remote, make_snapshot, db_session, monkeypatch):
        _sync(synchronizer, remote, make_snapshot())
        before = db_session.query(Menu).one().synced_at

        # The new category is written, then the first item insert fails
        calls = {"n": 0}
        original = store.add

        def failing_add(obj):
            calls["n"] += 1
            if calls["n"] == 2:
                raise SQLAlchemyError("disk I/O error")
            return original(obj)

        monkeypatch.setattr(store, "add", failing_add)
        replacement = make_snapshot(categories=[{
            "id": 20,
            "name": "Salads",
            "items": [{"id": 300, "name": "Greek", "groups": [make_snapshot.group(group_id=40, name="Dressing")]}],
        }])

        with pytest.raises(PersistenceError, match="store write failed") as exc_info:
            _sync(synchronizer, remote, replacement)

        assert synchronizer.state == SyncState.FAILED
        assert [c.name for c in db_session.query(MenuCategory).all()] == ["Burgers"]
        assert [i.name for i in db_session.query(MenuItem).order_by(MenuItem.sort_order).all()] == ["Classic", "Double"]
        assert db_session.query(MenuItemOptionGroup).count() == 2
        assert db_session.query(MenuOptionGroup).filter_by(external_id=40).count() == 0
        assert db_session.query(Menu).one().synced_at == before
        assert db_session.query(MenuSyncLease).count() == 0
        assert "disk I/O error" in exc_info.value.details["cause"]
        assert _menu_events(db_session)[-1].status == "error"

    def test_overlapping_sync_rejected(self, synchronizer, remote, make_snapshot, db_session):
        now = utcnow()
        db_session.add(MenuSyncLease(
            lock_key="menu:77",
            owner_token="other-worker",
            trigger="scheduled",
            acquired_at=now,
            expires_at=now + timedelta(minutes=5),
        ))
        db_session.commit()

        with pytest.raises(MenuSyncInProgressError):
            _sync(synchronizer, remote, make_snapshot())

        assert db_session.query(Menu).count() == 0
        assert db_session.query(MenuSyncLease).one().owner_token == "other-worker"
        assert _menu_events(db_session)[-1].status == "error"

    def test_expired_lease_is_reclaimed(self, synchronizer, remote, make_snapshot, db_session):
        now = utcnow()
        db_session.add(MenuSyncLease(
            lock_key="menu:77",
            owner_token="crashed-worker",
            acquired_at=now - timedelta(hours=2),
            expires_at=now - timedelta(hours=1),
        ))
        db_session.commit()

        _sync(synchronizer, remote, make_snapshot())

        assert db_session.query(MenuItem).count() == 2
        assert db_session.query(MenuSyncLease).count() == 0


class TestCacheAndEvents:
    def test_successful_sync_invalidates_full_menu(self, synchronizer, remote, make_snapshot, cache):
        _sync(synchronizer, remote, make_snapshot())
        assert menu_service.get_full_menu()["categories"][0]["name"] == "Burgers"

        renamed = make_snapshot()
        renamed["categories"][0]["name"] = "Sandwiches"
        _sync(synchronizer, remote, renamed)

        assert cache.get(MENU_CACHE_KEY) is None
        assert menu_service.get_full_menu()["categories"][0]["name"] == "Sandwiches"

    def test_failed_sync_keeps_cached_menu(self, synchronizer, remote, make_snapshot, cache):
        cache.put(MENU_CACHE_KEY, {"cached": True})
        remote.fetch_menu.side_effect = RemoteFetchError("down")

        with pytest.raises(RemoteFetchError):
            synchronizer.sync()

        assert cache.get(MENU_CACHE_KEY) == {"cached": True}

    def test_one_success_event_per_sync(self, synchronizer, remote, make_snapshot, db_session):
        _sync(synchronizer, remote, make_snapshot(), trigger="scheduled")

        events = _menu_events(db_session)
        assert len(events) == 1
        assert events[0].status == "success"
        payload = json.loads(events[0].payload)
        assert payload["trigger"] == "scheduled"
        assert payload["stats"]["items"] == 2
        assert synchronizer.state == SyncState.DONE

    def test_menu_cache_invalidated_before_lease_release(self, synchronizer, store, remote, make_snapshot, cache, db_session, monkeypatch):
        cache.put(MENU_CACHE_KEY, {"cached": True})
        seen = {}

        def failing_release(lock_key, owner_token):
            seen["cached"] = cache.get(MENU_CACHE_KEY)
            raise PersistenceError("menu sync lease: release failed")

        monkeypatch.setattr(store, "release_lease", failing_release)
        stats = _sync(synchronizer, remote, make_snapshot())

        assert seen == {"cached": None}
        assert stats.items == 2
        assert synchronizer.state == SyncState.DONE
        assert cache.get(MENU_CACHE_KEY) is None
        assert [e.status for e in _menu_events(db_session)] == ["success"]
        # Left to expire on its own
        assert db_session.query(MenuSyncLease).count() == 1


class TestSyncStats:
    def test_to_dict_uses_camel_case_group_key(self):
        stats = SyncStats(categories=1, items=2, sizes=0, option_groups=3, options=4, associations=5)
        assert stats.to_dict() == {
            "categories": 1,
            "items": 2,
            "sizes": 0,
            "optionGroups": 3,
            "options": 4,
            "associations": 5,
        }
