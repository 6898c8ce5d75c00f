# Overview: Full menu synchronization; replaces a stored menu tree with the platform's snapshot.

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..blobs import ItemBlobs
from ..models import (
    Menu,
    MenuCategory,
    MenuItem,
    MenuItemOptionGroup,
    MenuItemSize,
    MenuOption,
    MenuOptionGroup,
)
from ..validation import to_cents, to_int, to_text, validate_menu_snapshot
from orderhub.time_utils import utcnow
from .concurrency import Deadline, PersistenceError
from .entity_store import EntityStore
from .event_log_service import MENU_SYNC, STATUS_ERROR, STATUS_SUCCESS, append_event
from .result_cache import MENU_CACHE_KEY, ResultCache

logger = logging.getLogger(__name__)

"""
Menu sync invariants

- Nothing is written before the snapshot has been fetched and validated.
- Reconcile + delete + rebuild + sync stamp commit as ONE transaction; a
  failure anywhere leaves the previous tree untouched.
- Option groups are identified by external id alone and are never deleted
  by a sync. Options are written only when their group is newly created.
- One sync per menu at a time (DB lease); an overlapping sync is rejected.
- menu:full is invalidated after every successful sync.
"""


class SyncState(str, Enum):
    FETCHING = "FETCHING"
    RECONCILING = "RECONCILING"
    REBUILDING = "REBUILDING"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    FAILED = "FAILED"


class MenuSyncError(RuntimeError):
    """Raised for menu sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class MenuSyncInProgressError(MenuSyncError):
    """Another sync of the same menu holds the lease."""


@dataclass
class SyncStats:
    categories: int = 0
    items: int = 0
    sizes: int = 0
    option_groups: int = 0
    options: int = 0
    associations: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["optionGroups"] = data.pop("option_groups")
        return data


def _flag(node: dict, key: str, default: bool = False) -> bool:
    value = node.get(key)
    return default if value is None else bool(value)


class MenuTreeSynchronizer:
    def __init__(
        self,
        store: EntityStore,
        cache: ResultCache,
        remote,
        *,
        lease_seconds: int = 600,
    ):
        self.store = store
        self.cache = cache
        self.remote = remote
        self.lease_seconds = lease_seconds
        self.state: SyncState | None = None

    def sync(self, *, trigger: str = "manual", deadline: Deadline | None = None) -> SyncStats:
        """
        Fetch the platform menu and rebuild the stored tree from it.

        Raises RemoteFetchError / ValidationError before any mutation,
        MenuSyncInProgressError when another sync holds the lease,
        PersistenceError / DeadlineExceeded after rolling the rebuild back.
        Every outcome is recorded as a menu_sync event.
        """
        deadline = deadline or Deadline.none()
        try:
            self.state = SyncState.FETCHING
            snapshot = validate_menu_snapshot(self.remote.fetch_menu(deadline=deadline))
            external_id = to_int(snapshot.get("id"), "menu.id", required=True)

            lock_key = f"menu:{external_id}"
            owner_token = uuid.uuid4().hex
            if not self.store.acquire_lease(lock_key, owner_token, ttl_seconds=self.lease_seconds, trigger=trigger):
                raise MenuSyncInProgressError(
                    f"Menu {external_id} is already being synchronized",
                    details={"menu_external_id": external_id},
                )
            try:
                stats = self.store.run_unit(
                    lambda: self._reconcile_and_rebuild(snapshot, deadline),
                    name=f"menu sync {external_id}",
                )
                # The rebuild is committed; the cached tree is stale from here on
                self.cache.invalidate(MENU_CACHE_KEY)
            finally:
                self._release(lock_key, owner_token)
        except Exception as exc:
            self.state = SyncState.FAILED
            self._record(trigger, error=exc)
            raise

        self._record(trigger, stats=stats)
        self.state = SyncState.DONE
        return stats

    def _release(self, lock_key: str, owner_token: str) -> None:
        """An unreleased lease only delays the next sync until it expires."""
        try:
            self.store.release_lease(lock_key, owner_token)
        except PersistenceError:
            logger.exception("Failed to release menu sync lease %s", lock_key)

    def _record(self, trigger: str, *, stats: SyncStats | None = None, error: Exception | None = None) -> None:
        session = self.store.session
        try:
            if error is None:
                append_event(
                    session,
                    event_type=MENU_SYNC,
                    status=STATUS_SUCCESS,
                    payload={"trigger": trigger, "stats": stats.to_dict()},
                )
            else:
                session.rollback()
                append_event(
                    session,
                    event_type=MENU_SYNC,
                    status=STATUS_ERROR,
                    payload={"trigger": trigger, "error": str(error)},
                    error_message=str(error),
                )
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to record menu_sync event")

    # -------------------------------------------------------------------------
    # Inside the transaction
    # -------------------------------------------------------------------------

    def _reconcile_and_rebuild(self, snapshot: dict, deadline: Deadline) -> SyncStats:
        self.state = SyncState.RECONCILING
        menu = self._reconcile_menu(snapshot)

        self.state = SyncState.REBUILDING
        self.store.delete_menu_subtree(menu.id)
        stats = self._rebuild(menu, snapshot, deadline)

        self.state = SyncState.FINALIZING
        menu.synced_at = utcnow()
        self.store.session.flush()
        return stats

    def _reconcile_menu(self, snapshot: dict) -> Menu:
        external_id = to_int(snapshot.get("id"), "menu.id", required=True)
        fields = {
            "currency": to_text(snapshot.get("currency")) or "USD",
            "is_active": _flag(snapshot, "active", default=True),
        }
        menu = self.store.find_menu(external_id)
        if menu is None:
            menu, created = self.store.insert_or_get(
                Menu(
                    external_id=external_id,
                    restaurant_external_id=to_int(snapshot.get("restaurant_id"), "menu.restaurant_id"),
                    **fields,
                ),
                lambda: self.store.find_menu(external_id),
            )
            if created:
                return menu
        self.store.update(menu, fields)
        self.store.session.flush()
        return menu

    def _rebuild(self, menu: Menu, snapshot: dict, deadline: Deadline) -> SyncStats:
        """
        Depth-first walk of the snapshot using an explicit stack.

        Each entry is (kind, node, owner, sort_order). Children are pushed in
        reverse so they pop in snapshot order.
        """
        stats = SyncStats()
        associated: set[tuple[int | None, int | None, int]] = set()

        stack: list[tuple[str, dict, Any, int]] = [
            ("category", category, menu.id, idx)
            for idx, category in enumerate(snapshot.get("categories") or [])
        ]
        stack.reverse()

        while stack:
            deadline.check("menu rebuild")
            kind, node, owner, sort_order = stack.pop()

            if kind == "category":
                row = self.store.add(MenuCategory(
                    menu_id=owner,
                    external_id=to_int(node.get("id"), "category.id"),
                    name=to_text(node.get("name")),
                    description=to_text(node.get("description")),
                    is_active=_flag(node, "active", default=True),
                    sort_order=sort_order,
                ))
                stats.categories += 1
                children = [("item", item, row.id, i) for i, item in enumerate(node.get("items") or [])]
                # Category-level groups are kept up to date but not attached to anything
                children += [("group", group, (None, None), i) for i, group in enumerate(node.get("groups") or [])]

            elif kind == "item":
                row = self._insert_item(node, owner, sort_order)
                stats.items += 1
                children = [("size", size, row.id, i) for i, size in enumerate(node.get("sizes") or [])]
                children += [("group", group, (row.id, None), i) for i, group in enumerate(node.get("groups") or [])]

            elif kind == "size":
                row = self.store.add(MenuItemSize(
                    item_id=owner,
                    external_id=to_int(node.get("id"), "size.id"),
                    name=to_text(node.get("name")),
                    price_cents=to_cents(node.get("price"), "size.price"),
                    is_default=_flag(node, "default"),
                    sort_order=sort_order,
                ))
                stats.sizes += 1
                children = [("group", group, (None, row.id), i) for i, group in enumerate(node.get("groups") or [])]

            else:
                self._resolve_group(node, owner, stats, associated)
                children = []

            stack.extend(reversed(children))

        return stats

    def _insert_item(self, node: dict, category_id: int, sort_order: int) -> MenuItem:
        extras = node.get("extras") if isinstance(node.get("extras"), dict) else {}
        return self.store.add(MenuItem(
            category_id=category_id,
            external_id=to_int(node.get("id"), "item.id"),
            name=to_text(node.get("name")),
            description=to_text(node.get("description")),
            price_cents=to_cents(node.get("price"), "item.price"),
            is_active=_flag(node, "active", default=True),
            sort_order=sort_order,
            kitchen_internal_name=to_text(extras.get("menu_item_kitchen_internal_name")),
            image_url=to_text(node.get("image_url") or node.get("picture")),
            **ItemBlobs.from_payload(node).columns(),
        ))

    def _resolve_group(self, node: dict, owner: tuple, stats: SyncStats, associated: set) -> MenuOptionGroup:
        external_id = to_int(node.get("id"), "group.id", required=True)
        fields = {
            "name": to_text(node.get("name")),
            "required": _flag(node, "required"),
            "allow_quantity": _flag(node, "allow_quantity"),
            "force_min": to_int(node.get("force_min"), "group.force_min", default=0),
            "force_max": to_int(node.get("force_max"), "group.force_max", default=0),
        }

        group = self.store.find_option_group(external_id)
        created = False
        if group is None:
            group, created = self.store.insert_or_get(
                MenuOptionGroup(external_id=external_id, **fields),
                lambda: self.store.find_option_group(external_id),
            )

        if created:
            stats.option_groups += 1
            for idx, option in enumerate(node.get("options") or []):
                extras = option.get("extras") if isinstance(option.get("extras"), dict) else {}
                self.store.session.add(MenuOption(
                    option_group_id=group.id,
                    external_id=to_int(option.get("id"), "option.id"),
                    name=to_text(option.get("name")),
                    price_cents=to_cents(option.get("price"), "option.price"),
                    is_default=_flag(option, "default"),
                    kitchen_internal_name=to_text(extras.get("menu_option_kitchen_internal_name")),
                    sort_order=idx,
                ))
                stats.options += 1
        else:
            self.store.update(group, fields)

        item_id, size_id = owner
        key = (item_id, size_id, group.id)
        if (item_id or size_id) and key not in associated:
            associated.add(key)
            self.store.session.add(MenuItemOptionGroup(item_id=item_id, size_id=size_id, option_group_id=group.id))
            stats.associations += 1
        return group
