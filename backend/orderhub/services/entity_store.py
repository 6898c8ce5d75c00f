# Overview: Persistence primitives over the relational store; no business logic.

from __future__ import annotations

from datetime import timedelta
from typing import Callable, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..models import (
    Client,
    ClientAddress,
    Menu,
    MenuCategory,
    MenuItem,
    MenuItemOptionGroup,
    MenuItemSize,
    MenuOptionGroup,
    MenuSyncLease,
    Order,
    Restaurant,
)
from orderhub.time_utils import utcnow
from .concurrency import PersistenceError, begin_immediate, run_with_retry

T = TypeVar("T")


class ConstraintRace(PersistenceError):
    """A unique constraint fired at commit time: another writer got there first."""


class EntityStore:
    """
    Typed lookup/insert/update/delete operations used by the ingestion
    pipelines. Holds a SQLAlchemy session and nothing else.
    """

    def __init__(self, session):
        self.session = session

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------

    def run_unit(self, func: Callable[[], T], *, name: str, attempts: int = 3) -> T:
        """
        Run func as one transaction: everything it writes commits together or
        not at all. Lock/stale conflicts are retried; an IntegrityError becomes
        ConstraintRace; any other store failure becomes PersistenceError.
        """
        def _op():
            try:
                begin_immediate(self.session)
                result = func()
                self.session.commit()
                return result
            except Exception:
                self.session.rollback()
                raise

        try:
            return run_with_retry(_op, session=self.session, attempts=attempts)
        except IntegrityError as exc:
            raise ConstraintRace(f"{name}: unique constraint conflict", details={"cause": str(exc.orig)}) from exc
        except (OperationalError, StaleDataError) as exc:
            raise PersistenceError(f"{name}: store unavailable ({exc.__class__.__name__})") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{name}: store write failed", details={"cause": str(exc)}) from exc

    def add(self, obj: T) -> T:
        """Insert and flush so the row id is available to children."""
        self.session.add(obj)
        self.session.flush()
        return obj

    def insert_or_get(self, obj: T, lookup: Callable[[], T | None]) -> tuple[T, bool]:
        """
        Insert obj inside a SAVEPOINT. If a unique constraint fires because a
        concurrent writer inserted the same identity, roll back just the
        savepoint and return the existing row instead.
        """
        try:
            with self.session.begin_nested():
                self.session.add(obj)
            return obj, True
        except IntegrityError:
            existing = lookup()
            if existing is None:
                raise
            return existing, False

    @staticmethod
    def update(obj: T, fields: dict) -> T:
        for key, value in fields.items():
            setattr(obj, key, value)
        return obj

    # -------------------------------------------------------------------------
    # Orders / clients / restaurants
    # -------------------------------------------------------------------------

    def find_order(self, external_order_id: int, pos_system_id: int) -> Order | None:
        return (
            self.session.query(Order)
            .filter_by(external_order_id=external_order_id, pos_system_id=pos_system_id)
            .first()
        )

    def find_client(self, external_id: int) -> Client | None:
        return self.session.query(Client).filter_by(external_id=external_id).first()

    def find_client_address(self, client_id: int, full_address: str | None) -> ClientAddress | None:
        query = self.session.query(ClientAddress).filter(ClientAddress.client_id == client_id)
        if full_address is None:
            query = query.filter(ClientAddress.full_address.is_(None))
        else:
            query = query.filter(ClientAddress.full_address == full_address)
        return query.first()

    def find_restaurant(self, restaurant_key: str) -> Restaurant | None:
        return self.session.query(Restaurant).filter_by(restaurant_key=restaurant_key).first()

    # -------------------------------------------------------------------------
    # Menus
    # -------------------------------------------------------------------------

    def find_menu(self, external_id: int) -> Menu | None:
        return self.session.query(Menu).filter_by(external_id=external_id).first()

    def find_option_group(self, external_id: int) -> MenuOptionGroup | None:
        return self.session.query(MenuOptionGroup).filter_by(external_id=external_id).first()

    def delete_menu_subtree(self, menu_id: int) -> dict[str, int]:
        """
        Delete every category/item/size/association row under a menu.

        Option groups and options are global and are left alone.
        Children first so the subqueries still resolve.
        """
        category_ids = select(MenuCategory.id).where(MenuCategory.menu_id == menu_id)
        item_ids = select(MenuItem.id).where(MenuItem.category_id.in_(category_ids))
        size_ids = select(MenuItemSize.id).where(MenuItemSize.item_id.in_(item_ids))

        associations = (
            self.session.query(MenuItemOptionGroup)
            .filter(or_(MenuItemOptionGroup.item_id.in_(item_ids), MenuItemOptionGroup.size_id.in_(size_ids)))
            .delete(synchronize_session=False)
        )
        sizes = (
            self.session.query(MenuItemSize)
            .filter(MenuItemSize.item_id.in_(item_ids))
            .delete(synchronize_session=False)
        )
        items = (
            self.session.query(MenuItem)
            .filter(MenuItem.category_id.in_(category_ids))
            .delete(synchronize_session=False)
        )
        categories = (
            self.session.query(MenuCategory)
            .filter(MenuCategory.menu_id == menu_id)
            .delete(synchronize_session=False)
        )
        return {"associations": associations, "sizes": sizes, "items": items, "categories": categories}

    def acquire_lease(self, lock_key: str, owner_token: str, *, ttl_seconds: int, trigger: str | None = None) -> bool:
        """
        Take the sync lease for lock_key in its own committed transaction.

        Returns False when a live lease is held by someone else. An expired
        lease is reclaimed.
        """
        now = utcnow()
        try:
            begin_immediate(self.session)
            self.session.query(MenuSyncLease).filter(
                MenuSyncLease.lock_key == lock_key,
                MenuSyncLease.expires_at < now,
            ).delete(synchronize_session=False)
            self.session.add(MenuSyncLease(
                lock_key=lock_key,
                owner_token=owner_token,
                trigger=trigger,
                acquired_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
            ))
            self.session.commit()
            return True
        except IntegrityError:
            self.session.rollback()
            return False
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("menu sync lease: store write failed", details={"cause": str(exc)}) from exc

    def release_lease(self, lock_key: str, owner_token: str) -> None:
        try:
            self.session.query(MenuSyncLease).filter_by(
                lock_key=lock_key,
                owner_token=owner_token,
            ).delete(synchronize_session=False)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("menu sync lease: release failed", details={"cause": str(exc)}) from exc
