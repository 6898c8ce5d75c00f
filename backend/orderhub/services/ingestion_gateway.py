# Overview: Routes pushed/pulled order batches and menu sync triggers into the pipelines.

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, result_cache
from ..validation import ValidationError, normalize_order_batch
from .concurrency import Deadline
from .entity_store import EntityStore
from .event_log_service import ORDER_POLL, ORDER_RECEIVED, STATUS_ERROR, STATUS_SUCCESS, append_event
from .gloriafood_client import GloriaFoodClient
from .menu_sync_service import MenuTreeSynchronizer, SyncStats
from .order_service import OrderNormalizer
from .result_cache import ResultCache

logger = logging.getLogger(__name__)

CREATED = "created"
DUPLICATE = "duplicate"
REJECTED = "rejected"


class AuthenticationError(PermissionError):
    """A push delivery carried the wrong master key."""


@dataclass
class BatchResult:
    success: bool
    message: str
    results: list[dict] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r["status"] == status)

    def summary(self) -> dict:
        return {
            "processed": len(self.results),
            CREATED: self.count(CREATED),
            DUPLICATE: self.count(DUPLICATE),
            REJECTED: self.count(REJECTED),
        }

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "data": self.results}


class IngestionGateway:
    """
    The consumer-facing entry points. No business logic lives here: each
    trigger is authenticated (push only), handed to its pipeline, and
    recorded as one event in the ingestion log.
    """

    def __init__(
        self,
        store: EntityStore,
        cache: ResultCache,
        remote,
        *,
        master_key: str,
        lease_seconds: int = 600,
    ):
        self.store = store
        self.cache = cache
        self.remote = remote
        self.master_key = master_key or ""
        self.lease_seconds = lease_seconds

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def authenticate(self, auth_header: Optional[str]) -> bool:
        # An unset master key accepts nothing
        if not self.master_key or auth_header is None:
            return False
        return hmac.compare_digest(auth_header.encode("utf-8"), self.master_key.encode("utf-8"))

    def receive_push(self, batch: Any, auth_header: Optional[str], *, deadline: Deadline | None = None) -> BatchResult:
        if not self.authenticate(auth_header):
            self._record(ORDER_RECEIVED, STATUS_ERROR, payload="unauthorized", error_message="Invalid master key")
            raise AuthenticationError("Invalid master key")
        return self._ingest_batch(batch, ORDER_RECEIVED, "Processed {} orders", deadline)

    def pull_orders(self, *, deadline: Deadline | None = None) -> BatchResult:
        deadline = deadline or Deadline.none()
        try:
            batch = self.remote.poll_orders(deadline=deadline)
        except Exception as exc:
            self._record(ORDER_POLL, STATUS_ERROR, payload="fetch failed", error_message=str(exc))
            raise
        return self._ingest_batch(batch, ORDER_POLL, "Polled and processed {} orders", deadline)

    def _ingest_batch(self, batch: Any, event_type: str, message: str, deadline: Deadline | None) -> BatchResult:
        """
        Run every order of the batch through the normalizer.

        A ValidationError rejects that order only. Anything else (store failure,
        deadline) stops the batch; orders already committed stay committed.
        """
        deadline = deadline or Deadline.none()
        normalizer = OrderNormalizer(self.store, self.cache)
        results: list[dict] = []
        try:
            orders = normalize_order_batch(batch)
            for raw in orders:
                deadline.check("order batch")
                try:
                    ingested = normalizer.ingest(raw, deadline=deadline)
                except ValidationError as exc:
                    results.append({
                        "external_id": raw.get("id") if isinstance(raw, dict) else None,
                        "pos_system_id": raw.get("pos_system_id") if isinstance(raw, dict) else None,
                        "internal_id": None,
                        "is_new": False,
                        "status": REJECTED,
                        "error": str(exc),
                    })
                    continue
                entry = ingested.to_dict()
                entry["status"] = CREATED if ingested.is_new else DUPLICATE
                entry["error"] = None
                results.append(entry)
        except Exception as exc:
            self._record(
                event_type,
                STATUS_ERROR,
                payload={"processed": len(results), "orders": results},
                error_message=str(exc),
            )
            raise

        result = BatchResult(True, message.format(len(results)), results)
        count = batch.get("count") if isinstance(batch, dict) else None
        self._record(event_type, STATUS_SUCCESS, payload={"count": count, **result.summary(), "orders": results})
        logger.info("%s: %s", event_type, result.summary())
        return result

    # -------------------------------------------------------------------------
    # Menu
    # -------------------------------------------------------------------------

    def sync_menu(self, *, trigger: str = "manual", deadline: Deadline | None = None) -> SyncStats:
        """The synchronizer records its own menu_sync event."""
        synchronizer = MenuTreeSynchronizer(self.store, self.cache, self.remote, lease_seconds=self.lease_seconds)
        stats = synchronizer.sync(trigger=trigger, deadline=deadline)
        logger.info("menu sync (%s): %s", trigger, stats.to_dict())
        return stats

    def _record(self, event_type: str, status: str, *, payload: Any = None, error_message: str | None = None) -> None:
        session = self.store.session
        try:
            if status == STATUS_ERROR:
                session.rollback()
            append_event(session, event_type=event_type, status=status, payload=payload, error_message=error_message)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to record %s event", event_type)


def build_gateway(remote=None) -> IngestionGateway:
    """Wire a gateway from the current app's config and extensions."""
    config = current_app.config
    return IngestionGateway(
        EntityStore(db.session),
        result_cache,
        remote or GloriaFoodClient.from_config(config),
        master_key=config["GLORIAFOOD_MASTER_KEY"],
        lease_seconds=config["MENU_SYNC_LEASE_SECONDS"],
    )
