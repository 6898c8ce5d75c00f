# Overview: Retention jobs for the ingestion event log and stale menu sync leases.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import IngestionEvent, MenuSyncLease
from orderhub.time_utils import utcnow


def cleanup_ingestion_events(*, retention_days: int = 90) -> int:
    """
    Delete ingestion events older than retention_days.

    The only deletion path for the append-only log.
    """
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(IngestionEvent).filter(
        IngestionEvent.created_at < cutoff
    ).delete()
    db.session.commit()
    return deleted


def cleanup_expired_leases() -> int:
    """Drop menu sync leases whose holder died without releasing them."""
    deleted = db.session.query(MenuSyncLease).filter(
        MenuSyncLease.expires_at < utcnow()
    ).delete()
    db.session.commit()
    return deleted
