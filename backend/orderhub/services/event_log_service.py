# Overview: Append-only audit log of ingestion and sync invocations.

from __future__ import annotations

import json
from typing import Any, Optional

from ..models import IngestionEvent
"""
Ingestion event log invariants (authoritative)

- Append-only: one row per push delivery, pull, or menu sync.
- Independent of the entity tables; written in its own transaction so an
  error event survives the rollback of the unit of work it describes.
- No domain logic here.
"""

ORDER_RECEIVED = "order_received"
ORDER_POLL = "order_poll"
MENU_SYNC = "menu_sync"

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def _json_dumps(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def append_event(
    session,
    *,
    event_type: str,
    status: str,
    payload: Any = None,
    error_message: Optional[str] = None,
) -> IngestionEvent:
    """
    Append and commit one event.

    The session must not carry uncommitted work of a failed unit; callers
    roll that back first.
    """
    ev = IngestionEvent(
        event_type=event_type,
        status=status,
        payload=_json_dumps(payload) if payload is not None else None,
        error_message=error_message,
    )
    session.add(ev)
    session.commit()
    return ev


def list_events(session, *, page: int = 1, limit: int = 50, event_type: Optional[str] = None) -> list[IngestionEvent]:
    query = session.query(IngestionEvent)
    if event_type:
        query = query.filter(IngestionEvent.event_type == event_type)
    return (
        query.order_by(IngestionEvent.created_at.desc(), IngestionEvent.id.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
        .all()
    )
