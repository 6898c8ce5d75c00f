from __future__ import annotations

import json

from ..extensions import db
from orderhub.time_utils import to_utc_z


class IngestionEvent(db.Model):
    """
    Operational audit log of ingestion and sync invocations.

    One row per push delivery, pull, or menu sync (success or error).
    Independent of the entity tables: no foreign keys.

    IMMUTABLE: Never update. Only the maintenance retention job deletes.
    """
    __tablename__ = "ingestion_events"
    __table_args__ = (
        db.Index("ix_ingestion_events_type_created", "event_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # order_received, order_poll, menu_sync
    event_type = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, index=True)  # success, error
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        try:
            payload = json.loads(self.payload) if self.payload else None
        except ValueError:
            payload = self.payload
        return {
            "id": self.id,
            "event_type": self.event_type,
            "payload": payload,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
        }
