from __future__ import annotations

from ..extensions import db
from orderhub.time_utils import to_utc_z


class Restaurant(db.Model):
    """
    Restaurant as identified by the ordering platform.

    Created lazily the first time an order references its restaurant_key.
    restaurant_key is the lookup key; the platform's numeric id is kept for reference.
    """
    __tablename__ = "restaurants"
    __table_args__ = (
        db.UniqueConstraint("restaurant_key", name="uq_restaurants_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.BigInteger, nullable=True, index=True)
    restaurant_key = db.Column(db.String(128), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    currency = db.Column(db.String(8), nullable=False, default="USD")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "restaurant_key": self.restaurant_key,
            "name": self.name,
            "timezone": self.timezone,
            "currency": self.currency,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Client(db.Model):
    """
    End customer who placed orders on the platform.

    external_id is unique when present. Updates are non-destructive: fields
    missing from a later order keep their stored value.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_clients_external_id"),
        db.Index("ix_clients_email", "email"),
        db.Index("ix_clients_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.BigInteger, nullable=True)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    # As reported by the platform on the most recent order
    order_count = db.Column(db.Integer, nullable=False, default=0)
    marketing_consent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "order_count": self.order_count,
            "marketing_consent": self.marketing_consent,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ClientAddress(db.Model):
    """Delivery address of a client, stored once per (client, full_address)."""
    __tablename__ = "client_addresses"
    __table_args__ = (
        db.UniqueConstraint("client_id", "full_address", name="uq_client_addresses_client_full"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    full_address = db.Column(db.String(512), nullable=True)
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    zipcode = db.Column(db.String(32), nullable=True)
    bloc = db.Column(db.String(64), nullable=True)
    floor = db.Column(db.String(64), nullable=True)
    apartment = db.Column(db.String(64), nullable=True)
    intercom = db.Column(db.String(64), nullable=True)
    latitude = db.Column(db.String(32), nullable=True)
    longitude = db.Column(db.String(32), nullable=True)
    delivery_zone = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "full_address": self.full_address,
            "street": self.street,
            "city": self.city,
            "zipcode": self.zipcode,
            "bloc": self.bloc,
            "floor": self.floor,
            "apartment": self.apartment,
            "intercom": self.intercom,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "delivery_zone": self.delivery_zone,
            "created_at": to_utc_z(self.created_at),
        }
