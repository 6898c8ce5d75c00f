from __future__ import annotations

import json

from ..extensions import db
from orderhub.time_utils import to_utc_z


class Order(db.Model):
    """
    Order as received from the ordering platform.

    IDENTITY: (external_order_id, pos_system_id) is globally unique and is the
    only deduplication key. Re-delivering the same order never creates a row.

    raw_payload keeps the verbatim JSON of the delivery for audit/replay.
    All amounts are in cents.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("external_order_id", "pos_system_id", name="uq_orders_external_pos"),
        db.Index("ix_orders_status", "status"),
        db.Index("ix_orders_created", "created_at"),
        db.Index("ix_orders_fulfill", "fulfill_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_order_id = db.Column(db.BigInteger, nullable=False, index=True)
    pos_system_id = db.Column(db.BigInteger, nullable=False, default=0)

    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=True, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default="accepted")
    type = db.Column(db.String(16), nullable=False)  # pickup, delivery
    source = db.Column(db.String(64), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sub_total_price_cents = db.Column(db.Integer, nullable=True)
    tax_value_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_type = db.Column(db.String(8), nullable=True)  # NET, GROSS
    tax_name = db.Column(db.String(64), nullable=True)

    payment_method = db.Column(db.String(32), nullable=True)  # CASH, ONLINE, CARD, CARD_PHONE
    payment_status = db.Column(db.String(32), nullable=False, default="pending")

    instructions = db.Column(db.Text, nullable=True)
    fulfill_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    for_later = db.Column(db.Boolean, nullable=False, default=False)
    pin_skipped = db.Column(db.Boolean, nullable=False, default=False)

    # Delivery
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_address = db.Column(db.String(512), nullable=True)
    delivery_latitude = db.Column(db.String(32), nullable=True)
    delivery_longitude = db.Column(db.String(32), nullable=True)
    delivery_zone = db.Column(db.String(128), nullable=True)
    outside_delivery_area = db.Column(db.Boolean, nullable=False, default=False)

    tip_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    raw_payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    restaurant = db.relationship("Restaurant", backref=db.backref("orders", lazy=True))
    client = db.relationship("Client", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def raw(self) -> dict | None:
        return json.loads(self.raw_payload) if self.raw_payload else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_order_id": self.external_order_id,
            "pos_system_id": self.pos_system_id,
            "restaurant_id": self.restaurant_id,
            "client_id": self.client_id,
            "status": self.status,
            "type": self.type,
            "source": self.source,
            "currency": self.currency,
            "total_price_cents": self.total_price_cents,
            "sub_total_price_cents": self.sub_total_price_cents,
            "tax_value_cents": self.tax_value_cents,
            "tax_type": self.tax_type,
            "tax_name": self.tax_name,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "instructions": self.instructions,
            "fulfill_at": to_utc_z(self.fulfill_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "for_later": self.for_later,
            "pin_skipped": self.pin_skipped,
            "delivery_fee_cents": self.delivery_fee_cents,
            "delivery_address": self.delivery_address,
            "delivery_latitude": self.delivery_latitude,
            "delivery_longitude": self.delivery_longitude,
            "delivery_zone": self.delivery_zone,
            "outside_delivery_area": self.outside_delivery_area,
            "tip_amount_cents": self.tip_amount_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """
    Line of an order. `type` tags what the line is:
    item, delivery_fee, tip, promo_cart, promo_item, service_fee_total, ...
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.BigInteger, nullable=True)
    parent_external_id = db.Column(db.BigInteger, nullable=True)

    # Insertion order within the order; not semantically significant
    position = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="item")
    type_id = db.Column(db.BigInteger, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Float, nullable=False, default=0)
    tax_value_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_type = db.Column(db.String(8), nullable=True)
    item_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    cart_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    cart_discount_rate = db.Column(db.Float, nullable=False, default=0)

    instructions = db.Column(db.Text, nullable=True)
    kitchen_internal_name = db.Column(db.String(255), nullable=True)
    coupon = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.position", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "external_id": self.external_id,
            "parent_external_id": self.parent_external_id,
            "position": self.position,
            "name": self.name,
            "type": self.type,
            "type_id": self.type_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_price_cents": self.total_price_cents,
            "tax_rate": self.tax_rate,
            "tax_value_cents": self.tax_value_cents,
            "tax_type": self.tax_type,
            "item_discount_cents": self.item_discount_cents,
            "cart_discount_cents": self.cart_discount_cents,
            "cart_discount_rate": self.cart_discount_rate,
            "instructions": self.instructions,
            "kitchen_internal_name": self.kitchen_internal_name,
            "coupon": self.coupon,
        }


class OrderItemOption(db.Model):
    """Size or option chosen for an order line."""
    __tablename__ = "order_item_options"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.BigInteger, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(255), nullable=False)
    group_name = db.Column(db.String(255), nullable=True)
    type = db.Column(db.String(16), nullable=False, default="option")  # size, option
    type_id = db.Column(db.BigInteger, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    kitchen_internal_name = db.Column(db.String(255), nullable=True)

    order_item = db.relationship(
        "OrderItem",
        backref=db.backref("options", lazy=True, order_by="OrderItemOption.position", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "external_id": self.external_id,
            "name": self.name,
            "group_name": self.group_name,
            "type": self.type,
            "type_id": self.type_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "kitchen_internal_name": self.kitchen_internal_name,
        }


class OrderTax(db.Model):
    """Tax breakdown line (item, delivery_fee, tip, service_fee_total, ...)."""
    __tablename__ = "order_taxes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=True)
    rate = db.Column(db.Float, nullable=True)
    value_cents = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", backref=db.backref("taxes", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "type": self.type,
            "rate": self.rate,
            "value_cents": self.value_cents,
        }


class OrderCoupon(db.Model):
    __tablename__ = "order_coupons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    coupon_code = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("coupons", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {"id": self.id, "order_id": self.order_id, "coupon_code": self.coupon_code}


class BillingDetails(db.Model):
    """Invoicing data attached to an order. At most one per order."""
    __tablename__ = "billing_details"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_billing_details_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)

    type = db.Column(db.String(16), nullable=True)  # personal, company
    company_name = db.Column(db.String(255), nullable=True)
    cui = db.Column(db.String(64), nullable=True)
    reg_com = db.Column(db.String(64), nullable=True)
    person_name = db.Column(db.String(255), nullable=True)
    person_type = db.Column(db.String(64), nullable=True)
    document_type = db.Column(db.String(64), nullable=True)
    document_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    region = db.Column(db.String(128), nullable=True)
    sector = db.Column(db.String(128), nullable=True)
    country_code = db.Column(db.String(8), nullable=True)

    order = db.relationship(
        "Order",
        backref=db.backref("billing_details", uselist=False, lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "type": self.type,
            "company_name": self.company_name,
            "cui": self.cui,
            "reg_com": self.reg_com,
            "person_name": self.person_name,
            "person_type": self.person_type,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "address": self.address,
            "city": self.city,
            "region": self.region,
            "sector": self.sector,
            "country_code": self.country_code,
        }
