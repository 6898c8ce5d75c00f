# Overview: Order ingestion; deduplicates and normalizes one platform order into relational rows.

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..models import (
    BillingDetails,
    Client,
    ClientAddress,
    Order,
    OrderCoupon,
    OrderItem,
    OrderItemOption,
    OrderTax,
    Restaurant,
)
from ..validation import DELIVERY, normalize_order, to_text
from .concurrency import Deadline
from .entity_store import ConstraintRace, EntityStore
from .result_cache import DASHBOARD_CACHE_KEY, ResultCache

"""
Order ingestion invariants

- (external_order_id, pos_system_id) is the only dedup key; no content hashing.
- A known order returns is_new=False and writes nothing.
- Client, restaurant, address and the whole order fan-out commit as one unit.
- Losing a dedup race is not an error: the winner's row is returned.
- The dashboard cache entry is invalidated after every successful insert.
"""

BILLING_FIELDS = (
    "type", "company_name", "cui", "reg_com", "person_name", "person_type",
    "document_type", "document_number", "address", "city", "region", "sector",
    "country_code",
)

ADDRESS_FIELDS = ("street", "city", "zipcode", "bloc", "floor", "apartment", "intercom")


@dataclass(frozen=True)
class IngestResult:
    internal_id: int
    is_new: bool
    external_order_id: int
    pos_system_id: int = 0

    def to_dict(self) -> dict:
        return {
            "external_id": self.external_order_id,
            "pos_system_id": self.pos_system_id,
            "internal_id": self.internal_id,
            "is_new": self.is_new,
        }


def _line_total(items: list[dict], line_type: str) -> int:
    return sum(item["total_price_cents"] for item in items if item["type"] == line_type)


class OrderNormalizer:
    def __init__(self, store: EntityStore, cache: ResultCache):
        self.store = store
        self.cache = cache

    def ingest(self, raw_order: Any, *, deadline: Deadline | None = None) -> IngestResult:
        """
        Persist one platform order exactly once.

        Raises ValidationError for a malformed payload (nothing written),
        PersistenceError when the store fails (unit rolled back),
        DeadlineExceeded when the time budget runs out (unit rolled back).
        """
        deadline = deadline or Deadline.none()
        normalized = normalize_order(raw_order)
        key = (normalized["external_order_id"], normalized["pos_system_id"])

        existing = self.store.find_order(*key)
        if existing:
            return IngestResult(existing.id, False, *key)

        try:
            result = self.store.run_unit(
                lambda: self._write(normalized, raw_order, deadline),
                name=f"order {key[0]}/{key[1]}",
            )
        except ConstraintRace:
            winner = self.store.find_order(*key)
            if winner is None:
                raise
            return IngestResult(winner.id, False, *key)

        if result.is_new:
            self.cache.invalidate(DASHBOARD_CACHE_KEY)
        return result

    def _write(self, normalized: dict, raw_order: dict, deadline: Deadline) -> IngestResult:
        key = (normalized["external_order_id"], normalized["pos_system_id"])

        # Re-check inside the write transaction; a concurrent ingest may have committed.
        existing = self.store.find_order(*key)
        if existing:
            return IngestResult(existing.id, False, *key)

        deadline.check("order ingest")
        client = self._resolve_client(normalized)
        restaurant = self._resolve_restaurant(normalized.get("restaurant"))

        items = normalized["items"]
        is_delivery = normalized["type"] == DELIVERY

        order = Order(
            external_order_id=key[0],
            pos_system_id=key[1],
            restaurant_id=restaurant.id if restaurant else None,
            client_id=client.id if client else None,
            status=normalized["status"],
            type=normalized["type"],
            source=normalized["source"],
            currency=normalized["currency"],
            total_price_cents=normalized["total_price_cents"],
            sub_total_price_cents=normalized["sub_total_price_cents"],
            tax_value_cents=normalized["tax_value_cents"],
            tax_type=normalized["tax_type"],
            tax_name=normalized["tax_name"],
            payment_method=normalized["delivery_payment"] if is_delivery else normalized["pickup_payment"],
            payment_status=normalized["payment_status"],
            instructions=normalized["instructions"],
            fulfill_at=normalized["fulfill_at"],
            accepted_at=normalized["accepted_at"],
            for_later=normalized["for_later"],
            pin_skipped=normalized["pin_skipped"],
            delivery_fee_cents=_line_total(items, "delivery_fee"),
            delivery_address=normalized["client_address"],
            delivery_latitude=normalized["latitude"],
            delivery_longitude=normalized["longitude"],
            delivery_zone=normalized["delivery_zone"],
            outside_delivery_area=normalized["outside_delivery_area"],
            tip_amount_cents=_line_total(items, "tip"),
            raw_payload=json.dumps(raw_order, separators=(",", ":"), ensure_ascii=False, default=str),
        )

        for position, item in enumerate(items):
            deadline.check("order items")
            line = OrderItem(
                position=position,
                **{k: v for k, v in item.items() if k != "options"},
            )
            line.options = [
                OrderItemOption(position=opt_position, **option)
                for opt_position, option in enumerate(item["options"])
            ]
            order.items.append(line)

        order.coupons = [OrderCoupon(coupon_code=code) for code in normalized["coupons"]]
        order.taxes = [OrderTax(**tax) for tax in normalized["taxes"]]

        billing = normalized["billing"]
        if billing:
            order.billing_details = BillingDetails(**{f: to_text(billing.get(f)) for f in BILLING_FIELDS})

        self.store.add(order)
        return IngestResult(order.id, True, *key)

    def _resolve_client(self, normalized: dict) -> Client | None:
        info = normalized["client"]
        if info is None:
            return None

        external_id = info["external_id"]
        client = self.store.find_client(external_id)
        if client is None:
            client, created = self.store.insert_or_get(
                Client(
                    external_id=external_id,
                    order_count=info["order_count"] or 1,
                    marketing_consent=bool(info["marketing_consent"]),
                    **info["fields"],
                ),
                lambda: self.store.find_client(external_id),
            )
            if not created:
                self._merge_client(client, info)
        else:
            self._merge_client(client, info)

        if normalized["type"] == DELIVERY and normalized["address_parts"]:
            self._save_address(client, normalized)
        return client

    def _merge_client(self, client: Client, info: dict) -> None:
        # Non-destructive: only fields present in this order overwrite stored values
        fields = dict(info["fields"])
        if info["order_count"] is not None:
            fields["order_count"] = info["order_count"]
        if info["marketing_consent"] is not None:
            fields["marketing_consent"] = info["marketing_consent"]
        self.store.update(client, fields)
        self.store.session.flush()

    def _save_address(self, client: Client, normalized: dict) -> None:
        parts = normalized["address_parts"]
        full_address = to_text(parts.get("full_address")) or normalized["client_address"]
        if self.store.find_client_address(client.id, full_address):
            return

        address = ClientAddress(
            client_id=client.id,
            full_address=full_address,
            latitude=normalized["latitude"],
            longitude=normalized["longitude"],
            delivery_zone=normalized["delivery_zone"],
            **{f: to_text(parts.get(f)) for f in ADDRESS_FIELDS},
        )
        self.store.insert_or_get(address, lambda: self.store.find_client_address(client.id, full_address))

    def _resolve_restaurant(self, info: dict | None) -> Restaurant | None:
        if info is None:
            return None
        restaurant = self.store.find_restaurant(info["restaurant_key"])
        if restaurant:
            return restaurant
        restaurant, _ = self.store.insert_or_get(
            Restaurant(**info),
            lambda: self.store.find_restaurant(info["restaurant_key"]),
        )
        return restaurant
