# Overview: Opaque JSON blob columns for loosely-typed menu item attributes.

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

# Column attribute -> key under item["extras"]; None means the key sits on the item itself
KNOWN_ITEM_ARRAYS: dict[str, str | None] = {
    "tags": None,
    "order_types": "menu_item_order_types",
    "allergens": "menu_item_allergens_values",
    "nutritional_values": "menu_item_nutritional_values",
}

# Extras promoted to real columns instead of being kept in the residual blob
PROMOTED_EXTRAS = {"menu_item_kitchen_internal_name"}


def encode_blob(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_blob(text: str | None, default: Any = None) -> Any:
    """Decode a stored blob; undecodable content is returned verbatim."""
    if text is None or text == "":
        return default
    try:
        return json.loads(text)
    except ValueError:
        return text


@dataclass(frozen=True)
class ItemBlobs:
    """
    Array-shaped attributes of a menu item, split into the fields we know and
    a residual of whatever else the platform sent under `extras`.
    """
    tags: Any = None
    order_types: Any = None
    allergens: Any = None
    nutritional_values: Any = None
    residual: dict | None = None

    @classmethod
    def from_payload(cls, item: dict) -> "ItemBlobs":
        extras = item.get("extras") or {}
        if not isinstance(extras, dict):
            extras = {"raw": extras}

        known = {}
        for attr, extras_key in KNOWN_ITEM_ARRAYS.items():
            value = item.get(attr) if extras_key is None else extras.get(extras_key)
            known[attr] = value if value not in ("", []) else None

        consumed = {k for k in KNOWN_ITEM_ARRAYS.values() if k} | PROMOTED_EXTRAS
        residual = {k: v for k, v in extras.items() if k not in consumed}
        return cls(residual=residual or None, **known)

    def columns(self) -> dict[str, str | None]:
        return {
            "tags_blob": encode_blob(self.tags),
            "order_types_blob": encode_blob(self.order_types),
            "allergens_blob": encode_blob(self.allergens),
            "nutritional_values_blob": encode_blob(self.nutritional_values),
            "extras_blob": encode_blob(self.residual),
        }
