from __future__ import annotations

from ..extensions import db
from orderhub.blobs import decode_blob
from orderhub.time_utils import to_utc_z


class Menu(db.Model):
    """
    Synchronized menu of a restaurant.

    The category/item/size/association subtree under a menu is rebuilt on
    every sync; the Menu row itself is kept and updated in place.
    """
    __tablename__ = "menus"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_menus_external_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.BigInteger, nullable=False)
    restaurant_external_id = db.Column(db.BigInteger, nullable=True, index=True)
    currency = db.Column(db.String(8), nullable=False, default="USD")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "restaurant_external_id": self.restaurant_external_id,
            "currency": self.currency,
            "is_active": self.is_active,
            "synced_at": to_utc_z(self.synced_at),
            "created_at": to_utc_z(self.created_at),
        }


class MenuCategory(db.Model):
    __tablename__ = "menu_categories"
    __table_args__ = (
        db.Index("ix_menu_categories_menu_sort", "menu_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_id = db.Column(db.Integer, db.ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.BigInteger, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_id": self.menu_id,
            "external_id": self.external_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class MenuItem(db.Model):
    """
    Menu item. Array-shaped attributes from the platform (tags, order types,
    allergens, nutritional values) are stored as opaque JSON blobs and only
    decoded when read; extras we do not model go to extras_blob.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.Index("ix_menu_items_category_sort", "category_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("menu_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.BigInteger, nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    kitchen_internal_name = db.Column(db.String(255), nullable=True)

    tags_blob = db.Column(db.Text, nullable=True)
    order_types_blob = db.Column(db.Text, nullable=True)
    allergens_blob = db.Column(db.Text, nullable=True)
    nutritional_values_blob = db.Column(db.Text, nullable=True)
    extras_blob = db.Column(db.Text, nullable=True)

    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("MenuCategory", backref=db.backref("items", lazy=True, order_by="MenuItem.sort_order"))

    @property
    def tags(self) -> list:
        return decode_blob(self.tags_blob, default=[])

    @property
    def order_types(self) -> list:
        return decode_blob(self.order_types_blob, default=[])

    @property
    def allergens(self) -> list:
        return decode_blob(self.allergens_blob, default=[])

    @property
    def nutritional_values(self):
        return decode_blob(self.nutritional_values_blob, default=[])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "external_id": self.external_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "kitchen_internal_name": self.kitchen_internal_name,
            "tags": self.tags,
            "order_types": self.order_types,
            "allergens": self.allergens,
            "nutritional_values": self.nutritional_values,
            "image_url": self.image_url,
        }


class MenuItemSize(db.Model):
    __tablename__ = "menu_item_sizes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = db.Column(db.BigInteger, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("MenuItem", backref=db.backref("sizes", lazy=True, order_by="MenuItemSize.sort_order"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "external_id": self.external_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_default": self.is_default,
            "sort_order": self.sort_order,
        }


class MenuOptionGroup(db.Model):
    """
    Named set of add-ons, shared by reference across items and sizes.

    IDENTITY: external_id alone. A group referenced by many items is stored
    once and is not removed by a menu rebuild.
    """
    __tablename__ = "menu_option_groups"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_menu_option_groups_external_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.BigInteger, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    required = db.Column(db.Boolean, nullable=False, default=False)
    allow_quantity = db.Column(db.Boolean, nullable=False, default=False)
    force_min = db.Column(db.Integer, nullable=False, default=0)
    force_max = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "required": self.required,
            "allow_quantity": self.allow_quantity,
            "force_min": self.force_min,
            "force_max": self.force_max,
        }


class MenuOption(db.Model):
    __tablename__ = "menu_options"
    __table_args__ = (
        db.Index("ix_menu_options_group_sort", "option_group_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    option_group_id = db.Column(db.Integer, db.ForeignKey("menu_option_groups.id", ondelete="CASCADE"), nullable=False)
    external_id = db.Column(db.BigInteger, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    kitchen_internal_name = db.Column(db.String(255), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    option_group = db.relationship(
        "MenuOptionGroup",
        backref=db.backref("options", lazy=True, order_by="MenuOption.sort_order"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "option_group_id": self.option_group_id,
            "external_id": self.external_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_default": self.is_default,
            "kitchen_internal_name": self.kitchen_internal_name,
            "sort_order": self.sort_order,
        }


class MenuItemOptionGroup(db.Model):
    """Join row between an item (or one of its sizes) and a shared option group."""
    __tablename__ = "menu_item_option_groups"
    __table_args__ = (
        db.Index("ix_menu_item_option_groups_group", "option_group_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=True, index=True)
    size_id = db.Column(db.Integer, db.ForeignKey("menu_item_sizes.id", ondelete="CASCADE"), nullable=True, index=True)
    option_group_id = db.Column(db.Integer, db.ForeignKey("menu_option_groups.id", ondelete="CASCADE"), nullable=False)

    option_group = db.relationship("MenuOptionGroup")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "size_id": self.size_id,
            "option_group_id": self.option_group_id,
        }


class MenuSyncLease(db.Model):
    """
    Lease taken by a running menu sync.

    The unique lock_key makes a second concurrent sync of the same menu fail
    to insert its lease; a lease past expires_at may be reclaimed.
    """
    __tablename__ = "menu_sync_leases"
    __table_args__ = (
        db.UniqueConstraint("lock_key", name="uq_menu_sync_leases_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    lock_key = db.Column(db.String(128), nullable=False)
    owner_token = db.Column(db.String(64), nullable=False)
    trigger = db.Column(db.String(32), nullable=True)
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lock_key": self.lock_key,
            "owner_token": self.owner_token,
            "trigger": self.trigger,
            "acquired_at": to_utc_z(self.acquired_at),
            "expires_at": to_utc_z(self.expires_at),
        }
