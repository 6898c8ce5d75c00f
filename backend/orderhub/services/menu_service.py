# Overview: Read-side menu queries; the full tree is served from the result cache.

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func, or_

from ..extensions import db, result_cache
from ..models import Menu, MenuCategory, MenuItem, MenuItemOptionGroup
from .result_cache import MENU_CACHE_KEY

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 50


class MenuQueryError(ValueError):
    """Raised for invalid menu read requests."""
    pass


def _current_menu() -> Menu | None:
    return (
        db.session.query(Menu)
        .order_by(Menu.is_active.desc(), Menu.synced_at.desc(), Menu.id.desc())
        .first()
    )


def _groups_by_owner(item_ids: list[int], size_ids: list[int]) -> tuple[dict, dict]:
    by_item: dict[int, list[dict]] = defaultdict(list)
    by_size: dict[int, list[dict]] = defaultdict(list)
    if not item_ids and not size_ids:
        return by_item, by_size

    links = (
        db.session.query(MenuItemOptionGroup)
        .filter(or_(
            MenuItemOptionGroup.item_id.in_(item_ids or [-1]),
            MenuItemOptionGroup.size_id.in_(size_ids or [-1]),
        ))
        .order_by(MenuItemOptionGroup.id)
        .all()
    )
    for link in links:
        group = link.option_group
        data = group.to_dict()
        data["options"] = [o.to_dict() for o in group.options]
        if link.item_id is not None:
            by_item[link.item_id].append(data)
        else:
            by_size[link.size_id].append(data)
    return by_item, by_size


def build_full_menu() -> dict | None:
    """Assemble the whole stored tree of the current menu (no cache)."""
    menu = _current_menu()
    if menu is None:
        return None

    categories = (
        db.session.query(MenuCategory)
        .filter(MenuCategory.menu_id == menu.id)
        .order_by(MenuCategory.sort_order, MenuCategory.id)
        .all()
    )
    items = [item for category in categories for item in category.items]
    sizes = [size for item in items for size in item.sizes]
    groups_by_item, groups_by_size = _groups_by_owner([i.id for i in items], [s.id for s in sizes])

    data = menu.to_dict()
    data["categories"] = []
    for category in categories:
        cat = category.to_dict()
        cat["items"] = []
        for item in category.items:
            entry = item.to_dict()
            entry["sizes"] = []
            for size in item.sizes:
                size_data = size.to_dict()
                size_data["groups"] = groups_by_size.get(size.id, [])
                entry["sizes"].append(size_data)
            entry["groups"] = groups_by_item.get(item.id, [])
            cat["items"].append(entry)
        data["categories"].append(cat)
    return data


def get_full_menu(*, ttl: int | None = None) -> dict | None:
    cached = result_cache.get(MENU_CACHE_KEY)
    if cached is not None:
        return cached

    menu = build_full_menu()
    if menu is not None:
        result_cache.put(MENU_CACHE_KEY, menu, ttl=ttl)
    return menu


def get_categories() -> list[dict]:
    menu = _current_menu()
    if menu is None:
        return []

    rows = (
        db.session.query(MenuCategory, func.count(MenuItem.id).label("item_count"))
        .outerjoin(MenuItem, MenuItem.category_id == MenuCategory.id)
        .filter(MenuCategory.menu_id == menu.id)
        .group_by(MenuCategory.id)
        .order_by(MenuCategory.sort_order, MenuCategory.id)
        .all()
    )
    out = []
    for category, item_count in rows:
        data = category.to_dict()
        data["item_count"] = int(item_count or 0)
        out.append(data)
    return out


def get_items_by_category(category_id: int) -> list[dict]:
    items = (
        db.session.query(MenuItem)
        .filter(MenuItem.category_id == category_id, MenuItem.is_active.is_(True))
        .order_by(MenuItem.sort_order, MenuItem.id)
        .all()
    )
    return [item.to_dict() for item in items]


def search_items(query: str) -> list[dict]:
    """Case-insensitive name/description match, at most SEARCH_LIMIT rows."""
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        raise MenuQueryError(f"Query must be at least {SEARCH_MIN_LENGTH} characters")

    pattern = f"%{query}%"
    rows = (
        db.session.query(MenuItem, MenuCategory.name.label("category_name"))
        .join(MenuCategory, MenuCategory.id == MenuItem.category_id)
        .filter(or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))
        .order_by(MenuItem.name, MenuItem.id)
        .limit(SEARCH_LIMIT)
        .all()
    )
    out = []
    for item, category_name in rows:
        data = item.to_dict()
        data["category_name"] = category_name
        out.append(data)
    return out
