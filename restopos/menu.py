import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from restopos.errors import Conflict, NotFound
from restopos.models import MenuItem, OrderItem

logger = logging.getLogger(__name__)


def create_menu_item(
    db: Session,
    name: str,
    price,
    category: str,
    description: Optional[str] = None,
    available: bool = True,
) -> MenuItem:
    now = datetime.now(timezone.utc)
    item = MenuItem(
        name=name,
        description=description,
        price=price,
        category=category,
        available=available,
        created_at=now,
        updated_at=now,
    )
    with db.begin():
        db.add(item)
    return item


def get_menu_item(db: Session, menu_item_id: int) -> MenuItem:
    item = db.get(MenuItem, menu_item_id)
    if item is None:
        raise NotFound("menu item not found", {"menu_item_id": menu_item_id})
    return item


def list_menu_items(db: Session, category: Optional[str] = None) -> list[MenuItem]:
    query = select(MenuItem)
    if category is not None:
        query = query.where(MenuItem.category == category)
    return list(db.scalars(query.order_by(MenuItem.category, MenuItem.name)))


def delete_menu_item(db: Session, menu_item_id: int) -> None:
    # Recipe rows go with the menu item (ON DELETE CASCADE); order lines
    # keep their snapshot and block the delete instead.
    with db.begin():
        item = get_menu_item(db, menu_item_id)
        ordered = db.scalar(
            select(func.count()).select_from(OrderItem).where(OrderItem.menu_item_id == menu_item_id)
        )
        if ordered:
            raise Conflict(
                "menu item appears on existing orders",
                {"menu_item_id": menu_item_id, "order_items": ordered},
            )
        db.delete(item)
    logger.info("deleted menu item %s", menu_item_id)


def update_menu_item(db: Session, menu_item_id: int, **fields) -> MenuItem:
    # Order lines carry their own name and price, so past orders keep the
    # values they were placed with.
    with db.begin():
        item = get_menu_item(db, menu_item_id)
        for name, value in fields.items():
            setattr(item, name, value)
        item.updated_at = datetime.now(timezone.utc)
    logger.info("updated menu item %s: %s", menu_item_id, ", ".join(sorted(fields)) or "no fields")
    return item
