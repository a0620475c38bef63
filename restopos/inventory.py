import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from restopos.errors import Conflict, InvalidRequest, NotFound
from restopos.models import QTY_TYPE, InventoryItem, Recipe

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _positive_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidRequest(f"invalid amount: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidRequest("amount must be greater than 0", {"amount": str(amount)})
    return value


def _fixed(expr):
    # NUMERIC is a double on SQLite. Stock arithmetic and comparisons are
    # rounded to the column scale.
    return func.round(expr, QTY_TYPE.scale, type_=QTY_TYPE)


def _current_quantity(db: Session, item_id: int) -> Optional[Decimal]:
    return db.scalar(select(InventoryItem.quantity).where(InventoryItem.id == item_id))


def get_item(db: Session, item_id: int) -> InventoryItem:
    item = db.get(InventoryItem, item_id)
    if item is None:
        raise NotFound("inventory item not found", {"inventory_item_id": item_id})
    return item


def get_quantity(db: Session, item_id: int) -> Decimal:
    quantity = _current_quantity(db, item_id)
    if quantity is None:
        raise NotFound("inventory item not found", {"inventory_item_id": item_id})
    return quantity


def try_consume(db: Session, item_id: int, amount) -> bool:
    """Decrement stock by ``amount`` only if at least that much is on hand.

    Runs inside the caller's transaction. The check and the write are a
    single UPDATE, so concurrent callers can never drive quantity below
    zero. Returns False when stock is short, leaving quantity untouched.
    """
    amount = _positive_amount(amount)
    result = db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id, _fixed(InventoryItem.quantity) >= amount)
        .values(quantity=_fixed(InventoryItem.quantity - amount), updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return True
    if _current_quantity(db, item_id) is None:
        raise NotFound("inventory item not found", {"inventory_item_id": item_id})
    return False


def restock(db: Session, item_id: int, amount) -> Decimal:
    amount = _positive_amount(amount)
    with db.begin():
        result = db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id)
            .values(quantity=_fixed(InventoryItem.quantity + amount), updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("inventory item not found", {"inventory_item_id": item_id})
        quantity = _current_quantity(db, item_id)
    logger.info("restocked inventory item %s by %s, now %s", item_id, amount, quantity)
    return quantity


def create_item(
    db: Session,
    item_name: str,
    unit: str,
    quantity=0,
    min_quantity=0,
    cost_per_unit=0,
    category: Optional[str] = None,
    supplier: Optional[str] = None,
) -> InventoryItem:
    now = _now()
    item = InventoryItem(
        item_name=item_name,
        category=category,
        quantity=quantity,
        unit=unit,
        min_quantity=min_quantity,
        cost_per_unit=cost_per_unit,
        supplier=supplier,
        created_at=now,
        updated_at=now,
    )
    with db.begin():
        db.add(item)
    return item


def update_item(db: Session, item_id: int, **fields) -> InventoryItem:
    """Update descriptive fields of an inventory item.

    Stock levels only change through ``restock`` and ``try_consume``.
    """
    if "quantity" in fields:
        raise InvalidRequest("quantity changes go through restock", {"inventory_item_id": item_id})
    with db.begin():
        item = get_item(db, item_id)
        for name, value in fields.items():
            setattr(item, name, value)
        item.updated_at = _now()
    logger.info("updated inventory item %s", item_id)
    return item


def list_items(db: Session, category: Optional[str] = None, low_stock: bool = False) -> list[InventoryItem]:
    query = select(InventoryItem)
    if category is not None:
        query = query.where(InventoryItem.category == category)
    if low_stock:
        query = query.where(InventoryItem.quantity <= InventoryItem.min_quantity)
    return list(db.scalars(query.order_by(InventoryItem.item_name)))


def list_categories(db: Session) -> list[str]:
    query = (
        select(InventoryItem.category)
        .where(InventoryItem.category.is_not(None))
        .distinct()
        .order_by(InventoryItem.category)
    )
    return list(db.scalars(query))


def delete_item(db: Session, item_id: int) -> None:
    with db.begin():
        item = get_item(db, item_id)
        references = db.scalar(
            select(func.count()).select_from(Recipe).where(Recipe.inventory_item_id == item_id)
        )
        if references:
            raise Conflict(
                f"inventory item is used in {references} recipe(s)",
                {"inventory_item_id": item_id, "recipes": references},
            )
        db.delete(item)
    logger.info("deleted inventory item %s", item_id)
