"""Order placement and order lifecycle.

Placement is one database transaction: menu prices are snapshotted into the
line items, recipe demand is summed per ingredient and admitted against
current stock, then the order is written, every ingredient is conditionally
decremented and a dine-in table is seated. Any failure rolls back all of it.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from restopos import inventory, recipes, tables
from restopos.errors import (
    Conflict,
    ForbiddenTransition,
    InsufficientStock,
    InvalidRequest,
    NotFound,
    StockConflict,
    TableUnavailable,
)
from restopos.models import DiningTable, InventoryItem, MenuItem, Order, OrderItem
from restopos.recipes import Requirement
from restopos.schemas import OrderCreate

logger = logging.getLogger(__name__)

WORKFLOW = ("pending", "preparing", "ready", "served", "completed")
TERMINAL_STATUSES = ("completed", "cancelled")
ACTIVE_STATUSES = ("pending", "preparing", "ready", "served")
AWAITING_PAYMENT_STATUSES = ("preparing", "ready", "served")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def aggregate_demand(db: Session, lines: Iterable[tuple[int, int]]) -> dict[int, Requirement]:
    """Sum recipe requirements per ingredient over (menu_item_id, quantity) lines."""
    demand: dict[int, Requirement] = {}
    for menu_item_id, quantity in lines:
        for requirement in recipes.resolve_requirements(db, menu_item_id, quantity):
            current = demand.get(requirement.inventory_item_id)
            if current is None:
                demand[requirement.inventory_item_id] = requirement
            else:
                demand[requirement.inventory_item_id] = replace(
                    current, total_required=current.total_required + requirement.total_required
                )
    return demand


def check_admission(db: Session, demand: dict[int, Requirement]) -> None:
    if not demand:
        return
    on_hand = dict(
        db.execute(
            select(InventoryItem.id, InventoryItem.quantity).where(InventoryItem.id.in_(demand))
        ).all()
    )
    for item_id in sorted(demand):
        requirement = demand[item_id]
        available = on_hand.get(item_id, Decimal("0"))
        if available < requirement.total_required:
            raise InsufficientStock(item_id, requirement.ingredient, requirement.total_required, available)


def consume_demand(db: Session, demand: dict[int, Requirement]) -> None:
    # Ascending id order keeps row locks in a stable order across writers.
    for item_id in sorted(demand):
        requirement = demand[item_id]
        if not inventory.try_consume(db, item_id, requirement.total_required):
            raise StockConflict(
                f"stock for {requirement.ingredient} changed while the order was being placed",
                {
                    "inventory_item_id": item_id,
                    "ingredient": requirement.ingredient,
                    "required": float(requirement.total_required),
                },
            )


def _load_menu(db: Session, menu_item_ids: set[int]) -> dict[int, MenuItem]:
    rows = db.scalars(select(MenuItem).where(MenuItem.id.in_(menu_item_ids)))
    return {row.id: row for row in rows}


def _build_lines(db: Session, payload: OrderCreate) -> tuple[list[OrderItem], Decimal]:
    menu = _load_menu(db, {line.id for line in payload.items})
    lines = []
    total = Decimal("0")
    for line in payload.items:
        item = menu.get(line.id)
        if item is None:
            raise InvalidRequest("menu item does not exist", {"menu_item_id": line.id})
        if not item.available:
            raise InvalidRequest(f"{item.name} is not available", {"menu_item_id": line.id})
        unit_price = Decimal(item.price)
        if line.price is not None and line.price != unit_price:
            raise InvalidRequest(
                f"price of {item.name} is {unit_price}",
                {"menu_item_id": line.id, "price": float(unit_price), "submitted": float(line.price)},
            )
        lines.append(
            OrderItem(
                menu_item_id=item.id,
                name=item.name,
                unit_price=unit_price,
                quantity=line.quantity,
            )
        )
        total += unit_price * line.quantity
    if payload.total_amount is not None and payload.total_amount != total:
        raise InvalidRequest(
            "total_amount does not match line items",
            {"total_amount": float(total), "submitted": float(payload.total_amount)},
        )
    return lines, total


def _check_table(db: Session, table_id: int) -> DiningTable:
    table = db.get(DiningTable, table_id)
    if table is None:
        raise InvalidRequest("table does not exist", {"table_id": table_id})
    active = db.scalar(
        select(func.count())
        .select_from(Order)
        .where(Order.table_id == table_id, Order.status.in_(ACTIVE_STATUSES))
    )
    if active:
        raise TableUnavailable("table already has an open order", {"table_id": table_id})
    return table


def place_order(db: Session, payload: OrderCreate, deduction: str = "order") -> Order:
    seats_table = payload.table_id is not None and payload.order_type == "dine-in"
    with db.begin():
        lines, total = _build_lines(db, payload)
        if payload.table_id is not None:
            if seats_table:
                _check_table(db, payload.table_id)
            elif db.get(DiningTable, payload.table_id) is None:
                raise InvalidRequest("table does not exist", {"table_id": payload.table_id})

        deduct_now = deduction == "order"
        if deduct_now:
            demand = aggregate_demand(db, ((line.menu_item_id, line.quantity) for line in lines))
            check_admission(db, demand)

        now = _now()
        order = Order(
            table_id=payload.table_id,
            customer_name=payload.customer_name,
            order_type=payload.order_type,
            total_amount=total,
            status="pending",
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            line.stock_deducted = deduct_now
        order.items = lines
        db.add(order)
        db.flush()

        if deduct_now:
            consume_demand(db, demand)
        if seats_table:
            tables.occupy(db, payload.table_id)

    logger.info(
        "order %s placed: %d line(s), total %s, table %s",
        order.id,
        len(lines),
        total,
        payload.table_id,
    )
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.scalar(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    )
    if order is None:
        raise NotFound("order not found", {"order_id": order_id})
    return order


def list_orders(db: Session, statuses: Optional[Iterable[str]] = None) -> list[Order]:
    query = select(Order).options(selectinload(Order.items))
    if statuses is not None:
        query = query.where(Order.status.in_(tuple(statuses)))
    return list(db.scalars(query.order_by(Order.created_at.desc(), Order.id.desc())))


def list_awaiting_payment(db: Session) -> list[Order]:
    query = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.status.in_(AWAITING_PAYMENT_STATUSES))
        .order_by(Order.created_at, Order.id)
    )
    return list(db.scalars(query))


def check_transition(current: str, target: str) -> None:
    if current in TERMINAL_STATUSES:
        raise ForbiddenTransition(f"order is already {current}", {"status": current})
    if target == "cancelled":
        return
    if target == "completed":
        raise ForbiddenTransition("orders are completed by recording a payment", {"status": current})
    if WORKFLOW.index(target) <= WORKFLOW.index(current):
        raise ForbiddenTransition(
            f"cannot move order from {current} to {target}", {"status": current, "requested": target}
        )


def apply_status(db: Session, order: Order, status: str) -> None:
    """Move ``order`` to ``status`` only if its row still has the status read.

    Concurrent writers that read the same status race on this UPDATE; the
    loser matches no row and gets a Conflict.
    """
    now = _now()
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == order.status)
        .values(status=status, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("order was changed by another request", {"order_id": order.id})
    set_committed_value(order, "status", status)
    set_committed_value(order, "updated_at", now)


def update_status(db: Session, order_id: int, status: str) -> Order:
    with db.begin():
        order = db.get(Order, order_id)
        if order is None:
            raise NotFound("order not found", {"order_id": order_id})
        previous = order.status
        check_transition(previous, status)
        apply_status(db, order, status)
        if status == "cancelled" and order.table_id is not None and order.order_type == "dine-in":
            tables.release(db, order.table_id)
    logger.info("order %s moved from %s to %s", order_id, previous, status)
    return order


def delete_order(db: Session, order_id: int) -> None:
    with db.begin():
        order = db.get(Order, order_id, with_for_update=True)
        if order is None:
            raise NotFound("order not found", {"order_id": order_id})
        if order.status == "completed":
            raise ForbiddenTransition("completed orders cannot be deleted", {"order_id": order_id})
        if (
            order.status in ACTIVE_STATUSES
            and order.table_id is not None
            and order.order_type == "dine-in"
        ):
            tables.release(db, order.table_id)
        db.delete(order)
    logger.info("order %s deleted", order_id)
