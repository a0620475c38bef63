import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from restopos import inventory, tables
from restopos.errors import Conflict, ForbiddenTransition, NotFound
from restopos.models import Order, Payment
from restopos.orders import aggregate_demand, apply_status

logger = logging.getLogger(__name__)


@dataclass
class Settlement:
    order: Order
    payment: Payment
    inventory_warnings: list[dict] = field(default_factory=list)


def _deduct_deferred(db: Session, order: Order) -> list[dict]:
    # Only lines placed under payment-time deduction are still pending here.
    # The food is already served, so a shortfall is reported, never raised.
    pending = [line for line in order.items if not line.stock_deducted]
    if not pending:
        return []
    warnings = []
    demand = aggregate_demand(db, ((line.menu_item_id, line.quantity) for line in pending))
    for item_id in sorted(demand):
        requirement = demand[item_id]
        if inventory.try_consume(db, item_id, requirement.total_required):
            continue
        available = inventory.get_quantity(db, item_id)
        logger.warning(
            "order %s: short on %s at settlement (required %s, available %s)",
            order.id,
            requirement.ingredient,
            requirement.total_required,
            available,
        )
        warnings.append(
            {
                "inventory_item_id": item_id,
                "ingredient": requirement.ingredient,
                "required": float(requirement.total_required),
                "available": float(available),
            }
        )
    for line in pending:
        line.stock_deducted = True
    return warnings


def settle_order(db: Session, order_id: int, method: str) -> Settlement:
    """Record the payment for an order, complete it and free its table."""
    with db.begin():
        order = db.get(Order, order_id)
        if order is None:
            raise NotFound("order not found", {"order_id": order_id})
        if order.status == "completed":
            raise Conflict("order is already paid", {"order_id": order_id})
        if order.status == "cancelled":
            raise ForbiddenTransition("cancelled orders cannot be paid", {"order_id": order_id})

        apply_status(db, order, "completed")
        warnings = _deduct_deferred(db, order)

        payment = Payment(
            order_id=order.id,
            method=method,
            amount=order.total_amount,
            paid_at=datetime.now(timezone.utc),
        )
        db.add(payment)
        if order.table_id is not None and order.order_type == "dine-in":
            tables.release(db, order.table_id)

    logger.info("order %s paid by %s: %s", order_id, method, payment.amount)
    return Settlement(order=order, payment=payment, inventory_warnings=warnings)
