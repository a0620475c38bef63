import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from restopos.errors import InvalidRequest, NotFound
from restopos.models import InventoryItem, MenuItem, Recipe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    inventory_item_id: int
    ingredient: str
    total_required: Decimal


def resolve_requirements(db: Session, menu_item_id: int, ordered_quantity: int) -> list[Requirement]:
    """Ingredient amounts needed to make ``ordered_quantity`` of a menu item.

    Empty when the item has no recipe.
    """
    rows = db.execute(
        select(Recipe.inventory_item_id, InventoryItem.item_name, Recipe.quantity_required)
        .join(InventoryItem, InventoryItem.id == Recipe.inventory_item_id)
        .where(Recipe.menu_item_id == menu_item_id)
        .order_by(Recipe.inventory_item_id)
    ).all()
    return [
        Requirement(
            inventory_item_id=row.inventory_item_id,
            ingredient=row.item_name,
            total_required=Decimal(row.quantity_required) * ordered_quantity,
        )
        for row in rows
    ]


def set_recipe(db: Session, menu_item_id: int, ingredients: list[tuple[int, Decimal]]) -> int:
    """Replace the whole ingredient list of a menu item in one transaction."""
    seen: set[int] = set()
    for inventory_item_id, quantity_required in ingredients:
        if inventory_item_id in seen:
            raise InvalidRequest(
                "duplicate ingredient in recipe", {"inventory_item_id": inventory_item_id}
            )
        if quantity_required <= 0:
            raise InvalidRequest(
                "quantity_required must be greater than 0", {"inventory_item_id": inventory_item_id}
            )
        seen.add(inventory_item_id)

    with db.begin():
        if db.get(MenuItem, menu_item_id) is None:
            raise NotFound("menu item not found", {"menu_item_id": menu_item_id})
        if seen:
            known = set(db.scalars(select(InventoryItem.id).where(InventoryItem.id.in_(seen))))
            missing = sorted(seen - known)
            if missing:
                raise InvalidRequest("unknown inventory item in recipe", {"inventory_item_ids": missing})
        db.execute(delete(Recipe).where(Recipe.menu_item_id == menu_item_id))
        db.add_all(
            Recipe(
                menu_item_id=menu_item_id,
                inventory_item_id=inventory_item_id,
                quantity_required=quantity_required,
            )
            for inventory_item_id, quantity_required in ingredients
        )
    logger.info("recipe for menu item %s set with %d ingredient(s)", menu_item_id, len(ingredients))
    return len(ingredients)


def get_recipe(db: Session, menu_item_id: int) -> list[dict]:
    if db.get(MenuItem, menu_item_id) is None:
        raise NotFound("menu item not found", {"menu_item_id": menu_item_id})
    rows = db.execute(
        select(
            Recipe.inventory_item_id,
            InventoryItem.item_name,
            Recipe.quantity_required,
            InventoryItem.unit,
        )
        .join(InventoryItem, InventoryItem.id == Recipe.inventory_item_id)
        .where(Recipe.menu_item_id == menu_item_id)
        .order_by(Recipe.inventory_item_id)
    ).all()
    return [
        {
            "inventory_item_id": row.inventory_item_id,
            "item_name": row.item_name,
            "quantity_required": float(row.quantity_required),
            "unit": row.unit,
        }
        for row in rows
    ]
