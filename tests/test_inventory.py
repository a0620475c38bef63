from decimal import Decimal

import pytest
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from restopos import inventory
from restopos.db import build_engine, init_db
from restopos.errors import Conflict, InvalidRequest, NotFound


def test_try_consume_decrements_when_stock_covers_amount(session_factory, kitchen) -> None:
    flour = kitchen.ingredient("Farine", 5)

    with session_factory() as db, db.begin():
        assert inventory.try_consume(db, flour, Decimal("1.5")) is True

    assert kitchen.quantity(flour) == Decimal("3.5")


def test_try_consume_reports_shortfall_and_leaves_stock_untouched(session_factory, kitchen) -> None:
    butter = kitchen.ingredient("Beurre", 0.5)

    with session_factory() as db, db.begin():
        assert inventory.try_consume(db, butter, Decimal("0.6")) is False

    assert kitchen.quantity(butter) == Decimal("0.5")


def test_try_consume_exact_amount_reaches_zero(session_factory, kitchen) -> None:
    eggs = kitchen.ingredient("Oeufs", 12, unit="piece")

    with session_factory() as db, db.begin():
        assert inventory.try_consume(db, eggs, 12) is True
        assert inventory.try_consume(db, eggs, 1) is False

    assert kitchen.quantity(eggs) == Decimal("0")


def test_try_consume_rejects_unknown_item_and_bad_amounts(session_factory, kitchen) -> None:
    salt = kitchen.ingredient("Sel", 1)

    with session_factory() as db:
        with pytest.raises(NotFound):
            inventory.try_consume(db, 999, 1)
        with pytest.raises(InvalidRequest):
            inventory.try_consume(db, salt, 0)
        with pytest.raises(InvalidRequest):
            inventory.try_consume(db, salt, Decimal("-2"))
        db.rollback()

    assert kitchen.quantity(salt) == Decimal("1")


def test_restock_adds_to_current_quantity(session_factory, kitchen) -> None:
    milk = kitchen.ingredient("Lait", 2, unit="l")

    with session_factory() as db:
        assert inventory.restock(db, milk, Decimal("3.25")) == Decimal("5.25")

    assert kitchen.quantity(milk) == Decimal("5.25")


def test_restock_validation(session_factory, kitchen) -> None:
    milk = kitchen.ingredient("Lait", 2, unit="l")

    with session_factory() as db:
        with pytest.raises(InvalidRequest):
            inventory.restock(db, milk, -1)
    with session_factory() as db:
        with pytest.raises(NotFound):
            inventory.restock(db, 12345, 1)

    assert kitchen.quantity(milk) == Decimal("2")


def test_quantity_never_negative_over_mixed_sequence(session_factory, kitchen) -> None:
    rice = kitchen.ingredient("Riz", 1)
    steps = [
        ("consume", "0.5"),
        ("consume", "0.25"),
        ("consume", "0.5"),
        ("restock", "1"),
        ("consume", "1.25"),
        ("consume", "0.25"),
    ]

    for action, amount in steps:
        with session_factory() as db:
            if action == "restock":
                inventory.restock(db, rice, Decimal(amount))
            else:
                with db.begin():
                    inventory.try_consume(db, rice, Decimal(amount))
        assert kitchen.quantity(rice) >= 0

    assert kitchen.quantity(rice) == Decimal("0")


def test_low_stock_listing_and_categories(session_factory) -> None:
    with session_factory() as db:
        inventory.create_item(db, "Tomates", "kg", quantity=Decimal("1"), min_quantity=Decimal("2"), category="legumes")
    with session_factory() as db:
        inventory.create_item(db, "Poulet", "kg", quantity=Decimal("8"), min_quantity=Decimal("2"), category="viande")
    with session_factory() as db:
        inventory.create_item(db, "Basilic", "botte", quantity=Decimal("3"), min_quantity=Decimal("3"), category="legumes")

    with session_factory() as db:
        low = [item.item_name for item in inventory.list_items(db, low_stock=True)]
        vegetables = [item.item_name for item in inventory.list_items(db, category="legumes")]
        categories = inventory.list_categories(db)

    assert low == ["Basilic", "Tomates"]
    assert vegetables == ["Basilic", "Tomates"]
    assert categories == ["legumes", "viande"]


def test_delete_rejected_while_used_by_recipe(session_factory, kitchen) -> None:
    cream = kitchen.ingredient("Creme", 2, unit="l")
    kitchen.dish("Veloute", 9, {cream: "0.1"})
    unused = kitchen.ingredient("Safran", 0.01)

    with session_factory() as db:
        with pytest.raises(Conflict) as excinfo:
            inventory.delete_item(db, cream)
    assert excinfo.value.details["recipes"] == 1

    with session_factory() as db:
        inventory.delete_item(db, unused)
    with session_factory() as db:
        with pytest.raises(NotFound):
            inventory.get_item(db, unused)
    assert kitchen.quantity(cream) == Decimal("2")


def test_init_db_creates_schema() -> None:
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    init_db(engine)

    assert {"inventory", "menu_items", "recipes", "tables", "orders", "order_items", "payments"} <= set(
        inspect(engine).get_table_names()
    )
    engine.dispose()
