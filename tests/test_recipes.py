from decimal import Decimal

import pytest

from restopos import menu, recipes
from restopos.errors import InvalidRequest, NotFound
from restopos.models import Recipe


def test_resolve_requirements_scales_by_ordered_quantity(session_factory, kitchen) -> None:
    salmon = kitchen.ingredient("Saumon", 1)
    lemon = kitchen.ingredient("Citron", 10, unit="piece")
    dish = kitchen.dish("Saumon grille", 18.5, {salmon: "0.2", lemon: "0.5"})

    with session_factory() as db:
        first = recipes.resolve_requirements(db, dish, 3)
        second = recipes.resolve_requirements(db, dish, 3)

    assert first == second
    assert [(r.inventory_item_id, r.ingredient, r.total_required) for r in first] == [
        (salmon, "Saumon", Decimal("0.6")),
        (lemon, "Citron", Decimal("1.5")),
    ]


def test_resolve_requirements_empty_without_recipe(session_factory, kitchen) -> None:
    dish = kitchen.dish("Eau plate", 2)

    with session_factory() as db:
        assert recipes.resolve_requirements(db, dish, 4) == []


def test_set_recipe_replaces_previous_ingredients(session_factory, kitchen) -> None:
    potato = kitchen.ingredient("Pommes de terre", 20)
    oil = kitchen.ingredient("Huile", 5, unit="l")
    beef = kitchen.ingredient("Boeuf", 6)
    dish = kitchen.dish("Steak frites", 22, {potato: "0.3", oil: "0.05"})

    with session_factory() as db:
        assert recipes.set_recipe(db, dish, [(beef, Decimal("0.25")), (potato, Decimal("0.35"))]) == 2

    with session_factory() as db:
        rows = recipes.get_recipe(db, dish)
    assert [(row["item_name"], row["quantity_required"]) for row in rows] == [
        ("Pommes de terre", 0.35),
        ("Boeuf", 0.25),
    ]


def test_failed_replace_keeps_old_recipe(session_factory, kitchen) -> None:
    flour = kitchen.ingredient("Farine", 10)
    dish = kitchen.dish("Crepe", 6, {flour: "0.1"})

    with session_factory() as db:
        with pytest.raises(InvalidRequest):
            recipes.set_recipe(db, dish, [(flour, Decimal("0.2")), (4242, Decimal("1"))])

    with session_factory() as db:
        rows = recipes.get_recipe(db, dish)
    assert rows == [{"inventory_item_id": flour, "item_name": "Farine", "quantity_required": 0.1, "unit": "kg"}]


def test_set_recipe_rejects_duplicates_and_unknown_menu_item(session_factory, kitchen) -> None:
    sugar = kitchen.ingredient("Sucre", 3)
    dish = kitchen.dish("Tarte", 7)

    with session_factory() as db:
        with pytest.raises(InvalidRequest):
            recipes.set_recipe(db, dish, [(sugar, Decimal("0.1")), (sugar, Decimal("0.2"))])
    with session_factory() as db:
        with pytest.raises(NotFound):
            recipes.set_recipe(db, 999, [(sugar, Decimal("0.1"))])


def test_empty_ingredient_list_clears_recipe(session_factory, kitchen) -> None:
    cheese = kitchen.ingredient("Fromage", 2)
    dish = kitchen.dish("Croque", 8, {cheese: "0.05"})

    with session_factory() as db:
        assert recipes.set_recipe(db, dish, []) == 0
    with session_factory() as db:
        assert recipes.resolve_requirements(db, dish, 1) == []


def test_deleting_menu_item_cascades_recipe_rows(session_factory, kitchen) -> None:
    ham = kitchen.ingredient("Jambon", 2)
    dish = kitchen.dish("Sandwich", 5, {ham: "0.08"})

    with session_factory() as db:
        menu.delete_menu_item(db, dish)

    with session_factory() as db:
        assert db.query(Recipe).filter(Recipe.inventory_item_id == ham).count() == 0
        with pytest.raises(NotFound):
            recipes.get_recipe(db, dish)
