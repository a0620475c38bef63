from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from restopos import inventory, menu, recipes
from restopos.config import Settings, get_settings
from restopos.db import Base, build_engine, make_sessionmaker
from restopos.main import app, get_db


@pytest.fixture()
def engine():
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture()
def settings() -> Settings:
    return Settings(database_url="sqlite:///:memory:", inventory_deduction="order")


@pytest.fixture()
def client(session_factory, settings):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class Kitchen:
    """Seeds inventory, menu items and recipes through the service layer."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def ingredient(self, name: str, quantity, unit: str = "kg", min_quantity=0) -> int:
        with self.session_factory() as db:
            item = inventory.create_item(
                db, name, unit, quantity=Decimal(str(quantity)), min_quantity=Decimal(str(min_quantity))
            )
            return item.id

    def dish(self, name: str, price, ingredients: dict[int, object] | None = None) -> int:
        with self.session_factory() as db:
            item = menu.create_menu_item(db, name, Decimal(str(price)), "plats")
        if ingredients:
            with self.session_factory() as db:
                recipes.set_recipe(
                    db,
                    item.id,
                    [(item_id, Decimal(str(qty))) for item_id, qty in ingredients.items()],
                )
        return item.id

    def quantity(self, item_id: int) -> Decimal:
        with self.session_factory() as db:
            return inventory.get_quantity(db, item_id)


@pytest.fixture()
def kitchen(session_factory) -> Kitchen:
    return Kitchen(session_factory)


@pytest.fixture()
def kitchen_factory():
    return Kitchen
