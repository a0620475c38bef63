from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from restopos import inventory, menu, orders, recipes, settlement, tables
from restopos.config import Settings, get_settings, settings as startup_settings
from restopos.db import SessionLocal
from restopos.errors import Conflict, PosError
from restopos.models import DiningTable, InventoryItem, MenuItem, Order
from restopos.schemas import (
    InventoryItemCreate,
    InventoryItemUpdate,
    MenuItemCreate,
    MenuItemUpdate,
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    PaymentCreate,
    RecipeSet,
    RestockRequest,
    TableCreate,
    TableStatusUpdate,
)

logging.basicConfig(
    level=startup_settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("restopos")

app = FastAPI(title="RestoPOS")


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    elif isinstance(exc, Conflict):
        logger.warning("%s %s conflict: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "code": "VALIDATION_ERROR",
                "message": "request validation failed",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("%s %s integrity error: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"detail": {"code": "CONFLICT", "message": "operation conflicts with existing data"}},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s database error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "database operation failed"}},
    )


def _inventory_data(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "item_name": item.item_name,
        "category": item.category,
        "quantity": float(item.quantity),
        "unit": item.unit,
        "min_quantity": float(item.min_quantity),
        "cost_per_unit": float(item.cost_per_unit),
        "supplier": item.supplier,
        "low_stock": item.quantity <= item.min_quantity,
    }


def _menu_item_data(item: MenuItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "price": float(item.price),
        "category": item.category,
        "available": item.available,
    }


def _table_data(table: DiningTable) -> dict:
    return {
        "id": table.id,
        "table_number": table.table_number,
        "capacity": table.capacity,
        "status": table.status,
    }


def _order_data(order: Order) -> dict:
    return {
        "id": order.id,
        "table_id": order.table_id,
        "customer_name": order.customer_name,
        "order_type": order.order_type,
        "status": order.status,
        "total_amount": float(order.total_amount),
        "notes": order.notes,
        "items": [
            {
                "menu_item_id": line.menu_item_id,
                "name": line.name,
                "price": float(line.unit_price),
                "quantity": line.quantity,
                "line_total": float(line.line_total),
            }
            for line in order.items
        ],
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


@app.post("/api/v1/orders", status_code=201, tags=["Orders"])
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    order = orders.place_order(db, payload, deduction=settings.inventory_deduction)
    return {
        "data": {
            "id": order.id,
            "status": order.status,
            "total_amount": float(order.total_amount),
            "currency_code": settings.currency_code,
        },
        "meta": _meta(),
    }


@app.get("/api/v1/orders", tags=["Orders"])
def list_orders(
    status: Optional[OrderStatus] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    rows = orders.list_orders(db, [status] if status is not None else None)
    return {"data": [_order_data(row) for row in rows], "meta": _meta()}


@app.get("/api/v1/orders/{order_id}", tags=["Orders"])
def get_order(order_id: int, db: Session = Depends(get_db)) -> dict:
    return {"data": _order_data(orders.get_order(db, order_id)), "meta": _meta()}


@app.patch("/api/v1/orders/{order_id}/status", tags=["Orders"])
def update_order_status(
    order_id: int, payload: OrderStatusUpdate, db: Session = Depends(get_db)
) -> dict:
    order = orders.update_status(db, order_id, payload.status)
    return {"data": {"id": order.id, "status": order.status}, "meta": _meta()}


@app.delete("/api/v1/orders/{order_id}", tags=["Orders"])
def delete_order(order_id: int, db: Session = Depends(get_db)) -> dict:
    orders.delete_order(db, order_id)
    return {"data": {"id": order_id, "deleted": True}, "meta": _meta()}


@app.get("/api/v1/pos/pending", tags=["POS"])
def list_pending_payment(db: Session = Depends(get_db)) -> dict:
    rows = orders.list_awaiting_payment(db)
    return {"data": [_order_data(row) for row in rows], "meta": _meta()}


@app.post("/api/v1/pos/pay/{order_id}", tags=["POS"])
def pay_order(
    order_id: int,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    result = settlement.settle_order(db, order_id, payload.payment_method)
    warnings = [f"inventory_short:{w['ingredient']}" for w in result.inventory_warnings]
    return {
        "data": {
            "order_id": result.order.id,
            "payment_method": result.payment.method,
            "amount": float(result.payment.amount),
            "currency_code": settings.currency_code,
            "paid_at": _iso(result.payment.paid_at),
            "inventory_warnings": result.inventory_warnings,
        },
        "meta": _meta(warnings=warnings),
    }


@app.post("/api/v1/inventory", status_code=201, tags=["Inventory"])
def create_inventory_item(payload: InventoryItemCreate, db: Session = Depends(get_db)) -> dict:
    item = inventory.create_item(db, **payload.model_dump())
    return {"data": _inventory_data(item), "meta": _meta()}


@app.get("/api/v1/inventory", tags=["Inventory"])
def list_inventory(
    category: Optional[str] = Query(default=None),
    low_stock: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> dict:
    rows = inventory.list_items(db, category=category, low_stock=low_stock)
    return {"data": [_inventory_data(row) for row in rows], "meta": _meta()}


@app.get("/api/v1/inventory/categories", tags=["Inventory"])
def list_inventory_categories(db: Session = Depends(get_db)) -> dict:
    return {"data": inventory.list_categories(db), "meta": _meta()}


@app.get("/api/v1/inventory/{item_id}", tags=["Inventory"])
def get_inventory_item(item_id: int, db: Session = Depends(get_db)) -> dict:
    return {"data": _inventory_data(inventory.get_item(db, item_id)), "meta": _meta()}


@app.put("/api/v1/inventory/{item_id}", tags=["Inventory"])
def update_inventory_item(
    item_id: int, payload: InventoryItemUpdate, db: Session = Depends(get_db)
) -> dict:
    item = inventory.update_item(db, item_id, **payload.model_dump(exclude_unset=True))
    return {"data": _inventory_data(item), "meta": _meta()}


@app.patch("/api/v1/inventory/{item_id}/restock", tags=["Inventory"])
def restock_inventory_item(
    item_id: int, payload: RestockRequest, db: Session = Depends(get_db)
) -> dict:
    quantity = inventory.restock(db, item_id, payload.quantity)
    return {
        "data": {
            "id": item_id,
            "quantity_added": float(payload.quantity),
            "quantity": float(quantity),
        },
        "meta": _meta(),
    }


@app.delete("/api/v1/inventory/{item_id}", tags=["Inventory"])
def delete_inventory_item(item_id: int, db: Session = Depends(get_db)) -> dict:
    inventory.delete_item(db, item_id)
    return {"data": {"id": item_id, "deleted": True}, "meta": _meta()}


@app.post("/api/v1/menu-items", status_code=201, tags=["Menu"])
def create_menu_item(payload: MenuItemCreate, db: Session = Depends(get_db)) -> dict:
    item = menu.create_menu_item(db, **payload.model_dump())
    return {"data": _menu_item_data(item), "meta": _meta()}


@app.get("/api/v1/menu-items", tags=["Menu"])
def list_menu_items(
    category: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    rows = menu.list_menu_items(db, category=category)
    return {"data": [_menu_item_data(row) for row in rows], "meta": _meta()}


@app.get("/api/v1/menu-items/{menu_item_id}", tags=["Menu"])
def get_menu_item(menu_item_id: int, db: Session = Depends(get_db)) -> dict:
    return {"data": _menu_item_data(menu.get_menu_item(db, menu_item_id)), "meta": _meta()}


@app.put("/api/v1/menu-items/{menu_item_id}", tags=["Menu"])
def update_menu_item(
    menu_item_id: int, payload: MenuItemUpdate, db: Session = Depends(get_db)
) -> dict:
    item = menu.update_menu_item(db, menu_item_id, **payload.model_dump(exclude_unset=True))
    return {"data": _menu_item_data(item), "meta": _meta()}


@app.delete("/api/v1/menu-items/{menu_item_id}", tags=["Menu"])
def delete_menu_item(menu_item_id: int, db: Session = Depends(get_db)) -> dict:
    menu.delete_menu_item(db, menu_item_id)
    return {"data": {"id": menu_item_id, "deleted": True}, "meta": _meta()}


@app.post("/api/v1/recipes", status_code=201, tags=["Recipes"])
def set_recipe(payload: RecipeSet, db: Session = Depends(get_db)) -> dict:
    count = recipes.set_recipe(
        db,
        payload.menu_item_id,
        [(row.inventory_item_id, row.quantity_required) for row in payload.ingredients],
    )
    return {
        "data": {"menu_item_id": payload.menu_item_id, "ingredients": count},
        "meta": _meta(),
    }


@app.get("/api/v1/recipes/{menu_item_id}", tags=["Recipes"])
def get_recipe(menu_item_id: int, db: Session = Depends(get_db)) -> dict:
    return {"data": recipes.get_recipe(db, menu_item_id), "meta": _meta()}


@app.post("/api/v1/tables", status_code=201, tags=["Tables"])
def create_table(payload: TableCreate, db: Session = Depends(get_db)) -> dict:
    table = tables.create_table(db, payload.table_number, payload.capacity, payload.status)
    return {"data": _table_data(table), "meta": _meta()}


@app.get("/api/v1/tables", tags=["Tables"])
def list_tables(db: Session = Depends(get_db)) -> dict:
    return {"data": [_table_data(row) for row in tables.list_tables(db)], "meta": _meta()}


@app.patch("/api/v1/tables/{table_id}/status", tags=["Tables"])
def update_table_status(
    table_id: int, payload: TableStatusUpdate, db: Session = Depends(get_db)
) -> dict:
    table = tables.set_status(db, table_id, payload.status)
    return {"data": _table_data(table), "meta": _meta()}
