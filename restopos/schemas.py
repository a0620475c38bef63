from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

OrderType = Literal["dine-in", "takeaway", "delivery"]
OrderStatus = Literal["pending", "preparing", "ready", "served", "completed", "cancelled"]
TableStatus = Literal["available", "occupied", "reserved", "maintenance"]
PaymentMethod = Literal["cash", "card", "scan"]


class OrderLineInput(BaseModel):
    id: int = Field(gt=0, description="menu item id")
    quantity: int = Field(gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)


class OrderCreate(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "table_id": 5,
                "customer_name": "Durand",
                "order_type": "dine-in",
                "items": [{"id": 1, "quantity": 2, "price": 18.5}],
                "notes": "no onions",
            }
        }
    }
    table_id: Optional[int] = None
    customer_name: Optional[str] = None
    order_type: OrderType = "dine-in"
    items: list[OrderLineInput] = Field(min_length=1)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"payment_method": "card"}}}
    payment_method: PaymentMethod


class InventoryItemCreate(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "item_name": "Saumon",
                "category": "poisson",
                "quantity": 1,
                "unit": "kg",
                "min_quantity": 0.5,
                "cost_per_unit": 24,
                "supplier": "Marée du Nord",
            }
        }
    }
    item_name: str = Field(min_length=1)
    category: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = Field(min_length=1)
    min_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    cost_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    supplier: Optional[str] = None


class InventoryItemUpdate(BaseModel):
    # Stock moves through restock and orders, never through an edit.
    model_config = {"extra": "forbid"}
    item_name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    unit: Optional[str] = Field(default=None, min_length=1)
    min_quantity: Optional[Decimal] = Field(default=None, ge=0)
    cost_per_unit: Optional[Decimal] = Field(default=None, ge=0)
    supplier: Optional[str] = None


class RestockRequest(BaseModel):
    quantity: Decimal = Field(gt=0)


class RecipeIngredientInput(BaseModel):
    inventory_item_id: int
    quantity_required: Decimal = Field(gt=0)


class RecipeSet(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "menu_item_id": 1,
                "ingredients": [{"inventory_item_id": 3, "quantity_required": 0.2}],
            }
        }
    }
    menu_item_id: int
    ingredients: list[RecipeIngredientInput] = Field(default_factory=list)


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    category: str = Field(min_length=1)
    available: bool = True


class MenuItemUpdate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"price": 19.5, "available": True}}}
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1)
    available: Optional[bool] = None


class TableCreate(BaseModel):
    table_number: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    status: TableStatus = "available"


class TableStatusUpdate(BaseModel):
    status: TableStatus
