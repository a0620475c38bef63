from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from restopos.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
QTY_TYPE = Numeric(12, 3)
MONEY_TYPE = Numeric(10, 2)

TABLE_STATUSES = ("available", "occupied", "reserved", "maintenance")
ORDER_TYPES = ("dine-in", "takeaway", "delivery")
ORDER_STATUSES = ("pending", "preparing", "ready", "served", "completed", "cancelled")
PAYMENT_METHODS = ("cash", "card", "scan")


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class InventoryItem(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("min_quantity >= 0", name="ck_inventory_min_quantity_non_negative"),
        CheckConstraint("cost_per_unit >= 0", name="ck_inventory_cost_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[Decimal] = mapped_column(QTY_TYPE, nullable=False, default=0)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    min_quantity: Mapped[Decimal] = mapped_column(QTY_TYPE, nullable=False, default=0)
    cost_per_unit: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=0)
    supplier: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (CheckConstraint("price >= 0", name="ck_menu_items_price_non_negative"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    recipe: Mapped[list["Recipe"]] = relationship(
        back_populates="menu_item", cascade="all, delete-orphan", passive_deletes=True
    )


class Recipe(Base):
    __tablename__ = "recipes"
    __table_args__ = (
        UniqueConstraint("menu_item_id", "inventory_item_id", name="uq_recipes_menu_item_ingredient"),
        CheckConstraint("quantity_required > 0", name="ck_recipes_quantity_positive"),
        Index("ix_recipes_inventory_item_id", "inventory_item_id"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False
    )
    inventory_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory.id", ondelete="RESTRICT"), nullable=False
    )
    quantity_required: Mapped[Decimal] = mapped_column(QTY_TYPE, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    menu_item: Mapped[MenuItem] = relationship(back_populates="recipe")
    inventory_item: Mapped[InventoryItem] = relationship()


class DiningTable(Base):
    __tablename__ = "tables"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_tables_capacity_positive"),
        CheckConstraint(_in("status", TABLE_STATUSES), name="ck_tables_status"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    table_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="available")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint(_in("order_type", ORDER_TYPES), name="ck_orders_order_type"),
        CheckConstraint(_in("status", ORDER_STATUSES), name="ck_orders_status"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_table_id", "table_id"),
        Index("ix_orders_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    table_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("tables.id", ondelete="SET NULL")
    )
    customer_name: Mapped[str | None] = mapped_column(Text)
    order_type: Mapped[str] = mapped_column(Text, nullable=False, default="dine-in")
    total_amount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )
    table: Mapped[DiningTable | None] = relationship()
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="order")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_items.id", ondelete="RESTRICT"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_deducted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    order: Mapped[Order] = relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint(_in("method", PAYMENT_METHODS), name="ck_payments_method"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, unique=True
    )
    method: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[Order] = relationship(back_populates="payment")
