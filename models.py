"""
Database Models

SQLAlchemy tables for the storefront:
- users: customers and store operators
- products: catalog items with stock tracking
- orders: checkout records with a snapshot of their line items
- discounts: promotional codes
- wishlist: products saved by customers
- settings: single-row store configuration
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


Money = Numeric(10, 2, asdecimal=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="customer")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self):
        return f"<User {self.email}>"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    price: Mapped[float] = mapped_column(Money, nullable=False)
    original_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    images: Mapped[List[str]] = mapped_column(JSON, default=list)
    sizes: Mapped[List[str]] = mapped_column(JSON, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_arrival: Mapped[bool] = mapped_column(Boolean, default=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self):
        return f"<Product {self.name}>"


class Order(Base):
    """
    A placed order.

    ``items`` holds the line items exactly as they were submitted at checkout,
    so order history stays stable when products are edited or deleted later.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    items: Mapped[List[Any]] = mapped_column(JSON, nullable=False)
    total: Mapped[float] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    discount_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    discount_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    def __repr__(self):
        return f"<Order {self.order_number}>"


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (CheckConstraint("type IN ('percentage', 'fixed')", name="ck_discounts_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[float] = mapped_column(Money, nullable=False)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Discount {self.code}>"


class WishlistItem(Base):
    __tablename__ = "wishlist"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class StoreSettings(Base):
    """Single-row table (id 1) of storefront display settings."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    currency: Mapped[str] = mapped_column(String(10), default="GHS")
    announcement_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    announcement_bar_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    social_facebook: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    social_instagram: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    social_twitter: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    social_snapchat: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    social_tiktok: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    popup_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    popup_title: Mapped[Optional[str]] = mapped_column(String(255), default="Special Offer!")
    popup_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    popup_coupon_code: Mapped[Optional[str]] = mapped_column(String(50), default="WELCOME20")
    popup_button_text: Mapped[Optional[str]] = mapped_column(String(100), default="Shop Now")
    popup_button_link: Mapped[Optional[str]] = mapped_column(String(255), default="/shop")
    popup_delay: Mapped[int] = mapped_column(Integer, default=3)
    popup_show_once: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
