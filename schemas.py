"""
Request and response schemas for the storefront API.

Checkout payloads use the camelCase field names the web client sends;
everything the API returns uses the snake_case column names.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from enum import Enum

# Integer primary keys are 32-bit on Postgres
MAX_ROW_ID = 2**31 - 1


class Role(str, Enum):
    customer = "customer"
    admin = "admin"


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


# Auth

class RegisterPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str
    full_name: str = Field(..., alias="fullName")

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain a number")
        if not any(c.isalpha() for c in v):
            raise ValueError("Password must contain a letter")
        return v

    @field_validator("full_name")
    @classmethod
    def full_name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name is required")
        return v


class LoginPayload(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# Products

class ProductIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    price: float = Field(ge=0, allow_inf_nan=False)
    original_price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False, alias="originalPrice")
    images: List[str] = []
    sizes: List[str] = []
    description: Optional[str] = None
    new_arrival: bool = Field(default=False, alias="newArrival")
    stock_quantity: int = Field(default=0, ge=0)
    sold: Optional[bool] = None


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    images: List[str] = []
    sizes: List[str] = []
    description: Optional[str] = None
    new_arrival: bool = False
    stock_quantity: int
    sold: bool
    sales_count: int = 0
    position: int = 0


class ProductPosition(BaseModel):
    id: int
    position: int


class ReorderPayload(BaseModel):
    products: List[ProductPosition]


class StockUpdate(BaseModel):
    stock_quantity: int = Field(ge=0)


# Orders

class OrderLine(BaseModel):
    """One cart line as submitted by the checkout; unknown keys are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    product_id: Optional[int] = Field(default=None, ge=1, le=MAX_ROW_ID, alias="productId")
    name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    size: Optional[str] = None
    image: Optional[str] = None


class OrderSubmission(BaseModel):
    # Required fields are checked by orders.validate_submission so that the
    # client gets the checkout-specific error messages.
    model_config = ConfigDict(populate_by_name=True)

    customer_name: Optional[str] = Field(default=None, alias="customerName")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    customer_phone: Optional[str] = Field(default=None, alias="customerPhone")
    items: Optional[List[OrderLine]] = None
    total: Optional[float] = None
    shipping_address: Optional[str] = Field(default=None, alias="shippingAddress")
    shipping_city: Optional[str] = Field(default=None, alias="shippingCity")
    shipping_region: Optional[str] = Field(default=None, alias="shippingRegion")
    discount_code: Optional[str] = Field(default=None, alias="discountCode")
    discount_amount: Optional[float] = Field(default=None, alias="discountAmount")
    payment_reference: Optional[str] = Field(default=None, alias="paymentReference")
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    customer_name: Optional[str] = None
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_region: Optional[str] = None
    items: List[Any]
    total: float
    status: OrderStatus
    user_id: Optional[int] = None
    discount_code: Optional[str] = None
    discount_amount: float = 0
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: datetime


class TrackedOrder(BaseModel):
    """Public view of an order; leaves out internal ids and payment data."""

    model_config = ConfigDict(from_attributes=True)

    order_number: str
    customer_name: Optional[str] = None
    customer_email: str
    customer_phone: Optional[str] = None
    total: float
    status: OrderStatus
    created_at: datetime
    items: List[Any]
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_region: Optional[str] = None


class StatusChange(BaseModel):
    status: OrderStatus


# Discounts

class DiscountIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    type: DiscountType
    value: float = Field(gt=0, allow_inf_nan=False)
    min_quantity: int = Field(default=0, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class DiscountUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    type: Optional[DiscountType] = None
    value: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class DiscountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    type: DiscountType
    value: float
    min_quantity: int
    usage_limit: Optional[int] = None
    used_count: int
    is_active: bool
    created_at: datetime


class DiscountCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    subtotal: float = Field(ge=0, allow_inf_nan=False)
    items_count: int = Field(default=0, ge=0, alias="itemsCount")


# Wishlist

class WishlistAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")


# Settings

class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    announcement_text: Optional[str] = None
    announcement_bar_enabled: bool
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    social_twitter: Optional[str] = None
    social_snapchat: Optional[str] = None
    social_tiktok: Optional[str] = None
    popup_enabled: bool
    popup_title: Optional[str] = None
    popup_message: Optional[str] = None
    popup_coupon_code: Optional[str] = None
    popup_button_text: Optional[str] = None
    popup_button_link: Optional[str] = None
    popup_delay: int
    popup_show_once: bool


class SettingsUpdate(BaseModel):
    currency: Optional[str] = None
    announcement_text: Optional[str] = None
    announcement_bar_enabled: Optional[bool] = None
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    social_twitter: Optional[str] = None
    social_snapchat: Optional[str] = None
    social_tiktok: Optional[str] = None
    popup_enabled: Optional[bool] = None
    popup_title: Optional[str] = None
    popup_message: Optional[str] = None
    popup_coupon_code: Optional[str] = None
    popup_button_text: Optional[str] = None
    popup_button_link: Optional[str] = None
    popup_delay: Optional[int] = Field(default=None, ge=0)
    popup_show_once: Optional[bool] = None
