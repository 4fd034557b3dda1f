"""
Discount code rules.

The same checks back the public ``/discounts/validate`` endpoint and the
recomputation done while an order is being placed.
"""
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from models import Discount


class DiscountError(Exception):
    """A code that cannot be applied to the cart; the message is shown to the shopper."""


INVALID_CODE = "Invalid discount code or code has expired"
LIMIT_REACHED = "This discount code has reached its usage limit"


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def check_rule(discount_type: str, value: float) -> None:
    """Reject values that could never make sense for the discount type."""
    if value <= 0:
        raise DiscountError("Discount value must be positive")
    if discount_type == "percentage" and value > 100:
        raise DiscountError("Percentage discounts cannot exceed 100")


def compute_amount(discount_type: str, value: float, subtotal: float) -> float:
    if discount_type == "percentage":
        amount = subtotal * value / 100
    else:
        amount = min(value, subtotal)
    return round(max(amount, 0), 2)


def find_active(db: Session, code: str, for_update: bool = False) -> Optional[Discount]:
    stmt = select(Discount).where(Discount.code == normalize_code(code), Discount.is_active.is_(True))
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def apply(discount: Optional[Discount], subtotal: float, items_count: int) -> float:
    """Run the usability checks in order and return the discount amount."""
    if discount is None or not discount.is_active:
        raise DiscountError(INVALID_CODE)
    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        raise DiscountError(LIMIT_REACHED)
    if discount.min_quantity and discount.min_quantity > 0 and items_count < discount.min_quantity:
        raise DiscountError(f"This code requires a minimum of {discount.min_quantity} items")
    return compute_amount(discount.type, discount.value, subtotal)


def validate_code(db: Session, code: str, subtotal: float, items_count: int) -> dict:
    discount = find_active(db, code)
    amount = apply(discount, subtotal, items_count)
    return {
        "code": discount.code,
        "type": discount.type,
        "value": discount.value,
        "min_quantity": discount.min_quantity,
        "discountAmount": amount,
    }


def record_usage(db: Session, code: str) -> bool:
    """
    Count one use of ``code``. Never pushes the counter past the usage limit.

    Returns False when no counter was changed.
    """
    table = Discount.__table__
    result = db.execute(
        update(table)
        .where(
            table.c.code == normalize_code(code),
            or_(table.c.usage_limit.is_(None), table.c.used_count < table.c.usage_limit),
        )
        .values(used_count=table.c.used_count + 1)
    )
    db.commit()
    return result.rowcount > 0
