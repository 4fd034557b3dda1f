"""
Order placement and lookup.

``place_order`` records a checkout in a single transaction: the order row with
its item snapshot, a guarded stock decrement for every line that references a
product, and the sold flag for products that run out. Discount bookkeeping and
receipts happen after commit and may fail without touching the order.
"""
import logging
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import discounts
from config import IDEMPOTENCY_WINDOW_MINUTES, MAX_LINE_QUANTITY, ORDER_NUMBER_PREFIX
from models import Order, Product
from schemas import OrderLine, OrderSubmission

logger = logging.getLogger(__name__)

products_table = Product.__table__

STATUS_FLOW = ["pending", "processing", "shipped", "delivered"]
TERMINAL_STATUSES = {"delivered", "cancelled"}


class OrderError(Exception):
    status_code = 400


class OrderValidationError(OrderError):
    pass


class StockError(OrderError):
    status_code = 409


class IdempotencyConflict(OrderError):
    status_code = 409


def generate_order_number(now: Optional[datetime] = None) -> str:
    """LX + UTC date as YYYYMMDD + 6 random uppercase hex characters."""
    now = now or datetime.now(timezone.utc)
    return f"{ORDER_NUMBER_PREFIX}{now:%Y%m%d}{secrets.token_hex(3).upper()}"


def validate_submission(payload: OrderSubmission) -> None:
    email = (payload.customer_email or "").strip()
    if not email or "@" not in email:
        raise OrderValidationError("Valid email is required")
    if payload.total is None or not math.isfinite(payload.total) or payload.total <= 0:
        raise OrderValidationError("Invalid order total")
    if not payload.items:
        raise OrderValidationError("Order must contain items")
    for line in payload.items:
        if line.quantity is None or line.quantity < 1:
            raise OrderValidationError("Each item must have a quantity of at least 1")
        if line.quantity > MAX_LINE_QUANTITY:
            raise OrderValidationError(f"Each item must have a quantity of at most {MAX_LINE_QUANTITY}")
        if line.price is None or not math.isfinite(line.price) or line.price < 0:
            raise OrderValidationError("Each item must have a valid price")


def cart_totals(items: List[OrderLine]) -> Tuple[float, int]:
    """Subtotal and item count of the submitted lines."""
    subtotal = round(sum(line.price * line.quantity for line in items), 2)
    return subtotal, sum(line.quantity for line in items)


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def find_by_idempotency_key(db: Session, key: str) -> Optional[Order]:
    return db.execute(select(Order).where(Order.idempotency_key == key)).scalar_one_or_none()


def _replay(order: Order, payload: OrderSubmission) -> Order:
    window = timedelta(minutes=IDEMPOTENCY_WINDOW_MINUTES)
    same_customer = order.customer_email.lower() == payload.customer_email.strip().lower()
    if not same_customer or datetime.now(timezone.utc) - _aware(order.created_at) > window:
        raise IdempotencyConflict("Idempotency key has already been used")
    logger.info("Replaying order %s for repeated idempotency key", order.order_number)
    return order


def _unused_order_number(db: Session, attempts: int = 5) -> str:
    for _ in range(attempts):
        number = generate_order_number()
        taken = db.execute(select(Order.id).where(Order.order_number == number)).first()
        if taken is None:
            return number
    raise RuntimeError("Could not allocate a unique order number")


def _take_stock(db: Session, line: OrderLine) -> None:
    """Decrement stock for one line, refusing to go below zero."""
    qty = line.quantity
    result = db.execute(
        update(products_table)
        .where(products_table.c.id == line.product_id, products_table.c.stock_quantity >= qty)
        .values(
            stock_quantity=products_table.c.stock_quantity - qty,
            sales_count=products_table.c.sales_count + qty,
        )
    )
    if result.rowcount == 0:
        name = db.execute(select(Product.name).where(Product.id == line.product_id)).scalar_one_or_none()
        if name is None:
            raise StockError(f"Product {line.product_id} is no longer available")
        raise StockError(f"Insufficient stock for {name}")

    db.execute(
        update(products_table)
        .where(products_table.c.id == line.product_id, products_table.c.stock_quantity == 0)
        .values(sold=True)
    )


def place_order(
    db: Session,
    payload: OrderSubmission,
    user_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> Tuple[Order, bool]:
    """
    Record an order and adjust inventory atomically.

    Returns ``(order, created)``; ``created`` is False when an earlier order
    with the same idempotency key is returned instead.
    """
    validate_submission(payload)

    if idempotency_key:
        existing = find_by_idempotency_key(db, idempotency_key)
        if existing is not None:
            return _replay(existing, payload), False

    subtotal, items_count = cart_totals(payload.items)

    try:
        discount_code = None
        discount_amount = 0.0
        if discounts.normalize_code(payload.discount_code):
            discount = discounts.find_active(db, payload.discount_code, for_update=True)
            try:
                discount_amount = discounts.apply(discount, subtotal, items_count)
            except discounts.DiscountError as e:
                raise OrderValidationError(str(e))
            discount_code = discount.code

        total = round(max(subtotal - discount_amount, 0), 2)
        if abs(total - payload.total) > 0.01:
            raise OrderValidationError("Order total does not match items")

        order = Order(
            order_number=_unused_order_number(db),
            customer_name=payload.customer_name,
            customer_email=payload.customer_email.strip().lower(),
            customer_phone=payload.customer_phone,
            shipping_address=payload.shipping_address,
            shipping_city=payload.shipping_city,
            shipping_region=payload.shipping_region,
            items=[line.model_dump(by_alias=True, exclude_unset=True) for line in payload.items],
            total=total,
            status="pending",
            user_id=user_id,
            discount_code=discount_code,
            discount_amount=discount_amount,
            payment_reference=payload.payment_reference,
            payment_method=payload.payment_method,
            idempotency_key=idempotency_key,
        )
        db.add(order)
        db.flush()

        for line in payload.items:
            if line.product_id is not None:
                _take_stock(db, line)

        db.commit()
    except IntegrityError:
        db.rollback()
        if idempotency_key:
            existing = find_by_idempotency_key(db, idempotency_key)
            if existing is not None:
                return _replay(existing, payload), False
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("Order created successfully: %s", order.order_number)
    return order, True


def record_discount_usage(db: Session, code: str) -> None:
    """Best-effort usage count after an order has committed."""
    try:
        if not discounts.record_usage(db, code):
            logger.warning("Discount usage for %s not counted (missing or at limit)", code)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update discount usage count for %s", code)


def track_order(db: Session, order_number: str, email: str) -> Optional[Order]:
    """Order matching both the number and the customer email, else None."""
    number = (order_number or "").strip()
    email = (email or "").strip().lower()
    if not number or not email:
        return None
    # Emails are stored lowercased at checkout
    stmt = select(Order).where(Order.order_number == number, Order.customer_email == email)
    return db.execute(stmt).scalar_one_or_none()


def change_status(order: Order, new_status: str) -> Order:
    current = order.status
    if new_status == current:
        return order
    if current in TERMINAL_STATUSES:
        raise OrderValidationError(f"Cannot change the status of a {current} order")
    if new_status != "cancelled" and STATUS_FLOW.index(new_status) < STATUS_FLOW.index(current):
        raise OrderValidationError(f"Cannot move an order from {current} back to {new_status}")
    order.status = new_status
    return order
