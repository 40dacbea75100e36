from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.models.common import utcnow
from storefront.models.order import ORDER_STATUSES, PAYMENT_METHODS, Order
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.orders import OrderCreate
from storefront.services.list_query import (
    FIELD_DATE_RANGE,
    FIELD_ENUM,
    FIELD_NUMBER_RANGE,
    FilterField,
    ListQueryConfig,
)
from storefront.services.sanitize import is_valid_email, normalize_phone, strip_tags

_LOG = logging.getLogger("storefront.orders")

MAX_ORDER_ITEMS = 20
PHONE_RAW_MAX = 30
COMMENT_MAX = 500
ADDRESS_MAX = 200
_ORDER_NUMBER_ATTEMPTS = 3

ORDER_LOAD_OPTIONS = (selectinload(Order.products), selectinload(Order.customer))

ORDER_LIST = ListQueryConfig(
    model=Order,
    items_key="orders",
    total_key="totalOrders",
    default_limit=10,
    max_limit=10,
    filters=(
        FilterField(name="status", column=Order.status, kind=FIELD_ENUM, choices=ORDER_STATUSES),
        FilterField(name="totalAmount", column=Order.total_amount, kind=FIELD_NUMBER_RANGE),
        FilterField(name="createdAt", column=Order.created_at, kind=FIELD_DATE_RANGE, param="orderDate"),
    ),
    sortable={
        "createdAt": Order.created_at,
        "totalAmount": Order.total_amount,
        "orderNumber": Order.order_number,
        "status": Order.status,
    },
    search_columns=(Order.delivery_address, Order.email),
    search_number_column=Order.order_number,
    load_options=ORDER_LOAD_OPTIONS,
)

MY_ORDER_LIST = ListQueryConfig(
    model=Order,
    items_key="orders",
    total_key="totalOrders",
    default_limit=5,
    max_limit=10,
    allow_search=False,
    owner_column=Order.customer_id,
    load_options=ORDER_LOAD_OPTIONS,
)


def parse_order_number_or_400(raw: str) -> int:
    try:
        value = int(str(raw or "").strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid order number")
    if value <= 0:
        raise HTTPException(status_code=400, detail="Invalid order number")
    return value


def parse_order_id_or_400(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw or "").strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid order id")


def load_order_by_number_or_404(db: Session, order_number: int, *, customer_id: uuid.UUID | None = None) -> Order:
    q = db.query(Order).options(*ORDER_LOAD_OPTIONS).filter(Order.order_number == order_number)
    if customer_id is not None:
        q = q.filter(Order.customer_id == customer_id)
    order = q.first()
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _product_ids_or_400(items: list) -> list[uuid.UUID]:
    ids = []
    for raw in items:
        try:
            ids.append(uuid.UUID(str(raw)))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid product id: {raw}")
    return ids


def _next_order_number(db: Session) -> int:
    current = db.query(func.max(Order.order_number)).scalar()
    return int(current or 0) + 1


def _validate_order_payload(payload: OrderCreate) -> tuple[str, list[uuid.UUID]]:
    if (
        not payload.address
        or not payload.payment
        or not payload.phone
        or not payload.email
        or not isinstance(payload.items, list)
        or not payload.items
    ):
        raise HTTPException(status_code=400, detail="Required fields are missing")
    if payload.payment not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail="Invalid payment method")
    if len(payload.phone) > PHONE_RAW_MAX:
        raise HTTPException(status_code=400, detail="Phone number is too long")
    if not is_valid_email(payload.email):
        raise HTTPException(status_code=400, detail="Invalid email")
    phone = normalize_phone(payload.phone)
    if phone is None:
        raise HTTPException(status_code=400, detail="Invalid phone number. It must contain 10-15 digits")
    if len(payload.items) > MAX_ORDER_ITEMS:
        raise HTTPException(status_code=400, detail="Too many items in the order")
    return phone, _product_ids_or_400(payload.items)


def place_order(db: Session, customer: User, payload: OrderCreate) -> Order:
    phone, product_ids = _validate_order_payload(payload)

    products = (
        db.query(Product)
        .filter(Product.id.in_(product_ids), Product.price.is_not(None), Product.price > 0)
        .all()
    )
    if len(products) != len(product_ids):
        raise HTTPException(status_code=400, detail="Some products were not found or are not available for ordering")

    total = sum((Decimal(str(p.price)) for p in products), Decimal("0"))
    now = utcnow()
    for attempt in range(_ORDER_NUMBER_ATTEMPTS):
        order = Order(
            order_number=_next_order_number(db),
            status="pending",
            total_amount=total,
            payment=payload.payment,
            phone=phone,
            email=payload.email,
            comment=strip_tags(payload.comment, COMMENT_MAX) if payload.comment else "",
            delivery_address=str(payload.address)[:ADDRESS_MAX],
            customer_id=customer.id,
            created_at=now,
            updated_at=now,
        )
        order.products = products
        db.add(order)
        try:
            db.flush()
        except IntegrityError:
            # Concurrent insert took the same number.
            db.rollback()
            if attempt + 1 == _ORDER_NUMBER_ATTEMPTS:
                raise
            continue
        break

    customer.total_amount = Decimal(str(customer.total_amount or 0)) + total
    customer.order_count = int(customer.order_count or 0) + 1
    customer.last_order_date = now
    customer.last_order = order
    db.add(customer)
    db.commit()
    _LOG.info("order placed number=%s customer=%s total=%s", order.order_number, customer.id, total)
    return load_order_by_number_or_404(db, order.order_number)


def update_order_status(db: Session, order_number: int, status: str | None) -> Order:
    if status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid order status")
    order = load_order_by_number_or_404(db, order_number)
    order.status = status
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def load_order_by_id_or_404(db: Session, raw_id: str) -> Order:
    order_id = parse_order_id_or_400(raw_id)
    order = db.query(Order).options(*ORDER_LOAD_OPTIONS).filter(Order.id == order_id).first()
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def delete_order(db: Session, order: Order) -> None:
    order_number = order.order_number
    db.query(User).filter(User.last_order_id == order.id).update(
        {User.last_order_id: None}, synchronize_session="fetch"
    )
    db.delete(order)
    db.commit()
    _LOG.info("order deleted number=%s", order_number)
