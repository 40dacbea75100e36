from __future__ import annotations

import logging
import uuid

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.models.order import Order
from storefront.models.user import ROLES, User
from storefront.schemas.customers import CustomerUpdate
from storefront.services.list_query import (
    FIELD_DATE_RANGE,
    FIELD_NUMBER_RANGE,
    LIKE_ESCAPE,
    FilterField,
    ListQueryConfig,
)
from storefront.services.sanitize import escape_text, is_valid_email

_LOG = logging.getLogger("storefront.customers")

NAME_MAX = 200

CUSTOMER_LOAD_OPTIONS = (selectinload(User.orders), selectinload(User.last_order))

CUSTOMER_LIST = ListQueryConfig(
    model=User,
    items_key="customers",
    total_key="totalUsers",
    default_limit=10,
    max_limit=100,
    filters=(
        FilterField(name="createdAt", column=User.created_at, kind=FIELD_DATE_RANGE, param="registrationDate"),
        FilterField(name="lastOrderDate", column=User.last_order_date, kind=FIELD_DATE_RANGE),
        FilterField(name="totalAmount", column=User.total_amount, kind=FIELD_NUMBER_RANGE),
        FilterField(name="orderCount", column=User.order_count, kind=FIELD_NUMBER_RANGE),
    ),
    sortable={
        "createdAt": User.created_at,
        "totalAmount": User.total_amount,
        "orderCount": User.order_count,
        "lastOrderDate": User.last_order_date,
    },
    search_columns=(User.name, User.email),
    # Customers are also found by the delivery address of any of their orders.
    search_related=lambda like: User.orders.any(Order.delivery_address.ilike(like, escape=LIKE_ESCAPE)),
    load_options=CUSTOMER_LOAD_OPTIONS,
)


def parse_customer_id_or_400(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw or "").strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer id")


def load_customer_or_404(db: Session, raw_id: str) -> User:
    customer_id = parse_customer_id_or_400(raw_id)
    customer = db.query(User).options(*CUSTOMER_LOAD_OPTIONS).filter(User.id == customer_id).first()
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


def apply_customer_update_or_400(customer: User, payload: CustomerUpdate) -> User:
    provided = payload.model_fields_set
    if "name" in provided:
        name = escape_text(payload.name, NAME_MAX)
        if not name:
            raise HTTPException(status_code=400, detail="Name must not be empty")
        customer.name = name
    if "email" in provided:
        email = str(payload.email or "").strip().lower()
        if not is_valid_email(email):
            raise HTTPException(status_code=400, detail="Invalid email")
        customer.email = email
    if "roles" in provided:
        roles = list(dict.fromkeys(payload.roles or []))
        if not roles or any(role not in ROLES for role in roles):
            raise HTTPException(status_code=400, detail="Invalid roles")
        customer.roles = roles
    return customer


def commit_user_or_409(db: Session, user: User) -> User:
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    db.refresh(user)
    return user


def delete_customer(db: Session, actor: User, customer: User) -> None:
    if customer.id == actor.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    customer_id = customer.id
    db.delete(customer)
    db.commit()
    _LOG.info("customer deleted id=%s by=%s", customer_id, actor.id)
