from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.core.deps import get_current_user, require_roles
from storefront.db.session import get_db
from storefront.models.order import Order
from storefront.models.user import ROLE_ADMIN, User
from storefront.schemas.orders import OrderCreate, OrderOut, OrderStatusUpdate
from storefront.services.list_query import run_list_query
from storefront.services.orders import (
    MY_ORDER_LIST,
    ORDER_LIST,
    delete_order,
    load_order_by_id_or_404,
    load_order_by_number_or_404,
    parse_order_number_or_400,
    place_order,
    update_order_status,
)

router = APIRouter()


def _wire(order: Order) -> dict:
    return OrderOut.model_validate(order).to_wire()


@router.get("")
def list_orders(
    request: Request,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    page = run_list_query(db, ORDER_LIST, request.query_params)
    return page.to_envelope(ORDER_LIST.items_key, ORDER_LIST.total_key, _wire)


@router.get("/me")
def list_my_orders(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = run_list_query(db, MY_ORDER_LIST, request.query_params, owner_id=user.id)
    return page.to_envelope(MY_ORDER_LIST.items_key, MY_ORDER_LIST.total_key, _wire)


@router.get("/me/{order_number}")
def get_my_order(
    order_number: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    number = parse_order_number_or_400(order_number)
    return _wire(load_order_by_number_or_404(db, number, customer_id=user.id))


@router.get("/{order_number}")
def get_order(
    order_number: str,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    return _wire(load_order_by_number_or_404(db, parse_order_number_or_400(order_number)))


@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _wire(place_order(db, user, payload))


@router.patch("/{order_number}")
def change_order_status(
    order_number: str,
    payload: OrderStatusUpdate,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    order = update_order_status(db, parse_order_number_or_400(order_number), payload.status)
    return _wire(order)


@router.delete("/{order_id}")
def remove_order(
    order_id: str,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    order = load_order_by_id_or_404(db, order_id)
    body = _wire(order)
    delete_order(db, order)
    return body
