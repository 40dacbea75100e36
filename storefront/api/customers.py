from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.core.deps import require_roles
from storefront.db.session import get_db
from storefront.models.user import ROLE_ADMIN, User
from storefront.schemas.customers import CustomerOut, CustomerUpdate
from storefront.services.customers import (
    CUSTOMER_LIST,
    apply_customer_update_or_400,
    commit_user_or_409,
    delete_customer,
    load_customer_or_404,
)
from storefront.services.list_query import run_list_query

router = APIRouter()


def _wire(customer: User) -> dict:
    return CustomerOut.model_validate(customer).to_wire()


@router.get("")
def list_customers(
    request: Request,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    page = run_list_query(db, CUSTOMER_LIST, request.query_params)
    return page.to_envelope(CUSTOMER_LIST.items_key, CUSTOMER_LIST.total_key, _wire)


@router.get("/{customer_id}")
def get_customer(
    customer_id: str,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    return _wire(load_customer_or_404(db, customer_id))


@router.patch("/{customer_id}")
def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    customer = apply_customer_update_or_400(load_customer_or_404(db, customer_id), payload)
    return _wire(commit_user_or_409(db, customer))


@router.delete("/{customer_id}")
def remove_customer(
    customer_id: str,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    customer = load_customer_or_404(db, customer_id)
    body = _wire(customer)
    delete_customer(db, admin, customer)
    return body
