import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.core.deps import require_roles
from storefront.db.session import get_db
from storefront.models.product import Product
from storefront.models.user import ROLE_ADMIN, User
from storefront.schemas.products import ProductOut, ProductPayload
from storefront.services.list_query import run_list_query
from storefront.services.products import (
    PRODUCT_LIST,
    commit_product_or_409,
    load_product_or_404,
    product_fields_for_create,
    product_fields_for_update,
)

_LOG = logging.getLogger("storefront.products")

router = APIRouter()


def _wire(product: Product) -> dict:
    return ProductOut.model_validate(product).to_wire()


@router.get("")
def list_products(request: Request, db: Session = Depends(get_db)):
    page = run_list_query(db, PRODUCT_LIST, request.query_params)
    return page.to_envelope(PRODUCT_LIST.items_key, PRODUCT_LIST.total_key, _wire)


@router.get("/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    return _wire(load_product_or_404(db, product_id))


@router.post("", status_code=201)
def create_product(
    payload: ProductPayload,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    fields = product_fields_for_create(payload)
    product = commit_product_or_409(db, Product(**fields), new_image=fields["image"])
    _LOG.info("product created id=%s by=%s", product.id, admin.id)
    return _wire(product)


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    payload: ProductPayload,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    product = load_product_or_404(db, product_id)
    fields = product_fields_for_update(payload)
    for key, value in fields.items():
        setattr(product, key, value)
    return _wire(commit_product_or_409(db, product, new_image=fields.get("image")))


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    admin: User = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    product = load_product_or_404(db, product_id)
    body = _wire(product)
    db.delete(product)
    db.commit()
    _LOG.info("product deleted id=%s by=%s", product_id, admin.id)
    return body
