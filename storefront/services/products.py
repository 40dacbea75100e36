from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.product import Product
from storefront.schemas.products import ProductPayload
from storefront.services.list_query import FIELD_NUMBER_RANGE, FilterField, ListQueryConfig
from storefront.services.sanitize import escape_text
from storefront.services.uploads import move_to_permanent, resolve_upload_or_400

TITLE_MAX = 200
CATEGORY_MAX = 50
DESCRIPTION_MAX = 1000

PRODUCT_LIST = ListQueryConfig(
    model=Product,
    items_key="items",
    total_key="totalProducts",
    default_limit=5,
    max_limit=100,
    filters=(FilterField(name="price", column=Product.price, kind=FIELD_NUMBER_RANGE),),
    sortable={
        "createdAt": Product.created_at,
        "price": Product.price,
        "title": Product.title,
    },
    search_columns=(Product.title, Product.category),
)


def parse_product_id_or_400(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw or "").strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid product id")


def load_product_or_404(db: Session, raw_id: str) -> Product:
    product = db.get(Product, parse_product_id_or_400(raw_id))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _price_or_400(raw) -> Decimal | None:
    if raw is None:
        return None
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise HTTPException(status_code=400, detail="Invalid price")
    if not value.is_finite():
        raise HTTPException(status_code=400, detail="Invalid price")
    return max(Decimal("0"), value)


def _image_or_400(payload: ProductPayload) -> dict[str, Any] | None:
    if payload.image is None:
        return None
    stored_name = resolve_upload_or_400(payload.image.file_name)
    return {
        "fileName": stored_name,
        "originalName": escape_text(payload.image.original_name or stored_name, 255),
    }


def product_fields_for_create(payload: ProductPayload) -> dict[str, Any]:
    if not payload.title or not payload.category:
        raise HTTPException(status_code=400, detail="Title and category are required")
    return {
        "title": escape_text(payload.title, TITLE_MAX),
        "category": escape_text(payload.category, CATEGORY_MAX),
        "description": escape_text(payload.description, DESCRIPTION_MAX) if payload.description else "",
        "price": _price_or_400(payload.price),
        "image": _image_or_400(payload),
    }


def product_fields_for_update(payload: ProductPayload) -> dict[str, Any]:
    provided = payload.model_fields_set
    data: dict[str, Any] = {}
    if "title" in provided:
        data["title"] = escape_text(payload.title, TITLE_MAX)
        if not data["title"]:
            raise HTTPException(status_code=400, detail="Title must not be empty")
    if "category" in provided:
        data["category"] = escape_text(payload.category, CATEGORY_MAX)
        if not data["category"]:
            raise HTTPException(status_code=400, detail="Category must not be empty")
    if "description" in provided:
        data["description"] = escape_text(payload.description, DESCRIPTION_MAX)
    if "price" in provided:
        data["price"] = _price_or_400(payload.price)
    if "image" in provided and payload.image is not None:
        data["image"] = _image_or_400(payload)
    return data


def commit_product_or_409(db: Session, product: Product, *, new_image: dict[str, Any] | None = None) -> Product:
    """Persist ``product``; a newly attached image leaves temp only once the row is saved."""
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="A product with this title already exists")
    if new_image:
        move_to_permanent(new_image["fileName"])
    db.refresh(product)
    return product
