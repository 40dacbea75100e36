from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from storefront.schemas.common import ApiModel


class ProductImage(ApiModel):
    file_name: str
    original_name: Optional[str] = None


class ProductOut(ApiModel):
    id: UUID
    title: str
    category: str
    description: str
    price: Optional[float] = None
    image: Optional[ProductImage] = None
    created_at: datetime
    updated_at: datetime


class ProductBrief(ApiModel):
    id: UUID
    title: str
    price: Optional[float] = None
    image: Optional[ProductImage] = None


class ProductPayload(ApiModel):
    title: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Any] = None
    image: Optional[ProductImage] = None
