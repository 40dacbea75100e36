from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from storefront.schemas.common import ApiModel
from storefront.schemas.products import ProductBrief


class OrderCustomer(ApiModel):
    id: UUID
    name: str
    email: str


class OrderOut(ApiModel):
    id: UUID
    order_number: int
    status: str
    total_amount: float
    payment: str
    phone: str
    email: str
    comment: str
    delivery_address: str
    customer: Optional[OrderCustomer] = None
    products: List[ProductBrief] = []
    created_at: datetime
    updated_at: datetime


class OrderCreate(ApiModel):
    address: Optional[str] = None
    payment: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    items: Any = None
    comment: Optional[str] = None


class OrderStatusUpdate(ApiModel):
    status: Optional[str] = None
