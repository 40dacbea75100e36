from datetime import datetime
from typing import List, Optional
from uuid import UUID

from storefront.schemas.common import ApiModel


class CustomerOrder(ApiModel):
    id: UUID
    order_number: int
    status: str
    total_amount: float
    delivery_address: str
    created_at: datetime


class CustomerOut(ApiModel):
    id: UUID
    email: str
    name: str
    roles: List[str]
    total_amount: float
    order_count: int
    last_order_date: Optional[datetime] = None
    last_order: Optional[CustomerOrder] = None
    orders: List[CustomerOrder] = []
    created_at: datetime
    updated_at: datetime


class CustomerUpdate(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    roles: Optional[List[str]] = None
