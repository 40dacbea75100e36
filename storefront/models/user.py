import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from storefront.db.session import Base
from storefront.models.common import UUIDMixin, TimestampMixin
# Relationship targets below are resolved by name; keep their mappers registered.
from storefront.models.order import Order  # noqa: F401
from storefront.models.refresh_token import UserRefreshToken  # noqa: F401

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_ADMIN)

class User(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "users"
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: [ROLE_CUSTOMER])
    total_amount: Mapped[float] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_order_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    last_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", use_alter=True, name="fk_users_last_order_id", ondelete="SET NULL"),
        nullable=True,
    )

    orders = relationship(
        "Order",
        back_populates="customer",
        foreign_keys="Order.customer_id",
        order_by="Order.created_at.desc()",
    )
    last_order = relationship("Order", foreign_keys=[last_order_id], post_update=True)
    refresh_tokens = relationship("UserRefreshToken", back_populates="user", cascade="all, delete-orphan")

    def has_role(self, *roles: str) -> bool:
        return any(role in (self.roles or []) for role in roles)
