from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from storefront.schemas.common import ApiModel


class RegisterIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginIn(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class UserOut(ApiModel):
    id: UUID
    email: str
    name: str
    roles: List[str]
    created_at: datetime
