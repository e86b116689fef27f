from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kosh.core.constants import UserRole
from kosh.core.security import PermissionSet


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: UserRole = UserRole.EMPLOYEE
    permissions: List[str] = []


class UserRead(BaseModel):
    id: int
    name: str
    username: str
    role: UserRole
    permissions: List[str]
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("permissions", mode="before")
    @classmethod
    def _flatten_permissions(cls, value):
        if isinstance(value, PermissionSet):
            return ["*"] if value.grants_all else list(value)
        return value


class LoginRequest(BaseModel):
    username: str
    password: str
    role: Optional[UserRole] = None
