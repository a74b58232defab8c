"""Pydantic schemas for the users API."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UserId = int | str

# Editable fields in draft (snake_case) order
EDITABLE_FIELDS = ("username", "display_name", "phone", "email", "roles", "enabled")
READ_ONLY_FIELDS = ("id", "created_at", "updated_at")
REQUIRED_FIELDS = ("username", "display_name", "email", "roles")


class Role(str, Enum):
    """Roles a user can hold."""

    GUEST = "Guest"
    ADMIN = "Admin"
    SUPER_ADMIN = "SuperAdmin"


class CamelModel(BaseModel):
    """Base model exchanging camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class User(CamelModel):
    """Server-authoritative user record."""

    id: UserId
    username: str
    display_name: str
    phone: str | None = None
    email: str
    roles: list[Role] = Field(default_factory=list)
    enabled: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def editable_values(self) -> dict[str, Any]:
        """Get the editable fields as a draft mapping."""
        return {
            "username": self.username,
            "display_name": self.display_name,
            "phone": self.phone,
            "email": self.email,
            "roles": tuple(role.value for role in self.roles),
            "enabled": self.enabled,
        }


class UserCreate(CamelModel):
    """Create user request (no id or timestamps)."""

    model_config = ConfigDict(extra="forbid")

    username: str
    display_name: str
    phone: str | None = None
    email: str
    roles: list[str]
    enabled: bool = True


class UserUpdate(CamelModel):
    """Update user request, any subset of the editable fields."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = None
    display_name: str | None = None
    phone: str | None = None
    email: str | None = None
    roles: list[str] | None = None
    enabled: bool | None = None


class UserPage(CamelModel):
    """One page of users."""

    data: list[User]
    page: int
    page_size: int
    total: int


class ErrorDetail(BaseModel):
    """Field-scoped error entry."""

    field: str
    message: str


class ErrorPayload(BaseModel):
    """Error body returned by the users API."""

    error: str
    details: list[ErrorDetail] = Field(default_factory=list)
