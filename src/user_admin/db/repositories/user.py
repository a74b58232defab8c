"""In-memory user repository backing the reference users API."""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic.alias_generators import to_camel

from user_admin.api.schemas.user import EDITABLE_FIELDS, Role, User, UserId
from user_admin.core.list_query import ListQuery, SortDir
from user_admin.core.validation import normalize, validate
from user_admin.utils.error_classifier import MSG_ALREADY_IN_USE
from user_admin.utils.exceptions import ConflictError, NotFoundError, ServerValidationError

UNIQUE_FIELDS = ("username", "email")


class UserRepository:
    """Repository for User records kept in process memory."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._next_id = 1

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _check_valid(self, values: Mapping[str, Any]) -> None:
        errors = validate(values)
        if errors:
            raise ServerValidationError(
                "User record failed validation",
                field_details=[
                    {"field": to_camel(name), "message": message}
                    for name, message in errors.items()
                ],
            )

    def _check_unique(self, values: Mapping[str, Any], exclude_id: str | None = None) -> None:
        details = []
        for name in UNIQUE_FIELDS:
            for key, user in self._users.items():
                if key != exclude_id and getattr(user, name) == values.get(name):
                    details.append({"field": name, "message": MSG_ALREADY_IN_USE})
                    break
        if details:
            taken = ", ".join(d["field"] for d in details)
            raise ConflictError(f"Duplicate value for {taken}", field_details=details)

    async def create(self, fields: Mapping[str, Any]) -> User:
        """Create a new user."""
        values = normalize(fields)
        values.setdefault("enabled", True)
        self._check_valid(values)
        self._check_unique(values)

        now = self._now()
        user = User(
            id=self._next_id,
            username=values["username"],
            display_name=values["display_name"],
            phone=values.get("phone"),
            email=values["email"],
            roles=[Role(r) for r in values["roles"]],
            enabled=values["enabled"],
            created_at=now,
            updated_at=now,
        )
        self._next_id += 1
        self._users[str(user.id)] = user
        return user

    async def get_by_id(self, user_id: UserId) -> User:
        """Get user by ID."""
        user = self._users.get(str(user_id))
        if not user:
            raise NotFoundError(f"User not found: {user_id}", code="not_found")
        return user

    async def update(self, user_id: UserId, fields: Mapping[str, Any]) -> User:
        """Update the given editable fields."""
        existing = await self.get_by_id(user_id)
        changes = normalize({k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
        values = existing.editable_values() | changes
        self._check_valid(values)
        self._check_unique(values, exclude_id=str(existing.id))

        user = existing.model_copy(
            update={
                "username": values["username"],
                "display_name": values["display_name"],
                "phone": values.get("phone"),
                "email": values["email"],
                "roles": [Role(r) for r in values["roles"]],
                "enabled": values["enabled"],
                "updated_at": self._now(),
            }
        )
        self._users[str(existing.id)] = user
        return user

    async def list_users(self, query: ListQuery) -> tuple[list[User], int]:
        """List one page of users matching query.

        Returns:
            Tuple of (page rows, total matching rows)
        """
        rows = list(self._users.values())
        if query.enabled_filter is not None:
            rows = [u for u in rows if u.enabled is query.enabled_filter]

        text = query.text_filter.strip().lower()
        if text:
            rows = [u for u in rows if text in u.username.lower() or text in u.email.lower()]

        def sort_key(user: User) -> tuple[bool, Any]:
            value = getattr(user, query.sort_field)
            return (value is None, value if value is not None else 0)

        rows.sort(key=sort_key, reverse=query.sort_dir is SortDir.DESC)

        total = len(rows)
        start = (query.page - 1) * query.page_size
        return rows[start:start + query.page_size], total

    async def count_users(self) -> int:
        """Count total users."""
        return len(self._users)
