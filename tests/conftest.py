"""Shared fixtures: reference users API, clients and test doubles."""

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from user_admin.api.schemas.user import Role, User, UserId, UserPage
from user_admin.client.users import UsersApiClient
from user_admin.core.list_query import ListQuery
from user_admin.core.retry import RetryConfig
from user_admin.db.repositories.user import UserRepository
from user_admin.main import create_app
from user_admin.services.preferences import InMemoryPreferenceStore

BASE_URL = "http://testserver/api/v1"


def make_user(user_id: UserId = 1, **overrides: Any) -> User:
    """Build a User record with sensible defaults."""
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    values: dict[str, Any] = {
        "id": user_id,
        "username": f"user{user_id}",
        "display_name": f"User {user_id}",
        "phone": None,
        "email": f"user{user_id}@example.com",
        "roles": [Role.GUEST],
        "enabled": True,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return User(**values)


def make_page(query: ListQuery, users: list[User], total: int | None = None) -> UserPage:
    return UserPage(
        data=users,
        page=query.page,
        page_size=query.page_size,
        total=len(users) if total is None else total,
    )


async def seed_users(repository: UserRepository, count: int, **overrides: Any) -> list[User]:
    """Create users user1..userN through the repository."""
    created = []
    for i in range(1, count + 1):
        fields = {
            "username": f"user{i:02d}",
            "display_name": f"User {i}",
            "email": f"user{i:02d}@example.com",
            "roles": ["Guest"],
            "enabled": True,
        }
        fields.update(overrides)
        created.append(await repository.create(fields))
    return created


class ControlledFetcher:
    """List fetcher whose responses are released by the test."""

    def __init__(self) -> None:
        self.calls: list[tuple[ListQuery, asyncio.Future]] = []

    async def list_users(self, query: ListQuery) -> UserPage:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.calls.append((query, future))
        return await future

    @property
    def queries(self) -> list[ListQuery]:
        return [query for query, _ in self.calls]


class StaticFetcher:
    """List fetcher that answers immediately with the given users."""

    def __init__(self, users: list[User] | None = None) -> None:
        self.users = users or []
        self.queries: list[ListQuery] = []
        self.error: Exception | None = None

    async def list_users(self, query: ListQuery) -> UserPage:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return make_page(query, self.users)


class RecordingWriter:
    """Users writer that records calls and returns scripted outcomes."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, UserId | None, dict[str, Any]]] = []
        self.error: Exception | None = None
        self.next_id = 100

    async def create_user(self, fields: Mapping[str, Any]) -> User:
        self.calls.append(("create", None, dict(fields)))
        if self.error is not None:
            raise self.error
        user = make_user(self.next_id, **self._user_fields(fields))
        self.next_id += 1
        return user

    async def update_user(self, user_id: UserId, fields: Mapping[str, Any]) -> User:
        self.calls.append(("update", user_id, dict(fields)))
        if self.error is not None:
            raise self.error
        return make_user(user_id, **self._user_fields(fields))

    @staticmethod
    def _user_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
        values = dict(fields)
        if "roles" in values:
            values["roles"] = [Role(r) for r in values["roles"]]
        return values


class RefreshCounter:
    def __init__(self) -> None:
        self.count = 0

    def refresh(self) -> None:
        self.count += 1


@pytest.fixture
def repository() -> UserRepository:
    return UserRepository()


@pytest.fixture
def app(repository: UserRepository):
    return create_app(repository)


@pytest.fixture
def preferences() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest_asyncio.fixture
async def api_client(app) -> AsyncGenerator[UsersApiClient, None]:
    """UsersApiClient talking to the reference app in-process."""
    client = UsersApiClient(
        base_url=BASE_URL,
        transport=httpx.ASGITransport(app=app),
        retry_config=RetryConfig.disabled(),
    )
    yield client
    await client.aclose()
