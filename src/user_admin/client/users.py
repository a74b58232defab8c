"""HTTP client for the users API."""

from collections.abc import Mapping
from typing import Any

import httpx
import structlog
from pydantic import ValidationError as SchemaError

from user_admin.api.schemas.user import (
    ErrorPayload,
    User,
    UserCreate,
    UserId,
    UserPage,
    UserUpdate,
)
from user_admin.config import get_settings
from user_admin.core.list_query import ListQuery
from user_admin.core.retry import RetryConfig, retry_with_backoff
from user_admin.utils.exceptions import (
    ApiError,
    ConflictError,
    NotFoundError,
    ServerError,
    ServerValidationError,
    TransportError,
)

logger = structlog.get_logger()


class UsersApiClient:
    """Async client for list/get/create/update of users.

    Reads are retried on transport failures and 5xx responses. Writes are
    sent exactly once; the caller decides whether to retry.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        settings = get_settings()
        if base_url is None:
            base_url = f"{settings.api.base_url.rstrip('/')}{settings.api.prefix}"
        self.retry_config = retry_config or RetryConfig.from_settings()
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout or settings.api.timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "UsersApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def list_users(self, query: ListQuery) -> UserPage:
        """Fetch one page of users for a query snapshot."""
        response = await retry_with_backoff(
            self._request,
            "GET",
            "/users",
            params=query.to_params(),
            config=self.retry_config,
            operation="list_users",
        )
        return self._parse(UserPage, response)

    async def get_user(self, user_id: UserId) -> User:
        """Fetch a single user by id."""
        response = await retry_with_backoff(
            self._request,
            "GET",
            f"/users/{user_id}",
            config=self.retry_config,
            operation="get_user",
        )
        return self._parse(User, response)

    async def create_user(self, fields: Mapping[str, Any]) -> User:
        """Create a user from editable draft fields."""
        body = UserCreate.model_validate(dict(fields)).to_wire()
        response = await self._request("POST", "/users", json=body)
        user = self._parse(User, response)
        logger.info("User created", user_id=user.id, username=user.username)
        return user

    async def update_user(self, user_id: UserId, fields: Mapping[str, Any]) -> User:
        """Update the given editable fields of a user."""
        body = UserUpdate.model_validate(dict(fields)).to_wire(exclude_unset=True)
        response = await self._request("PATCH", f"/users/{user_id}", json=body)
        user = self._parse(User, response)
        logger.info("User updated", user_id=user.id, fields=sorted(body))
        return user

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timed out: {method} {path}",
                {"method": method, "path": path},
                timeout=True,
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Request failed: {method} {path}: {e}",
                {"method": method, "path": path},
            ) from e
        except httpx.HTTPError as e:
            # Decoding, redirect and other protocol failures
            raise TransportError(
                f"Request failed: {method} {path}: {type(e).__name__}: {e}",
                {"method": method, "path": path},
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return response

    def _error_from_response(self, response: httpx.Response) -> ApiError:
        """Build a typed exception from an error response."""
        payload: ErrorPayload | None = None
        try:
            payload = ErrorPayload.model_validate(response.json())
        except (ValueError, SchemaError):
            payload = None

        status_code = response.status_code
        code = payload.error if payload else None
        details = [d.model_dump() for d in payload.details] if payload else []
        message = f"Users API error ({status_code}): {code or response.text[:200]}"

        if status_code == 404:
            return NotFoundError(message, code=code, field_details=details)
        if status_code == 409:
            return ConflictError(message, code=code, field_details=details)
        if status_code in (400, 422):
            return ServerValidationError(message, status_code=status_code, code=code, field_details=details)
        if status_code >= 500:
            return ServerError(message, status_code=status_code, code=code, field_details=details)
        return ApiError(message, status_code=status_code, code=code, field_details=details)

    @staticmethod
    def _parse(model: type, response: httpx.Response) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, SchemaError) as e:
            raise ServerError(
                f"Malformed response from users API: {e}",
                status_code=response.status_code,
            ) from e
