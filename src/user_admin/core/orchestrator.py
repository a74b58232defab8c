"""Save orchestration: create/update requests and server error mapping."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import structlog
from pydantic.alias_generators import to_camel

from user_admin.api.schemas.user import EDITABLE_FIELDS, User, UserId
from user_admin.core.form_session import FormMode
from user_admin.utils.error_classifier import (
    ERROR_CONFLICT,
    ERROR_INVALID,
    MSG_ALREADY_IN_USE,
    classify_error,
    is_retryable,
)
from user_admin.utils.exceptions import ApiError, NotFoundError, TransportError

logger = structlog.get_logger()

# Wire (camelCase) and snake_case names both resolve to draft field names
_FIELD_NAMES = {to_camel(name): name for name in EDITABLE_FIELDS} | {
    name: name for name in EDITABLE_FIELDS
}


@dataclass(frozen=True)
class SaveError:
    """Save failure translated for the form."""

    code: str
    message: str | None
    field_errors: Mapping[str, str] = field(default_factory=dict)
    retryable: bool = False


@dataclass(frozen=True)
class SaveSuccess:
    user: User
    ok: Literal[True] = True


@dataclass(frozen=True)
class SaveFailure:
    error: SaveError
    ok: Literal[False] = False


SaveResult = SaveSuccess | SaveFailure


class UsersWriter(Protocol):
    async def create_user(self, fields: Mapping[str, Any]) -> User: ...

    async def update_user(self, user_id: UserId, fields: Mapping[str, Any]) -> User: ...


class ListRefresher(Protocol):
    def refresh(self) -> Any: ...


class SaveOrchestrator:
    """Sends saves to the users API and refreshes the grid afterwards.

    The grid is refreshed with its current query instead of being patched
    locally; the server owns uniqueness and normalization.
    """

    def __init__(self, writer: UsersWriter, grid: ListRefresher | None = None) -> None:
        self.writer = writer
        self.grid = grid

    async def save(
        self,
        mode: FormMode,
        draft: Mapping[str, Any],
        bound_id: UserId | None = None,
    ) -> SaveResult:
        fields = {name: draft[name] for name in EDITABLE_FIELDS if name in draft}

        try:
            if mode is FormMode.CREATE:
                user = await self.writer.create_user(fields)
            else:
                if bound_id is None:
                    raise ValueError("Edit save requires a bound id")
                user = await self.writer.update_user(bound_id, fields)
        except (ApiError, TransportError) as e:
            error = self._map_error(e)
            logger.warning(
                "Save failed",
                mode=mode.value,
                bound_id=bound_id,
                code=error.code,
                fields=sorted(error.field_errors),
                retryable=error.retryable,
            )
            if isinstance(e, NotFoundError):
                # Grid row is left as is until the user refreshes or reselects
                logger.info("Bound record no longer exists", bound_id=bound_id)
            return SaveFailure(error)

        logger.info("Save succeeded", mode=mode.value, user_id=user.id)
        if self.grid is not None:
            self.grid.refresh()
        return SaveSuccess(user)

    def _map_error(self, exc: ApiError | TransportError) -> SaveError:
        code, message = classify_error(exc)
        details = exc.field_details if isinstance(exc, ApiError) else []

        field_errors: dict[str, str] = {}
        unmapped: list[str] = []
        for entry in details:
            wire_name = str(entry.get("field") or "")
            text = str(entry.get("message") or "")
            name = _FIELD_NAMES.get(wire_name)
            if name is not None:
                if not text and code == ERROR_CONFLICT:
                    text = MSG_ALREADY_IN_USE
                field_errors.setdefault(name, text or message)
            elif text:
                unmapped.append(f"{wire_name}: {text}" if wire_name else text)

        if unmapped:
            form_message: str | None = "; ".join(unmapped)
        elif field_errors and code in (ERROR_CONFLICT, ERROR_INVALID):
            form_message = None
        else:
            form_message = message

        return SaveError(
            code=code,
            message=form_message,
            field_errors=field_errors,
            retryable=is_retryable(code),
        )
