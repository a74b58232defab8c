"""Editable user detail: draft, dirty tracking, field errors and save gating."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from user_admin.api.schemas.user import EDITABLE_FIELDS, User, UserId
from user_admin.core.validation import (
    missing_required,
    normalize,
    normalize_field,
    normalize_roles,
    validate,
    validate_field,
)
from user_admin.utils.error_classifier import classify_error
from user_admin.utils.exceptions import ReadOnlyFieldError, SaveInProgressError

if TYPE_CHECKING:
    from user_admin.core.orchestrator import SaveResult

logger = structlog.get_logger()


class FormMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


class FormStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SAVING = "saving"
    SAVE_FAILED = "save_failed"


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


def blank_draft() -> dict[str, Any]:
    return {
        "username": "",
        "display_name": "",
        "phone": None,
        "email": "",
        "roles": (),
        "enabled": True,
    }


def _comparable(name: str, value: Any) -> Any:
    if name == "roles":
        return frozenset(normalize_roles(value))
    return normalize_field(name, value)


@dataclass(frozen=True)
class FormSession:
    """Immutable snapshot of the user detail form.

    ``token`` identifies the session across snapshots: it changes only when
    the session is replaced (new user, row switch, discard, save success).
    """

    mode: FormMode
    bound_id: UserId | None
    draft: Mapping[str, Any]
    baseline: Mapping[str, Any]
    dirty_fields: frozenset[str] = frozenset()
    field_errors: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    form_error: str | None = None
    error_code: str | None = None
    retryable: bool = False
    status: FormStatus = FormStatus.IDLE
    token: int = 0
    bound_user: User | None = None

    def __post_init__(self) -> None:
        if (self.mode is FormMode.EDIT) != (self.bound_id is not None):
            raise ValueError("bound_id must be set if and only if mode is EDIT")

    @classmethod
    def blank(cls, token: int = 0) -> "FormSession":
        draft = blank_draft()
        return cls(
            mode=FormMode.CREATE,
            bound_id=None,
            draft=_frozen(draft),
            baseline=_frozen(draft),
            token=token,
        )

    @classmethod
    def from_user(cls, user: User, token: int = 0) -> "FormSession":
        values = user.editable_values()
        return cls(
            mode=FormMode.EDIT,
            bound_id=user.id,
            draft=_frozen(values),
            baseline=_frozen(values),
            token=token,
            bound_user=user,
        )

    @property
    def dirty(self) -> bool:
        return bool(self.dirty_fields)

    @property
    def saving(self) -> bool:
        return self.status is FormStatus.SAVING

    @property
    def can_save(self) -> bool:
        """Save button state: dirty, no errors, required fields set, not saving."""
        return (
            self.dirty
            and not self.field_errors
            and not missing_required(self.draft)
            and not self.saving
        )


class SaveHandler(Protocol):
    async def save(
        self,
        mode: FormMode,
        draft: Mapping[str, Any],
        bound_id: UserId | None = None,
    ) -> "SaveResult": ...


class FormSessionController:
    """Sole writer of the current FormSession."""

    def __init__(self, save_handler: SaveHandler) -> None:
        self._save_handler = save_handler
        self._next_token = 0
        self._session = FormSession.blank(token=self._take_token())
        self._listeners: list[Callable[[FormSession], None]] = []

    @property
    def session(self) -> FormSession:
        return self._session

    @property
    def can_save(self) -> bool:
        return self._session.can_save

    def add_listener(self, callback: Callable[[FormSession], None]) -> Callable[[], None]:
        """Subscribe to session changes. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def start_create(self) -> FormSession:
        """Replace the session with a blank Create draft.

        Callers resolve any pending discard decision first.
        """
        return self._replace(FormSession.blank(token=self._take_token()))

    def start_edit(self, user: User) -> FormSession:
        """Replace the session with an Edit session bound to user."""
        return self._replace(FormSession.from_user(user, token=self._take_token()))

    def discard(self) -> FormSession:
        """Drop local edits, keeping the current mode and bound record."""
        bound_user = self._session.bound_user
        if self._session.mode is FormMode.EDIT and bound_user is not None:
            return self.start_edit(bound_user)
        return self.start_create()

    def set_field(self, name: str, value: Any) -> FormSession:
        """Update one draft field and re-validate that field only.

        Raises:
            ReadOnlyFieldError: name is not an editable field
            SaveInProgressError: a save is in flight; inputs are disabled
                while the session is saving
        """
        if name not in EDITABLE_FIELDS:
            raise ReadOnlyFieldError(name)

        session = self._session
        if session.saving:
            logger.info("Edit rejected while saving", field=name, token=session.token)
            raise SaveInProgressError(name)

        if name == "roles":
            value = normalize_roles(value)

        draft = dict(session.draft)
        draft[name] = value

        dirty = set(session.dirty_fields)
        if _comparable(name, value) == _comparable(name, session.baseline.get(name)):
            dirty.discard(name)
        else:
            dirty.add(name)

        errors = dict(session.field_errors)
        message = validate_field(name, value)
        if message is None:
            errors.pop(name, None)
        else:
            errors[name] = message

        return self._replace(
            replace(
                session,
                draft=_frozen(draft),
                dirty_fields=frozenset(dirty),
                field_errors=_frozen(errors),
                status=FormStatus.IDLE,
            )
        )

    async def try_save(self) -> "SaveResult | None":
        """Validate the whole draft and, if valid, save it.

        Returns:
            The save result, or None when nothing was sent (invalid, clean or
            already saving)
        """
        session = self._session
        if session.saving:
            logger.debug("Save already in flight", token=session.token)
            return None

        session = self._replace(replace(session, status=FormStatus.VALIDATING))
        errors = validate(session.draft)
        if errors:
            logger.info("Save blocked by validation", token=session.token, fields=sorted(errors))
            self._replace(
                replace(
                    session,
                    field_errors=_frozen(errors),
                    status=FormStatus.SAVE_FAILED,
                    form_error=None,
                    error_code=None,
                    retryable=False,
                )
            )
            return None

        if not session.dirty:
            self._replace(replace(session, status=FormStatus.IDLE))
            return None

        saving = self._replace(
            replace(
                session,
                field_errors=_frozen({}),
                form_error=None,
                error_code=None,
                retryable=False,
                status=FormStatus.SAVING,
            )
        )
        try:
            result = await self._save_handler.save(
                saving.mode,
                normalize(saving.draft),
                saving.bound_id,
            )
        except Exception as e:
            code, message = classify_error(e)
            logger.exception("Save raised unexpectedly", token=saving.token, code=code)
            if self._session.token == saving.token:
                self._replace(
                    replace(
                        self._session,
                        form_error=message,
                        error_code=code,
                        retryable=True,
                        status=FormStatus.SAVE_FAILED,
                    )
                )
            return None

        if self._session.token != saving.token:
            logger.info(
                "Save finished for a replaced session",
                token=saving.token,
                current=self._session.token,
                ok=result.ok,
            )
            return result

        if result.ok:
            self.start_edit(result.user)
        else:
            error = result.error
            self._replace(
                replace(
                    self._session,
                    field_errors=_frozen(error.field_errors),
                    form_error=error.message,
                    error_code=error.code,
                    retryable=error.retryable,
                    status=FormStatus.SAVE_FAILED,
                )
            )
        return result

    def _take_token(self) -> int:
        self._next_token += 1
        return self._next_token

    def _replace(self, session: FormSession) -> FormSession:
        self._session = session
        for callback in list(self._listeners):
            callback(session)
        return session
