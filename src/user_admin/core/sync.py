"""Grid selection / form session coordination.

States:

    Clean ──select_row──▶ Clean            (form rebinds immediately)
    Dirty ──select_row──▶ PendingDiscard   (request queued, draft untouched)
    PendingDiscard ──confirm_discard──▶ Clean   (queued request runs)
    PendingDiscard ──confirm_stay──▶ Dirty      (request dropped)

"New User" and navigating away follow the same protocol, so no selection
or navigation change can drop unsaved edits without an explicit decision.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from user_admin.api.schemas.user import User, UserId
from user_admin.core.form_session import FormSession, FormSessionController

logger = structlog.get_logger()


class SyncState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    PENDING_DISCARD = "pending_discard"


class RequestKind(str, Enum):
    SELECT_ROW = "select_row"
    NEW_USER = "new_user"
    NAVIGATE = "navigate"


@dataclass(frozen=True)
class PendingRequest:
    """A selection or navigation change waiting on a discard decision."""

    kind: RequestKind
    user: User | None = None
    target: str | None = None


class SyncCoordinator:
    """Gatekeeper between grid selection, navigation and the form session."""

    def __init__(
        self,
        form: FormSessionController,
        navigator: Callable[[str], None] | None = None,
    ) -> None:
        self._form = form
        self._navigator = navigator
        self._pending: PendingRequest | None = None
        self._selection: UserId | None = form.session.bound_id
        form.add_listener(self._on_session)

    @property
    def state(self) -> SyncState:
        if self._pending is not None:
            return SyncState.PENDING_DISCARD
        if self._form.session.dirty:
            return SyncState.DIRTY
        return SyncState.CLEAN

    @property
    def selection(self) -> UserId | None:
        """Row id highlighted in the grid."""
        return self._selection

    @property
    def pending(self) -> PendingRequest | None:
        return self._pending

    def select_row(self, user: User) -> SyncState:
        """Handle a grid row click."""
        session = self._form.session
        if self._pending is None and session.bound_id == user.id:
            return self.state
        if self._pending is not None and session.bound_id == user.id:
            # Clicking back onto the bound row keeps the draft
            self.confirm_stay()
            return self.state
        self._selection = user.id
        return self._request(PendingRequest(RequestKind.SELECT_ROW, user=user))

    def new_user(self) -> SyncState:
        """Handle the "New User" action."""
        return self._request(PendingRequest(RequestKind.NEW_USER))

    def request_navigation(self, target: str) -> bool:
        """Ask to leave the screen.

        Returns:
            True if navigation completed now, False if it awaits a decision
        """
        self._request(PendingRequest(RequestKind.NAVIGATE, target=target))
        return self._pending is None

    def confirm_discard(self) -> PendingRequest | None:
        """Drop the draft and run the queued request."""
        request = self._pending
        if request is None:
            return None
        self._pending = None
        logger.info(
            "Discarding unsaved changes",
            kind=request.kind.value,
            dropped=sorted(self._form.session.dirty_fields),
        )
        self._run(request)
        return request

    def confirm_stay(self) -> None:
        """Keep the draft and drop the queued request."""
        request = self._pending
        if request is None:
            return
        self._pending = None
        self._selection = self._form.session.bound_id
        logger.info("Kept unsaved changes", kind=request.kind.value)

    def _request(self, request: PendingRequest) -> SyncState:
        if self._form.session.dirty:
            if self._pending is not None:
                logger.debug("Replacing queued request", previous=self._pending.kind.value)
            self._pending = request
            logger.info(
                "Change requested with unsaved edits",
                kind=request.kind.value,
                dirty=sorted(self._form.session.dirty_fields),
            )
            return self.state
        self._pending = None
        self._run(request)
        return self.state

    def _run(self, request: PendingRequest) -> None:
        if request.kind is RequestKind.SELECT_ROW and request.user is not None:
            self._form.start_edit(request.user)
        elif request.kind is RequestKind.NEW_USER:
            self._form.start_create()
        elif request.kind is RequestKind.NAVIGATE:
            self._form.start_create()
            if self._navigator is not None and request.target is not None:
                self._navigator(request.target)

    def _on_session(self, session: FormSession) -> None:
        if self._pending is None:
            self._selection = session.bound_id
