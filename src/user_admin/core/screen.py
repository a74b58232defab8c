"""User administration screen: wires grid, form, sync and save."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from user_admin.api.schemas.user import User, UserId
from user_admin.client.users import UsersApiClient
from user_admin.core.form_session import FormSession, FormSessionController
from user_admin.core.list_query import ListQueryController
from user_admin.core.orchestrator import SaveOrchestrator, SaveResult
from user_admin.core.sync import PendingRequest, SyncCoordinator, SyncState
from user_admin.services.preferences import JsonFilePreferenceStore, PreferenceStore
from user_admin.utils.error_classifier import classify_error
from user_admin.utils.exceptions import UserAdminError

logger = structlog.get_logger()


class UserAdminScreen:
    """Two-pane user administration screen.

    The grid (``grid``) and the detail form (``form``) never talk to each
    other directly: row clicks and navigation go through ``sync`` and saves
    go through ``orchestrator``, which refreshes the grid on success.
    """

    def __init__(
        self,
        client: UsersApiClient | None = None,
        preferences: PreferenceStore | None = None,
        navigator: Callable[[str], None] | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.client = client or UsersApiClient()
        self.preferences = preferences or JsonFilePreferenceStore()
        self.grid = ListQueryController(self.client, self.preferences, debounce_seconds)
        self.orchestrator = SaveOrchestrator(self.client, self.grid)
        self.form = FormSessionController(self.orchestrator)
        self.sync = SyncCoordinator(self.form, navigator)
        self.load_error: tuple[str, str] | None = None

    async def __aenter__(self) -> "UserAdminScreen":
        self.mount()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def session(self) -> FormSession:
        return self.form.session

    @property
    def state(self) -> SyncState:
        return self.sync.state

    @property
    def can_save(self) -> bool:
        return self.form.can_save

    def mount(self) -> asyncio.Task:
        """Start in Create mode and load the first page."""
        self.form.start_create()
        logger.info("User admin screen mounted")
        return self.grid.mount()

    def resume(self) -> asyncio.Task | None:
        """Come back to the screen; reuses the cached page when still valid."""
        return self.grid.resume()

    def set_field(self, name: str, value: Any) -> FormSession:
        return self.form.set_field(name, value)

    async def save(self) -> SaveResult | None:
        return await self.form.try_save()

    def select_row(self, user: User) -> SyncState:
        return self.sync.select_row(user)

    async def open_user(self, user_id: UserId) -> SyncState | None:
        """Load a user by id and select it as if its row was clicked."""
        try:
            user = await self.client.get_user(user_id)
        except UserAdminError as e:
            self.load_error = classify_error(e)
            logger.warning("Could not load user", user_id=user_id, code=self.load_error[0])
            return None
        self.load_error = None
        return self.sync.select_row(user)

    def new_user(self) -> SyncState:
        return self.sync.new_user()

    def confirm_discard(self) -> PendingRequest | None:
        return self.sync.confirm_discard()

    def confirm_stay(self) -> None:
        self.sync.confirm_stay()

    def leave(self, target: str) -> bool:
        """Navigate away; False while a discard decision is outstanding."""
        return self.sync.request_navigation(target)

    async def close(self) -> None:
        self.grid.close()
        await self.client.aclose()
