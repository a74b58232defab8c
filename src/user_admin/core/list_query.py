"""Grid query state: filters, sort, pagination and fetch ordering.

Every mutation replaces the active ``ListQuery`` snapshot and bumps a
sequence number. Each fetch remembers the sequence number it was issued
with and applies its response only if no newer mutation or fetch happened
in the meantime, so the grid always shows the last-issued query's rows even
when responses arrive out of order.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic.alias_generators import to_camel

from user_admin.api.schemas.user import UserPage
from user_admin.config import get_settings
from user_admin.services.preferences import HIDE_DISABLED_KEY, PreferenceStore
from user_admin.utils.error_classifier import classify_error, is_retryable
from user_admin.utils.exceptions import PreferenceError, UserAdminError

logger = structlog.get_logger()

PAGE_SIZES = (25, 50, 100)
SORTABLE_FIELDS = (
    "id",
    "username",
    "display_name",
    "email",
    "phone",
    "enabled",
    "created_at",
    "updated_at",
)

_UNSET: Any = object()


class SortDir(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ListQuery:
    """Immutable snapshot of the grid's filter/sort/page state."""

    enabled_filter: bool | None = True
    text_filter: str = ""
    page: int = 1
    page_size: int = 25
    sort_field: str = "id"
    sort_dir: SortDir = SortDir.ASC

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.page_size not in PAGE_SIZES:
            raise ValueError(f"page_size must be one of {PAGE_SIZES}, got {self.page_size}")
        if self.sort_field not in SORTABLE_FIELDS:
            raise ValueError(f"Unknown sort field: {self.sort_field}")
        object.__setattr__(self, "sort_dir", SortDir(self.sort_dir))

    def to_params(self) -> dict[str, str | int]:
        """Get users API query parameters for this snapshot."""
        params: dict[str, str | int] = {
            "page": self.page,
            "pageSize": self.page_size,
            "sort": f"{to_camel(self.sort_field)},{self.sort_dir.value}",
        }
        if self.enabled_filter is not None:
            params["enabled"] = "true" if self.enabled_filter else "false"
        text = self.text_filter.strip()
        if text:
            params["q"] = text
        return params

    def with_sort(self, field: str) -> "ListQuery":
        """Toggle direction if field is active, else sort by field ascending."""
        if field == self.sort_field:
            direction = SortDir.DESC if self.sort_dir is SortDir.ASC else SortDir.ASC
            return replace(self, sort_dir=direction)
        return replace(self, sort_field=field, sort_dir=SortDir.ASC)


@dataclass(frozen=True)
class ListError:
    """List-level fetch failure shown above the grid."""

    code: str
    message: str
    retryable: bool


@dataclass(frozen=True)
class ListState:
    """What the grid renders."""

    query: ListQuery
    result: UserPage | None
    result_query: ListQuery | None
    loading: bool
    error: ListError | None

    @property
    def is_current(self) -> bool:
        return self.result is not None and self.result_query == self.query


class UsersFetcher(Protocol):
    async def list_users(self, query: ListQuery) -> UserPage: ...


class ListQueryController:
    """Owns the active list query, its fetches and the cached result."""

    def __init__(
        self,
        fetcher: UsersFetcher,
        preferences: PreferenceStore,
        debounce_seconds: float | None = None,
        page_size: int | None = None,
        sort_field: str | None = None,
    ) -> None:
        settings = get_settings()
        self._fetcher = fetcher
        self._preferences = preferences
        self._debounce_seconds = (
            settings.grid.debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._default_page_size = page_size or settings.grid.default_page_size
        self._default_sort_field = sort_field or settings.grid.default_sort_field

        self._query = ListQuery(
            page_size=self._default_page_size,
            sort_field=self._default_sort_field,
        )
        self._seq = 0
        self._result: UserPage | None = None
        self._result_query: ListQuery | None = None
        self._loading = False
        self._error: ListError | None = None

        self._debounce_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[ListState], None]] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def query(self) -> ListQuery:
        return self._query

    @property
    def hide_disabled(self) -> bool:
        return self._query.enabled_filter is True

    @property
    def state(self) -> ListState:
        return ListState(
            query=self._query,
            result=self._result,
            result_query=self._result_query,
            loading=self._loading,
            error=self._error,
        )

    def current_result(self) -> UserPage | None:
        """Get the cached result if it belongs to the active query."""
        if self._result is not None and self._result_query == self._query:
            return self._result
        return None

    def add_listener(self, callback: Callable[[ListState], None]) -> Callable[[], None]:
        """Subscribe to state changes. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mount(self) -> asyncio.Task:
        """Seed the query from the persisted preference and fetch."""
        try:
            hide_disabled = self._preferences.get_bool(HIDE_DISABLED_KEY, True)
        except PreferenceError as e:
            logger.warning("Could not read preference, using default", error=e.message)
            hide_disabled = True

        self._mutate(
            ListQuery(
                enabled_filter=True if hide_disabled else None,
                page_size=self._default_page_size,
                sort_field=self._default_sort_field,
            )
        )
        logger.info("List mounted", hide_disabled=hide_disabled)
        return self._fetch_now()

    def set_filter(
        self,
        *,
        enabled_filter: bool | None = _UNSET,
        text_filter: str = _UNSET,
    ) -> asyncio.Task | None:
        """Patch filter fields. Text-only changes are debounced.

        Returns:
            The task that will apply the fetch, or None if nothing changed
        """
        changes: dict[str, Any] = {}
        if enabled_filter is not _UNSET and enabled_filter != self._query.enabled_filter:
            changes["enabled_filter"] = enabled_filter
        if text_filter is not _UNSET and text_filter != self._query.text_filter:
            changes["text_filter"] = text_filter
        if not changes:
            return None

        self._mutate(replace(self._query, page=1, **changes))
        if "enabled_filter" in changes:
            return self._fetch_now()
        return self._fetch_debounced()

    def set_hide_disabled(self, hide: bool) -> asyncio.Task | None:
        """Toggle the "hide disabled" filter and persist the choice."""
        try:
            self._preferences.set_bool(HIDE_DISABLED_KEY, hide)
        except PreferenceError as e:
            logger.warning("Could not persist preference", key=HIDE_DISABLED_KEY, error=e.message)
        return self.set_filter(enabled_filter=True if hide else None)

    def set_sort(self, field: str) -> asyncio.Task:
        self._mutate(self._query.with_sort(field))
        return self._fetch_now()

    def set_page(self, page: int) -> asyncio.Task | None:
        if page == self._query.page:
            return None
        self._mutate(replace(self._query, page=page))
        return self._fetch_now()

    def set_page_size(self, page_size: int) -> asyncio.Task | None:
        if page_size == self._query.page_size:
            return None
        self._mutate(replace(self._query, page_size=page_size, page=1))
        return self._fetch_now()

    def refresh(self) -> asyncio.Task:
        """Re-fetch the active query unchanged."""
        return self._fetch_now()

    def retry(self) -> asyncio.Task:
        return self._fetch_now()

    def resume(self) -> asyncio.Task | None:
        """Return to the screen: fetch only if the cache is not current."""
        if self.current_result() is not None:
            return None
        if self._debounce_task is not None and not self._debounce_task.done():
            return self._debounce_task
        return self._fetch_now()

    async def settle(self) -> None:
        """Wait until no debounce timer or fetch is pending."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._debounce_task = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(self, query: ListQuery) -> None:
        self._query = query
        self._seq += 1
        self._loading = True
        self._notify()

    def _issue(self) -> int:
        self._seq += 1
        return self._seq

    def _track(self, coro: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
            logger.debug("Debounced fetch superseded", seq=self._seq)
        self._debounce_task = None

    def _fetch_now(self) -> asyncio.Task:
        self._cancel_debounce()
        seq = self._issue()
        return self._track(self._run_fetch(seq, self._query))

    def _fetch_debounced(self) -> asyncio.Task:
        self._cancel_debounce()
        self._debounce_task = self._track(self._debounce())
        return self._debounce_task

    async def _debounce(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._debounce_task = None
        await self._run_fetch(self._issue(), self._query)

    async def _run_fetch(self, seq: int, query: ListQuery) -> None:
        self._loading = True
        self._notify()
        logger.debug("Fetching users", seq=seq, params=query.to_params())

        try:
            page = await self._fetcher.list_users(query)
        except Exception as e:
            if seq != self._seq:
                logger.debug("Discarding stale list error", seq=seq, latest=self._seq)
                return
            code, message = classify_error(e)
            if isinstance(e, UserAdminError):
                retryable = is_retryable(code)
                logger.warning("List fetch failed", seq=seq, code=code, error=e.message)
            else:
                retryable = True
                logger.exception("List fetch raised unexpectedly", seq=seq, code=code)
            self._error = ListError(code=code, message=message, retryable=retryable)
            self._loading = False
            self._notify()
            return

        if seq != self._seq:
            logger.info("Discarding stale list response", seq=seq, latest=self._seq)
            return

        self._result = page
        self._result_query = query
        self._error = None
        self._loading = False
        logger.debug("List updated", seq=seq, total=page.total, rows=len(page.data))
        self._notify()

    def _notify(self) -> None:
        state = self.state
        for callback in list(self._listeners):
            callback(state)
