"""Tests for ListQuery and ListQueryController."""

import asyncio

import pytest

from conftest import ControlledFetcher, StaticFetcher, make_page, make_user
from user_admin.core.list_query import ListQuery, ListQueryController, SortDir
from user_admin.services.preferences import HIDE_DISABLED_KEY, InMemoryPreferenceStore
from user_admin.utils.error_classifier import ERROR_NETWORK, ERROR_SERVER, ERROR_UNKNOWN
from user_admin.utils.exceptions import ServerError, TransportError


def _controller(fetcher, preferences=None, debounce=0.01):
    return ListQueryController(
        fetcher,
        preferences if preferences is not None else InMemoryPreferenceStore(),
        debounce_seconds=debounce,
        page_size=25,
        sort_field="id",
    )


# ---------------------------------------------------------------------------
# ListQuery snapshot
# ---------------------------------------------------------------------------


class TestListQuery:

    def test_defaults(self):
        query = ListQuery()
        assert query.enabled_filter is True
        assert query.page == 1
        assert query.page_size == 25
        assert (query.sort_field, query.sort_dir) == ("id", SortDir.ASC)

    def test_params_for_default_query(self):
        assert ListQuery().to_params() == {
            "page": 1,
            "pageSize": 25,
            "sort": "id,asc",
            "enabled": "true",
        }

    def test_params_omit_unset_filters_and_camel_case_sort(self):
        query = ListQuery(enabled_filter=None, text_filter="  ad  ", sort_field="display_name",
                          sort_dir=SortDir.DESC)
        params = query.to_params()
        assert "enabled" not in params
        assert params["q"] == "ad"
        assert params["sort"] == "displayName,desc"

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"page_size": 10}, {"sort_field": "roles"}])
    def test_rejects_out_of_range(self, kwargs):
        with pytest.raises(ValueError):
            ListQuery(**kwargs)

    def test_with_sort_toggles_active_field(self):
        query = ListQuery()
        assert query.with_sort("id").sort_dir is SortDir.DESC
        assert query.with_sort("id").with_sort("id").sort_dir is SortDir.ASC

    def test_with_sort_new_field_ascending(self):
        query = ListQuery(sort_dir=SortDir.DESC).with_sort("username")
        assert (query.sort_field, query.sort_dir) == ("username", SortDir.ASC)

    def test_snapshots_are_immutable(self):
        with pytest.raises(AttributeError):
            ListQuery().page = 2


# ---------------------------------------------------------------------------
# Mount and preference seeding
# ---------------------------------------------------------------------------


class TestMount:

    @pytest.mark.asyncio
    async def test_defaults_without_preference(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher)
        await controller.mount()

        assert fetcher.queries == [ListQuery(enabled_filter=True)]
        assert controller.hide_disabled is True

    @pytest.mark.asyncio
    async def test_seeded_from_preference(self):
        fetcher = StaticFetcher()
        prefs = InMemoryPreferenceStore({HIDE_DISABLED_KEY: False})
        controller = _controller(fetcher, prefs)
        await controller.mount()

        assert fetcher.queries[0].enabled_filter is None

    @pytest.mark.asyncio
    async def test_toggle_writes_preference(self):
        fetcher = StaticFetcher()
        prefs = InMemoryPreferenceStore()
        controller = _controller(fetcher, prefs)
        await controller.mount()

        await controller.set_hide_disabled(False)

        assert prefs.values[HIDE_DISABLED_KEY] is False
        assert fetcher.queries[-1].enabled_filter is None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestMutations:

    @pytest.mark.asyncio
    async def test_sort_toggles_and_keeps_page(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher)
        await controller.mount()
        await controller.set_page(3)

        await controller.set_sort("id")
        assert controller.query.sort_dir is SortDir.DESC
        assert controller.query.page == 3

        await controller.set_sort("email")
        assert (controller.query.sort_field, controller.query.sort_dir) == ("email", SortDir.ASC)

    @pytest.mark.asyncio
    async def test_page_size_resets_page(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher)
        await controller.mount()
        await controller.set_page(2)

        await controller.set_page_size(50)

        assert fetcher.queries[-1].page_size == 50
        assert fetcher.queries[-1].page == 1

    @pytest.mark.asyncio
    async def test_unchanged_values_do_not_fetch(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher)
        await controller.mount()

        assert controller.set_page(1) is None
        assert controller.set_page_size(25) is None
        assert controller.set_filter(enabled_filter=True) is None
        assert len(fetcher.queries) == 1

    @pytest.mark.asyncio
    async def test_enabled_filter_fetches_immediately_and_resets_page(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher, debounce=10.0)
        await controller.mount()
        await controller.set_page(4)

        await controller.set_filter(enabled_filter=None)

        assert fetcher.queries[-1].enabled_filter is None
        assert fetcher.queries[-1].page == 1


class TestDebounce:

    @pytest.mark.asyncio
    async def test_only_trailing_keystroke_fetches(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher, debounce=0.02)
        await controller.mount()

        for text in ("a", "ad", "adm", "admin"):
            controller.set_filter(text_filter=text)
        await controller.settle()

        assert [q.text_filter for q in fetcher.queries] == ["", "admin"]

    @pytest.mark.asyncio
    async def test_no_fetch_inside_window(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher, debounce=10.0)
        await controller.mount()

        controller.set_filter(text_filter="adm")
        await asyncio.sleep(0.01)

        assert len(fetcher.queries) == 1
        assert controller.current_result() is None
        controller.close()
        await controller.settle()

    @pytest.mark.asyncio
    async def test_immediate_mutation_supersedes_pending_debounce(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher, debounce=10.0)
        await controller.mount()

        controller.set_filter(text_filter="adm")
        await controller.set_sort("username")
        await controller.settle()

        assert len(fetcher.queries) == 2
        assert fetcher.queries[-1].text_filter == "adm"
        assert fetcher.queries[-1].sort_field == "username"


# ---------------------------------------------------------------------------
# Ordering: last-issued-wins
# ---------------------------------------------------------------------------


class TestFetchOrdering:

    @pytest.mark.asyncio
    async def test_late_response_for_superseded_query_is_dropped(self):
        fetcher = ControlledFetcher()
        controller = _controller(fetcher)

        first = controller.mount()
        await asyncio.sleep(0)
        second = controller.set_page(2)
        await asyncio.sleep(0)
        (q1, f1), (q2, f2) = fetcher.calls

        page_two = make_page(q2, [make_user(26)], total=30)
        f2.set_result(page_two)
        await second

        f1.set_result(make_page(q1, [make_user(1)], total=30))
        await first

        assert controller.current_result() is page_two
        assert controller.state.result_query.page == 2
        assert controller.state.loading is False

    @pytest.mark.asyncio
    async def test_early_response_for_superseded_query_is_never_shown(self):
        fetcher = ControlledFetcher()
        controller = _controller(fetcher)

        first = controller.mount()
        await asyncio.sleep(0)
        second = controller.set_sort("username")
        await asyncio.sleep(0)
        (q1, f1), (q2, f2) = fetcher.calls

        f1.set_result(make_page(q1, [make_user(1)]))
        await first
        assert controller.state.result is None
        assert controller.state.loading is True

        f2.set_result(make_page(q2, [make_user(2)]))
        await second
        assert controller.current_result().data[0].id == 2

    @pytest.mark.asyncio
    async def test_refresh_supersedes_in_flight_fetch_of_same_query(self):
        fetcher = ControlledFetcher()
        controller = _controller(fetcher)

        first = controller.mount()
        await asyncio.sleep(0)
        second = controller.refresh()
        await asyncio.sleep(0)
        (q1, f1), (q2, f2) = fetcher.calls
        assert q1 == q2

        f2.set_result(make_page(q2, [make_user(1, display_name="fresh")]))
        await second
        f1.set_result(make_page(q1, [make_user(1, display_name="stale")]))
        await first

        assert controller.current_result().data[0].display_name == "fresh"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestCache:

    @pytest.mark.asyncio
    async def test_resume_reuses_current_result(self):
        fetcher = StaticFetcher([make_user(1)])
        controller = _controller(fetcher)
        await controller.mount()

        assert controller.resume() is None
        assert len(fetcher.queries) == 1

    @pytest.mark.asyncio
    async def test_mutation_invalidates_cache(self):
        fetcher = StaticFetcher([make_user(1)])
        controller = _controller(fetcher, debounce=10.0)
        await controller.mount()

        controller.set_filter(text_filter="x")
        assert controller.current_result() is None
        assert controller.state.result is not None
        controller.close()
        await controller.settle()

    @pytest.mark.asyncio
    async def test_refresh_always_refetches_same_query(self):
        fetcher = StaticFetcher()
        controller = _controller(fetcher)
        await controller.mount()
        await controller.set_page(2)

        await controller.refresh()

        assert fetcher.queries[-1] == fetcher.queries[-2]
        assert fetcher.queries[-1].page == 2


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestListErrors:

    @pytest.mark.asyncio
    async def test_transport_error_sets_list_error(self):
        fetcher = StaticFetcher()
        fetcher.error = TransportError("boom")
        controller = _controller(fetcher)
        await controller.mount()

        error = controller.state.error
        assert error.code == ERROR_NETWORK
        assert error.retryable is True
        assert controller.state.loading is False

    @pytest.mark.asyncio
    async def test_retry_clears_error(self):
        fetcher = StaticFetcher([make_user(1)])
        fetcher.error = ServerError("down")
        controller = _controller(fetcher)
        await controller.mount()
        assert controller.state.error.code == ERROR_SERVER

        fetcher.error = None
        await controller.retry()

        assert controller.state.error is None
        assert controller.current_result().total == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_ends_loading(self):
        fetcher = StaticFetcher()
        fetcher.error = RuntimeError("decoder blew up")
        controller = _controller(fetcher)

        await controller.mount()
        await controller.settle()

        state = controller.state
        assert state.loading is False
        assert state.error.code == ERROR_UNKNOWN
        assert state.error.retryable is True
        assert "decoder" not in state.error.message

    @pytest.mark.asyncio
    async def test_stale_error_is_ignored(self):
        fetcher = ControlledFetcher()
        controller = _controller(fetcher)

        first = controller.mount()
        await asyncio.sleep(0)
        second = controller.set_page(2)
        await asyncio.sleep(0)
        (q1, f1), (q2, f2) = fetcher.calls

        f1.set_exception(TransportError("late failure"))
        await first
        f2.set_result(make_page(q2, []))
        await second

        assert controller.state.error is None


class TestListeners:

    @pytest.mark.asyncio
    async def test_listener_sees_applied_result(self):
        fetcher = StaticFetcher([make_user(1)])
        controller = _controller(fetcher)
        states = []
        remove = controller.add_listener(states.append)

        await controller.mount()
        remove()
        await controller.refresh()

        assert states[-1].is_current
        assert states[-1].loading is False
