"""Tests for SyncCoordinator: selection, "New User" and navigation guards."""

from conftest import make_user
from user_admin.core.form_session import FormMode, FormSessionController
from user_admin.core.sync import RequestKind, SyncCoordinator, SyncState


class NullSaver:
    async def save(self, mode, draft, bound_id=None):
        raise AssertionError("save should not be called")


def _setup(navigator=None):
    form = FormSessionController(NullSaver())
    sync = SyncCoordinator(form, navigator)
    return form, sync


class TestCleanTransitions:

    def test_initial_state(self):
        _, sync = _setup()
        assert sync.state is SyncState.CLEAN
        assert sync.selection is None

    def test_select_row_rebinds_immediately(self):
        form, sync = _setup()
        state = sync.select_row(make_user(3))

        assert state is SyncState.CLEAN
        assert form.session.bound_id == 3
        assert sync.selection == 3

    def test_new_user_switches_to_create(self):
        form, sync = _setup()
        sync.select_row(make_user(3))

        sync.new_user()

        assert form.session.mode is FormMode.CREATE
        assert sync.selection is None

    def test_clicking_bound_row_is_noop(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        token = form.session.token

        sync.select_row(make_user(3))

        assert form.session.token == token


class TestDirtyGuard:

    def test_edit_makes_dirty(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")
        assert sync.state is SyncState.DIRTY

    def test_select_other_row_is_queued(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")

        state = sync.select_row(make_user(4))

        assert state is SyncState.PENDING_DISCARD
        assert sync.pending.kind is RequestKind.SELECT_ROW
        assert form.session.bound_id == 3
        assert form.session.draft["display_name"] == "Changed"

    def test_stay_keeps_draft_and_reverts_selection(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")
        sync.select_row(make_user(4))
        assert sync.selection == 4

        sync.confirm_stay()

        assert sync.state is SyncState.DIRTY
        assert sync.selection == 3
        assert form.session.draft["display_name"] == "Changed"

    def test_discard_runs_queued_request(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")
        sync.select_row(make_user(4))

        request = sync.confirm_discard()

        assert request.kind is RequestKind.SELECT_ROW
        assert sync.state is SyncState.CLEAN
        assert form.session.bound_id == 4
        assert sync.selection == 4

    def test_new_user_while_dirty_is_queued(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("phone", "+14155552671")

        assert sync.new_user() is SyncState.PENDING_DISCARD
        assert form.session.mode is FormMode.EDIT

        sync.confirm_discard()
        assert form.session.mode is FormMode.CREATE

    def test_dirty_create_draft_is_guarded(self):
        form, sync = _setup()
        form.set_field("username", "someone")

        assert sync.select_row(make_user(4)) is SyncState.PENDING_DISCARD
        assert form.session.mode is FormMode.CREATE

    def test_newer_request_replaces_queued_one(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")
        sync.select_row(make_user(4))
        sync.select_row(make_user(5))

        sync.confirm_discard()

        assert form.session.bound_id == 5

    def test_clicking_bound_row_while_pending_stays(self):
        form, sync = _setup()
        sync.select_row(make_user(3))
        form.set_field("display_name", "Changed")
        sync.select_row(make_user(4))

        sync.select_row(make_user(3))

        assert sync.pending is None
        assert sync.state is SyncState.DIRTY
        assert sync.selection == 3

    def test_decisions_without_pending_request_are_noops(self):
        form, sync = _setup()
        sync.select_row(make_user(3))

        assert sync.confirm_discard() is None
        sync.confirm_stay()
        assert form.session.bound_id == 3

    def test_reverting_edit_makes_clean_again(self):
        form, sync = _setup()
        sync.select_row(make_user(3, display_name="Original"))
        form.set_field("display_name", "Changed")
        form.set_field("display_name", "Original")

        assert sync.select_row(make_user(4)) is SyncState.CLEAN
        assert form.session.bound_id == 4


class TestNavigation:

    def test_clean_navigation_completes(self):
        targets = []
        _, sync = _setup(targets.append)

        assert sync.request_navigation("/dashboard") is True
        assert targets == ["/dashboard"]

    def test_dirty_navigation_waits_for_decision(self):
        targets = []
        form, sync = _setup(targets.append)
        form.set_field("username", "someone")

        assert sync.request_navigation("/dashboard") is False
        assert targets == []

        sync.confirm_discard()
        assert targets == ["/dashboard"]
        assert not form.session.dirty

    def test_stay_cancels_navigation(self):
        targets = []
        form, sync = _setup(targets.append)
        form.set_field("username", "someone")
        sync.request_navigation("/dashboard")

        sync.confirm_stay()

        assert targets == []
        assert form.session.draft["username"] == "someone"
