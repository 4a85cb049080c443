import base64
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fern_form import api
from fern_form.api import FormContext
from fern_form.config import Config
from fern_form.db.database import get_db
from fern_form.db.schema import init_db
from fern_form.engines.hooks import Hook, HookBus
from fern_form.engines.read_state import ReadState
from fern_form.engines.submissions import (
    PersistFailed,
    Skipped,
    Stored,
    Submission,
    SubmissionDeleteError,
    SubmissionError,
    SubmissionStore,
    SubmissionValidationError,
)

FIXED_NOW = datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)


@pytest.fixture
def ctx(tmp_path):
    db_path = tmp_path / "fern_form.db"
    init_db(db_path)
    conn = get_db(db_path)
    try:
        yield FormContext(conn=conn, config=Config(), hooks=HookBus(), clock=lambda: FIXED_NOW)
    finally:
        conn.close()


def _record(hooks: HookBus, hook: Hook) -> list[tuple]:
    calls: list[tuple] = []
    hooks.add_action(hook, lambda *args: calls.append(args))
    return calls


def test_store_contact_submission_roundtrip(ctx):
    submission_id = api.store_form(ctx, "contact", {"email": "a@b.com", "message": "hi"})

    assert isinstance(submission_id, int)
    assert submission_id > 0
    stored = api.get_submission_by_id(ctx, submission_id)
    assert stored is not None
    assert stored.form_name == "contact"
    assert stored.data["email"] == "a@b.com"
    assert stored.data["message"] == "hi"
    assert stored.read_state is ReadState.UNREAD
    assert stored.created_at == FIXED_NOW


def test_store_uses_default_title_with_timestamp(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    assert api.get_submission_by_id(ctx, submission_id).title == "contact at 01/05/2024 12:30:45"


def test_title_and_data_filters_apply_before_sanitizing(ctx):
    ctx.hooks.add_filter(Hook.SUBMISSION_TITLE, lambda title, form, data: f"[{form}] {data['name']}")
    ctx.hooks.add_filter(Hook.SUBMISSION_DATA, lambda data, form: {**data, "source": "<i>web</i>"})

    submission_id = api.store_form(ctx, "signup", {"name": "Ada"})
    stored = api.get_submission_by_id(ctx, submission_id)

    assert stored.title == "[signup] Ada"
    assert stored.data == {"name": "Ada", "source": "web"}


def test_same_form_name_shares_one_category(ctx):
    first = api.store_form(ctx, "contact", {"message": "one"})
    second = api.store_form(ctx, "contact", {"message": "two"})

    assert first != second
    assert ctx.conn.execute("SELECT COUNT(*) FROM form_categories").fetchone()[0] == 1
    assert ctx.store().list_forms() == [{"slug": "contact", "name": "contact", "submission_count": 2}]


def test_category_keeps_display_name_and_slug(ctx):
    api.store_form(ctx, "Contact Us", {"message": "hi"})
    row = ctx.conn.execute("SELECT slug, name FROM form_categories").fetchone()
    assert (row["slug"], row["name"]) == ("contact-us", "Contact Us")


def test_stored_action_receives_id_slug_and_data(ctx):
    stored_calls = _record(ctx.hooks, Hook.SUBMISSION_STORED)
    error_calls = _record(ctx.hooks, Hook.SUBMISSION_ERROR)

    submission_id = api.store_form(ctx, "Contact Us", {"message": "hi"})

    assert stored_calls == [(submission_id, "contact-us", {"message": "hi"})]
    assert error_calls == []


def test_store_then_delete_removes_submission(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})

    api.delete_form(ctx, submission_id)

    assert api.get_submission_by_id(ctx, submission_id) is None
    assert ctx.conn.execute("SELECT COUNT(*) FROM submission_meta").fetchone()[0] == 0


def test_disabled_retention_skips_storage(ctx):
    ctx.config = Config(retention_days=-1)
    stored_calls = _record(ctx.hooks, Hook.SUBMISSION_STORED)

    result = api.store_submission(ctx, "contact", {"message": "hi"})

    assert isinstance(result, Skipped)
    assert result.submission_id is None
    assert stored_calls == []
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 0

    ctx.config = Config(retention_days=None)
    assert api.store_form(ctx, "contact", {"message": "hi"}) is None


def test_abort_filter_prevents_side_effects(ctx):
    ctx.hooks.add_filter(Hook.SUBMISSION_SHOULD_ABORT, lambda abort, form, data: "spam" in data)
    stored_calls = _record(ctx.hooks, Hook.SUBMISSION_STORED)

    assert api.store_form(ctx, "contact", {"spam": "buy now"}) is None
    assert stored_calls == []
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 0
    assert ctx.conn.execute("SELECT COUNT(*) FROM form_categories").fetchone()[0] == 0


def test_persistence_failure_reports_error_and_rolls_back(ctx):
    ctx.conn.execute("DROP TABLE submission_categories")
    ctx.conn.commit()
    error_calls = _record(ctx.hooks, Hook.SUBMISSION_ERROR)

    result = api.store_submission(ctx, "contact", {"message": "hi"})

    assert isinstance(result, PersistFailed)
    assert result.submission_id is None
    assert result.reason
    assert len(error_calls) == 1
    assert error_calls[0][1:] == ("contact", {"message": "hi"})
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 0
    assert ctx.conn.execute("SELECT COUNT(*) FROM form_categories").fetchone()[0] == 0


def test_construction_validation_errors(ctx):
    with pytest.raises(SubmissionValidationError):
        api.store_form(ctx, "", {"message": "hi"})
    with pytest.raises(SubmissionValidationError):
        api.store_form(ctx, "contact", {})


def test_store_result_is_tagged(ctx):
    result = api.store_submission(ctx, "contact", {"message": "hi"})
    assert isinstance(result, Stored)
    assert result.ok
    assert result.status == "stored"


def test_get_by_id_rejects_invalid_ids(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})

    assert api.get_submission_by_id(ctx, 0) is None
    assert api.get_submission_by_id(ctx, -3) is None
    assert api.get_submission_by_id(ctx, submission_id + 100) is None

    ctx.conn.execute("UPDATE submissions SET status = 'draft' WHERE id = ?", (submission_id,))
    ctx.conn.commit()
    assert api.get_submission_by_id(ctx, submission_id) is None


def test_get_by_id_requires_category(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    ctx.conn.execute("DELETE FROM submission_categories WHERE submission_id = ?", (submission_id,))
    ctx.conn.commit()
    assert api.get_submission_by_id(ctx, submission_id) is None


def test_get_by_id_decodes_base64_wrapped_content(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    wrapped = base64.b64encode(json.dumps({"message": "wrapped"}).encode("utf-8")).decode("ascii")
    ctx.conn.execute("UPDATE submissions SET content = ? WHERE id = ?", (wrapped, submission_id))
    ctx.conn.commit()

    assert api.get_submission_by_id(ctx, submission_id).data == {"message": "wrapped"}


def test_update_missing_submission_is_silent(ctx):
    updated_calls = _record(ctx.hooks, Hook.SUBMISSION_UPDATED)
    error_calls = _record(ctx.hooks, Hook.UPDATE_SUBMISSION_ERROR)

    api.update_form(ctx, 999, {"message": "nope"})

    assert updated_calls == []
    assert error_calls == []


def test_update_resanitizes_and_filters_title(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    updated_calls = _record(ctx.hooks, Hook.SUBMISSION_UPDATED)
    ctx.hooks.add_filter(Hook.UPDATE_SUBMISSION_TITLE, lambda title, form, data: title + " (edited)")

    api.update_form(ctx, submission_id, {"message": "<b>changed</b>"})

    stored = api.get_submission_by_id(ctx, submission_id)
    assert stored.data == {"message": "changed"}
    assert stored.title == "contact at 01/05/2024 12:30:45 (edited)"
    assert updated_calls == [(submission_id, "contact", {"message": "<b>changed</b>"})]


def test_update_refreshes_in_memory_copy(ctx):
    store = ctx.store()
    submission_id = store.store("contact", {"message": "hi"}).submission_id
    submission = store.get_by_id(submission_id)

    assert store.update(submission, {"message": "bye"}) is True
    assert submission.data == {"message": "bye"}


def test_update_abort_leaves_data_unchanged(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    ctx.hooks.add_filter(Hook.UPDATE_SUBMISSION_SHOULD_ABORT, lambda abort, form, data: True)

    api.update_form(ctx, submission_id, {"message": "changed"})

    assert api.get_submission_by_id(ctx, submission_id).data == {"message": "hi"}


def test_update_failure_fires_error_and_keeps_state(ctx):
    store = ctx.store()
    submission_id = store.store("contact", {"message": "hi"}).submission_id
    submission = store.get_by_id(submission_id)
    error_calls = _record(ctx.hooks, Hook.UPDATE_SUBMISSION_ERROR)
    ctx.conn.execute("UPDATE submissions SET status = 'trash' WHERE id = ?", (submission_id,))
    ctx.conn.commit()

    assert store.update(submission, {"message": "changed"}) is False
    assert submission.data == {"message": "hi"}
    assert error_calls == [(submission_id, "contact", {"message": "changed"})]


def test_update_without_id_raises(ctx):
    with pytest.raises(SubmissionError):
        ctx.store().update(Submission("contact", {"message": "hi"}), {"message": "x"})


def test_delete_without_id_raises(ctx):
    with pytest.raises(SubmissionDeleteError):
        ctx.store().delete(Submission("contact", {"message": "hi"}))


def test_delete_of_vanished_row_raises(ctx):
    with pytest.raises(SubmissionDeleteError):
        ctx.store().delete(Submission("contact", {"message": "hi"}, 4242))


def test_delete_hooks_order_and_abort(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    events = []
    ctx.hooks.add_action(Hook.BEFORE_DELETE, lambda sid, form: events.append(("before", sid, form)))
    ctx.hooks.add_action(Hook.AFTER_DELETE, lambda sid, form: events.append(("after", sid, form)))
    ctx.hooks.add_filter(Hook.DELETE_SUBMISSION_SHOULD_ABORT, lambda abort, form, data: True)

    api.delete_form(ctx, submission_id)

    assert events == [("before", submission_id, "contact")]
    assert api.get_submission_by_id(ctx, submission_id) is not None


def test_delete_fires_after_delete(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    after_calls = _record(ctx.hooks, Hook.AFTER_DELETE)

    api.delete_form(ctx, submission_id)

    assert after_calls == [(submission_id, "contact")]


def test_id_is_immutable_once_assigned():
    submission = Submission("contact", {"message": "hi"}, 5)
    submission.assign_id(5)
    with pytest.raises(SubmissionError):
        submission.assign_id(6)


def test_list_submissions_filters_by_form(ctx):
    store = SubmissionStore(ctx.conn, ctx.config, ctx.hooks, clock=lambda: FIXED_NOW)
    contact_id = store.store("contact", {"message": "hi"}).submission_id
    store.store("newsletter", {"email": "a@b.com"})

    rows = store.list_submissions(form="contact")

    assert [row["id"] for row in rows] == [contact_id]
    assert rows[0]["form_slug"] == "contact"
    assert rows[0]["read_state"] == "unread"
    assert len(store.list_submissions()) == 2


def test_data_filter_emptying_payload_stores_nothing(ctx):
    error_calls = _record(ctx.hooks, Hook.SUBMISSION_ERROR)
    stored_calls = _record(ctx.hooks, Hook.SUBMISSION_STORED)
    ctx.hooks.add_filter(Hook.SUBMISSION_DATA, lambda data, form: {})

    result = api.store_submission(ctx, "contact", {"message": "hi"})

    assert isinstance(result, PersistFailed)
    assert result.submission_id is None
    assert len(error_calls) == 1
    assert error_calls[0][1:] == ("contact", {})
    assert stored_calls == []
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 0
    assert ctx.conn.execute("SELECT COUNT(*) FROM form_categories").fetchone()[0] == 0


def test_update_with_empty_payload_keeps_row_reachable(ctx):
    submission_id = api.store_form(ctx, "contact", {"message": "hi"})
    error_calls = _record(ctx.hooks, Hook.UPDATE_SUBMISSION_ERROR)
    updated_calls = _record(ctx.hooks, Hook.SUBMISSION_UPDATED)

    api.update_form(ctx, submission_id, {})

    assert error_calls == [(submission_id, "contact", {})]
    assert updated_calls == []
    assert api.get_submission_by_id(ctx, submission_id).data == {"message": "hi"}

    api.delete_form(ctx, submission_id)
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 0


def test_update_data_filter_emptying_payload_is_rejected(ctx):
    store = ctx.store()
    submission_id = store.store("contact", {"message": "hi"}).submission_id
    submission = store.get_by_id(submission_id)
    ctx.hooks.add_filter(Hook.UPDATE_SUBMISSION_DATA, lambda data, form: {})

    assert store.update(submission, {"message": "changed"}) is False
    assert submission.data == {"message": "hi"}
    assert store.get_by_id(submission_id).data == {"message": "hi"}


def test_out_of_range_and_non_integer_ids_are_not_found(ctx):
    api.store_form(ctx, "contact", {"message": "hi"})

    assert api.get_submission_by_id(ctx, 2**63) is None
    assert api.get_submission_by_id(ctx, 2**63 - 1) is None
    assert api.get_submission_by_id(ctx, "1") is None

    api.update_form(ctx, 2**63, {"message": "x"})
    api.delete_form(ctx, 2**63)
    assert ctx.conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0] == 1
