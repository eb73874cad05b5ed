from __future__ import annotations

from unittest.mock import Mock

import pytest

from filefeed.models.row_data import FieldMapping, ImportedData
from filefeed.models.schema import UNSET
from filefeed.models.workbook_step import WorkbookStep
from filefeed.services.events import WorkbookEvents
from filefeed.services.workbook_store import WorkbookStateError, WorkbookStore

ROWS = [
    ["a@b.com", "30", "yes"],
    ["broken", "40", "no"],
    ["", "abc", ""],
    ["c@d.com", "-5", "1"],
]


def _imported(rows=None) -> ImportedData:
    return ImportedData(headers=["Email", "Age", "Subscribed"], rows=[list(r) for r in (rows or ROWS)])


@pytest.fixture()
def store(workbook_config) -> WorkbookStore:
    return WorkbookStore(workbook_config)


@pytest.fixture()
def reviewed(store) -> WorkbookStore:
    store.set_imported_data(_imported())
    assert store.continue_to_review() == []
    return store


def test_initial_state(store):
    assert store.step is WorkbookStep.IMPORT
    assert store.current_sheet == "contacts"
    assert store.processed_data == []
    assert store.is_loading is False


def test_import_moves_to_mapping_with_suggested_mapping(store):
    store.set_imported_data(_imported())
    assert store.step is WorkbookStep.MAPPING
    assert store.mapping_state.as_dict() == {"Email": "email", "Age": "age", "Subscribed": "subscribed"}
    assert store.processed_data == []  # 明示的な continue まで処理しない


def test_mapping_change_does_not_reprocess(reviewed):
    before = reviewed.processed_data
    reviewed.back_to_mapping()
    reviewed.update_mapping("Subscribed", None)
    assert reviewed.processed_data == before


def test_continue_blocked_by_missing_required(store):
    store.set_imported_data(_imported())
    store.update_mapping("Email", None)
    errors = store.continue_to_review()
    assert any("missing mapping for required field" in e for e in errors)
    assert store.step is WorkbookStep.MAPPING
    assert store.can_proceed_to_review() is False
    assert store.processed_data == []


def test_continue_processes_rows(reviewed):
    assert reviewed.step is WorkbookStep.REVIEW
    rows = reviewed.processed_data
    assert [r.id for r in rows] == ["row-0", "row-1", "row-2", "row-3"]
    assert [r.is_valid for r in rows] == [True, False, False, False]
    assert rows[2].data["age"] is UNSET
    counts = reviewed.review_counts()
    assert (counts.all, counts.valid, counts.invalid) == (4, 1, 3)


def test_process_on_continue_is_idempotent(reviewed):
    first = reviewed.processed_data
    second = reviewed.process_on_continue()
    assert first == second
    assert reviewed.is_loading is False


def test_update_row_data_touches_only_target_row(reviewed):
    before = {r.id: r for r in reviewed.processed_data}
    assert reviewed.update_row_data("row-1", "email", "fixed@example.com") is True
    after = {r.id: r for r in reviewed.processed_data}
    assert after["row-1"].data["email"] == "fixed@example.com"
    assert after["row-1"].is_valid is True
    for row_id in ("row-0", "row-2", "row-3"):
        assert after[row_id] is before[row_id]
    # 位置も変わらない
    assert [r.id for r in reviewed.processed_data] == ["row-0", "row-1", "row-2", "row-3"]


def test_update_row_data_recomputes_validity_from_full_error_set(reviewed):
    # row-3: email OK, age -5 が min 違反
    reviewed.update_row_data("row-3", "subscribed", "no")
    row = reviewed.get_row("row-3")
    assert row.data["subscribed"] is False
    assert row.is_valid is False
    reviewed.update_row_data("row-3", "age", "5")
    assert reviewed.get_row("row-3").is_valid is True


def test_update_unknown_row_or_unmapped_field_is_noop(reviewed):
    before = reviewed.processed_data
    assert reviewed.update_row_data("row-99", "email", "x@y.z") is False
    reviewed.back_to_mapping()
    reviewed.update_mapping("Subscribed", None)
    reviewed.continue_to_review()
    assert reviewed.update_row_data("row-0", "subscribed", "yes") is False
    assert "subscribed" not in reviewed.get_row("row-0").data
    assert len(reviewed.processed_data) == len(before)


def test_delete_row_keeps_other_ids(reviewed):
    assert reviewed.delete_row("row-1") is True
    assert [r.id for r in reviewed.processed_data] == ["row-0", "row-2", "row-3"]
    assert reviewed.delete_row("row-1") is False
    # 削除後も id で編集できる
    assert reviewed.update_row_data("row-3", "age", "10") is True
    assert reviewed.get_row("row-3").is_valid is True


def test_delete_invalid_rows(reviewed):
    removed = reviewed.delete_invalid_rows()
    assert removed == 3
    assert all(r.is_valid for r in reviewed.processed_data)
    assert reviewed.delete_invalid_rows() == 0
    assert [r.id for r in reviewed.processed_data] == ["row-0"]


def test_visible_rows_filters_and_pins_editing_row(reviewed):
    assert [r.id for r in reviewed.visible_rows("valid")] == ["row-0"]
    assert [r.id for r in reviewed.visible_rows("invalid")] == ["row-1", "row-2", "row-3"]
    reviewed.update_row_data("row-3", "age", "10")
    assert [r.id for r in reviewed.visible_rows("invalid", editing_row_id="row-3")] == ["row-3", "row-1", "row-2"]
    assert [r.id for r in reviewed.visible_rows("invalid")] == ["row-1", "row-2"]
    assert len(reviewed.visible_rows("all")) == 4


def test_edit_while_processing_is_applied_to_new_rows(reviewed):
    ticket = reviewed.begin_processing()
    assert reviewed.is_loading is True
    assert reviewed.update_row_data("row-1", "email", "late@example.com") is True
    rows = ticket.run()
    assert reviewed.complete_processing(ticket, rows) is True
    assert reviewed.is_loading is False
    assert reviewed.get_row("row-1").data["email"] == "late@example.com"
    assert reviewed.get_row("row-1").is_valid is True


def test_deletes_rejected_while_processing(reviewed):
    ticket = reviewed.begin_processing()
    assert reviewed.delete_row("row-0") is False
    assert reviewed.delete_invalid_rows() == 0
    reviewed.complete_processing(ticket, ticket.run())
    assert len(reviewed.processed_data) == 4


def test_stale_processing_result_is_discarded(store):
    store.set_imported_data(_imported())
    ticket = store.begin_processing()
    stale_rows = ticket.run()
    store.set_imported_data(_imported([["new@example.com", "1", "yes"]]))
    assert store.complete_processing(ticket, stale_rows) is False
    assert store.processed_data == []
    store.process_on_continue()
    assert [r.data["email"] for r in store.processed_data] == ["new@example.com"]


def test_overlapping_passes_keep_edit_made_between_commits(reviewed):
    first = reviewed.begin_processing()
    second = reviewed.begin_processing()
    # 古いパスは反映されず、後続パスが終わるまで busy のまま
    assert reviewed.complete_processing(first, first.run()) is False
    assert reviewed.is_loading is True
    assert reviewed.update_row_data("row-1", "email", "fixed@example.com") is True
    assert reviewed.complete_processing(second, second.run()) is True
    assert reviewed.is_loading is False
    assert reviewed.get_row("row-1").data["email"] == "fixed@example.com"
    assert reviewed.get_row("row-1").is_valid is True


def test_older_pass_cannot_overwrite_newer_result(store):
    store.set_imported_data(_imported())
    old = store.begin_processing()
    store.update_mapping("Subscribed", None)
    new = store.begin_processing()
    assert store.complete_processing(new, new.run()) is True
    assert store.complete_processing(old, old.run()) is False
    assert all(set(r.data) == {"email", "age"} for r in store.processed_data)
    assert store.is_loading is False


def test_unknown_current_sheet_raises(store):
    store.current_sheet = "gone"
    with pytest.raises(WorkbookStateError):
        store.fields


def test_failed_pass_clears_busy_flag(store, monkeypatch):
    store.set_imported_data(_imported())

    def boom(*args, **kwargs):
        raise RuntimeError("pass failed")

    monkeypatch.setattr("filefeed.services.workbook_store.process_rows", boom)
    with pytest.raises(RuntimeError):
        store.process_on_continue()
    assert store.is_loading is False


def test_explicit_field_mappings_with_transform(workbook_config):
    store = WorkbookStore(workbook_config, transform_registry={"lower": str.lower})
    store.set_imported_data(_imported([["A@B.COM", "1", "yes"]]))
    store.set_field_mappings([FieldMapping("Email", "email", transform="lower")])
    assert store.continue_to_review() == []
    assert store.processed_data[0].data == {"email": "a@b.com"}
    store.update_row_data("row-0", "email", "X@Y.COM")
    assert store.get_row("row-0").data["email"] == "x@y.com"


def test_unknown_transform_blocks_continue(workbook_config):
    store = WorkbookStore(workbook_config, transform_registry={})
    store.set_imported_data(_imported())
    store.set_field_mappings([FieldMapping("Email", "email", transform="missing")])
    errors = store.continue_to_review()
    assert errors and "unknown transform" in errors[0]
    assert store.step is WorkbookStep.MAPPING


def test_step_transitions_and_events(workbook_config):
    events = WorkbookEvents(
        on_data_imported=Mock(),
        on_mapping_changed=Mock(),
        on_workbook_complete=Mock(),
        on_reset=Mock(),
        on_step_change=Mock(),
    )
    store = WorkbookStore(workbook_config, events=events)
    data = _imported()
    store.set_imported_data(data)
    events.on_data_imported.assert_called_once_with(data)

    store.update_mapping("Subscribed", None)
    payload = events.on_mapping_changed.call_args.args[0]
    assert [m.target for m in payload] == ["email", "age"]

    store.continue_to_review()
    store.back_to_mapping()
    store.continue_to_review()
    rows = store.submit()
    events.on_workbook_complete.assert_called_once_with(rows)
    assert store.step is WorkbookStep.SUBMITTED
    steps = [c.args[0] for c in events.on_step_change.call_args_list]
    assert steps == [
        WorkbookStep.MAPPING,
        WorkbookStep.REVIEW,
        WorkbookStep.MAPPING,
        WorkbookStep.REVIEW,
        WorkbookStep.SUBMITTED,
    ]

    with pytest.raises(WorkbookStateError):
        store.set_imported_data(data)
    store.reset()
    events.on_reset.assert_called_once_with()
    assert store.step is WorkbookStep.IMPORT


def test_invalid_transitions_raise(store):
    with pytest.raises(WorkbookStateError):
        store.continue_to_review()
    with pytest.raises(WorkbookStateError):
        store.back_to_mapping()
    with pytest.raises(WorkbookStateError):
        store.submit()


def test_reset_leaves_nothing_behind(reviewed):
    reviewed.reset()
    assert reviewed.imported_data is None
    assert reviewed.processed_data == []
    assert len(reviewed.mapping_state) == 0
    assert reviewed.field_mappings is None
    assert reviewed.step is WorkbookStep.IMPORT


def test_clear_imported_data_keeps_step(reviewed):
    reviewed.clear_imported_data()
    assert reviewed.imported_data is None
    assert reviewed.processed_data == []
    assert reviewed.mapping_state.as_dict() == {}


def test_switch_sheet_resets_state(reviewed):
    reviewed.set_current_sheet("companies")
    assert reviewed.current_sheet == "companies"
    assert reviewed.processed_data == []
    assert [f.key for f in reviewed.fields] == ["name"]
    with pytest.raises(WorkbookStateError):
        reviewed.set_current_sheet("nope")


def test_manual_mode_submit_in_creation_order(store):
    store.set_imported_data(_imported())
    store.enter_manual_mode()
    assert store.imported_data is None
    assert store.step is WorkbookStep.IMPORT
    store.manual_entry.set_value(3, "email", "three@example.com")
    store.manual_entry.set_value(1, "email", "one@example.com")
    rows = store.submit()
    assert [r.id for r in rows] == ["manual-row-1", "manual-row-3"]


def test_manual_mode_submit_requires_rows(store):
    store.enter_manual_mode()
    with pytest.raises(WorkbookStateError):
        store.submit()


def test_import_leaves_manual_mode(store):
    store.enter_manual_mode()
    store.manual_entry.set_value(0, "email", "x@y.com")
    store.set_imported_data(_imported())
    assert store.manual_mode is False
    assert store.manual_entry.total_rows == 0
