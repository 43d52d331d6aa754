import json
from datetime import date

import pytest

import focusfive.atomic_io as atomic_io
from focusfive.config_manager import SystemConfig
from focusfive.exceptions import TruncationWarning, ValidationError, WriteFailure
from focusfive.metadata import (
    ActionOrigin,
    ActionStatus,
    DayMeta,
    Indicator,
    MetricType,
    Objective,
    Template,
)
from focusfive.models import Action, Category, CategoryType, Day
from focusfive.persistence import PersistenceCoordinator, reconcile


FAST = SystemConfig(WRITE_RETRY_DELAY=0)
DAY = date(2025, 1, 15)


def _coordinator(tmp_path) -> PersistenceCoordinator:
    return PersistenceCoordinator(tmp_path, config=FAST)


def _sample_day() -> Day:
    return Day(
        date=DAY,
        day_number=12,
        categories=[
            Category(type=CategoryType.WORK, goal="Ship v1", actions=[
                Action("Write tests", True),
                Action("Review PR"),
                Action("Plan sprint"),
            ]),
            Category(type=CategoryType.HEALTH, actions=[Action("Run 5k")]),
            Category(type=CategoryType.FAMILY, actions=[Action("Call mom")]),
        ],
    )


def _work_ids(day: Day):
    return [a.id for a in day.work.actions]


def test_save_then_load_returns_equal_day(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())

    loaded = coordinator.load_day(DAY)

    assert loaded == _sample_day()
    assert all(a.id and a.id.startswith("act_") for a in loaded.all_actions())
    assert loaded.work.actions[0].meta.status is ActionStatus.DONE


def test_saving_twice_is_idempotent(tmp_path):
    coordinator = _coordinator(tmp_path)
    day = _sample_day()
    coordinator.save_day(day)
    first_text = coordinator.read_text(DAY)
    first_ids = _work_ids(day)

    coordinator.save_day(day)

    assert coordinator.read_text(DAY) == first_text
    assert _work_ids(day) == first_ids


def test_ids_are_stable_across_loads(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())

    assert _work_ids(coordinator.load_day(DAY)) == _work_ids(coordinator.load_day(DAY))


def test_deleted_line_keeps_metadata_and_observations(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.store.upsert_indicator(Indicator(id="ind_reviews", name="Reviews"))
    day = coordinator.load_day(DAY)
    day.work.actions = [Action("Write tests", True), Action("Review PR"), Action("Plan sprint")]
    coordinator.save_day(day)
    review_id = day.work.actions[1].id
    coordinator.update_action(DAY, review_id, effort_minutes=25, notes="two PRs")
    coordinator.record_observation("ind_reviews", 2, action_id=review_id)

    # Hand edit: remove the "Review PR" line.
    path = coordinator.layout.day_path(DAY)
    text = path.read_text(encoding="utf-8").replace("- [ ] Review PR\n", "")
    path.write_text(text, encoding="utf-8")

    reloaded = coordinator.load_day(DAY)

    assert [a.text for a in reloaded.work.actions] == ["Write tests", "Plan sprint"]
    assert reloaded.find_action(review_id) is None
    retired = coordinator.find_action(DAY, review_id)
    assert retired.text == "Review PR"
    assert retired.effort_minutes == 25
    assert retired.notes == "two PRs"
    assert [o.value for o in coordinator.store.observations_for_action(review_id)] == [2.0]


def test_reordered_lines_keep_identity(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    ids = {a.text: a.id for a in coordinator.load_day(DAY).work.actions}

    path = coordinator.layout.day_path(DAY)
    text = path.read_text(encoding="utf-8")
    text = text.replace("- [ ] Review PR\n- [ ] Plan sprint", "- [ ] Plan sprint\n- [ ] Review PR")
    path.write_text(text, encoding="utf-8")

    reloaded = coordinator.load_day(DAY)
    assert [a.text for a in reloaded.work.actions] == ["Write tests", "Plan sprint", "Review PR"]
    assert {a.text: a.id for a in reloaded.work.actions} == ids


def test_edit_in_place_keeps_identity(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    original_id = coordinator.load_day(DAY).work.actions[1].id

    path = coordinator.layout.day_path(DAY)
    path.write_text(
        path.read_text(encoding="utf-8").replace("Review PR", "Review PRs"), encoding="utf-8"
    )

    reloaded = coordinator.load_day(DAY)
    assert reloaded.work.actions[1].id == original_id
    assert coordinator.find_action(DAY, original_id).text == "Review PRs"


def test_rewritten_line_gets_new_identity(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    original_id = coordinator.load_day(DAY).work.actions[1].id

    path = coordinator.layout.day_path(DAY)
    path.write_text(
        path.read_text(encoding="utf-8").replace("Review PR", "Book dentist"), encoding="utf-8"
    )

    reloaded = coordinator.load_day(DAY)
    assert reloaded.work.actions[1].id != original_id
    assert coordinator.find_action(DAY, original_id).text == "Review PR"


def test_retired_action_is_restored_when_line_returns(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    path = coordinator.layout.day_path(DAY)
    original = path.read_text(encoding="utf-8")
    review_id = coordinator.load_day(DAY).work.actions[1].id

    path.write_text(original.replace("- [ ] Review PR\n", ""), encoding="utf-8")
    coordinator.load_day(DAY)
    path.write_text(original, encoding="utf-8")

    assert coordinator.load_day(DAY).work.actions[1].id == review_id


def test_checkbox_wins_over_stored_status(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    plan_id = coordinator.load_day(DAY).work.actions[2].id

    path = coordinator.layout.day_path(DAY)
    path.write_text(
        path.read_text(encoding="utf-8").replace("- [ ] Plan sprint", "- [x] Plan sprint"),
        encoding="utf-8",
    )

    reloaded = coordinator.load_day(DAY)
    assert reloaded.work.actions[2].completed is True
    meta = coordinator.find_action(DAY, plan_id)
    assert meta.status is ActionStatus.DONE
    assert meta.completed_at is not None


def test_update_action_status_rewrites_checkbox(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    run_id = coordinator.load_day(DAY).health.actions[0].id

    updated = coordinator.update_action(DAY, run_id, status=ActionStatus.DONE, effort_minutes=35)

    assert updated.status is ActionStatus.DONE
    assert "- [x] Run 5k" in coordinator.read_text(DAY)
    assert coordinator.find_action(DAY, run_id).effort_minutes == 35


def test_update_action_rejects_unknown_references(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    action_id = coordinator.load_day(DAY).work.actions[0].id

    with pytest.raises(ValidationError):
        coordinator.update_action(DAY, "act_missing", notes="x")
    with pytest.raises(ValidationError):
        coordinator.update_action(DAY, action_id, objective_id="obj_missing")

    coordinator.store.upsert_objective(Objective(id="obj_1", title="Ship", category=CategoryType.WORK))
    assert coordinator.update_action(DAY, action_id, objective_id="obj_1").objective_id == "obj_1"


def test_missing_file_loads_empty_day(tmp_path):
    coordinator = _coordinator(tmp_path)
    day = coordinator.load_day(DAY)

    assert day == Day.empty(DAY)
    assert not coordinator.layout.meta_path(DAY).exists()


def test_unparseable_file_falls_back_to_empty_day(tmp_path):
    coordinator = _coordinator(tmp_path)
    path = coordinator.layout.day_path(DAY)
    path.parent.mkdir(parents=True)
    path.write_text("just some notes\n", encoding="utf-8")

    day = coordinator.load_day(DAY)

    assert day == Day.empty(DAY)
    assert any("unreadable" in w.message for w in day.warnings)
    assert not coordinator.layout.meta_path(DAY).exists()


def test_corrupt_metadata_does_not_block_load(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    coordinator.layout.meta_path(DAY).write_text("[]", encoding="utf-8")

    day = coordinator.load_day(DAY)

    assert day == _sample_day()
    assert any("Metadata degraded" in w.message for w in day.warnings)
    assert all(a.id for a in day.all_actions())


def test_failed_text_write_keeps_previous_record(tmp_path, monkeypatch):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    before = coordinator.read_text(DAY)

    def broken_replace(src, dst):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(atomic_io.os, "replace", broken_replace)
    changed = _sample_day()
    changed.work.actions[1].completed = True

    with pytest.raises(WriteFailure):
        coordinator.save_day(changed)
    assert coordinator.read_text(DAY) == before


def test_save_rejects_invalid_action_counts(tmp_path):
    coordinator = _coordinator(tmp_path)
    day = _sample_day()
    day.work.actions = [Action(f"task {i}") for i in range(6)]

    with pytest.raises(ValidationError):
        coordinator.save_day(day)
    assert not coordinator.has_record(DAY)


def test_save_truncates_long_text(tmp_path):
    coordinator = _coordinator(tmp_path)
    day = _sample_day()
    day.health.actions[0].text = "z" * 700

    coordinator.save_day(day)

    assert len(coordinator.load_day(DAY).health.actions[0].text) == 500
    assert any(isinstance(w, TruncationWarning) for w in day.warnings)


def test_list_dates_ignores_temp_files(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    coordinator.save_day(Day.empty(date(2025, 1, 10)))
    (coordinator.layout.goals_dir / ".2025-01-20.md.tmp.1.2").write_text("x", encoding="utf-8")
    (coordinator.layout.goals_dir / "notes.md").write_text("x", encoding="utf-8")

    assert coordinator.list_dates() == [date(2025, 1, 10), DAY]
    assert coordinator.latest_record_on_or_before(date(2025, 1, 14)) == date(2025, 1, 10)
    assert coordinator.latest_record_on_or_before(date(2025, 1, 14), lookback=2) is None
    assert coordinator.latest_record_on_or_before(date(2025, 1, 9)) is None


def test_delete_day_removes_both_files(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())

    assert coordinator.delete_day(DAY) is True
    assert not coordinator.has_record(DAY)
    assert coordinator.store.load_day_meta(DAY) is None
    assert coordinator.delete_day(DAY) is False


def test_new_day_from_template(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    coordinator.store.save_template(Template(name="weekday", actions={
        CategoryType.WORK: ["Inbox zero", "Deep work"],
    }))

    day = coordinator.new_day(date(2025, 1, 16), template_name="weekday")

    assert day.day_number == 13
    assert [a.text for a in day.work.actions] == ["Inbox zero", "Deep work"]
    assert len(day.health.actions) == 3

    coordinator.save_day(day)
    inbox_id = day.work.actions[0].id
    assert coordinator.find_action(date(2025, 1, 16), inbox_id).origin is ActionOrigin.TEMPLATE

    with pytest.raises(ValidationError):
        coordinator.new_day(date(2025, 1, 17), template_name="missing")


def test_new_day_carries_over_unfinished_actions(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())

    day = coordinator.new_day(date(2025, 1, 16), carry_over=True)

    assert day.work.goal == "Ship v1"
    assert [a.text for a in day.work.actions] == ["Review PR", "Plan sprint"]
    assert all(a.meta.origin is ActionOrigin.CARRY_OVER for a in day.work.actions)
    assert all(not a.completed for a in day.work.actions)


def test_record_observation_validates_against_indicator(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.store.upsert_indicator(
        Indicator(id="ind_mood", name="Mood", metric_type=MetricType.PERCENTAGE)
    )

    observation = coordinator.record_observation("ind_mood", 70, note="ok")

    assert observation.value == 70.0
    assert coordinator.store.latest_observation("ind_mood").id == observation.id
    with pytest.raises(ValidationError):
        coordinator.record_observation("ind_mood", 140)
    with pytest.raises(ValidationError):
        coordinator.record_observation("ind_unknown", 1)


def test_reconcile_without_stored_metadata_mints_ids():
    day = _sample_day()
    report = reconcile(day, None)

    assert report.changed is True
    assert report.minted == len(day.all_actions())
    assert isinstance(report.meta, DayMeta)
    assert [m.id for m in report.meta.categories[CategoryType.WORK]] == _work_ids(day)


def _rewrite_meta(coordinator, edit) -> None:
    path = coordinator.layout.meta_path(DAY)
    data = json.loads(path.read_text(encoding="utf-8"))
    edit(data)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_non_finite_metadata_numbers_do_not_block_load(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    ids = _work_ids(coordinator.load_day(DAY))

    def poison(data):
        data["categories"]["work"][0]["effort_minutes"] = float("nan")
        data["categories"]["work"][1]["effort_minutes"] = float("inf")

    # json.dumps writes NaN and Infinity literals, which json.loads accepts
    _rewrite_meta(coordinator, poison)

    day = coordinator.load_day(DAY)

    assert day == _sample_day()
    assert _work_ids(day) == ids
    assert day.work.actions[0].meta.effort_minutes is None
    assert day.work.actions[1].meta.effort_minutes is None


def test_status_change_on_retired_action_is_rejected(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    review_id = _work_ids(coordinator.load_day(DAY))[1]
    path = coordinator.layout.day_path(DAY)
    path.write_text(
        path.read_text(encoding="utf-8").replace("- [ ] Review PR\n", ""), encoding="utf-8"
    )
    coordinator.load_day(DAY)

    with pytest.raises(ValidationError):
        coordinator.update_action(DAY, review_id, status=ActionStatus.DONE, notes="done anyway")

    entry = coordinator.find_action(DAY, review_id)
    assert entry.status is ActionStatus.PLANNED
    assert entry.notes is None

    coordinator.update_action(DAY, review_id, notes="moved to tomorrow")
    assert coordinator.find_action(DAY, review_id).notes == "moved to tomorrow"


def test_metadata_problem_is_reported_once_per_load(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    coordinator.layout.meta_path(DAY).write_text("{not json", encoding="utf-8")

    for _ in range(3):
        day = coordinator.load_day(DAY, persist=False)
        assert len([w for w in day.warnings if "Metadata degraded" in w.message]) == 1
    assert len(coordinator.store.issues) == 1

    coordinator.load_day(DAY)
    assert coordinator.load_day(DAY).warnings == []
    assert coordinator.store.issues == []


def test_newer_metadata_fields_survive_an_update(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.save_day(_sample_day())
    action_id = _work_ids(coordinator.load_day(DAY))[0]

    def upgrade(data):
        data["version"] = 2
        data["energy_log"] = [3, 4]
        data["categories"]["work"][0]["focus_score"] = 8

    _rewrite_meta(coordinator, upgrade)

    coordinator.update_action(DAY, action_id, notes="went well")

    data = json.loads(coordinator.layout.meta_path(DAY).read_text(encoding="utf-8"))
    assert data["version"] == 2
    assert data["energy_log"] == [3, 4]
    assert data["categories"]["work"][0]["focus_score"] == 8
    assert data["categories"]["work"][0]["notes"] == "went well"
