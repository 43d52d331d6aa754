from datetime import date

from focusfive.config_manager import SystemConfig
from focusfive.models import Day
from focusfive.persistence import PersistenceCoordinator
from tools.validate_data_dir import main, validate_data_dir


def _write_day(tmp_path, day_date: date, text: str) -> None:
    goals = tmp_path / "goals"
    goals.mkdir(exist_ok=True)
    (goals / f"{day_date.isoformat()}.md").write_text(text, encoding="utf-8")


def test_clean_directory_passes(tmp_path, capsys):
    coordinator = PersistenceCoordinator(tmp_path, config=SystemConfig(WRITE_RETRY_DELAY=0))
    coordinator.save_day(Day.empty(date(2025, 1, 15)))

    assert validate_data_dir(tmp_path) == 0
    out = capsys.readouterr().out
    assert "[validate] days=1" in out
    assert "[validate] unreadable_days=0" in out


def test_missing_directory_is_not_an_error(tmp_path):
    assert validate_data_dir(tmp_path / "nowhere") == 0


def test_unreadable_day_fails(tmp_path, capsys):
    _write_day(tmp_path, date(2025, 1, 15), "no header at all\n")

    assert validate_data_dir(tmp_path) == 1
    assert "2025-01-15: unreadable" in capsys.readouterr().out


def test_warnings_fail_only_in_strict_mode(tmp_path):
    lines = "\n".join(f"- [ ] task {i}" for i in range(6))
    _write_day(tmp_path, date(2025, 1, 15), f"# January 15, 2025\n## Work\n{lines}\n")

    assert validate_data_dir(tmp_path) == 0
    assert validate_data_dir(tmp_path, strict=True) == 1


def test_corrupt_ledger_and_store_fail(tmp_path, capsys):
    (tmp_path / "observations.ndjson").write_text('{"id": "obs_1"\n', encoding="utf-8")
    (tmp_path / "objectives.json").write_text("not json", encoding="utf-8")

    assert main(["--data-dir", str(tmp_path)]) == 1
    out = capsys.readouterr().out
    assert "[validate] ledger_errors=1" in out
    assert "[validate] store_issues=1" in out


def test_broken_review_is_reported(tmp_path, capsys):
    reviews = tmp_path / "reviews"
    reviews.mkdir()
    (reviews / "2025-W03.json").write_text('{"version": 1, "review": {}}', encoding="utf-8")

    assert validate_data_dir(tmp_path) == 1
    assert "2025-W03.json" in capsys.readouterr().out
