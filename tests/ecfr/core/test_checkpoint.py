from datetime import date

from ecfr.core.checkpoint import BackfillCheckpoint


def test_complete_and_failed_revisions(tmp_path):
    checkpoint = BackfillCheckpoint(base_dir=str(tmp_path))

    checkpoint.mark_complete(1, date(2024, 1, 3))
    checkpoint.mark_failed(2, date(2024, 1, 3), "fetch_error (404)")

    assert checkpoint.is_complete(1, date(2024, 1, 3))
    assert not checkpoint.is_complete(1, date(2024, 2, 1))
    assert not checkpoint.is_complete(2, date(2024, 1, 3))
    assert checkpoint.get_failed()["2:2024-01-03"]["error"] == "fetch_error (404)"
    assert checkpoint.get_summary() == {
        "checkpoint_id": "historical_backfill",
        "completed_count": 1,
        "failed_count": 1,
        "has_failures": True,
    }


def test_completion_clears_earlier_failure(tmp_path):
    checkpoint = BackfillCheckpoint(base_dir=str(tmp_path))

    checkpoint.mark_failed(1, date(2024, 1, 3), "timeout")
    checkpoint.mark_complete(1, date(2024, 1, 3))

    assert checkpoint.get_failed() == {}


def test_progress_survives_reopening(tmp_path):
    BackfillCheckpoint(base_dir=str(tmp_path)).mark_complete(40, date(2017, 1, 1))

    assert BackfillCheckpoint(base_dir=str(tmp_path)).is_complete(40, date(2017, 1, 1))


def test_clear_only_affects_own_checkpoint(tmp_path):
    first = BackfillCheckpoint("first", base_dir=str(tmp_path))
    second = BackfillCheckpoint("second", base_dir=str(tmp_path))
    first.mark_complete(1, date(2024, 1, 3))
    second.mark_complete(1, date(2024, 1, 3))

    first.clear()

    assert not first.is_complete(1, date(2024, 1, 3))
    assert second.is_complete(1, date(2024, 1, 3))
