"""
Tests for animal status bookkeeping and derived dates.
"""

from datetime import datetime, timedelta, timezone

import pytest

from volunteer_media.models import Animal


def _at(day: int) -> datetime:
    return datetime(2026, 3, day, 9, 0, tzinfo=timezone.utc)


class TestStatusTransitions:
    def test_start_status_stamps_dates(self):
        animal = Animal(name="Luna", status="foster")
        animal.start_status(_at(1))
        assert animal.arrival_date == _at(1)
        assert animal.foster_start_date == _at(1)
        assert animal.quarantine_start_date is None

    def test_quarantine_uses_explicit_start(self):
        animal = Animal(name="Rocky")
        animal.change_status("bite_quarantine", _at(5), quarantine_start=_at(2))
        assert animal.quarantine_start_date == _at(2)
        assert animal.last_status_change == _at(5)

    def test_return_from_archive_counts(self):
        animal = Animal(name="Max", status="archived", archived_date=_at(1))
        animal.change_status("available", _at(3))
        assert animal.return_count == 1
        assert animal.archived_date is None

    def test_same_status_is_noop(self):
        animal = Animal(name="Max", last_status_change=_at(1))
        animal.change_status("available", _at(9))
        assert animal.last_status_change == _at(1)

    def test_foster_clears_quarantine(self):
        animal = Animal(name="Rocky", status="bite_quarantine", quarantine_start_date=_at(1))
        animal.change_status("foster", _at(4))
        assert animal.quarantine_start_date is None
        assert animal.foster_start_date == _at(4)


class TestDerivedDates:
    @pytest.mark.parametrize(
        "start, expected",
        [
            # 2026-03-02 is a Monday; ten days later is a Thursday
            (_at(2), _at(12)),
            # Ends on Saturday the 14th, moved to Monday
            (_at(4), _at(16)),
            # Ends on Sunday the 15th, moved to Monday
            (_at(5), _at(16)),
        ],
    )
    def test_quarantine_end_date(self, start, expected):
        assert Animal(name="Rocky", quarantine_start_date=start).quarantine_end_date == expected

    def test_no_quarantine(self):
        assert Animal(name="Buddy").quarantine_end_date is None

    def test_age_from_birth_date(self):
        animal = Animal(name="Daisy", age=7, estimated_birth_date=datetime(2023, 5, 20, tzinfo=timezone.utc))
        assert animal.age_display(now=datetime(2026, 3, 10, tzinfo=timezone.utc)) == (2, 9)
        assert animal.age_display(now=datetime(2026, 5, 20, tzinfo=timezone.utc)) == (3, 0)

    def test_age_without_birth_date(self):
        assert Animal(name="Zeus", age=5).age_display() == (5, 0)

    def test_length_of_stay(self):
        animal = Animal(name="Bella", arrival_date=datetime.now(timezone.utc) - timedelta(days=12, hours=1))
        assert animal.length_of_stay == 12
