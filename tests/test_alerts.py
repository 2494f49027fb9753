"""
Tests for AlertGate.
"""

from datetime import datetime, timedelta, timezone

import pytest

from bookharvester.harvester.alerts import AlertGate, AlertRecord
from bookharvester.harvester.models import HarvestItem


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate(clock):
    return AlertGate(max_alert_count=5, window=timedelta(hours=24), clock=clock)


class TestGeneralQuota:
    """Alerts for books not in New/Updated share one quota."""

    def test_first_five_allowed_sixth_silenced(self, gate):
        """Verify only the first max_alert_count alerts get through."""
        results = [gate.record_and_should_silence() for _ in range(6)]
        assert results == [False] * 5 + [True]

    def test_missing_occurrence_counts(self, gate):
        """Verify None is treated as an anonymous occurrence."""
        for _ in range(5):
            gate.record_and_should_silence(None)
        assert gate.record_and_should_silence(None) is True
        assert len(gate) == 6

    def test_silenced_alerts_are_still_recorded(self, gate):
        """Verify the window counts every occurrence, silenced or not."""
        for _ in range(8):
            gate.record_and_should_silence(AlertRecord(item_state="Requested"))
        assert len(gate) == 8

    def test_stale_records_are_pruned(self, gate, clock):
        """Verify occurrences older than the window stop counting."""
        for _ in range(5):
            gate.record_and_should_silence()
        clock.advance(hours=25)

        assert gate.record_and_should_silence() is False
        assert len(gate) == 1

    def test_record_exactly_at_window_start_is_kept(self, gate, clock):
        """Verify the window boundary is inclusive."""
        for _ in range(5):
            gate.record_and_should_silence()
        clock.advance(hours=24)

        assert gate.record_and_should_silence() is True


class TestFreshBookAllowance:
    """New and Updated books get one alert each, capped per uploader."""

    def test_fresh_book_alerts_after_general_quota(self, gate):
        """Verify a New book is not silenced by the general quota."""
        for _ in range(5):
            gate.record_and_should_silence(AlertRecord(item_state="Requested"))
        assert gate.record_and_should_silence(AlertRecord(item_state="Requested")) is True

        fresh = AlertRecord(item_key="book1", item_state="New", owner_key="alice")
        assert gate.record_and_should_silence(fresh) is False

    def test_second_alert_for_same_book_silenced(self, gate):
        """Verify a book only gets one alert per window."""
        fresh = AlertRecord(item_key="book1", item_state="Updated", owner_key="alice")
        assert gate.record_and_should_silence(fresh) is False
        assert gate.record_and_should_silence(fresh) is True

    def test_uploader_cap(self, gate):
        """Verify one uploader gets at most max_alert_count alerts."""
        results = [
            gate.record_and_should_silence(
                AlertRecord(item_key=f"book{i}", item_state="New", owner_key="alice")
            )
            for i in range(6)
        ]
        assert results == [False] * 5 + [True]

    def test_other_uploader_unaffected(self, gate):
        """Verify uploader caps are independent."""
        for i in range(6):
            gate.record_and_should_silence(
                AlertRecord(item_key=f"a{i}", item_state="New", owner_key="alice")
            )
        bob = AlertRecord(item_key="b0", item_state="New", owner_key="bob")
        assert gate.record_and_should_silence(bob) is False

    def test_stale_uploader_records_do_not_count(self, gate, clock):
        """Verify an uploader with only stale alerts starts from zero."""
        for i in range(5):
            gate.record_and_should_silence(
                AlertRecord(item_key=f"old{i}", item_state="New", owner_key="alice")
            )
        clock.advance(hours=25)

        fresh = AlertRecord(item_key="new", item_state="New", owner_key="alice")
        assert gate.record_and_should_silence(fresh) is False
        assert len(gate) == 1

    def test_fresh_book_without_identity_uses_general_quota(self, gate):
        """Verify a New alert with no book key is not matched against other
        anonymous alerts."""
        gate.record_and_should_silence(AlertRecord())
        anonymous = AlertRecord(item_state="New", owner_key="u1")
        assert gate.record_and_should_silence(anonymous) is False

        for _ in range(3):
            gate.record_and_should_silence(AlertRecord())
        assert gate.record_and_should_silence(anonymous) is True

    def test_fresh_book_without_uploader(self, gate):
        """Verify books with no uploader are not counted as one uploader."""
        for i in range(6):
            record = AlertRecord(item_key=f"b{i}", item_state="Updated")
            assert gate.record_and_should_silence(record) is False

    def test_same_book_allowed_again_after_window(self, gate, clock):
        """Verify the per-book allowance comes back once the window passes."""
        fresh = AlertRecord(item_key="book1", item_state="New", owner_key="alice")
        gate.record_and_should_silence(fresh)
        clock.advance(days=2)
        assert gate.record_and_should_silence(fresh) is False


class TestOrdering:
    """Records stay in non-decreasing time order."""

    def test_unset_timestamp_is_stamped(self, gate, clock):
        """Verify the gate stamps records with its clock."""
        gate.record_and_should_silence(AlertRecord(item_key="x"))
        assert gate._records[-1].timestamp == clock.now

    def test_equal_timestamps_accepted(self, gate, clock):
        """Verify equal timestamps are allowed."""
        gate.record_and_should_silence(AlertRecord(timestamp=clock.now))
        gate.record_and_should_silence(AlertRecord(timestamp=clock.now))
        assert len(gate) == 2

    def test_older_timestamp_moved_up(self, gate, clock):
        """Verify an out-of-order timestamp is recorded at the newest time."""
        gate.record_and_should_silence(AlertRecord(timestamp=clock.now))
        silenced = gate.record_and_should_silence(
            AlertRecord(timestamp=clock.now - timedelta(seconds=1))
        )
        assert silenced is False
        assert len(gate) == 2
        assert gate._records[-1].timestamp == clock.now

    def test_clock_stepping_back(self, gate, clock):
        """Verify a wall clock stepped backwards never raises."""
        gate.record_and_should_silence()
        first = clock.now
        clock.advance(seconds=-5)

        assert gate.record_and_should_silence() is False
        assert [r.timestamp for r in gate._records] == [first, first]

    def test_reset_clears_records(self, gate):
        gate.record_and_should_silence()
        gate.reset()
        assert len(gate) == 0


class TestAlertRecord:
    """Test AlertRecord construction."""

    def test_for_item(self):
        """Verify identity, state and owner come from the book."""
        item = HarvestItem.model_validate(
            {"objectId": "b1", "harvestState": "New", "uploader": {"objectId": "u1"}}
        )
        record = AlertRecord.for_item(item)
        assert record.item_key == "b1"
        assert record.item_state == "New"
        assert record.owner_key == "u1"
        assert record.timestamp is None

    def test_for_missing_item(self):
        assert AlertRecord.for_item(None) == AlertRecord()
