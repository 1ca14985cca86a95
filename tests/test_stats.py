"""Tests for rolling statistics primitives."""

import pytest

from pmtop.stats import RESUM_INTERVAL, History, PeakTracker, RollingAverage


class TestRollingAverage:
    """Tests for RollingAverage."""

    def test_empty_average_is_zero(self):
        """Test average of an empty window is 0."""
        assert RollingAverage(3).average() == 0.0

    def test_window_evicts_oldest(self):
        """Test pushing past the window evicts the oldest value."""
        avg = RollingAverage(3)
        for value in [10, 20, 30, 40]:
            avg.push(value)

        assert avg.average() == pytest.approx(30.0)
        assert len(avg) == 3

    def test_partial_window(self):
        """Test average over fewer values than the window."""
        avg = RollingAverage(5)
        avg.push(1.0)
        avg.push(2.0)

        assert avg.average() == pytest.approx(1.5)

    def test_zero_window_coerced_to_one(self):
        """Test a zero window behaves like a window of one."""
        avg = RollingAverage(0)
        avg.push(4.0)
        avg.push(8.0)

        assert avg.window == 1
        assert avg.average() == pytest.approx(8.0)

    def test_periodic_resum_matches_buffer(self):
        """Test the running sum stays equal to the buffer sum across resums."""
        avg = RollingAverage(7)
        values = [0.1 * (i % 13) + 1e-9 * i for i in range(RESUM_INTERVAL * 3 + 5)]
        for value in values:
            avg.push(value)

        expected = sum(values[-7:]) / 7
        assert avg.average() == pytest.approx(expected, rel=1e-12)


class TestHistory:
    """Tests for History."""

    def test_overflow_evicts_oldest(self):
        """Test capacity 2 keeps the last two values."""
        history = History(2)
        for value in [1, 2, 3]:
            history.push(value)

        assert history.values() == [2, 3]

    def test_default_capacity(self):
        """Test the default capacity is 120 samples."""
        history = History()
        for value in range(200):
            history.push(value)

        assert len(history) == 120
        assert history.values()[0] == 80
        assert history.values()[-1] == 199

    def test_values_is_a_copy(self):
        """Test callers cannot mutate the buffer through values()."""
        history = History(3)
        history.push(1.0)
        history.values().append(99.0)

        assert history.values() == [1.0]


def test_peak_tracker_never_decreases():
    """Test the peak is a running maximum."""
    peak = PeakTracker()
    for value in [3.0, 7.5, 2.0, 7.0]:
        peak.push(value)

    assert peak.peak == 7.5
