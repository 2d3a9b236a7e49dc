"""
Tests for the shared release math.

Covers the three slice-counting conventions: schedules count from start
with a cliff gate, sales count intervals from the end of the cliff, and the
reward pool counts the launch instant as the first phase.
"""

import pytest

from vestflow.core.release_calculator import (
    ReleaseWindow,
    elapsed_slices,
    releasable_amount,
    vested_amount,
)

WEEK = 7 * 24 * 60 * 60


class TestScheduleWindow:
    """Slices counted from start, nothing before start + cliff."""

    @pytest.fixture
    def window(self):
        return ReleaseWindow.for_schedule(start=1000, cliff=60, duration=144, slice_period=36)

    def test_nothing_before_cliff(self, window):
        assert vested_amount(window, 10_000, 999) == 0
        assert vested_amount(window, 10_000, 1000) == 0
        assert vested_amount(window, 10_000, 1059) == 0

    def test_cliff_end_vests_completed_slices_since_start(self, window):
        # 60 seconds elapsed = one full 36-second slice
        assert vested_amount(window, 10_000, 1060) == 2500

    def test_slices_step_discretely(self, window):
        assert vested_amount(window, 10_000, 1071) == 2500
        assert vested_amount(window, 10_000, 1072) == 5000
        assert vested_amount(window, 10_000, 1143) == 7500

    def test_full_total_at_end_without_dust(self, window):
        assert vested_amount(window, 10_000, 1144) == 10_000
        assert vested_amount(window, 10_001, 1144) == 10_001
        assert vested_amount(window, 10_000, 10**9) == 10_000

    def test_floor_division(self):
        window = ReleaseWindow.for_schedule(start=0, cliff=0, duration=3, slice_period=1)
        assert vested_amount(window, 10, 1) == 3
        assert vested_amount(window, 10, 2) == 6
        assert vested_amount(window, 10, 3) == 10

    def test_revocation_freezes_evaluation_time(self):
        window = ReleaseWindow.for_schedule(
            start=1000, cliff=60, duration=144, slice_period=36, revoked_at=1080
        )
        assert vested_amount(window, 10_000, 1080) == 5000
        assert vested_amount(window, 10_000, 1144) == 5000
        assert vested_amount(window, 10_000, 10**9) == 5000

    def test_revocation_before_cliff_vests_nothing(self):
        window = ReleaseWindow.for_schedule(
            start=1000, cliff=60, duration=144, slice_period=36, revoked_at=1030
        )
        assert vested_amount(window, 10_000, 5000) == 0


class TestSaleWindow:
    """Intervals counted from the end of the cliff."""

    def test_no_release_until_first_interval_after_cliff(self):
        window = ReleaseWindow.for_sale(activated_at=0, cliff=90, interval=30, vesting_duration=360)
        assert vested_amount(window, 3600, 89) == 0
        assert vested_amount(window, 3600, 90) == 0
        assert vested_amount(window, 3600, 119) == 0

    def test_intervals_after_cliff(self):
        window = ReleaseWindow.for_sale(activated_at=0, cliff=90, interval=30, vesting_duration=360)
        assert vested_amount(window, 3600, 120) == 300
        assert vested_amount(window, 3600, 90 + 30 * 6) == 1800
        assert vested_amount(window, 3600, 450) == 3600

    def test_claimable_after_cliff_plus_one_interval(self):
        # total / (vesting_duration / interval)
        window = ReleaseWindow.for_sale(activated_at=500, cliff=100, interval=50, vesting_duration=500)
        assert vested_amount(window, 1000, 650) == 1000 // (500 // 50)


class TestPoolWindow:
    """The launch instant completes phase one."""

    @pytest.fixture
    def window(self):
        return ReleaseWindow.for_pool(launch_time=100, interval=4 * WEEK, total_phases=23)

    def test_launch_instant_counts_as_first_phase(self, window):
        assert elapsed_slices(window, 100) == 1
        assert vested_amount(window, 2300, 100) == 100

    def test_before_launch(self, window):
        assert elapsed_slices(window, 99) == 0
        assert vested_amount(window, 2300, 99) == 0

    def test_second_phase(self, window):
        assert vested_amount(window, 2300, 100 + 4 * WEEK - 1) == 100
        assert vested_amount(window, 2300, 100 + 4 * WEEK) == 200

    def test_last_phase_starts_after_twenty_two_intervals(self, window):
        assert vested_amount(window, 2300, 100 + 22 * 4 * WEEK - 1) == 2200
        assert vested_amount(window, 2300, 100 + 22 * 4 * WEEK) == 2300


class TestReleasableAmount:

    def test_net_of_released(self):
        window = ReleaseWindow.for_schedule(start=0, cliff=0, duration=100, slice_period=10)
        assert releasable_amount(window, 1000, 300, 50) == 200

    def test_never_negative(self):
        window = ReleaseWindow.for_schedule(start=0, cliff=0, duration=100, slice_period=10)
        assert releasable_amount(window, 1000, 900, 50) == 0

    def test_never_exceeds_remaining(self):
        window = ReleaseWindow.for_schedule(start=0, cliff=0, duration=100, slice_period=10)
        assert releasable_amount(window, 1000, 400, 10**6) == 600


class TestWindowValidation:

    def test_rejects_zero_slice_period(self):
        with pytest.raises(ValueError):
            ReleaseWindow(origin=0, cliff_end=0, slice_period=0, span=100)

    def test_rejects_zero_span(self):
        with pytest.raises(ValueError):
            ReleaseWindow(origin=0, cliff_end=0, slice_period=10, span=0)

    def test_rejects_cliff_before_origin(self):
        with pytest.raises(ValueError):
            ReleaseWindow(origin=100, cliff_end=50, slice_period=10, span=100)

    def test_end(self):
        window = ReleaseWindow.for_schedule(start=10, cliff=0, duration=90, slice_period=1)
        assert window.end == 100
