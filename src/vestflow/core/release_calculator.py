"""
Time-proportional release math shared by vesting schedules, sale purchases
and the reward pool.

All three variants unlock a total in whole slices of a fixed length and
differ only in where slice counting starts:

- vesting schedules count slices from ``start``; nothing is releasable
  before ``start + cliff``;
- sale purchases count intervals from the end of the cliff;
- the reward pool counts the launch instant itself as a completed phase.

ReleaseWindow captures those differences so the arithmetic lives here once.
Everything is integer arithmetic with floor division.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReleaseWindow:
    """
    Timing parameters of one unlock curve.

    Attributes:
        origin: Instant slice counting starts from
        cliff_end: Nothing vests before this instant
        slice_period: Length of one slice in seconds
        span: Seconds after ``origin`` at which the full total is vested
        count_origin_slice: Treat ``origin`` itself as completing slice one
        frozen_at: Evaluation time is capped here (revocation time)
    """

    origin: int
    cliff_end: int
    slice_period: int
    span: int
    count_origin_slice: bool = False
    frozen_at: int | None = None

    def __post_init__(self):
        if self.slice_period <= 0:
            raise ValueError("Slice period must be a positive number of seconds.")
        if self.span <= 0:
            raise ValueError("Vesting span must be a positive number of seconds.")
        if self.cliff_end < self.origin:
            raise ValueError("Cliff cannot end before slice counting starts.")

    @property
    def end(self) -> int:
        return self.origin + self.span

    @classmethod
    def for_schedule(cls, start: int, cliff: int, duration: int, slice_period: int,
                     revoked_at: int | None = None) -> "ReleaseWindow":
        return cls(
            origin=start,
            cliff_end=start + cliff,
            slice_period=slice_period,
            span=duration,
            frozen_at=revoked_at,
        )

    @classmethod
    def for_sale(cls, activated_at: int, cliff: int, interval: int, vesting_duration: int) -> "ReleaseWindow":
        return cls(
            origin=activated_at + cliff,
            cliff_end=activated_at + cliff,
            slice_period=interval,
            span=vesting_duration,
        )

    @classmethod
    def for_pool(cls, launch_time: int, interval: int, total_phases: int) -> "ReleaseWindow":
        return cls(
            origin=launch_time,
            cliff_end=launch_time,
            slice_period=interval,
            span=interval * total_phases,
            count_origin_slice=True,
        )


def elapsed_slices(window: ReleaseWindow, now: int) -> int:
    """Number of whole slices completed at ``now`` (0 before the cliff ends)."""
    if window.frozen_at is not None:
        now = min(now, window.frozen_at)
    if now < window.cliff_end or now < window.origin:
        return 0
    slices = (now - window.origin) // window.slice_period
    if window.count_origin_slice:
        slices += 1
    return slices


def vested_amount(window: ReleaseWindow, total: int, now: int) -> int:
    """
    Cumulative amount of ``total`` unlocked at ``now``.

    Reaching ``window.end`` vests the whole total regardless of slice
    granularity, so no dust is left behind.
    """
    if total <= 0:
        return 0
    if window.frozen_at is not None:
        now = min(now, window.frozen_at)
    if now < window.cliff_end or now < window.origin:
        return 0
    if now >= window.end:
        return total

    vested_time = elapsed_slices(window, now) * window.slice_period
    if vested_time >= window.span:
        return total
    return total * vested_time // window.span


def releasable_amount(window: ReleaseWindow, total: int, released: int, now: int) -> int:
    """Vested amount net of what was already released; never negative."""
    return max(0, min(total, vested_amount(window, total, now)) - released)
