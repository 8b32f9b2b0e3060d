"""Challenge progress aggregation and completion decisions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from .eco import is_eco_order
from .errors import UnknownChallengeFrequency
from .orders import NormalizedOrder, normalize_history
from .windows import DAILY, MONTHLY, WEEKLY, Window, window_for


logger = logging.getLogger(__name__)


# Daily and monthly challenges ignore the stored target value.
DAILY_TARGET = 1
MONTHLY_TARGET = 10


@dataclass
class ChallengeProgress:
    frequency: str
    progress: float
    target: float
    description: str
    completable: bool = True

    @property
    def reached(self) -> bool:
        return self.completable and self.progress >= self.target


def same_id(left, right) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def is_joined(user, challenge_id) -> bool:
    return any(same_id(cid, challenge_id) for cid in (user.current_challenges or []))


def has_badge(user, challenge_id) -> bool:
    return any(
        isinstance(badge, Mapping) and same_id(badge.get("challengeId"), challenge_id)
        for badge in (user.badges or [])
    )


def _fmt(value: float) -> str:
    return f"{float(value):g}"


def _in_window(orders: Iterable[NormalizedOrder], window: Window):
    return [order for order in orders if window.contains(order.date)]


def carbon_in_window(orders: Iterable[NormalizedOrder], window: Window) -> float:
    return sum(order.carbon_footprint for order in _in_window(orders, window))


def aggregate_progress(orders: Sequence[NormalizedOrder], window: Window, challenge) -> ChallengeProgress:
    frequency = challenge.frequency
    matching = _in_window(orders, window)

    if frequency == DAILY:
        count = sum(1 for order in matching if is_eco_order(order))
        return ChallengeProgress(
            frequency,
            count,
            DAILY_TARGET,
            f"Eco-friendly products bought today: {count}/{DAILY_TARGET}",
        )

    if frequency == WEEKLY:
        co2 = carbon_in_window(orders, window)
        target = float(challenge.target_value or 0)
        return ChallengeProgress(
            frequency,
            co2,
            target,
            f"CO₂ saved this week: {co2:.2f}/{_fmt(target)} kg",
        )

    if frequency == MONTHLY:
        count = sum(1 for order in matching if is_eco_order(order))
        return ChallengeProgress(
            frequency,
            count,
            MONTHLY_TARGET,
            f"Eco-friendly products bought this month: {count}/{MONTHLY_TARGET}",
        )

    raise UnknownChallengeFrequency(frequency)


def measure_progress(orders: Sequence[NormalizedOrder], challenge, now: datetime) -> ChallengeProgress:
    """Window + aggregate for one challenge; unknown frequencies measure as zero."""

    try:
        window = window_for(now, challenge.frequency)
        return aggregate_progress(orders, window, challenge)
    except UnknownChallengeFrequency as exc:
        logger.warning("Challenge %s: %s", getattr(challenge, "id", None), exc)
        return ChallengeProgress(
            str(challenge.frequency),
            0,
            float(challenge.target_value or 0),
            "",
            completable=False,
        )


def should_complete(
    user,
    challenge,
    now: datetime,
    orders: Optional[Sequence[NormalizedOrder]] = None,
) -> bool:
    """Decide whether ``challenge`` has just been completed by ``user``.

    Inactive, not-joined and already-badged challenges are skipped silently.
    """

    if not challenge.is_active:
        return False
    if not is_joined(user, challenge.id) or has_badge(user, challenge.id):
        return False
    if orders is None:
        orders = normalize_history(user.orders or [])
    return measure_progress(orders, challenge, now).reached
