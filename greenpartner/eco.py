"""Single definition of what counts as an eco-friendly order or line item."""

from __future__ import annotations

from typing import Iterable


def positive_score(value) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def eco_signals(flag, score, items: Iterable = ()) -> bool:
    """Flag is literally true, or score is positive, or any item is eco."""

    if flag is True or positive_score(score):
        return True
    return any(is_eco_item(item) for item in items)


def is_eco_item(item) -> bool:
    return eco_signals(item.is_eco_friendly, item.eco_score)


def is_eco_order(order) -> bool:
    return eco_signals(order.is_eco_friendly, order.eco_score, order.items)
