"""Canonical view over stored order records.

Orders are stored in two shapes. Older documents nest everything under
``orderInfo``; newer ones keep the fields at the top level::

    {"orderInfo": {"date": ..., "items": [...], "carbonFootprint": 2.0, ...}}
    {"date": ..., "items": [...], "carbonFootprint": 2.0, ...}

Every reader of order history goes through :func:`normalize_order` so both
shapes produce the same :class:`NormalizedOrder`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .eco import eco_signals
from .errors import MalformedOrder
from .windows import engine_zone, localize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: float
    price: float
    carbon_footprint: float
    eco_score: float
    is_eco_friendly: bool


@dataclass(frozen=True)
class NormalizedOrder:
    date: datetime
    items: Tuple[LineItem, ...]
    carbon_footprint: float
    is_eco_friendly: bool
    eco_score: float = 0.0


def _mapping(value) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first_nonzero(*values) -> float:
    # Zero and missing values fall through to the next candidate.
    for value in values:
        number = _number(value)
        if number:
            return number
    return 0.0


def _first_present(*values):
    for value in values:
        if value is not None and value != "":
            return value
    return None


def parse_timestamp(value, tz: Optional[tzinfo] = None) -> datetime:
    """Parse a stored order date into an aware datetime in the engine zone.

    Numbers are epoch milliseconds, the stored form of a JS ``Date``.
    """

    tz = tz or engine_zone()
    if isinstance(value, Mapping) and "$date" in value:
        value = value["$date"]
    if isinstance(value, datetime):
        return localize(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, timezone.utc).astimezone(tz)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedOrder(f"Unparseable order date: {value!r}") from exc
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return localize(datetime.fromisoformat(text), tz)
        except ValueError as exc:
            raise MalformedOrder(f"Unparseable order date: {value!r}") from exc
    raise MalformedOrder(f"Unparseable order date: {value!r}")


def line_item(raw) -> LineItem:
    raw = _mapping(raw)
    quantity = _number(raw.get("quantity"))
    return LineItem(
        name=str(raw.get("name") or ""),
        quantity=quantity if quantity is not None else 1.0,
        price=_number(raw.get("price")) or 0.0,
        carbon_footprint=_number(raw.get("carbonFootprint")) or 0.0,
        eco_score=_number(raw.get("ecoScore")) or 0.0,
        is_eco_friendly=raw.get("isEcoFriendly") is True,
    )


def normalize_order(order: Mapping[str, Any], tz: Optional[tzinfo] = None) -> NormalizedOrder:
    order = _mapping(order)
    info = _mapping(order.get("orderInfo"))

    raw_date = _first_present(
        order.get("orderDate"),
        order.get("date"),
        info.get("date"),
        info.get("orderDate"),
    )
    if raw_date is None:
        raise MalformedOrder("Order has no date")
    when = parse_timestamp(raw_date, tz)

    raw_items = order.get("items") or info.get("items") or []
    if not isinstance(raw_items, (list, tuple)):
        raw_items = []
    items = tuple(line_item(raw) for raw in raw_items)

    carbon = _first_nonzero(
        order.get("carbonFootprint"),
        order.get("totalCarbonSaved"),
        _mapping(order.get("summary")).get("carbonFootprint"),
        info.get("carbonFootprint"),
        info.get("totalCarbonSaved"),
        _mapping(info.get("summary")).get("carbonFootprint"),
    )
    eco_score = _first_nonzero(order.get("ecoScore"), info.get("ecoScore"))
    flag = order.get("isEcoFriendly")
    if flag is None:
        flag = info.get("isEcoFriendly")

    return NormalizedOrder(
        date=when,
        items=items,
        carbon_footprint=carbon,
        is_eco_friendly=eco_signals(flag, eco_score, items),
        eco_score=eco_score,
    )


def normalize_history(records: Iterable[Mapping[str, Any]], tz: Optional[tzinfo] = None) -> List[NormalizedOrder]:
    """Normalize a whole order history, skipping records without a usable date."""

    out: List[NormalizedOrder] = []
    for index, record in enumerate(records or []):
        try:
            out.append(normalize_order(record, tz))
        except MalformedOrder as exc:
            logger.warning("Skipping order #%s: %s", index, exc)
    return out
