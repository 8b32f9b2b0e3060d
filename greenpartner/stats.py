"""Order ingestion: cumulative user stats followed by challenge checks."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from .badges import Badge, evaluate_and_award
from .eco import eco_signals
from .locks import mutate_user
from .models import Challenge, User
from .orders import normalize_order
from .progress import has_badge, is_joined, same_id
from .windows import current_time


logger = logging.getLogger(__name__)


def _num(value, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _item_record(raw: Mapping[str, Any], quantity=None) -> Dict[str, Any]:
    eco_score = _num(raw.get("ecoScore"))
    return {
        "name": raw.get("name"),
        "quantity": _num(quantity if quantity is not None else raw.get("quantity"), 1.0),
        "price": _num(raw.get("price")),
        "carbonFootprint": _num(raw.get("carbonFootprint")),
        "ecoScore": eco_score,
        "isEcoFriendly": eco_signals(raw.get("isEcoFriendly"), eco_score),
        "category": raw.get("category"),
    }


def _record(items: List[Dict[str, Any]], total_amount, total_eco, total_carbon, money_saved, now: datetime) -> Dict[str, Any]:
    stamp = now.isoformat()
    name = items[0]["name"] if items else ""
    if len(items) > 1:
        name = f"{name} +{len(items) - 1} more items"
    return {
        "items": items,
        "totalAmount": total_amount,
        "totalEcoScore": total_eco,
        "totalCarbonSaved": total_carbon,
        "moneySaved": money_saved,
        "orderDate": stamp,
        "date": stamp,
        "status": "completed",
        "summary": {
            "name": name,
            "price": total_amount,
            "carbonFootprint": total_carbon,
            "date": stamp,
            "status": "completed",
        },
        "isEcoFriendly": any(item["isEcoFriendly"] for item in items),
        "ecoScore": total_eco,
        "carbonFootprint": total_carbon,
    }


def build_purchase_record(product: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    """Order record for a single-product "buy now" purchase."""

    item = _item_record(product, quantity=1)
    return _record([item], item["price"], item["ecoScore"], item["carbonFootprint"], 0.0, now)


def build_checkout_record(
    items: Iterable[Mapping[str, Any]],
    now: datetime,
    total_amount: Optional[float] = None,
    total_eco_score: Optional[float] = None,
    total_carbon_saved: Optional[float] = None,
    money_saved: Optional[float] = None,
) -> Dict[str, Any]:
    """Order record for a cart checkout; missing totals are quantity-weighted sums."""

    rows = [_item_record(raw) for raw in items]
    if total_amount is None:
        total_amount = sum(r["price"] * r["quantity"] for r in rows)
    if total_eco_score is None:
        total_eco_score = sum(r["ecoScore"] * r["quantity"] for r in rows)
    if total_carbon_saved is None:
        total_carbon_saved = sum(r["carbonFootprint"] * r["quantity"] for r in rows)
    return _record(rows, float(total_amount), float(total_eco_score), float(total_carbon_saved), money_saved, now)


def auto_join(user, challenges: Iterable) -> List:
    joined = []
    current = list(user.current_challenges or [])
    for challenge in challenges:
        if not challenge.is_active:
            continue
        if is_joined(user, challenge.id) or has_badge(user, challenge.id):
            continue
        current.append(challenge.id)
        joined.append(challenge.id)
    if joined:
        user.current_challenges = current
    return joined


def _current_challenge_objects(user, challenges: Iterable) -> List:
    known = list(challenges)
    out = []
    for cid in list(user.current_challenges or []):
        match = next((c for c in known if same_id(c.id, cid)), None)
        if match is None:
            logger.warning("Challenge %s of user %s not found; skipping", cid, getattr(user, "id", None))
            continue
        out.append(match)
    return out


def apply_order(user, record: Mapping[str, Any], challenges: Iterable, now: datetime) -> List[Badge]:
    """Append ``record`` to the user's history and update cumulative stats.

    Then joins the user to every active challenge not yet joined or completed
    and runs the completion check for each current challenge. Returns the
    badges issued by this order.
    """

    order = normalize_order(record)
    challenges = list(challenges)

    user.orders = list(user.orders or []) + [dict(record)]
    user.carbon_saved = (user.carbon_saved or 0.0) + order.carbon_footprint
    user.eco_score = ((user.eco_score or 0.0) + order.eco_score) / 2
    money_saved = record.get("moneySaved")
    if money_saved is not None:
        user.money_saved = (user.money_saved or 0.0) + _num(money_saved)

    auto_join(user, challenges)
    return evaluate_and_award(user, _current_challenge_objects(user, challenges), now)


def ingest_order(db: Session, user_id: int, record: Mapping[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or current_time()

    def work(user: User) -> Dict[str, Any]:
        challenges = db.query(Challenge).all()
        awarded = apply_order(user, record, challenges, now)
        return {"order": dict(record), "awarded": [b.to_dict() for b in awarded]}

    return mutate_user(db, user_id, work)
