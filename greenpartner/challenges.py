"""Challenge joining, completion checks and progress reporting."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .badges import award_badge, evaluate_and_award, list_badges
from .errors import ChallengeActionRefused, MalformedOrder, MissingChallengeOrUser
from .locks import mutate_user
from .models import Challenge, User
from .orders import normalize_history, normalize_order
from .progress import ChallengeProgress, carbon_in_window, has_badge, is_joined, measure_progress, same_id, should_complete
from .windows import WEEKLY, current_time, window_for


logger = logging.getLogger(__name__)


DEFAULT_CHALLENGES: List[Dict] = [
    {
        "name": "Daily Green Pick",
        "description": "Buy at least one eco-friendly product today.",
        "frequency": "daily",
        "type": "eco_purchase",
        "target_value": 1,
        "reward_badge": {
            "name": "Daily Green Pick",
            "description": "Bought an eco-friendly product in a single day.",
            "iconUrl": "/badges/daily-green-pick.png",
        },
    },
    {
        "name": "Weekly CO₂ Saver",
        "description": "Save at least 5 kg of CO₂ with your orders this week.",
        "frequency": "weekly",
        "type": "carbon_saving",
        "target_value": 5,
        "reward_badge": {
            "name": "Weekly CO₂ Saver",
            "description": "Saved 5 kg of CO₂ in one week.",
            "iconUrl": "/badges/weekly-co2-saver.png",
        },
    },
    {
        "name": "Monthly Eco Champion",
        "description": "Buy 10 eco-friendly products this month.",
        "frequency": "monthly",
        "type": "eco_purchase",
        "target_value": 10,
        "reward_badge": {
            "name": "Monthly Eco Champion",
            "description": "Bought 10 eco-friendly products in one month.",
            "iconUrl": "/badges/monthly-eco-champion.png",
        },
    },
]


def ensure_default_challenges(db: Session) -> List[Challenge]:
    """Ensure default challenges are present in DB."""

    existing = {c.name: c for c in db.query(Challenge).all()}
    out: List[Challenge] = []
    for item in DEFAULT_CHALLENGES:
        row = existing.get(item["name"])
        if not row:
            row = Challenge(is_active=True, **item)
            db.add(row)
            db.flush()
        out.append(row)
    db.commit()
    return out


def serialize_challenge(challenge: Challenge) -> Dict:
    return {
        "id": challenge.id,
        "name": challenge.name,
        "description": challenge.description or "",
        "frequency": challenge.frequency,
        "type": challenge.type,
        "targetValue": challenge.target_value,
        "rewardBadge": challenge.reward_badge or {},
        "isActive": bool(challenge.is_active),
        "startDate": challenge.start_date.isoformat() if challenge.start_date else None,
        "endDate": challenge.end_date.isoformat() if challenge.end_date else None,
    }


def _progress_entry(challenge: Challenge, progress: ChallengeProgress, completed: bool) -> Dict:
    data = serialize_challenge(challenge)
    data.update(
        {
            "targetValue": progress.target,
            "status": "completed" if completed else "active",
            "progress": progress.target if completed else progress.progress,
            "target": progress.target,
            "progressText": "Completed!" if completed else progress.description,
        }
    )
    return data


def _get_challenge(db: Session, challenge_id: int) -> Challenge:
    challenge = db.get(Challenge, challenge_id)
    if not challenge:
        raise MissingChallengeOrUser(f"Challenge {challenge_id} not found")
    return challenge


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise MissingChallengeOrUser(f"User {user_id} not found")
    return user


def active_challenges(db: Session) -> List[Challenge]:
    return db.query(Challenge).filter_by(is_active=True).order_by(Challenge.id).all()


def list_active_challenges(db: Session) -> List[Dict]:
    ensure_default_challenges(db)
    return [serialize_challenge(c) for c in active_challenges(db)]


def create_challenge(db: Session, **fields) -> Challenge:
    challenge = Challenge(**fields)
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


def join_challenge(db: Session, user_id: int, challenge_id: int) -> List:
    challenge = _get_challenge(db, challenge_id)
    if not challenge.is_active:
        raise ChallengeActionRefused("Challenge is not active")

    def work(user: User) -> List:
        if has_badge(user, challenge.id):
            raise ChallengeActionRefused("Challenge already completed")
        if not is_joined(user, challenge.id):
            user.current_challenges = list(user.current_challenges or []) + [challenge.id]
        return list(user.current_challenges)

    return mutate_user(db, user_id, work)


def complete_challenge(db: Session, user_id: int, challenge_id: int, now: Optional[datetime] = None) -> List[Dict]:
    """Award the challenge badge without checking progress (manual completion)."""

    now = now or current_time()
    challenge = _get_challenge(db, challenge_id)

    def work(user: User) -> List[Dict]:
        if not is_joined(user, challenge.id):
            raise ChallengeActionRefused("You must join the challenge first")
        if has_badge(user, challenge.id):
            raise ChallengeActionRefused("Challenge already completed")
        award_badge(user, challenge, now)
        return list(user.badges)

    return mutate_user(db, user_id, work)


def check_completion(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict:
    """Re-run completion checks for every active challenge against stored orders."""

    now = now or current_time()

    def work(user: User) -> Dict:
        challenges = active_challenges(db)
        awarded = evaluate_and_award(user, challenges, now)
        names = [
            c.name for badge in awarded for c in challenges if same_id(c.id, badge.challenge_id)
        ]
        return {
            "message": f"Checked challenges. {len(names)} challenges completed.",
            "completedChallenges": names,
            "badges": list(user.badges or []),
        }

    return mutate_user(db, user_id, work)


def challenge_progress_report(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict:
    """Progress for every challenge the user has joined.

    A challenge found complete here is awarded on the spot.
    """

    now = now or current_time()

    def work(user: User) -> Dict:
        orders = normalize_history(user.orders or [])
        out = []
        for challenge in db.query(Challenge).order_by(Challenge.id).all():
            if not is_joined(user, challenge.id):
                continue
            try:
                progress = measure_progress(orders, challenge, now)
                completed = has_badge(user, challenge.id)
                if not completed and should_complete(user, challenge, now, orders):
                    award_badge(user, challenge, now)
                    completed = True
            except Exception:
                logger.exception("Progress check failed for challenge %s", challenge.id)
                continue
            out.append(_progress_entry(challenge, progress, completed))
        return {
            "reply": "Here are your current challenges and badges!",
            "challenges": out,
            "badges": list(user.badges or []),
        }

    return mutate_user(db, user_id, work)


def user_profile(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict:
    now = now or current_time()
    user = _get_user(db, user_id)
    records = list(user.orders or [])
    orders = normalize_history(records)
    weekly = carbon_in_window(orders, window_for(now, WEEKLY))

    order_rows = []
    for record in records:
        row = dict(record)
        try:
            row["normalizedDate"] = normalize_order(record).date.isoformat()
        except MalformedOrder:
            row["normalizedDate"] = None
        order_rows.append(row)

    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "carbonSaved": user.carbon_saved or 0.0,
        "ecoScore": user.eco_score or 0.0,
        "moneySaved": user.money_saved or 0.0,
        "totalOrders": len(records),
        "totalBadges": len(user.badges or []),
        "weeklyCo2Saved": weekly,
        "currentChallenges": list(user.current_challenges or []),
        "badges": [badge.to_dict() for badge in list_badges(user)],
        "activeChallenges": [serialize_challenge(c) for c in active_challenges(db)],
        "orders": order_rows,
    }
