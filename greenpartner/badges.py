"""Badge issuing for completed challenges."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import MalformedOrder
from .orders import normalize_history, parse_timestamp
from .progress import has_badge, same_id, should_complete


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Badge:
    name: str
    description: str
    icon_url: Optional[str]
    challenge_id: object
    date_earned: Optional[datetime]

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "iconUrl": self.icon_url,
            "challengeId": self.challenge_id,
            "dateEarned": self.date_earned.isoformat() if self.date_earned else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Badge":
        earned = data.get("dateEarned")
        try:
            date_earned = parse_timestamp(earned) if earned is not None else None
        except MalformedOrder:
            logger.warning("Badge for challenge %s has unreadable dateEarned %r", data.get("challengeId"), earned)
            date_earned = None
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            icon_url=data.get("iconUrl"),
            challenge_id=data.get("challengeId"),
            date_earned=date_earned,
        )


def badge_for(challenge, now: datetime) -> Badge:
    reward = challenge.reward_badge or {}
    return Badge(
        name=reward.get("name") or challenge.name,
        description=reward.get("description") or "",
        icon_url=reward.get("iconUrl"),
        challenge_id=challenge.id,
        date_earned=now,
    )


def award_badge(user, challenge, now: datetime) -> Optional[Badge]:
    """Move ``challenge`` from the user's current challenges into a badge.

    Both lists are rebuilt and assigned together. Awarding an already badged
    challenge only drops it from the current list and returns ``None``.
    """

    remaining = [cid for cid in (user.current_challenges or []) if not same_id(cid, challenge.id)]
    if has_badge(user, challenge.id):
        if len(remaining) != len(user.current_challenges or []):
            user.current_challenges = remaining
        return None

    badge = badge_for(challenge, now)
    user.current_challenges, user.badges = remaining, list(user.badges or []) + [badge.to_dict()]
    logger.info("Challenge %s completed for user %s", challenge.name, getattr(user, "id", None))
    return badge


def evaluate_and_award(user, challenges: Iterable, now: datetime) -> List[Badge]:
    """Run the completion check for every challenge, awarding where due.

    A failure while checking one challenge is logged and does not stop the
    remaining ones.
    """

    orders = normalize_history(user.orders or [])
    awarded: List[Badge] = []
    for challenge in challenges:
        try:
            if not should_complete(user, challenge, now, orders):
                continue
            badge = award_badge(user, challenge, now)
        except Exception:
            logger.exception("Completion check failed for challenge %s", getattr(challenge, "id", None))
            continue
        if badge:
            awarded.append(badge)
    return awarded


def list_badges(user) -> List[Badge]:
    return [Badge.from_dict(b) for b in (user.badges or []) if isinstance(b, Mapping)]
