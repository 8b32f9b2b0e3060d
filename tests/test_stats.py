from datetime import datetime, timezone

import pytest
from sqlalchemy.orm.exc import StaleDataError

from greenpartner.errors import ConcurrentUpdateError, MissingChallengeOrUser
from greenpartner.locks import LOCK_STRIPES, _user_locks, lock_for, mutate_user
from greenpartner.models import Challenge, User
from greenpartner.stats import build_checkout_record, build_purchase_record, ingest_order


NOW = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)  # Wednesday


def _create_user(session, **fields) -> User:
    user = User(
        name=fields.pop("name", "Ravi"),
        current_challenges=fields.pop("current_challenges", []),
        badges=fields.pop("badges", []),
        orders=fields.pop("orders", []),
        carbon_saved=0.0,
        eco_score=0.0,
        money_saved=0.0,
        **fields,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _create_challenge(session, name: str, frequency: str, target_value: float, is_active: bool = True) -> Challenge:
    challenge = Challenge(
        name=name,
        frequency=frequency,
        target_value=target_value,
        is_active=is_active,
        reward_badge={"name": f"{name} badge", "description": name, "iconUrl": None},
    )
    session.add(challenge)
    session.commit()
    session.refresh(challenge)
    return challenge


def test_purchase_updates_stats_and_awards_daily_badge_once(session):
    user = _create_user(session)
    daily = _create_challenge(session, "Daily", "daily", 1)
    weekly = _create_challenge(session, "Weekly", "weekly", 5)
    retired = _create_challenge(session, "Retired", "daily", 1, is_active=False)

    product = {"name": "Bamboo brush", "price": 4.0, "carbonFootprint": 1.0, "ecoScore": 4}
    result = ingest_order(session, user.id, build_purchase_record(product, NOW), NOW)

    assert [b["challengeId"] for b in result["awarded"]] == [daily.id]
    session.refresh(user)
    assert user.carbon_saved == 1.0
    assert user.eco_score == 2.0
    assert user.current_challenges == [weekly.id]
    assert retired.id not in user.current_challenges

    second = ingest_order(session, user.id, build_purchase_record({**product, "ecoScore": 8}, NOW), NOW)
    assert second["awarded"] == []
    session.refresh(user)
    assert user.eco_score == 5.0
    assert len(user.orders) == 2
    assert [b["challengeId"] for b in user.badges] == [daily.id]
    # completed challenge is not joined again
    assert daily.id not in user.current_challenges


def test_checkout_reaches_weekly_target(session):
    user = _create_user(session)
    weekly = _create_challenge(session, "Weekly", "weekly", 5)

    items = [{"name": "Jute bag", "price": 2.0, "quantity": 2, "carbonFootprint": 1.0}]
    first = build_checkout_record(items, NOW, money_saved=1.5)
    assert first["totalCarbonSaved"] == 2.0
    assert first["totalAmount"] == 4.0
    ingest_order(session, user.id, first, NOW)
    ingest_order(session, user.id, build_checkout_record(items, NOW), NOW)
    session.refresh(user)
    assert user.carbon_saved == 4.0
    assert user.money_saved == 1.5
    assert user.badges == []

    last = build_checkout_record([{"name": "Refill", "price": 1.0, "carbonFootprint": 1.5}], NOW)
    result = ingest_order(session, user.id, last, NOW)
    assert [b["challengeId"] for b in result["awarded"]] == [weekly.id]
    session.refresh(user)
    assert user.current_challenges == []


def test_checkout_uses_supplied_totals(session):
    record = build_checkout_record(
        [{"name": "Soap", "price": 3.0, "carbonFootprint": 0.2, "isEcoFriendly": True}],
        NOW,
        total_amount=2.5,
        total_eco_score=6,
        total_carbon_saved=0.9,
    )
    assert record["totalAmount"] == 2.5
    assert record["carbonFootprint"] == 0.9
    assert record["ecoScore"] == 6
    assert record["isEcoFriendly"] is True
    assert record["summary"]["name"] == "Soap"


def test_missing_challenge_id_is_skipped(session):
    daily = _create_challenge(session, "Daily", "daily", 1)
    user = _create_user(session, current_challenges=[404])

    result = ingest_order(session, user.id, build_purchase_record({"name": "Leaf", "isEcoFriendly": True}, NOW), NOW)

    assert [b["challengeId"] for b in result["awarded"]] == [daily.id]
    session.refresh(user)
    assert user.current_challenges == [404]


def test_unknown_user(session):
    with pytest.raises(MissingChallengeOrUser):
        ingest_order(session, 999, build_purchase_record({"name": "Leaf"}, NOW), NOW)


def test_stale_commit_is_retried(session, monkeypatch):
    user = _create_user(session)
    real_commit = session.commit
    calls = {"commit": 0}

    def flaky_commit():
        calls["commit"] += 1
        if calls["commit"] == 1:
            raise StaleDataError("simulated concurrent update")
        real_commit()

    monkeypatch.setattr(session, "commit", flaky_commit)
    ingest_order(session, user.id, build_purchase_record({"name": "Leaf", "carbonFootprint": 2}, NOW), NOW)

    assert calls["commit"] == 2
    session.refresh(user)
    assert len(user.orders) == 1
    assert user.carbon_saved == 2.0


def test_retries_are_bounded(session, monkeypatch):
    user = _create_user(session)

    def always_stale():
        raise StaleDataError("simulated concurrent update")

    monkeypatch.setattr(session, "commit", always_stale)
    with pytest.raises(ConcurrentUpdateError):
        mutate_user(session, user.id, lambda u: None, retries=2)


def test_user_locks_come_from_a_fixed_pool():
    assert lock_for(42) is lock_for("42")
    for user_id in range(10_000):
        lock_for(user_id)
    assert len(_user_locks) == LOCK_STRIPES
