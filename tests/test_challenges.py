from datetime import datetime, timedelta, timezone

from greenpartner.challenges import challenge_progress_report, serialize_challenge, user_profile
from greenpartner.models import Challenge, User


NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def _eco_orders(count: int) -> list:
    return [
        {"date": (NOW - timedelta(days=day)).isoformat(), "isEcoFriendly": True}
        for day in range(count)
    ]


def _setup(session, orders) -> tuple:
    monthly = Challenge(
        name="Monthly Eco Champion",
        frequency="monthly",
        target_value=999,
        is_active=True,
        reward_badge={"name": "Champion", "description": "", "iconUrl": None},
    )
    session.add(monthly)
    session.commit()
    user = User(
        name="Ines",
        current_challenges=[monthly.id],
        badges=[],
        orders=orders,
        carbon_saved=0.0,
        eco_score=0.0,
        money_saved=0.0,
    )
    session.add(user)
    session.commit()
    return user, monthly


def test_progress_report_shows_effective_target(session):
    user, monthly = _setup(session, _eco_orders(9))

    entry = challenge_progress_report(session, user.id, NOW)["challenges"][0]

    assert serialize_challenge(monthly)["targetValue"] == 999
    assert entry["targetValue"] == 10
    assert (entry["progress"], entry["target"]) == (9, 10)
    assert entry["status"] == "active"


def test_progress_report_awards_and_reports_completed(session):
    user, monthly = _setup(session, _eco_orders(10))

    report = challenge_progress_report(session, user.id, NOW)
    entry = report["challenges"][0]

    assert entry["status"] == "completed"
    assert entry["progressText"] == "Completed!"
    assert (entry["progress"], entry["targetValue"]) == (10, 10)
    assert [b["challengeId"] for b in report["badges"]] == [monthly.id]
    session.refresh(user)
    assert user.current_challenges == []


def test_profile_lists_badges_with_unreadable_dates(session):
    user, monthly = _setup(session, [])
    user.badges = [{"name": "Champion", "challengeId": monthly.id, "dateEarned": "garbage"}]
    session.commit()

    profile = user_profile(session, user.id, NOW)

    assert profile["totalBadges"] == 1
    assert profile["badges"] == [
        {"name": "Champion", "description": "", "iconUrl": None, "challengeId": monthly.id, "dateEarned": None}
    ]
