from datetime import datetime, timezone

from greenpartner.analysis import df_orders, monthly_carbon_breakdown, summary_carbon


RECORDS = [
    {"date": "2024-03-10T10:00:00Z", "carbonFootprint": 1, "isEcoFriendly": True},
    {"date": "2024-03-11T10:00:00Z", "carbonFootprint": 2},
    {"date": "2024-03-12T09:00:00Z", "carbonFootprint": 0.5},
]


def _labels(agg):
    return [ts.isoformat() for ts in agg["date"]]


def test_week_bins_are_labelled_with_their_monday():
    agg = summary_carbon(df_orders(RECORDS), "week")

    assert _labels(agg) == ["2024-03-04T00:00:00+00:00", "2024-03-11T00:00:00+00:00"]
    assert list(agg["orders"]) == [1, 2]
    assert list(agg["carbon_footprint"]) == [1.0, 2.5]
    assert list(agg["eco_orders"]) == [1, 0]


def test_day_and_month_bins_start_at_midnight_and_the_first():
    df = df_orders(RECORDS)

    days = summary_carbon(df, "day")
    assert _labels(days) == [
        "2024-03-10T00:00:00+00:00",
        "2024-03-11T00:00:00+00:00",
        "2024-03-12T00:00:00+00:00",
    ]

    months = summary_carbon(df, "month")
    assert _labels(months) == ["2024-03-01T00:00:00+00:00"]
    assert list(months["orders"]) == [3]


def test_summary_of_empty_history():
    assert summary_carbon(df_orders([]), "week").empty


def test_monthly_breakdown_uses_item_carbon():
    now = datetime(2024, 3, 20, tzinfo=timezone.utc)
    records = [
        {"orderInfo": {"date": "2024-03-05T08:00:00Z", "items": [{"name": "Jar", "carbonFootprint": 1.25}]}},
        {"date": "2024-03-06T08:00:00Z", "items": [{"name": "Bag", "carbonFootprint": 0.5}, {"name": "Cup", "carbonFootprint": 0.25}]},
        {"date": "2024-02-28T08:00:00Z", "items": [{"name": "Old", "carbonFootprint": 9}]},
    ]

    result = monthly_carbon_breakdown(records, now)

    assert result["total"] == 2.0
    assert [o["orderTotal"] for o in result["breakdown"]] == [1.25, 0.75]
    assert result["reply"] == "Your estimated CO₂ saved this month is 2.00 kg."


def test_monthly_breakdown_without_data():
    result = monthly_carbon_breakdown([], datetime(2024, 3, 20, tzinfo=timezone.utc))
    assert result["total"] == 0.0
    assert result["breakdown"] == []
    assert result["reply"].startswith("No carbon footprint data found")
