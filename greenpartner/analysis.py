from datetime import datetime
import pandas as pd
from .orders import normalize_history
from .windows import MONTHLY, window_for

# bins are labelled with their first instant; weeks start on Monday
PERIODS = {"day": "D", "week": "W-MON", "month": "MS"}

def df_orders(records) -> pd.DataFrame:
    orders = normalize_history(records)
    if not orders: return pd.DataFrame()
    data = [{
        "date": o.date, "carbon_footprint": o.carbon_footprint,
        "item_carbon": sum(i.carbon_footprint for i in o.items),
        "eco": bool(o.is_eco_friendly), "items": len(o.items),
    } for o in orders]
    return pd.DataFrame(data).sort_values("date")

def summary_carbon(df: pd.DataFrame, period="week"):
    if df.empty: return pd.DataFrame()
    g = df.set_index("date").groupby(pd.Grouper(freq=PERIODS[period], label="left", closed="left"))
    agg = g.agg(
        carbon_footprint=("carbon_footprint", "sum"),
        item_carbon=("item_carbon", "sum"),
        eco_orders=("eco", "sum"),
        orders=("eco", "size"),
    ).reset_index()
    return agg

def monthly_carbon_breakdown(records, now: datetime) -> dict:
    """Item-level CO2 of this month's orders, both order shapes included."""
    window = window_for(now, MONTHLY)
    breakdown, total, found = [], 0.0, False
    for o in normalize_history(records):
        if not window.contains(o.date):
            continue
        order_total = sum(i.carbon_footprint for i in o.items)
        if order_total > 0: found = True
        breakdown.append({
            "date": o.date.isoformat(),
            "items": [{"name": i.name, "carbonFootprint": i.carbon_footprint} for i in o.items],
            "orderTotal": order_total,
        })
        total += order_total
    if not found:
        return {
            "reply": "No carbon footprint data found for this month. Place an order to start tracking your impact!",
            "breakdown": [], "total": 0.0,
        }
    return {"reply": f"Your estimated CO₂ saved this month is {total:.2f} kg.", "breakdown": breakdown, "total": total}
