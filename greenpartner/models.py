from sqlalchemy import (
    Column,
    Integer,
    Float,
    String,
    Boolean,
    DateTime,
    JSON,
)
from datetime import datetime, timezone
from .db import Base

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    current_challenges = Column(JSON, default=list)   # [challenge_id, ...] joined, not yet completed
    badges = Column(JSON, default=list)               # [{name, description, iconUrl, challengeId, dateEarned}]
    orders = Column(JSON, default=list)               # order records, legacy {orderInfo: {...}} or flat shape
    carbon_saved = Column(Float, default=0.0)
    eco_score = Column(Float, default=0.0)            # running average (current + new) / 2
    money_saved = Column(Float, default=0.0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __mapper_args__ = {"version_id_col": version}


class Challenge(Base):
    __tablename__ = "challenges"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    frequency = Column(String, nullable=False)        # daily|weekly|monthly
    type = Column(String, nullable=True)              # eco_purchase|carbon_saving
    target_value = Column(Float, default=1.0)         # count for daily/monthly, kg CO2 for weekly
    is_active = Column(Boolean, default=True, index=True)
    reward_badge = Column(JSON, nullable=True)        # {name, description, iconUrl}
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
