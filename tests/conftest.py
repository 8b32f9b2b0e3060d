import os

os.environ["GREENPARTNER_DB_URL"] = "sqlite:///:memory:"
os.environ["ENGINE_TIMEZONE"] = "UTC"
os.environ["ADMIN_API_KEY"] = "supersecret"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from greenpartner.db import Base
from greenpartner import models  # noqa: F401  (registers tables)


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSession = sessionmaker(bind=engine)
    Base.metadata.create_all(bind=engine)
    db_session = TestingSession()
    try:
        yield db_session
    finally:
        db_session.close()
