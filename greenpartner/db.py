import logging
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DB_URL

engine = create_engine(DB_URL, connect_args={"check_same_thread": False} if DB_URL.startswith("sqlite") else {})
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()

def init_db(BaseModel):
    BaseModel.metadata.create_all(bind=engine)


def ensure_users_version_column():
    """Ensure 'version' column exists in 'users' (databases created before optimistic locking)."""
    try:
        with engine.connect() as conn:
            # Only attempt for SQLite
            if DB_URL.startswith("sqlite"):
                res = conn.execute(text("PRAGMA table_info(users)"))
                cols = [row[1] for row in res.fetchall()]
                if cols and "version" not in cols:
                    conn.execute(text("ALTER TABLE users ADD COLUMN version INTEGER NOT NULL DEFAULT 1"))
                    conn.commit()
    except Exception as e:
        # Best-effort; stale rows only lose the concurrency check until next restart
        logging.getLogger(__name__).warning("ensure_users_version_column failed: %s", e)
