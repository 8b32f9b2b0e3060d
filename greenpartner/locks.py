"""Per-user critical section around read-modify-write of the user aggregate."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import MAX_COMMIT_RETRIES

from .errors import ConcurrentUpdateError, MissingChallengeOrUser
from .models import User


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fixed pool; users hashing to the same stripe share a lock. Never nest user_lock.
LOCK_STRIPES = 64
_user_locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]


def lock_for(user_id) -> threading.Lock:
    return _user_locks[hash(str(user_id)) % LOCK_STRIPES]


@contextmanager
def user_lock(user_id):
    with lock_for(user_id):
        yield


def mutate_user(
    db: Session,
    user_id: int,
    work: Callable[[User], T],
    retries: Optional[int] = None,
) -> T:
    """Load the user, apply ``work`` and commit, all under the user's lock.

    Commits are checked against ``User.version``; when another writer got
    there first the session is rolled back and ``work`` runs again on the
    fresh row.
    """

    attempts = max(1, retries if retries is not None else MAX_COMMIT_RETRIES)
    with user_lock(user_id):
        for attempt in range(1, attempts + 1):
            user = db.get(User, user_id)
            if not user:
                raise MissingChallengeOrUser(f"User {user_id} not found")
            try:
                result = work(user)
                db.commit()
                return result
            except StaleDataError:
                db.rollback()
                logger.warning("User %s changed concurrently (attempt %s/%s)", user_id, attempt, attempts)
            except Exception:
                db.rollback()
                raise
    raise ConcurrentUpdateError(f"User {user_id} kept changing; gave up after {attempts} attempts")
