import json
from dataclasses import dataclass, field
from typing import Set

from fastapi import Depends, Header, HTTPException

from config import ADMIN_API_KEY


ROLE_CHALLENGES_WRITE = "challenges:write"


@dataclass
class CallerIdentity:
    """The request-handling service calling into the engine."""

    api_key: str
    roles: Set[str] = field(default_factory=set)
    operator: str | None = None


def _parse_roles(raw: str | None) -> Set[str]:
    raw = (raw or "").strip()
    if not raw:
        return set()
    # JSON list or comma separated
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return {v.strip().lower() for v in parsed if isinstance(v, str) and v.strip()}
    return {part.strip().lower() for part in raw.split(",") if part.strip()}


async def require_api_key(
    x_api_key: str = Header(None),
    x_admin_roles: str = Header(default=""),
    x_admin_user: str | None = Header(default=None),
) -> CallerIdentity:
    if x_api_key != ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return CallerIdentity(api_key=x_api_key, roles=_parse_roles(x_admin_roles), operator=x_admin_user)


def require_roles(*required_roles: str):
    required = {r.lower() for r in required_roles if r}

    async def _checker(identity: CallerIdentity = Depends(require_api_key)) -> CallerIdentity:
        if "admin" in identity.roles or required <= identity.roles:
            return identity
        raise HTTPException(status_code=403, detail="Missing required roles: " + ", ".join(sorted(required)))

    return _checker
