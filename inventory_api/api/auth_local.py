"""Bearer tokens naming the acting user recorded on ledger entries."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException

from inventory_api.core_settings import get_settings

BEARER_PREFIX = "Bearer "
ACTOR_CLAIM = "sub"


def issue_actor_token(actor: str) -> Dict[str, Any]:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    claims = {ACTOR_CLAIM: actor, "iat": now, "exp": now + lifetime}
    return {
        "access_token": jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG),
        "token_type": "bearer",
        "expires_in": int(lifetime.total_seconds()),
    }


def actor_from_authorization(authorization: Optional[str]) -> Optional[str]:
    """Actor named by a bearer token; None when the header carries no bearer token."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    settings = get_settings()
    try:
        claims = jwt.decode(
            authorization[len(BEARER_PREFIX):],
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"require": ["exp", ACTOR_CLAIM]},
        )
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token", headers={"WWW-Authenticate": "Bearer"})
    return claims[ACTOR_CLAIM]
