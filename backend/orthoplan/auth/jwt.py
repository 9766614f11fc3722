"""JWT token creation and decoding.

Token claims:
  - sub:        user ID
  - tenant_id:  tenant the user belonged to when the token was issued
  - type:       "access"
  - exp:        expiry timestamp

Permissions are deliberately NOT embedded: they are loaded fresh on every
request so that a revoked role stops working immediately.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from orthoplan.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    tenant_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "tenant_id": tenant_id,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
