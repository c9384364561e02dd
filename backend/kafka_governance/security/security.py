from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from kafka_governance.core.config import get_settings

ALGORITHM = "HS256"
ISSUER = "kafka-governance"

_settings = get_settings()

password_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(plaintext: str) -> str:
    return password_context.hash(plaintext)


def verify_password(plaintext: str, password_hash: str | None) -> bool:
    """Users seeded without a password can never log in."""
    if not password_hash:
        return False
    return password_context.verify(plaintext, password_hash)


def create_token(username: str, *, tenant_id: int | None = None) -> str:
    """Issue an access token for ``username``, valid for JWT_EXP_HOURS."""
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=_settings.jwt_exp_hours)
    claims = {
        "sub": username,
        "iss": ISSUER,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if tenant_id is not None:
        claims["tid"] = tenant_id
    return jwt.encode(claims, _settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> str:
    """Return the username in a valid token. Raises JWTError otherwise."""
    claims = jwt.decode(token, _settings.jwt_secret, algorithms=[ALGORITHM], issuer=ISSUER)
    username = claims.get("sub")
    if not username:
        raise JWTError("Token has no subject")
    return str(username)
