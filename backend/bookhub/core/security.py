from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import jwt
from passlib.context import CryptContext


@lru_cache(maxsize=None)
def _password_context(rounds: int) -> CryptContext:
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds,
    )


def hash_password(password: str, rounds: int = 10) -> str:
    return _password_context(rounds).hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    # The cost factor is read from the stored hash, any context verifies it
    return _password_context(10).verify(password, hashed_password)


def create_token(
    subject: str,
    secret_key: str,
    algorithm: str,
    expires_minutes: int,
    token_type: str = "access",
    extra_claims: Optional[dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        **(extra_claims or {}),
        "sub": subject,
        "type": token_type,
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_token(token: str, secret_key: str, algorithm: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except jwt.PyJWTError:
        return None
