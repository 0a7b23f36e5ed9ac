"""
Authentication service: registration, login and session token verification.

Every new registrant becomes the root of a fresh organization whose id is the
registrant's own user id. Session tokens carry the user id, organization and
role; verification always re-reads the user so deleted accounts lose access.
"""
from dataclasses import dataclass
from functools import lru_cache
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookhub.core.config import Settings
from bookhub.core.errors import Conflict, ConfigurationError, Unauthenticated
from bookhub.core.roles import Role
from bookhub.core.security import create_token, decode_token, hash_password, verify_password
from bookhub.models.user import User


logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@lru_cache(maxsize=None)
def _placeholder_hash(rounds: int) -> str:
    """Stand-in hash verified against when no user has the given email."""
    return hash_password("placeholder-password-never-issued", rounds)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    organization_id: int
    role: str


class Authenticator:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def register(self, name: str, email: str, password: str) -> User:
        email = email.strip().lower()
        if self.db.query(User).filter(User.email == email).first():
            raise Conflict("Email already exists")

        user = User(
            name=name,
            email=email,
            hashed_password=hash_password(password, self.settings.password_hash_rounds),
            role=Role.admin.value,
        )
        self.db.add(user)
        try:
            self.db.flush()  # Get user.id before committing
            user.organization_id = user.id
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration with the same email
            self.db.rollback()
            raise Conflict("Email already exists")
        self.db.refresh(user)
        logger.info("Registered user id=%s organization=%s", user.id, user.organization_id)
        return user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        email = email.strip().lower()
        user = self.db.query(User).filter(User.email == email).first()
        # Unknown email and wrong password are indistinguishable to the caller
        hashed = user.hashed_password if user else _placeholder_hash(self.settings.password_hash_rounds)
        if not verify_password(password, hashed) or not user:
            logger.warning("Failed login attempt")
            raise Unauthenticated(INVALID_CREDENTIALS)

        if not self.settings.jwt_secret:
            raise ConfigurationError("JWT secret is not configured")

        token = create_token(
            str(user.id),
            self.settings.jwt_secret,
            self.settings.jwt_algorithm,
            self.settings.access_token_expire_minutes,
            token_type="access",
            extra_claims={"org": user.organization_id, "role": user.role},
        )
        logger.info("User id=%s logged in", user.id)
        return token, user

    def verify(self, token: Optional[str]) -> TokenClaims:
        return self._claims_for(self.resolve_user(token))

    def resolve_user(self, token: Optional[str]) -> User:
        """Validate ``token`` and return the user it was issued to."""
        if not token:
            raise Unauthenticated("No token provided")
        if not self.settings.jwt_secret:
            raise ConfigurationError("JWT secret is not configured")

        payload = decode_token(token, self.settings.jwt_secret, self.settings.jwt_algorithm)
        if not payload or payload.get("type") != "access":
            raise Unauthenticated("Invalid token")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise Unauthenticated("Invalid token")

        user = self.db.get(User, user_id)
        if not user:
            raise Unauthenticated("Invalid token")
        return user

    @staticmethod
    def _claims_for(user: User) -> TokenClaims:
        # The stored organization is authoritative over the token claim
        return TokenClaims(user_id=user.id, organization_id=user.organization_id, role=user.role)
