import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from bookhub.core.config import Settings, get_settings
from bookhub.core.database import get_db
from bookhub.core.errors import Unauthenticated
from bookhub.models.user import User
from bookhub.services.auth_service import Authenticator
from bookhub.services.book_store import TenantBookStore
from bookhub.services.image_storage import CloudinaryImageStorage, ImageStorage


logger = logging.getLogger(__name__)


def get_authenticator(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Authenticator:
    return Authenticator(db, settings)


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    authenticator: Authenticator = Depends(get_authenticator),
) -> User:
    try:
        return authenticator.resolve_user(token)
    except Unauthenticated as exc:
        logger.warning("Rejected request: %s", exc.detail)
        raise


def get_book_store(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TenantBookStore:
    return TenantBookStore(db, user.organization_id)


def get_image_storage(settings: Settings = Depends(get_settings)) -> ImageStorage:
    return CloudinaryImageStorage(settings)
