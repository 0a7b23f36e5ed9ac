from typing import Dict, Optional

from fastapi import HTTPException, status


class BookHubError(HTTPException):
    """Base class for errors rendered into the JSON error envelope.

    Inherits from FastAPI's HTTPException so routes, dependencies and services
    can raise it directly and the exception handlers in ``main`` format it.
    """

    def __init__(self, status_code: int, detail: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationFailed(BookHubError):
    """Input did not match the expected shape; ``errors`` maps field to message."""

    def __init__(self, errors: Dict[str, str], detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        self.errors = errors


class EmptyBody(BookHubError):
    def __init__(self, detail: str = "Request body cannot be empty"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Unauthenticated(BookHubError):
    """Missing, malformed, expired or otherwise unusable credentials."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Conflict(BookHubError):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class NotFound(BookHubError):
    """Resource is absent, or exists only outside the caller's organization.

    Both cases share this error so cross-tenant existence is never revealed.
    """

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConfigurationError(BookHubError):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
