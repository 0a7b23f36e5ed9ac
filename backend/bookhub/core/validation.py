import json
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from bookhub.core.errors import EmptyBody, ValidationFailed


ModelT = TypeVar("ModelT", bound=BaseModel)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "form"}


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Collapse pydantic error entries into ``{field: message}``, first message wins."""
    formatted: Dict[str, str] = {}
    for error in errors:
        loc = [part for part in error.get("loc", ()) if part not in _LOCATION_PREFIXES]
        field = str(loc[0]) if loc else "body"
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        formatted.setdefault(field, message)
    return formatted


def parse_payload(model: Type[ModelT], payload: Any) -> ModelT:
    if payload is None or (isinstance(payload, dict) and not payload):
        raise EmptyBody()
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(format_validation_errors(exc.errors()))


def load_json_field(raw: Optional[str], field: str = "data") -> Optional[Any]:
    """Decode a JSON document sent inside a multipart form field."""
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationFailed({field: "Must be a valid JSON document"})
