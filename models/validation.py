from typing import Any, Dict, List, Mapping, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from utils.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def violations_from_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic/FastAPI error dicts into {field, message} pairs."""
    violations = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        violations.append({"field": ".".join(loc), "message": message})
    return violations


def parse_request(model: Type[ModelT], payload: Mapping[str, Any]) -> ModelT:
    """Validate a raw payload into a typed request, raising ValidationError with every violation."""
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        violations = violations_from_errors(exc.errors())
        raise ValidationError(violations[0]["message"] if violations else "invalid request", violations) from exc
