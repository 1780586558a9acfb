"""
Natours Backend: Shared Pydantic Schema Helpers
================================================

What:  The camelCase base model, common response shapes and the helper that
       turns pydantic validation errors into the API's 400 message.
Why:   The public JSON contract is camelCase (ratingsAverage, imageCover,
       passwordConfirm) while the Python side stays snake_case.
How:   `alias_generator=to_camel` + `populate_by_name=True`: requests may use
       either spelling, responses are dumped with `by_alias=True`.
"""

from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from natours.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class CamelModel(BaseModel):
    """Base for every request and response schema."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


def _clean_message(message: str) -> str:
    # pydantic prefixes messages from custom validators with "Value error, "
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


def format_validation_errors(errors: Sequence[Dict[str, Any]]) -> str:
    """
    Collapse pydantic/FastAPI error dicts into one readable sentence.

    Example:
        [{"loc": ("body", "price"), "msg": "Field required"}]
        → "Invalid input data. price: Field required."
    """
    parts: List[str] = []
    for error in errors:
        loc = [str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path")]
        message = _clean_message(error.get("msg", "is invalid"))
        parts.append(f"{'.'.join(loc)}: {message}" if loc else message)
    text = ". ".join(p.rstrip(".") for p in parts)
    if not text.endswith(("!", "?")):
        text += "."
    return "Invalid input data. " + text


def parse_payload(schema: Type[ModelT], data: Any) -> ModelT:
    """Validate a raw payload against a schema, raising the API's 400 on failure."""
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        raise ValidationError(
            message=format_validation_errors(errors),
            context={"errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": _clean_message(err["msg"])}
                for err in errors
            ]},
        )


class ErrorResponse(BaseModel):
    """
    Shape of every error body.

    status is "fail" for 4xx and "error" for 5xx; details are only present
    when running in development.
    """
    status: str = Field(description="'fail' (client error) or 'error' (server error)")
    message: str = Field(description="Human-readable description of what went wrong")
    request_id: str = Field(default="", description="Correlation ID, also in X-Request-ID")
    details: Optional[Dict[str, Any]] = Field(default=None)


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float
