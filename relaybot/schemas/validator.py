"""Validation of raw message dicts against the named schemas."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from relaybot.errors import PayloadValidationError
from relaybot.schemas.models import SCHEMAS


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _format_error(err: dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
    return f"{loc}: {err.get('msg', 'invalid')}"


def validate(schema_name: str | None, payload: Any) -> ValidationResult:
    """
    Check *payload* against the schema registered as *schema_name*.

    A missing schema name or payload is reported as invalid rather than
    raised. Every violation is listed, not only the first one.

    Raises:
        KeyError: if *schema_name* is not a registered schema.
    """
    if not schema_name or not payload:
        return ValidationResult(False, ["schema name and payload can't be empty"])

    model = SCHEMAS[schema_name]
    try:
        model.model_validate(payload)
    except ValidationError as e:
        return ValidationResult(False, [_format_error(err) for err in e.errors()])
    return ValidationResult(True)


def require_valid(schema_name: str, payload: Any) -> None:
    """Raise PayloadValidationError unless *payload* matches *schema_name*."""
    result = validate(schema_name, payload)
    if not result.valid:
        raise PayloadValidationError(schema_name, result.errors)
