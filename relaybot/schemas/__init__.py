"""Message schemas and validation."""

from relaybot.schemas.models import SCHEMAS
from relaybot.schemas.validator import ValidationResult, require_valid, validate

__all__ = ["SCHEMAS", "ValidationResult", "require_valid", "validate"]
