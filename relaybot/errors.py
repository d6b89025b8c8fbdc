"""Exception hierarchy shared by the routers, bridges and gateway."""

from typing import Any


class RelayError(Exception):
    """Base class for every failure raised while relaying a message.

    ``http_status`` is what the gateway answers with when the error reaches
    one of its handlers.
    """

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        self.context = context
        super().__init__(message)


class PayloadValidationError(RelayError):
    """A message did not match its named schema."""

    http_status = 400

    def __init__(self, schema: str, errors: list[str]):
        self.schema = schema
        self.errors = errors
        super().__init__(f"Invalid {schema} payload: {'; '.join(errors)}", schema=schema)


class EmptyMessage(RelayError):
    http_status = 400


class MissingType(RelayError):
    http_status = 400


class UnknownMessageType(RelayError):
    http_status = 400

    def __init__(self, message_type: Any):
        self.message_type = message_type
        super().__init__(f"Unknown message type: {message_type!r}", message_type=message_type)


class DuplicateRequest(RelayError):
    """A chat was requested for a user who already has one pending or active."""

    http_status = 409

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"A chat request for user [{user_id}] already exists, skipping new request",
            user_id=user_id,
        )


class MissingField(RelayError):
    http_status = 400


class InvalidKey(RelayError):
    """Session key is empty or not a string."""

    http_status = 400

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"userId must be a non-empty string, got {key!r}")


class BackendCallError(RelayError):
    """The agent backend answered with a non-2xx status or could not be reached."""

    http_status = 502

    def __init__(self, message: str, status_code: int | None = None, body: Any = None, **context: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(message, status_code=status_code, **context)


class CorrelationLost(RelayError):
    """A session was expected for the user but none exists."""

    http_status = 410

    def __init__(self, user_id: str, operation: str = ""):
        self.user_id = user_id
        self.operation = operation
        where = f" during {operation}" if operation else ""
        super().__init__(f"No session for user [{user_id}]{where}", user_id=user_id)


class BotDeliveryError(RelayError):
    """Sending an envelope to the bot webhook failed."""

    http_status = 502

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, status_code=status_code)
