from __future__ import annotations


class GatewayError(RuntimeError):
    """Base class for errors surfaced to callers of the messaging facade."""
    pass


class NotReadyError(GatewayError):
    """Raised when a send is attempted while the session is not CONNECTED."""

    def __init__(self, state: str) -> None:
        super().__init__(f"WhatsApp client not ready. Status: {state}")
        self.state = state


class PollValidationError(GatewayError, ValueError):
    """Raised when a poll configuration is malformed (missing fields or reply messages)."""

    def __init__(self, message: str, missing_ids: list[int] | None = None) -> None:
        super().__init__(message)
        self.missing_ids = list(missing_ids or [])


class MediaNotFoundError(GatewayError):
    """Raised when a local media file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found: {path}")
        self.path = path


class ChatClientError(GatewayError):
    """Wraps any failure raised by the underlying chat-network client."""

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation


class BackendUnavailableError(RuntimeError):
    """Raised inside the backend client for retryable failures; never leaves it."""
    pass
