"""
Error taxonomy for the protocol layer.

Transport and timer failures are raised or surfaced as subclasses of
KitchenBridgeError, each with a stable category/code pair. Domain failures
inside tool handlers are never raised: they become failure ToolResults.
"""
from typing import Optional


class ErrorCategory:
    """Stable error categories."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    DOMAIN = "domain"


class KitchenBridgeError(Exception):
    """Base class for every error the protocol client reports."""

    category = ErrorCategory.TRANSPORT
    code = "unknown"
    default_message = "Something went wrong talking to the assistant."

    def __init__(self, message: Optional[str] = None, *, message_id: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message_id = message_id

    def user_message(self) -> str:
        return get_user_message(self.code)


# --- configuration ---


class MissingCredentialError(KitchenBridgeError):
    category = ErrorCategory.CONFIGURATION
    code = "config.missing_credential"
    default_message = "GEMINI_API_KEY is not set"


class InvalidEndpointError(KitchenBridgeError):
    category = ErrorCategory.CONFIGURATION
    code = "config.invalid_endpoint"
    default_message = "Invalid service URL"


# --- transport ---


class ConnectionFailedError(KitchenBridgeError):
    code = "transport.connection_failed"
    default_message = "Failed to connect to the assistant service"


class ConnectionClosedError(KitchenBridgeError):
    code = "transport.connection_closed"
    default_message = "Connection to the assistant service was closed"


class ServiceUnavailableError(KitchenBridgeError):
    code = "transport.service_unavailable"
    default_message = "The assistant service is unavailable"

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None, message_id: Optional[str] = None):
        super().__init__(message, message_id=message_id)
        self.status = status


class InvalidPayloadError(KitchenBridgeError):
    code = "transport.invalid_payload"
    default_message = "Received an unreadable response from the assistant service"


# --- timeouts ---


class AcceptanceTimeoutError(ConnectionFailedError):
    """No inbound frame arrived within the acceptance window."""

    category = ErrorCategory.TIMEOUT
    code = "timeout.acceptance"
    default_message = "The assistant service did not accept the connection in time"


class RequestTimeoutError(KitchenBridgeError):
    """A specific outbound message went unanswered."""

    category = ErrorCategory.TIMEOUT
    code = "timeout.request"
    default_message = "The request timed out"


class RateLimitedError(RequestTimeoutError):
    code = "timeout.rate_limited"
    default_message = "The assistant service is rate limiting requests"


class HeartbeatTimeoutError(KitchenBridgeError):
    """A streamed response stalled between chunks."""

    category = ErrorCategory.TIMEOUT
    code = "timeout.heartbeat"
    default_message = "The response stream stalled"


# --- domain ---


class ToolLoopExceededError(KitchenBridgeError):
    category = ErrorCategory.DOMAIN
    code = "domain.tool_loop_exceeded"
    default_message = "Too many consecutive tool calls without a final answer"


def classify_http_status(status: int, message_id: Optional[str] = None) -> Optional[KitchenBridgeError]:
    """
    Map a stateless-endpoint HTTP status to an error.

    Returns None for 2xx.
    """
    if 200 <= status < 300:
        return None
    if status == 429:
        return RateLimitedError(f"Rate limited (HTTP {status})", message_id=message_id)
    return ServiceUnavailableError(
        f"Service returned HTTP {status}", status=status, message_id=message_id
    )


def get_user_message(code: str) -> str:
    """Plain-English message suitable for surfacing to the user."""
    messages = {
        MissingCredentialError.code: "The assistant isn't configured yet. Add a Gemini API key and try again.",
        InvalidEndpointError.code: "The assistant service address is invalid.",
        ConnectionFailedError.code: "Couldn't reach the assistant. Check your connection and try again.",
        AcceptanceTimeoutError.code: "Couldn't reach the assistant. Check your connection and try again.",
        ConnectionClosedError.code: "The connection to the assistant was lost.",
        ServiceUnavailableError.code: "The assistant is unavailable right now. Try again in a moment.",
        InvalidPayloadError.code: "The assistant sent a response that couldn't be read.",
        RequestTimeoutError.code: "The assistant took too long to answer. Try again.",
        RateLimitedError.code: "The assistant is busy right now. Try again in a moment.",
        HeartbeatTimeoutError.code: "The assistant stopped responding mid-answer.",
        ToolLoopExceededError.code: "The assistant got stuck updating your kitchen. Try rephrasing.",
    }
    return messages.get(code, KitchenBridgeError.default_message)
