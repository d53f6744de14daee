"""Error taxonomy shared by the upstream clients and the route handlers."""
from __future__ import annotations


class GatewayError(Exception):
    """Base class; ``status_code`` is what the edge answers with."""

    status_code = 500
    error_type = "server_error"
    code: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(GatewayError):
    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthError(GatewayError):
    status_code = 403
    error_type = "authentication_error"
    code = "invalid_api_key"

    def __init__(self, message: str, status_code: int = 403) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeoutError(GatewayError):
    status_code = 408
    error_type = "timeout_error"
    code = "request_timeout"


class UpstreamError(GatewayError):
    """Upstream answered with a non-success status."""

    error_type = "api_error"
    code = "upstream_error"

    def __init__(self, message: str, upstream_status: int, body: str = "") -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class TransportError(GatewayError):
    """Connection-level failure talking to an upstream."""

    error_type = "api_error"
    code = "upstream_unreachable"


class ConfigError(GatewayError):
    error_type = "server_error"
    code = "not_configured"
