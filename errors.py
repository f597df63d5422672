"""Error types raised inside the proxy handlers.

Each error knows the HTTP status and the ``error`` label it is reported
with. Handlers catch them and render exactly one JSON response.
"""


class ProxyError(Exception):
    status = 500
    error = "Server error"

    def __init__(self, message: str, status: int = None, **details):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        body.update(self.details)
        return body


class MethodNotAllowed(ProxyError):
    status = 405
    error = "Method not allowed"


class InvalidRequest(ProxyError):
    status = 400
    error = "Invalid request"


class ConfigurationError(ProxyError):
    status = 500
    error = "Configuration error"


class RequestTooLarge(ProxyError):
    status = 413
    error = "Request too large"


class UpstreamTimeout(ProxyError):
    status = 504
    error = "Upstream timeout"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["code"] = str(self.status)
        return body


class UpstreamError(ProxyError):
    status = 500
    error = "API error"


class AuthenticationError(ProxyError):
    status = 500
    error = "Authentication error"


class HealthDegraded(ProxyError):
    """Reported in the body of a 200 health response, not as a failure status."""

    status = 200
    error = "Health check degraded"
