"""Error taxonomy for the SigMine agent network.

Every error carries the HTTP status it maps to, so the Flask layer can render
any of them with a single handler. Extra keyword arguments end up in the JSON
body next to the message.
"""


class NetworkError(Exception):
    """Base class for errors reported back to the calling agent."""

    status_code = 500

    def __init__(self, error, status_code=None, **extra):
        super().__init__(error)
        self.message = error
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self):
        body = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationError(NetworkError):
    status_code = 400


class AuthError(NetworkError):
    """Missing credential (401) or unknown credential (403)."""

    status_code = 401


class ForbiddenError(NetworkError):
    status_code = 403


class NotFoundError(NetworkError):
    status_code = 404


class ConflictError(NetworkError):
    status_code = 409


class RateLimitError(NetworkError):
    status_code = 429

    def __init__(self, error, reset_in_seconds, **extra):
        super().__init__(error, reset_in_seconds=reset_in_seconds, **extra)
        self.reset_in_seconds = reset_in_seconds


class UpstreamError(NetworkError):
    """An external data provider failed. Callers degrade to empty data."""

    status_code = 502
