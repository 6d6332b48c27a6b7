from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer errors that the routers map to HTTP responses.

    Each subclass carries an HTTP-equivalent ``status_code`` and a stable
    ``error_code``. Messages are safe to show to clients: they never contain
    nonces, refresh secrets or signing key material.
    """

    status_code: int = 400
    error_code: str = "invalid_input"
    retryable: bool = False

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(ServiceError):
    """Malformed address, signature or missing field (400)."""
    status_code = 400
    error_code = "invalid_input"


class NotFoundError(ServiceError):
    """Identity or refresh token does not exist (404)."""
    status_code = 404
    error_code = "not_found"


class UnauthorizedError(ServiceError):
    """Signature check failed, or refresh/access token is invalid, expired or revoked (401)."""
    status_code = 401
    error_code = "unauthorized"


class ConfigError(ServiceError):
    """Missing or invalid server configuration (500)."""
    status_code = 500
    error_code = "config_error"


class ServiceUnavailableError(ServiceError):
    """Storage or crypto backend timed out or failed. The caller may retry (503)."""
    status_code = 503
    error_code = "service_unavailable"
    retryable = True


__all__ = [
    "ServiceError",
    "InvalidInputError",
    "NotFoundError",
    "UnauthorizedError",
    "ConfigError",
    "ServiceUnavailableError",
]
