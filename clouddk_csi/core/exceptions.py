"""Exception hierarchy for clouddk-csi.

Every error raised by the driver inherits from CloudServerError, so callers
can catch all of them with a single except clause while still telling a
missing server apart from a transport failure.
"""

from __future__ import annotations


class CloudServerError(Exception):
    """Base exception for all clouddk-csi errors."""


class ConfigurationError(CloudServerError):
    """Raised for invalid configuration or missing required settings."""


class AlreadyInitializedError(CloudServerError):
    """Raised when a bound server handle is asked to bind again."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"The server has already been initialized ({identifier})")


class NotInitializedError(CloudServerError):
    """Raised when an operation needs a bound server handle."""

    def __init__(self) -> None:
        super().__init__("The server has not been initialized")


class InvalidArgumentError(CloudServerError, ValueError):
    """Raised for empty or malformed arguments, before any remote call."""


class TransportError(CloudServerError):
    """Raised when a control-plane request fails or cannot be decoded.

    ``status`` is the HTTP status code, or 0 when no response was received.
    """

    def __init__(self, message: str, status: int = 0) -> None:
        self.status = status
        super().__init__(message)


class NotFoundError(TransportError):
    """Raised when the requested server does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


class ProvisioningDefectError(CloudServerError):
    """Raised when a created server reports no usable network address."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(
            f"No network interfaces were created for cloud server '{identifier}'"
        )


class ReadinessTimeoutError(CloudServerError):
    """Raised when a server does not accept SSH connections in time."""

    def __init__(self, address: str, timeout: float) -> None:
        self.address = address
        self.timeout = timeout
        super().__init__(f"Timeout waiting for SSH on {address} after {timeout:.1f}s")


class ShellError(CloudServerError):
    """Raised when a remote shell session cannot be established."""


class AuthenticationFailureError(ShellError):
    """Raised when the remote shell rejects our credentials."""


class DialFailureError(ShellError):
    """Raised when the remote shell cannot be reached."""


class BootstrapFailureError(CloudServerError):
    """Raised when the first-boot configuration script fails."""

    def __init__(self, exit_status: int | None, stderr: str = "") -> None:
        self.exit_status = exit_status
        self.stderr = stderr
        detail = stderr.strip() or "no output"
        if exit_status is None:
            super().__init__(f"Bootstrap failed: {detail}")
        else:
            super().__init__(f"Bootstrap failed ({exit_status}): {detail}")
