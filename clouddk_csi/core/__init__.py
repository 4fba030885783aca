"""Core types shared across clouddk-csi."""

from clouddk_csi.core.exceptions import (
    AlreadyInitializedError,
    AuthenticationFailureError,
    BootstrapFailureError,
    CloudServerError,
    ConfigurationError,
    DialFailureError,
    InvalidArgumentError,
    NotFoundError,
    NotInitializedError,
    ProvisioningDefectError,
    ReadinessTimeoutError,
    ShellError,
    TransportError,
)

__all__ = [
    "AlreadyInitializedError",
    "AuthenticationFailureError",
    "BootstrapFailureError",
    "CloudServerError",
    "ConfigurationError",
    "DialFailureError",
    "InvalidArgumentError",
    "NotFoundError",
    "NotInitializedError",
    "ProvisioningDefectError",
    "ReadinessTimeoutError",
    "ShellError",
    "TransportError",
]
