"""Transport and timing infrastructure."""

from clouddk_csi.infra.clock import Clock, SystemClock
from clouddk_csi.infra.http import ApiKeyAuth, Auth, HttpClient, HttpError, Response

__all__ = [
    "ApiKeyAuth",
    "Auth",
    "Clock",
    "HttpClient",
    "HttpError",
    "Response",
    "SystemClock",
]
