"""clouddk-csi - Cloud.dk servers backing a container storage plugin.

Example:

    from clouddk_csi import Driver, load_settings

    async with Driver(load_settings()) as driver:
        server = driver.server()
        await server.create("dk1", "89833c1dfa7b", "node-1")
        ...
        await server.destroy()
"""

from clouddk_csi.api import CloudServersAPI, ControlPlane
from clouddk_csi.bootstrap import bootstrap, bootstrap_script
from clouddk_csi.config import Settings, load_settings
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
from clouddk_csi.driver import DRIVER_NAME, DRIVER_VERSION, Driver
from clouddk_csi.identity import IdentityService, PluginCapability, PluginInfo, ProbeResult
from clouddk_csi.logging import LogConfig, setup_logging, teardown_logging
from clouddk_csi.secrets import initial_root_password, random_password
from clouddk_csi.server import CloudServer
from clouddk_csi.ssh import ShellConnection, ShellResult, SSHConnector
from clouddk_csi.types import Bound, IPAddress, NetworkInterface, ServerInfo, ServerState, Unbound
from clouddk_csi.wait import wait_for_ready

__all__ = [
    "DRIVER_NAME",
    "DRIVER_VERSION",
    "AlreadyInitializedError",
    "AuthenticationFailureError",
    "BootstrapFailureError",
    "Bound",
    "CloudServer",
    "CloudServerError",
    "CloudServersAPI",
    "ConfigurationError",
    "ControlPlane",
    "DialFailureError",
    "Driver",
    "IPAddress",
    "IdentityService",
    "InvalidArgumentError",
    "LogConfig",
    "NetworkInterface",
    "NotFoundError",
    "NotInitializedError",
    "PluginCapability",
    "PluginInfo",
    "ProbeResult",
    "ProvisioningDefectError",
    "ReadinessTimeoutError",
    "SSHConnector",
    "ServerInfo",
    "ServerState",
    "Settings",
    "ShellConnection",
    "ShellError",
    "ShellResult",
    "TransportError",
    "Unbound",
    "bootstrap",
    "bootstrap_script",
    "initial_root_password",
    "load_settings",
    "random_password",
    "setup_logging",
    "teardown_logging",
    "wait_for_ready",
]
