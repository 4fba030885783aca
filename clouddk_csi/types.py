"""Cloud server data model.

API payloads are decoded into frozen dataclasses; the binding of a
CloudServer handle is an explicit Unbound | Bound state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from clouddk_csi.core.exceptions import TransportError


def _require(data: Mapping[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise TransportError(
            f"Malformed server description: '{key}' should be {kind.__name__}, "
            f"got {type(value).__name__}"
        )
    return value


@dataclass(frozen=True, slots=True)
class IPAddress:
    address: str
    network: str = ""
    netmask: str = ""
    gateway: str = ""

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> IPAddress:
        return cls(
            address=_require(data, "address", str),
            network=data.get("network") or "",
            netmask=data.get("netmask") or "",
            gateway=data.get("gateway") or "",
        )


@dataclass(frozen=True, slots=True)
class NetworkInterface:
    identifier: str
    label: str = ""
    default: bool = False
    ip_addresses: tuple[IPAddress, ...] = ()

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> NetworkInterface:
        return cls(
            identifier=_require(data, "identifier", str),
            label=data.get("label") or "",
            default=bool(data.get("default", False)),
            ip_addresses=tuple(
                IPAddress.from_api(ip) for ip in data.get("ipAddresses") or ()
            ),
        )


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """A cloud server as described by the control plane."""

    identifier: str
    hostname: str
    label: str
    network_interfaces: tuple[NetworkInterface, ...] = ()
    booted: bool = False
    cpus: int = 0
    memory: int = 0

    @classmethod
    def from_api(cls, data: Any) -> ServerInfo:
        if not isinstance(data, Mapping):
            raise TransportError(
                f"Malformed server description: expected an object, got {type(data).__name__}"
            )
        identifier = _require(data, "identifier", str)
        if not identifier:
            raise TransportError("Malformed server description: empty identifier")
        try:
            interfaces = tuple(
                NetworkInterface.from_api(nic) for nic in data.get("networkInterfaces") or ()
            )
        except (AttributeError, TypeError) as e:
            raise TransportError(f"Malformed network interfaces: {e}") from e
        return cls(
            identifier=identifier,
            hostname=_require(data, "hostname", str),
            label=data.get("label") or "",
            network_interfaces=interfaces,
            booted=bool(data.get("booted", False)),
            cpus=int(data.get("cpus") or 0),
            memory=int(data.get("memory") or 0),
        )

    @property
    def primary_address(self) -> str | None:
        """First address of the first interface, None if there is none."""
        if not self.network_interfaces:
            return None
        addresses = self.network_interfaces[0].ip_addresses
        return addresses[0].address if addresses else None


@dataclass(frozen=True, slots=True)
class ServerCreateBody:
    hostname: str
    label: str
    initial_root_password: str = field(repr=False)
    package: str
    template: str
    location: str

    def to_api(self) -> dict[str, str]:
        return {
            "hostname": self.hostname,
            "label": self.label,
            "initialRootPassword": self.initial_root_password,
            "package": self.package,
            "template": self.template,
            "location": self.location,
        }


# =============================================================================
# Binding state
# =============================================================================


@dataclass(frozen=True, slots=True)
class Unbound:
    """Handle not attached to any remote server."""


@dataclass(frozen=True, slots=True)
class Bound:
    """Handle attached to exactly one remote server."""

    info: ServerInfo
    booted: bool = False


ServerState: TypeAlias = Unbound | Bound
