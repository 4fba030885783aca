"""Identity service answers for the storage plugin.

Static metadata the container orchestrator queries before it talks to the
controller: which services the plugin offers, its name and version, and
whether it is ready.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clouddk_csi.driver import Driver


class PluginCapability(StrEnum):
    CONTROLLER_SERVICE = "CONTROLLER_SERVICE"
    VOLUME_ACCESSIBILITY_CONSTRAINTS = "VOLUME_ACCESSIBILITY_CONSTRAINTS"


@dataclass(frozen=True, slots=True)
class PluginInfo:
    name: str
    vendor_version: str


@dataclass(frozen=True, slots=True)
class ProbeResult:
    ready: bool


class IdentityService:
    def __init__(self, driver: Driver) -> None:
        self._driver = driver

    async def get_plugin_capabilities(self) -> tuple[PluginCapability, ...]:
        return (
            PluginCapability.CONTROLLER_SERVICE,
            PluginCapability.VOLUME_ACCESSIBILITY_CONSTRAINTS,
        )

    async def get_plugin_info(self) -> PluginInfo:
        return PluginInfo(name=self._driver.name, vendor_version=self._driver.version)

    async def probe(self) -> ProbeResult:
        # TODO: report readiness once the controller can verify control-plane access.
        return ProbeResult(ready=False)
