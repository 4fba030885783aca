from __future__ import annotations

import asyncio
import random

import pytest

from clouddk_csi.core.exceptions import (
    AlreadyInitializedError,
    BootstrapFailureError,
    InvalidArgumentError,
    NotFoundError,
    NotInitializedError,
    ProvisioningDefectError,
    ReadinessTimeoutError,
    TransportError,
)
from clouddk_csi.driver import Driver
from clouddk_csi.ssh import ShellResult
from clouddk_csi.types import Bound, Unbound
from tests.conftest import (
    PRIVATE_KEY,
    PUBLIC_KEY,
    FakeClock,
    FakeConnector,
    FakeControlPlane,
    FakeShell,
    always_fail,
    server_info,
)

pytestmark = [pytest.mark.unit]


# ─── Create ──────────────────────────────────────────────────────────


class TestCreate:
    @pytest.mark.asyncio
    async def test_success_binds_and_boots(
        self, driver: Driver, api: FakeControlPlane, connector: FakeConnector
    ):
        server = driver.server()
        await server.create("loc1", "pkg1", "host-a")

        assert server.is_bound
        assert server.booted
        assert server.identifier == "srv-1"
        assert server.hostname == "host-a"
        assert api.delete_calls == []
        assert connector.password_calls[0][0] == "10.0.0.5"
        assert connector.shell.closed
        assert PUBLIC_KEY in connector.shell.commands[0]

    @pytest.mark.asyncio
    async def test_request_body(self, driver: Driver, api: FakeControlPlane):
        await driver.server().create("loc1", "pkg1", "host-a")

        body = api.create_calls[0]
        assert body.hostname == "host-a"
        assert body.label == "host-a"
        assert body.package == "pkg1"
        assert body.location == "loc1"
        assert body.template == "ubuntu-18.04-x64"
        assert len(body.initial_root_password) == 64
        assert body.initial_root_password.startswith("p")

    @pytest.mark.asyncio
    async def test_bootstrap_uses_the_initial_password(
        self, driver: Driver, api: FakeControlPlane, connector: FakeConnector
    ):
        await driver.server().create("loc1", "pkg1", "host-a")
        assert connector.password_calls[0][1] == api.create_calls[0].initial_root_password

    @pytest.mark.asyncio
    async def test_seeded_rng_gives_reproducible_password(
        self, driver: Driver, api: FakeControlPlane
    ):
        await driver.server(rng=random.Random(7)).create("loc1", "pkg1", "host-a")
        await driver.server(rng=random.Random(7)).create("loc1", "pkg1", "host-b")
        first, second = api.create_calls
        assert first.initial_root_password == second.initial_root_password

    @pytest.mark.asyncio
    async def test_already_bound(self, driver: Driver, api: FakeControlPlane):
        server = driver.server()
        await server.create("loc1", "pkg1", "host-a")

        with pytest.raises(AlreadyInitializedError):
            await server.create("loc1", "pkg1", "host-b")
        assert len(api.create_calls) == 1

    @pytest.mark.asyncio
    async def test_create_request_failure_leaves_unbound(self, settings, clock, connector):
        api = FakeControlPlane(create_error=TransportError("POST cloudservers failed", status=500))
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        with pytest.raises(TransportError):
            await server.create("loc1", "pkg1", "host-a")
        assert server.state == Unbound()
        assert api.delete_calls == []

    @pytest.mark.asyncio
    async def test_no_interfaces_is_rolled_back(self, settings, clock, connector):
        api = FakeControlPlane(created=server_info(identifier="srv-9", interfaces=0))
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        with pytest.raises(ProvisioningDefectError, match="srv-9"):
            await server.create("loc1", "pkg1", "host-a")
        assert api.delete_calls == ["srv-9"]
        assert not server.is_bound
        assert connector.password_calls == []

    @pytest.mark.asyncio
    async def test_interface_without_address_is_rolled_back(self, settings, clock, connector):
        api = FakeControlPlane(created=server_info(addresses=()))
        driver = Driver(settings, api=api, connector=connector, clock=clock)

        with pytest.raises(ProvisioningDefectError):
            await driver.server().create("loc1", "pkg1", "host-a")
        assert api.delete_calls == ["srv-1"]

    @pytest.mark.asyncio
    async def test_unreachable_server_is_rolled_back(self, settings, api, clock):
        connector = FakeConnector(dial=always_fail)
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        with pytest.raises(ReadinessTimeoutError):
            await server.create("loc1", "pkg1", "host-a")

        assert not server.is_bound
        assert not server.booted
        assert api.delete_calls == ["srv-1"]
        assert len(connector.password_calls) == 30
        assert 300 <= clock.now < 302

    @pytest.mark.asyncio
    async def test_reachable_after_a_while(self, settings, api, clock):
        shell = FakeShell()
        connector = FakeConnector(dial=lambda n: shell if n >= 3 else always_fail(n))
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        await server.create("loc1", "pkg1", "host-a")

        assert server.booted
        assert len(connector.password_calls) == 3
        assert 20 <= clock.now < 22
        assert api.delete_calls == []

    @pytest.mark.asyncio
    async def test_bootstrap_failure_is_rolled_back(self, settings, api, clock):
        shell = FakeShell(ShellResult(exit_status=1, stdout="", stderr="swapoff: failed"))
        driver = Driver(settings, api=api, connector=FakeConnector(shell), clock=clock)
        server = driver.server()

        with pytest.raises(BootstrapFailureError, match="swapoff"):
            await server.create("loc1", "pkg1", "host-a")

        assert api.delete_calls == ["srv-1"]
        assert not server.is_bound
        assert shell.closed

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_original_error(self, settings, clock):
        api = FakeControlPlane(delete_error=TransportError("DELETE failed", status=500))
        connector = FakeConnector(dial=always_fail)
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        with pytest.raises(ReadinessTimeoutError) as excinfo:
            await server.create("loc1", "pkg1", "host-a")

        assert api.delete_calls == ["srv-1"]
        assert any("srv-1" in note for note in excinfo.value.__notes__)
        assert server.state == Unbound()

    @pytest.mark.asyncio
    async def test_cancellation_is_rolled_back(self, settings, api, clock):
        never = asyncio.Event()

        class HangingConnector(FakeConnector):
            async def connect_password(self, host: str, password: str) -> FakeShell:
                await never.wait()
                raise AssertionError("unreachable")

        driver = Driver(settings, api=api, connector=HangingConnector(), clock=clock)
        server = driver.server()

        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.05):
                await server.create("loc1", "pkg1", "host-a")

        assert api.delete_calls == ["srv-1"]
        assert not server.is_bound

    @pytest.mark.asyncio
    async def test_cancelled_rollback_keeps_original_error(self, settings, clock, connector):
        api = FakeControlPlane(
            created=server_info(identifier="srv-9", interfaces=0),
            delete_gate=asyncio.Event(),
        )
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        task = asyncio.create_task(server.create("loc1", "pkg1", "host-a"))
        while not api.delete_calls:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(ProvisioningDefectError) as excinfo:
            await task

        assert api.delete_calls == ["srv-9"]
        assert any("srv-9" in note for note in excinfo.value.__notes__)
        assert server.state == Unbound()


# ─── Destroy ─────────────────────────────────────────────────────────


class TestDestroy:
    @pytest.mark.asyncio
    async def test_unbound(self, driver: Driver, api: FakeControlPlane):
        with pytest.raises(NotInitializedError):
            await driver.server().destroy()
        assert api.delete_calls == []

    @pytest.mark.asyncio
    async def test_unbinds(self, driver: Driver, api: FakeControlPlane):
        server = driver.server()
        await server.create("loc1", "pkg1", "host-a")

        await server.destroy()

        assert server.state == Unbound()
        assert server.identifier is None
        assert api.delete_calls == ["srv-1"]

    @pytest.mark.asyncio
    async def test_failure_keeps_handle_bound(self, settings, clock, connector):
        api = FakeControlPlane(
            servers=(server_info(),),
            delete_error=TransportError("DELETE failed", status=503),
        )
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()
        await server.initialize_by_id("srv-1")

        with pytest.raises(TransportError):
            await server.destroy()
        assert server.is_bound

    @pytest.mark.asyncio
    async def test_second_destroy_needs_rebinding(self, driver: Driver):
        server = driver.server()
        await server.create("loc1", "pkg1", "host-a")
        await server.destroy()

        with pytest.raises(NotInitializedError):
            await server.destroy()


# ─── Lookup ──────────────────────────────────────────────────────────


class TestInitialize:
    @pytest.mark.asyncio
    async def test_by_hostname(self, settings, clock, connector):
        api = FakeControlPlane(
            servers=(
                server_info(identifier="srv-2", hostname="host-ab"),
                server_info(identifier="srv-3", hostname="host-a", booted=True),
            )
        )
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        await server.initialize_by_hostname("host-a")

        assert server.identifier == "srv-3"
        assert server.booted
        assert isinstance(server.state, Bound)

    @pytest.mark.asyncio
    async def test_by_hostname_not_found(self, driver: Driver):
        server = driver.server()
        with pytest.raises(NotFoundError):
            await server.initialize_by_hostname("missing")
        assert not server.is_bound

    @pytest.mark.asyncio
    async def test_by_id(self, settings, clock, connector):
        api = FakeControlPlane(servers=(server_info(identifier="srv-7", hostname="db"),))
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()

        await server.initialize_by_id("srv-7")

        assert server.hostname == "db"
        assert server.network_interfaces[0].ip_addresses[0].address == "10.0.0.5"

    @pytest.mark.asyncio
    async def test_by_id_not_found(self, driver: Driver):
        with pytest.raises(NotFoundError):
            await driver.server().initialize_by_id("nope")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["initialize_by_hostname", "initialize_by_id"])
    async def test_empty_argument_makes_no_call(self, driver: Driver, api, method: str):
        server = driver.server()
        with pytest.raises(InvalidArgumentError):
            await getattr(server, method)("")
        assert api.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["initialize_by_hostname", "initialize_by_id"])
    async def test_already_bound(self, settings, clock, connector, method: str):
        api = FakeControlPlane(servers=(server_info(),))
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()
        await server.initialize_by_id("srv-1")

        with pytest.raises(AlreadyInitializedError):
            await getattr(server, method)("host-a")


# ─── SSH ─────────────────────────────────────────────────────────────


class TestSSH:
    @pytest.mark.asyncio
    async def test_unbound(self, driver: Driver):
        with pytest.raises(NotInitializedError):
            await driver.server().ssh()

    @pytest.mark.asyncio
    async def test_uses_private_key(self, settings, clock):
        api = FakeControlPlane(servers=(server_info(addresses=("192.0.2.10", "192.0.2.11")),))
        connector = FakeConnector()
        driver = Driver(settings, api=api, connector=connector, clock=clock)
        server = driver.server()
        await server.initialize_by_id("srv-1")

        shell = await server.ssh()

        assert shell is connector.shell
        assert connector.key_calls == [("192.0.2.10", PRIVATE_KEY)]

    @pytest.mark.asyncio
    async def test_no_address(self, settings, connector):
        api = FakeControlPlane(servers=(server_info(interfaces=0),))
        driver = Driver(settings, api=api, connector=connector, clock=FakeClock())
        server = driver.server()
        await server.initialize_by_id("srv-1")

        with pytest.raises(ProvisioningDefectError):
            await server.ssh()


@pytest.mark.asyncio
async def test_repr(driver: Driver):
    server = driver.server()
    assert repr(server) == "CloudServer(unbound)"

    await server.create("loc1", "pkg1", "host-a")
    assert repr(server) == "CloudServer(identifier='srv-1', hostname='host-a', booted=True)"
