"""Tests for the CRUD orchestrator against an in-memory device."""
import asyncio

import pytest

from junos_reconciler.config_engine import (
    UNKNOWN,
    AllocationCoordinator,
    ExistenceChecker,
    ResourceEngine,
    get_coordinator,
)
from junos_reconciler.config_engine.checker import DeviceRole, compatible_with_device_role
from junos_reconciler.config_engine.errors import (
    BAD_ID_FORMAT_ERR,
    COMPATIBILITY_ERR,
    CONFIG_CLEAR_UNLOCK_WARN,
    CONFIG_COMMIT_ERR,
    CONFIG_COMMIT_WARN,
    CONFIG_LOCK_ERR,
    CONFIG_READ_ERR,
    CONFIG_SET_ERR,
    CONFLICT_CONFIG_ERR,
    DUPLICATE_CONFIG_ERR,
    MISSING_CONFIG_ERR,
    NOT_FOUND_ERR,
    POST_CHECK_ERR,
    START_SESS_ERR,
)
from junos_reconciler.devices import MemoryBackend, SystemInformation
from junos_reconciler.resources import (
    ApplicationSet,
    InterfaceLogical,
    SecurityAddressBook,
    SecurityIdpCustomAttack,
    SecurityIpsecVpn,
    SecurityZoneBookAddress,
)

WEB_PLAN = {"name": "web", "applications": ["junos-http", "junos-https"], "description": "Web apps"}
WEB_LINES = [
    "set applications application-set web application junos-http",
    "set applications application-set web application junos-https",
    'set applications application-set web description "Web apps"',
]
VPN_PLAN = {
    "name": "vpn1",
    "bind_interface_auto": True,
    "ike": {"gateway": "gw1", "policy": "pol1"},
}


class StubSession:
    """Session answering every command with a fixed dump."""

    device_id = "stub"

    def __init__(self, dump: str):
        self.dump = dump

    async def command(self, text: str) -> str:
        return self.dump


class TestCreate:
    """Tests for create."""

    @pytest.mark.asyncio
    async def test_create(self, engine, device):
        """Lines are committed and the state is read back."""
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert result.success, result.diagnostics.summaries()
        assert result.identifier == "web"
        assert result.lines == WEB_LINES
        assert device.running == WEB_LINES
        assert result.state.id == "web"
        assert result.state.applications == ["junos-http", "junos-https"]
        assert device.commits[0]["description"] == "create resource junos_application_set"
        assert device.count("lock") == 1
        assert device.count("clear") == 1
        assert device.lock_owner is None

    @pytest.mark.asyncio
    async def test_create_duplicate(self, engine, device):
        """An existing resource is not overwritten."""
        device.running = ["set applications application-set web application junos-ftp"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert not result.success
        assert result.diagnostics.summaries() == [DUPLICATE_CONFIG_ERR]
        assert result.diagnostics.errors[0].detail == 'application-set "web" already exists'
        assert device.count("set") == 0
        assert device.count("clear") == 1

    @pytest.mark.asyncio
    async def test_invalid_plan_never_connects(self, engine, device):
        result = await engine.create(ApplicationSet(), {"name": "web"})
        assert result.diagnostics.summaries() == [MISSING_CONFIG_ERR]
        assert device.calls == []

    @pytest.mark.asyncio
    async def test_unresolved_plan_never_connects(self, engine, device):
        """Values still unknown at apply time are rejected."""
        result = await engine.create(ApplicationSet(), {"name": "web", "applications": ["a"], "description": UNKNOWN})
        assert result.diagnostics.summaries() == [MISSING_CONFIG_ERR]
        assert result.diagnostics.errors[0].attribute == "description"
        assert device.calls == []

    @pytest.mark.asyncio
    async def test_connect_failure(self, engine, device):
        device.fail_connect = True
        result = await engine.create(ApplicationSet(), WEB_PLAN)
        assert result.diagnostics.summaries() == [START_SESS_ERR]

    @pytest.mark.asyncio
    async def test_lock_contention(self, engine, device):
        """A locked candidate fails the operation after a single attempt."""
        device.lock_owner = 12345
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert result.diagnostics.summaries() == [CONFIG_LOCK_ERR]
        assert device.count("lock") == 1
        assert device.count("clear") == 0
        assert device.count("close") == 1
        assert device.lock_owner == 12345

    @pytest.mark.asyncio
    async def test_rejected_lines(self, engine, device):
        device.reject_lines = ["junos-https"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert result.diagnostics.summaries() == [CONFIG_SET_ERR]
        assert device.count("commit") == 0
        assert device.count("clear") == 1
        assert device.running == []

    @pytest.mark.asyncio
    async def test_commit_failure_releases_lock(self, engine, device):
        """A failed commit still clears and unlocks, exactly once."""
        device.fail_commit = "error: configuration check-out failed"
        device.commit_warnings = ["warning: statement ignored"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert result.diagnostics.summaries() == [CONFIG_COMMIT_WARN, CONFIG_COMMIT_ERR]
        assert device.count("clear") == 1
        assert device.lock_owner is None
        assert device.running == []
        assert result.state is None

    @pytest.mark.asyncio
    async def test_commit_warnings_do_not_fail(self, engine, device):
        device.commit_warnings = ["warning: statement ignored"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)
        assert result.success
        assert [w.summary for w in result.diagnostics.warnings] == [CONFIG_COMMIT_WARN]

    @pytest.mark.asyncio
    async def test_clear_warnings_surface(self, engine, device):
        device.clear_warnings = ["config unlock: session not found"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)
        assert result.success
        assert [w.summary for w in result.diagnostics.warnings] == [CONFIG_CLEAR_UNLOCK_WARN]

    @pytest.mark.asyncio
    async def test_post_check_failure(self, engine, device):
        """A commit with no effect is reported, not silently accepted."""
        device.drop_on_commit = ["applications application-set web"]
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert device.count("commit") == 1
        assert result.diagnostics.summaries() == [POST_CHECK_ERR]
        assert result.diagnostics.errors[0].detail == (
            'application-set "web" does not exist after commit => check your config'
        )
        assert result.state is None

    @pytest.mark.asyncio
    async def test_incompatible_device(self, engine, device):
        """Security resources need a security platform."""
        device.system_information = SystemInformation(hardware_model="ex4300-48t")
        result = await engine.create(SecurityAddressBook(), {
            "name": "corp", "network_address": [{"name": "h1", "value": "192.0.2.1/32"}],
        })
        assert result.diagnostics.summaries() == [COMPATIBILITY_ERR]
        assert result.diagnostics.errors[0].detail == (
            "junos_security_address_book not compatible with Junos device ex4300-48t"
        )
        assert device.count("set") == 0

        assert (await engine.create(ApplicationSet(), WEB_PLAN)).success

    @pytest.mark.asyncio
    async def test_create_custom_attack(self, engine, device):
        plan = {
            "name": "my-attack",
            "severity": "major",
            "attack_type_signature": {
                "match": {"context": "http-url", "direction": "client-to-server", "pattern": ".*evil.*"},
            },
        }
        result = await engine.create(SecurityIdpCustomAttack(), plan)
        assert result.success, result.diagnostics.summaries()
        assert result.state.attack_type_signature.match.pattern == ".*evil.*"

    @pytest.mark.asyncio
    async def test_staging_error_after_lock(self, engine, device):
        """Lines that cannot be generated fail after the lock and release it."""
        result = await engine.create(ApplicationSet(), {"name": "web", "applications": ["a", "a"]})
        assert result.diagnostics.summaries() == [CONFIG_SET_ERR]
        assert device.count("clear") == 1
        assert device.count("set") == 0


class TestRead:
    """Tests for read and import."""

    @pytest.mark.asyncio
    async def test_read(self, engine, device):
        device.running = list(WEB_LINES)
        result = await engine.read(ApplicationSet(), "web")
        assert result.success
        assert result.state.description == "Web apps"
        assert device.count("lock") == 0

    @pytest.mark.asyncio
    async def test_read_framed_output(self, engine, device):
        """Output framed by configuration-output markers is trimmed."""
        device.running = list(WEB_LINES)
        device.frame_output = True
        result = await engine.read(ApplicationSet(), "web")
        assert result.state.applications == ["junos-http", "junos-https"]

    @pytest.mark.asyncio
    async def test_read_removed(self, engine, device):
        """A missing resource reads as removed without error."""
        result = await engine.read(ApplicationSet(), "web")
        assert result.success
        assert result.state is None
        assert result.removed

    @pytest.mark.asyncio
    async def test_read_serialized(self, engine, device):
        """Serialized reads release the coordinator."""
        device.running = ["set interfaces ge-0/0/3.100 vlan-id 100"]
        result = await engine.read(InterfaceLogical(), "ge-0/0/3.100")
        assert result.state.vlan_id == 100
        assert not engine.coordinator.locked

    @pytest.mark.asyncio
    async def test_read_parse_error(self, engine, device):
        """A dump that cannot be parsed fails the read instead of dropping the resource."""
        device.running = ["set interfaces ge-0/0/3.100 vlan-id abc"]
        result = await engine.read(InterfaceLogical(), "ge-0/0/3.100")
        assert result.diagnostics.summaries() == [CONFIG_READ_ERR]
        assert not result.removed
        assert result.state is None

    @pytest.mark.asyncio
    async def test_read_truncated_range_address(self, engine, device):
        device.running = ['set security address-book "global" address h1 range-address 10.0.0.1']
        result = await engine.read(SecurityAddressBook(), "global")
        assert result.diagnostics.summaries() == [CONFIG_READ_ERR]
        assert not result.removed
        assert result.state is None
        assert device.count("close") == 1

    @pytest.mark.asyncio
    async def test_read_not_configured_interface(self, engine, device):
        """A unit parked with description NC and disable reads as removed."""
        device.running = [
            "set interfaces ge-0/0/3.100 description NC",
            "set interfaces ge-0/0/3.100 disable",
        ]
        result = await engine.read(InterfaceLogical(), "ge-0/0/3.100")
        assert result.success
        assert result.removed
        assert result.state is None

    @pytest.mark.asyncio
    async def test_import(self, engine, device):
        device.running = ["set security zones security-zone trust address-book address srv 192.0.2.5/32"]
        result = await engine.import_state(SecurityZoneBookAddress(), "trust_-_srv")
        assert result.success
        assert (result.state.zone, result.state.name, result.state.cidr) == ("trust", "srv", "192.0.2.5/32")

    @pytest.mark.asyncio
    async def test_import_bad_id(self, engine, device):
        result = await engine.import_state(SecurityZoneBookAddress(), "trust")
        assert result.diagnostics.summaries() == [BAD_ID_FORMAT_ERR]
        assert device.calls == []

    @pytest.mark.asyncio
    async def test_import_not_found(self, engine, device):
        result = await engine.import_state(SecurityZoneBookAddress(), "trust_-_srv")
        assert result.diagnostics.summaries() == [NOT_FOUND_ERR]
        assert "(id must be <zone>_-_<name>)" in result.diagnostics.errors[0].detail

    @pytest.mark.asyncio
    async def test_import_not_configured_interface(self, engine, device):
        device.running = [
            "set interfaces ge-0/0/3.100 disable",
            'set interfaces ge-0/0/3.100 description "NC"',
        ]
        result = await engine.import_state(InterfaceLogical(), "ge-0/0/3.100")
        assert result.diagnostics.summaries() == [NOT_FOUND_ERR]
        assert result.diagnostics.errors[0].detail == (
            "interface 'ge-0/0/3.100' is disabled (NC), import is not possible"
        )
        assert result.state is None
        assert device.count("close") == 1


class TestUpdate:
    """Tests for update."""

    @pytest.mark.asyncio
    async def test_update_diff(self, engine, device):
        """Only the changed elements are sent, deletes first."""
        device.running = list(WEB_LINES)
        plan = {"name": "web", "applications": ["junos-https", "junos-ssh"], "description": "Web"}
        result = await engine.update(ApplicationSet(), "web", plan)

        assert result.success, result.diagnostics.summaries()
        assert result.lines == [
            "delete applications application-set web application junos-http",
            "set applications application-set web application junos-ssh",
            'set applications application-set web description "Web"',
        ]
        assert result.state.applications == ["junos-https", "junos-ssh"]
        assert device.commits[0]["description"] == "update resource junos_application_set"

    @pytest.mark.asyncio
    async def test_update_no_change(self, engine, device):
        """An update without differences commits nothing."""
        device.running = list(WEB_LINES)
        result = await engine.update(ApplicationSet(), "web", WEB_PLAN)
        assert result.success
        assert result.lines == []
        assert device.count("commit") == 0
        assert device.count("clear") == 1

    @pytest.mark.asyncio
    async def test_update_missing(self, engine, device):
        result = await engine.update(ApplicationSet(), "web", WEB_PLAN)
        assert result.diagnostics.summaries() == [NOT_FOUND_ERR]
        assert result.diagnostics.errors[0].detail == "application-set \"web\" doesn't exist"

    @pytest.mark.asyncio
    async def test_update_key_change(self, engine, device):
        """Changing a key attribute cannot be done in place."""
        result = await engine.update(ApplicationSet(), "old", WEB_PLAN)
        assert result.diagnostics.summaries() == [CONFLICT_CONFIG_ERR]
        assert device.calls == []


class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_delete(self, engine, device):
        device.running = list(WEB_LINES) + ["set applications application-set other application junos-ftp"]
        result = await engine.delete(ApplicationSet(), "web")
        assert result.success
        assert result.removed
        assert result.lines == ["delete applications application-set web"]
        assert device.running == ["set applications application-set other application junos-ftp"]

    @pytest.mark.asyncio
    async def test_delete_missing(self, engine, device):
        result = await engine.delete(ApplicationSet(), "web")
        assert result.diagnostics.summaries() == [NOT_FOUND_ERR]
        assert not result.removed
        assert device.count("commit") == 0

    @pytest.mark.asyncio
    async def test_delete_st0_keeps_unit(self, engine, device):
        """Deleting an st0 unit leaves it in place unless asked otherwise."""
        device.running = ["set interfaces st0.0 family inet", "set interfaces st0.0 description \"tunnel\""]
        result = await engine.delete(InterfaceLogical(), "st0.0")
        assert result.removed
        assert device.running == ["set interfaces st0.0"]


class TestInterfaceChecks:
    """Tests for the interface pre- and post-checks."""

    @pytest.mark.asyncio
    async def test_st0_recreate_after_delete(self, engine, device):
        """The empty unit left behind by a delete does not block a new create."""
        plan = {"name": "st0.0", "description": "tunnel"}
        assert (await engine.create(InterfaceLogical(), plan)).success
        assert (await engine.delete(InterfaceLogical(), "st0.0")).removed
        assert device.running == ["set interfaces st0.0"]

        result = await engine.create(InterfaceLogical(), plan)
        assert result.success, result.diagnostics.summaries()
        assert result.lines == ['set interfaces st0.0 description "tunnel"']
        assert result.state.description == "tunnel"

    @pytest.mark.asyncio
    async def test_create_replaces_not_configured_unit(self, engine, device):
        """A parked NC unit is deleted ahead of the new lines."""
        device.running = [
            "set interfaces ge-0/0/3.100 description NC",
            "set interfaces ge-0/0/3.100 disable",
        ]
        result = await engine.create(InterfaceLogical(), {"name": "ge-0/0/3.100"})
        assert result.success, result.diagnostics.summaries()
        assert result.lines == [
            "delete interfaces ge-0/0/3.100",
            "set interfaces ge-0/0/3.100 vlan-id 100",
        ]
        assert device.running == ["set interfaces ge-0/0/3.100 vlan-id 100"]
        assert result.state.vlan_id == 100

    @pytest.mark.asyncio
    async def test_create_configured_unit(self, engine, device):
        device.running = ["set interfaces ge-0/0/3.100 family inet"]
        result = await engine.create(InterfaceLogical(), {"name": "ge-0/0/3.100"})
        assert result.diagnostics.summaries() == [DUPLICATE_CONFIG_ERR]
        assert result.diagnostics.errors[0].detail == "interface 'ge-0/0/3.100' already configured"
        assert device.count("set") == 0

    @pytest.mark.asyncio
    async def test_disabled_after_commit(self, engine, device):
        """A unit that comes up disabled fails the post-check."""
        device.inject_on_commit = ["set interfaces ge-0/0/3.100 disable"]
        result = await engine.create(InterfaceLogical(), {"name": "ge-0/0/3.100", "vlan_id": 100})
        assert result.diagnostics.summaries() == [POST_CHECK_ERR]
        assert result.diagnostics.errors[0].detail == (
            "interface 'ge-0/0/3.100' always disable after commit => check your config"
        )

    @pytest.mark.asyncio
    async def test_requested_disable(self, engine, device):
        result = await engine.create(InterfaceLogical(), {"name": "ge-0/0/3.100", "disable": True})
        assert result.success
        assert result.state.disable is True


class TestAllocation:
    """Tests for automatic st0 allocation."""

    @pytest.mark.asyncio
    async def test_auto_bind(self, engine, device):
        """The first free unit is allocated and created with the VPN."""
        device.running = ["set interfaces st0.0 family inet"]
        result = await engine.create(SecurityIpsecVpn(), VPN_PLAN)

        assert result.success, result.diagnostics.summaries()
        assert result.lines[0] == "set interfaces st0.1 family inet"
        assert 'set security ipsec vpn "vpn1" bind-interface st0.1' in result.lines
        assert result.state.bind_interface == "st0.1"
        assert result.state.bind_interface_auto is True
        assert not engine.coordinator.locked

    @pytest.mark.asyncio
    async def test_sequential_creates_get_distinct_units(self, make_engine, device):
        coordinator = AllocationCoordinator()
        first = await make_engine(coordinator).create(SecurityIpsecVpn(), VPN_PLAN)
        second = await make_engine(coordinator).create(SecurityIpsecVpn(), dict(VPN_PLAN, name="vpn2"))
        assert first.state.bind_interface == "st0.0"
        assert second.state.bind_interface == "st0.1"

    def test_engines_share_default_coordinator(self, make_client):
        """Engines built without a coordinator serialize on the process-wide one."""
        first = ResourceEngine(make_client())
        second = ResourceEngine(make_client())
        assert first.coordinator is second.coordinator
        assert first.coordinator is get_coordinator()

    @pytest.mark.asyncio
    async def test_update_keeps_allocated_unit(self, engine, device):
        """Updates carry the allocated unit over instead of reallocating."""
        created = await engine.create(SecurityIpsecVpn(), VPN_PLAN)
        plan = dict(VPN_PLAN, traffic_selector=[{"name": "ts1", "local_ip": "10.0.0.0/24", "remote_ip": "10.1.0.0/24"}])
        result = await engine.update(SecurityIpsecVpn(), created.state, plan)

        assert result.success, result.diagnostics.summaries()
        assert result.lines == [
            'set security ipsec vpn "vpn1" traffic-selector "ts1" local-ip 10.0.0.0/24',
            'set security ipsec vpn "vpn1" traffic-selector "ts1" remote-ip 10.1.0.0/24',
        ]
        assert result.state.bind_interface == "st0.0"

    @pytest.mark.asyncio
    async def test_delete_removes_unused_unit(self, engine, device):
        created = await engine.create(SecurityIpsecVpn(), VPN_PLAN)
        result = await engine.delete(SecurityIpsecVpn(), created.state)
        assert result.lines == ['delete security ipsec vpn "vpn1"', "delete interfaces st0.0"]
        assert device.running == []

    @pytest.mark.asyncio
    async def test_delete_keeps_used_unit(self, engine, device):
        """A unit configured beyond the VPN's needs stays."""
        created = await engine.create(SecurityIpsecVpn(), VPN_PLAN)
        device.running.append("set interfaces st0.0 family inet address 10.255.0.1/30")
        result = await engine.delete(SecurityIpsecVpn(), created.state)
        assert result.lines == ['delete security ipsec vpn "vpn1"']
        assert "set interfaces st0.0 family inet" in device.running


class TestFakeSetFile:
    """Tests for the set file modes."""

    @pytest.mark.asyncio
    async def test_fake_create(self, make_engine, device, tmp_path):
        """Creates are appended to the set file without touching the device."""
        setfile = tmp_path / "fake.set"
        engine = make_engine(fake_create_with_setfile=str(setfile), file_permission=0o600)
        result = await engine.create(ApplicationSet(), WEB_PLAN)

        assert result.success
        assert result.state.id == "web"
        assert setfile.read_text().splitlines() == WEB_LINES
        assert setfile.stat().st_mode & 0o777 == 0o600
        assert device.calls == []

    @pytest.mark.asyncio
    async def test_fake_update_and_delete(self, make_engine, device, tmp_path):
        setfile = tmp_path / "fake.set"
        engine = make_engine(
            fake_create_with_setfile=str(setfile), fake_update_also=True, fake_delete_also=True,
        )
        await engine.update(ApplicationSet(), "web", WEB_PLAN)
        result = await engine.delete(ApplicationSet(), "web")

        assert result.removed
        assert setfile.read_text().splitlines() == (
            ["delete applications application-set web"] + WEB_LINES + ["delete applications application-set web"]
        )
        assert device.calls == []

    @pytest.mark.asyncio
    async def test_delete_without_fake_delete(self, make_engine, device, tmp_path):
        """Without the delete flag, deletes go to the device."""
        engine = make_engine(fake_create_with_setfile=str(tmp_path / "fake.set"))
        result = await engine.delete(ApplicationSet(), "web")
        assert result.diagnostics.summaries() == [NOT_FOUND_ERR]
        assert device.count("connect") == 1


class HangingBackend(MemoryBackend):
    """Backend whose commit never answers."""

    async def commit_conf(self, description, confirmed=None):
        self.device.calls.append("commit")
        await asyncio.Event().wait()


async def until_committing(device):
    while device.count("commit") == 0:
        await asyncio.sleep(0)


class TestDeadlines:
    """Tests for timeouts and cancellation."""

    @pytest.mark.asyncio
    async def test_timeout_cleans_up(self, make_client, device):
        """A deadline during commit still clears and closes the session."""
        client = make_client()
        client._backend_factory = lambda settings: HangingBackend(device)
        engine = ResourceEngine(client)

        with pytest.raises(asyncio.TimeoutError):
            await engine.create(ApplicationSet(), WEB_PLAN, timeout=0.05)
        assert device.count("clear") == 1
        assert device.count("close") == 1
        assert device.lock_owner is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["update", "delete"])
    async def test_cancel_cleans_up(self, make_client, device, operation):
        """Cancelling a running operation clears and closes once, then propagates."""
        device.running = list(WEB_LINES)
        client = make_client()
        client._backend_factory = lambda settings: HangingBackend(device)
        engine = ResourceEngine(client)
        if operation == "update":
            call = engine.update(ApplicationSet(), "web", dict(WEB_PLAN, description="Web"))
        else:
            call = engine.delete(ApplicationSet(), "web")

        task = asyncio.create_task(call)
        await asyncio.wait_for(until_committing(device), 1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert device.count("clear") == 1
        assert device.count("close") == 1
        assert device.lock_owner is None
        assert device.running == WEB_LINES


class TestChecks:
    """Tests for existence and compatibility checks."""

    @pytest.mark.asyncio
    async def test_empty_output_is_absent(self):
        checker = ExistenceChecker(lambda identifier: f"applications application-set {identifier}")
        assert not await checker.exists(StubSession(""), "web")

    @pytest.mark.asyncio
    async def test_whitespace_output_exists(self):
        """Only an exactly empty answer means absent."""
        checker = ExistenceChecker(lambda identifier: f"applications application-set {identifier}")
        result = await checker.exists(StubSession("\n"), "web")
        assert result.exists
        assert result.dump == "\n"

    def test_device_roles(self):
        srx = SystemInformation(hardware_model="srx345")
        ex = SystemInformation(hardware_model="ex4300-48t")
        assert compatible_with_device_role(srx, DeviceRole.SECURITY)
        assert not compatible_with_device_role(ex, DeviceRole.SECURITY)
        assert not compatible_with_device_role(ex, DeviceRole.CHASSIS_CLUSTER)
        assert compatible_with_device_role(ex, DeviceRole.ANY)
