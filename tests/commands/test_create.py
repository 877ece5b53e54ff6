"""Unit tests for the create workflow with every external call faked."""

import os

import pytest

from rhelvm.commands import create
from rhelvm.commands.create import create_vm, validate_args
from rhelvm.config import Config
from rhelvm.errors import SetupError
from rhelvm.provisioning.types import GuestSpec, ReadinessResult, ReadinessStatus


# ── validate_args ─────────────────────────────────────────────────


@pytest.mark.parametrize("version", ["9.3", "10.0", "8.10"])
def test_validate_args_accepts_versions(version):
    validate_args(version, "testvm")


@pytest.mark.parametrize("version", ["9", "9.3.1", "v9.3", "9.x", ""])
def test_validate_args_rejects_versions(version):
    with pytest.raises(SetupError, match="format X.Y"):
        validate_args(version, "testvm")


def test_validate_args_rejects_period_in_name():
    with pytest.raises(SetupError, match="cannot contain periods"):
        validate_args("9.3", "test.vm")


@pytest.mark.parametrize("name", ["test_vm", "vm with space", "-vm", "a" * 64])
def test_validate_args_rejects_bad_hostnames(name):
    with pytest.raises(SetupError, match="not a valid hostname"):
        validate_args("9.3", name)


# ── create_vm ─────────────────────────────────────────────────────


class Recorder:
    """Collects the order in which workflow steps run."""

    def __init__(self, exists=False, readiness=ReadinessStatus.TRUSTED, fail_at=None):
        self.steps = []
        self.fail_at = fail_at
        self.exists = exists
        self.readiness = readiness
        self.script = None

    def install(self, monkeypatch):
        async def check_connection(uri, dry_run=False):
            self.steps.append("connect")

        async def guest_exists(name, uri):
            self.steps.append("exists")
            return self.exists

        async def create_overlay_disk(base_image, spec, dry_run=False):
            self.steps.append("disk")
            os.makedirs(spec.disk_dir, exist_ok=True)
            with open(spec.disk_path, "w"):
                pass

        async def customize_image(disk_path, script, dry_run=False):
            self.steps.append("customize")
            self.script = script
            if self.fail_at == "customize":
                raise SetupError("Failed to customize VM image: subscription-manager register failed")

        async def resolve_os_variant(version, dry_run=False):
            self.steps.append("variant")
            return "rhel9.3"

        async def define_guest(spec, os_variant, uri, dry_run=False):
            self.steps.append("define")
            if self.fail_at == "define":
                raise SetupError("Failed to create VM definition: network default is not active")

        async def start_guest(name, uri, dry_run=False):
            self.steps.append("start")
            return True

        async def wait(guest_id, hostname, **kwargs):
            self.steps.append(("wait", guest_id, hostname, kwargs["max_attempts"], kwargs["interval"]))
            return ReadinessResult(self.readiness)

        monkeypatch.setattr(create, "require_tools", lambda tools: self.steps.append("tools"))
        monkeypatch.setattr(create.virsh, "check_connection", check_connection)
        monkeypatch.setattr(create.virsh, "guest_exists", guest_exists)
        monkeypatch.setattr(create.virsh, "start_guest", start_guest)
        monkeypatch.setattr(create.image, "require_base_image", lambda path, version: self.steps.append("image"))
        monkeypatch.setattr(create.image, "create_overlay_disk", create_overlay_disk)
        monkeypatch.setattr(create.image, "resolve_os_variant", resolve_os_variant)
        monkeypatch.setattr(create.image, "define_guest", define_guest)
        monkeypatch.setattr(create.customize, "customize_image", customize_image)
        monkeypatch.setattr(create, "wait_for_ssh_and_trust", wait)


@pytest.fixture
def config(tmp_path):
    pub = tmp_path / "id_rsa.pub"
    pub.write_text("ssh-ed25519 AAAATEST alice@laptop\n")
    return Config(
        org_id="1234567",
        activation_key="lab-key",
        username="alice",
        base_path=str(tmp_path / "images"),
        disk_dir=str(tmp_path / "disks"),
        ssh_public_key=str(pub),
        known_hosts=str(tmp_path / ".ssh" / "known_hosts"),
    )


@pytest.fixture
def spec(tmp_path):
    return GuestSpec(name="testvm", version="9.3", disk_dir=str(tmp_path / "disks"))


async def test_create_vm_runs_steps_in_order(monkeypatch, config, spec):
    rec = Recorder()
    rec.install(monkeypatch)

    result = await create_vm(spec, config, max_attempts=5, interval=0)

    assert result.trusted
    assert rec.steps == [
        "tools", "connect", "image", "exists", "disk", "customize", "variant", "define", "start",
        ("wait", "testvm", "testvm.local", 5, 0),
    ]
    assert "--org=1234567" in rec.script
    assert "ssh-ed25519 AAAATEST alice@laptop" in rec.script


async def test_create_vm_name_collision_is_fatal(monkeypatch, config, spec):
    rec = Recorder(exists=True)
    rec.install(monkeypatch)

    with pytest.raises(SetupError, match="already exists.*undefine --remove-all-storage testvm"):
        await create_vm(spec, config)
    assert "disk" not in rec.steps


async def test_create_vm_missing_credentials_is_fatal(monkeypatch, config, spec):
    Recorder().install(monkeypatch)
    config.activation_key = ""
    with pytest.raises(SetupError, match="activation_key"):
        await create_vm(spec, config)


async def test_create_vm_missing_public_key_is_fatal(monkeypatch, config, spec, tmp_path):
    rec = Recorder()
    rec.install(monkeypatch)
    config.ssh_public_key = str(tmp_path / "missing.pub")

    with pytest.raises(SetupError, match="SSH public key not found"):
        await create_vm(spec, config)
    assert "disk" not in rec.steps


async def test_create_vm_readiness_timeout_is_not_fatal(monkeypatch, config, spec, caplog):
    Recorder(readiness=ReadinessStatus.IP_TIMEOUT).install(monkeypatch)

    with caplog.at_level("INFO"):
        result = await create_vm(spec, config)

    assert result.status is ReadinessStatus.IP_TIMEOUT
    assert "Could not automatically configure SSH host keys" in caplog.text
    assert "VM 'testvm' is ready!" in caplog.text
    assert "ssh alice@testvm.local" in caplog.text


@pytest.mark.parametrize("step", ["customize", "define"])
async def test_create_vm_failure_after_disk_removes_it(monkeypatch, config, spec, step):
    rec = Recorder(fail_at=step)
    rec.install(monkeypatch)

    with pytest.raises(SetupError, match="Failed to"):
        await create_vm(spec, config)

    assert "disk" in rec.steps
    assert "start" not in rec.steps
    assert not os.path.exists(spec.disk_path)


async def test_create_vm_can_retry_after_failed_customize(monkeypatch, config, spec):
    real_create_overlay_disk = create.image.create_overlay_disk
    rec = Recorder(fail_at="customize")
    rec.install(monkeypatch)

    async def run_checked(command, what, dry_run=False, timeout=600):
        with open(command[-2], "w"):
            pass

    monkeypatch.setattr(create.image, "create_overlay_disk", real_create_overlay_disk)
    monkeypatch.setattr(create.image, "run_checked", run_checked)
    with pytest.raises(SetupError):
        await create_vm(spec, config)

    rec.fail_at = None
    result = await create_vm(spec, config, interval=0)

    assert result.trusted


async def test_create_vm_keeps_existing_disk_on_refusal(monkeypatch, config, spec):
    Recorder().install(monkeypatch)

    async def create_overlay_disk(base_image, spec, dry_run=False):
        raise SetupError(f"Disk {spec.disk_path} already exists; remove it or pick another name")

    monkeypatch.setattr(create.image, "create_overlay_disk", create_overlay_disk)
    os.makedirs(spec.disk_dir)
    with open(spec.disk_path, "w") as f:
        f.write("someone else's disk")

    with pytest.raises(SetupError, match="already exists"):
        await create_vm(spec, config)

    assert os.path.exists(spec.disk_path)
