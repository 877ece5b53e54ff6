"""Unit tests for the delete workflow."""

import os

import pytest

from rhelvm.commands import delete
from rhelvm.commands.delete import delete_vm
from rhelvm.config import Config
from rhelvm.errors import SetupError


@pytest.fixture
def config(known_hosts_path):
    return Config(username="alice", known_hosts=known_hosts_path)


def _fake_virsh(monkeypatch, exists=True):
    removed = []

    async def guest_exists(name, uri):
        return exists

    async def remove_guest(name, uri, dry_run=False):
        removed.append(name)

    monkeypatch.setattr(delete.virsh, "guest_exists", guest_exists)
    monkeypatch.setattr(delete.virsh, "remove_guest", remove_guest)
    return removed


def _seed(path):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write("testvm.local ssh-ed25519 KEY\nother ssh-rsa KEEP\n")


async def test_delete_vm_forgets_host_keys(monkeypatch, config, known_hosts_path):
    removed = _fake_virsh(monkeypatch)
    _seed(known_hosts_path)

    await delete_vm("testvm", config)

    assert removed == ["testvm"]
    with open(known_hosts_path) as f:
        assert f.read() == "other ssh-rsa KEEP\n"


async def test_delete_vm_keep_known_hosts(monkeypatch, config, known_hosts_path):
    _fake_virsh(monkeypatch)
    _seed(known_hosts_path)

    await delete_vm("testvm", config, keep_known_hosts=True)

    with open(known_hosts_path) as f:
        assert "testvm.local" in f.read()


async def test_delete_vm_missing_guest(monkeypatch, config):
    removed = _fake_virsh(monkeypatch, exists=False)
    with pytest.raises(SetupError, match="does not exist"):
        await delete_vm("testvm", config)
    assert removed == []
