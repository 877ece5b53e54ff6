"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def run_cli(project_root, tmp_path):
    """Return a callable that invokes the rhelvm CLI as a subprocess.

    HOME points at a temp dir so the user's real config and known_hosts
    are never read or written.
    """
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    env["USER"] = "tester"
    env.pop("REDHAT_ORG_ID", None)
    env.pop("REDHAT_ACTIVATION_KEY", None)

    def _run(*args):
        result = subprocess.run(
            [sys.executable, "-m", "rhelvm.rhelvm", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def known_hosts_path(tmp_path):
    """Path to a not-yet-created known_hosts file inside a private .ssh dir."""
    return str(tmp_path / "home" / ".ssh" / "known_hosts")


@pytest.fixture(autouse=True)
def _no_secret_env(monkeypatch):
    """Keep real subscription credentials out of every test."""
    monkeypatch.delenv("REDHAT_ORG_ID", raising=False)
    monkeypatch.delenv("REDHAT_ACTIVATION_KEY", raising=False)
