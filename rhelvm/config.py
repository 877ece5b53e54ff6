"""Configuration loading: YAML file plus environment overrides."""

import logging
import os
from dataclasses import dataclass, fields

import yaml

from rhelvm.errors import SetupError
from rhelvm.redact import register_secret

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/rhelmcp/config.yaml"

# Environment variables that take precedence over the config file
_ENV_OVERRIDES = {
    "org_id": "REDHAT_ORG_ID",
    "activation_key": "REDHAT_ACTIVATION_KEY",
}


@dataclass
class Config:
    """Operator configuration passed explicitly into the workflow."""

    org_id: str = ""
    activation_key: str = ""
    base_path: str = "~/.local/share/rhelmcp"
    disk_dir: str = "~/.local/share/libvirt/images"
    connect_uri: str = "qemu:///system"
    username: str = ""
    ssh_public_key: str = "~/.ssh/id_rsa.pub"
    known_hosts: str = "~/.ssh/known_hosts"
    user_password: str | None = None

    def __post_init__(self):
        for name in ("base_path", "disk_dir", "ssh_public_key", "known_hosts"):
            setattr(self, name, _expand_path(getattr(self, name)))
        if not self.username:
            self.username = os.environ.get("USER", "")

    def base_image(self, version: str) -> str:
        """Path of the RHEL KVM guest image for *version* (e.g. 9.3)."""
        return os.path.join(self.base_path, f"rhel-{version}-x86_64-kvm.qcow2")

    def validate(self) -> None:
        """Require subscription credentials and a user to create."""
        if not self.org_id or not self.activation_key:
            raise SetupError("org_id and activation_key must be set in the config file (or REDHAT_ORG_ID / REDHAT_ACTIVATION_KEY)")
        if not self.username:
            raise SetupError("Cannot determine the guest username: set 'username' in the config file or $USER")


def load_config(config_path: str = DEFAULT_CONFIG_PATH, required: bool = True) -> Config:
    """Load configuration from a YAML file, then apply env overrides.

    A missing file is an error only when *required* is set and the
    credentials are not fully provided by the environment.
    """
    path = _expand_path(config_path)
    raw = {}
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        env_complete = all(os.environ.get(var) for var in _ENV_OVERRIDES.values())
        if required and not env_complete:
            raise SetupError(f"Configuration file not found at {path}") from None
        logger.debug(f"No config file at {path}, using defaults and environment")
    except yaml.YAMLError as e:
        raise SetupError(f"Error parsing YAML config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise SetupError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise SetupError(f"Unknown key(s) in {path}: {', '.join(unknown)}")

    values = {k: ("" if v is None and k != "user_password" else v) for k, v in raw.items()}
    for key in ("org_id", "activation_key", "user_password"):
        if values.get(key) is not None:
            values[key] = str(values[key])
    for key, var in _ENV_OVERRIDES.items():
        if os.environ.get(var):
            values[key] = os.environ[var]

    config = Config(**values)
    for secret in (config.org_id, config.activation_key, config.user_password):
        register_secret(secret)
    return config


def _expand_path(path: str) -> str:
    """Expand user home directory and environment variables in path."""
    return os.path.expanduser(os.path.expandvars(path))
