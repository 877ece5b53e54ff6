"""Shared data types for guest provisioning."""

import enum
import os
from dataclasses import dataclass


class ReadinessStatus(enum.Enum):
    """Outcome of the readiness poller."""

    TRUSTED = "trusted"
    IP_TIMEOUT = "ip_timeout"
    SSH_TIMEOUT = "ssh_timeout"
    KEYSCAN_FAILED = "keyscan_failed"
    STORE_FAILED = "store_failed"


@dataclass
class ReadinessResult:
    """Structured return from wait_for_ssh_and_trust()."""

    status: ReadinessStatus
    address: str | None = None
    keys_added: int = 0

    @property
    def ready(self) -> bool:
        """True when the guest has an address and answers on SSH."""
        return self.status in (ReadinessStatus.TRUSTED, ReadinessStatus.KEYSCAN_FAILED, ReadinessStatus.STORE_FAILED)

    @property
    def trusted(self) -> bool:
        """True when host keys were written to known_hosts."""
        return self.status is ReadinessStatus.TRUSTED


@dataclass
class GuestSpec:
    """Everything virt-install and the poller need to know about one guest."""

    name: str
    version: str
    disk_dir: str
    memory: int = 4096
    vcpus: int = 2
    disk_size: str = "16G"
    network: str = "default"

    @property
    def hostname(self) -> str:
        """mDNS hostname the guest announces (name.local)."""
        return f"{self.name}.local"

    @property
    def major(self) -> str:
        return self.version.split(".", 1)[0]

    @property
    def disk_path(self) -> str:
        return os.path.join(self.disk_dir, f"{self.name}.qcow2")
