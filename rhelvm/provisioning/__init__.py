"""Guest provisioning: libvirt, image customization, SSH readiness and trust."""

from rhelvm.provisioning.readiness import wait_for_ssh_and_trust
from rhelvm.provisioning.shell import require_tools, run_checked, run_shell_cmd
from rhelvm.provisioning.types import GuestSpec, ReadinessResult, ReadinessStatus

__all__ = [
    "GuestSpec",
    "ReadinessResult",
    "ReadinessStatus",
    "wait_for_ssh_and_trust",
    "run_shell_cmd",
    "run_checked",
    "require_tools",
]
