"""libvirt access through the virsh CLI: leases, existence, start/stop, removal."""

import logging

from rhelvm.errors import SetupError
from rhelvm.provisioning.shell import run_checked, run_shell_cmd

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_URI = "qemu:///system"


# ── Command builders ───────────────────────────────────────────────


def _virsh_cmd(connect_uri, *args):
    """Build a virsh command bound to *connect_uri*."""
    return ["virsh", "-c", connect_uri, *args]


def lease_cmd(guest, connect_uri=DEFAULT_CONNECT_URI):
    """Build the DHCP lease lookup for a guest."""
    return _virsh_cmd(connect_uri, "domifaddr", guest, "--source", "lease")


def _dominfo_cmd(guest, connect_uri=DEFAULT_CONNECT_URI):
    return _virsh_cmd(connect_uri, "dominfo", guest)


def _list_cmd(connect_uri=DEFAULT_CONNECT_URI):
    return _virsh_cmd(connect_uri, "list")


def _start_cmd(guest, connect_uri=DEFAULT_CONNECT_URI):
    return _virsh_cmd(connect_uri, "start", guest)


def _destroy_cmd(guest, connect_uri=DEFAULT_CONNECT_URI):
    return _virsh_cmd(connect_uri, "destroy", guest)


def _undefine_cmd(guest, connect_uri=DEFAULT_CONNECT_URI):
    return _virsh_cmd(connect_uri, "undefine", "--remove-all-storage", guest)


# ── Parsing ────────────────────────────────────────────────────────


def parse_lease_ipv4(output):
    """Extract the first IPv4 address from ``virsh domifaddr`` output.

    Rows look like ``vnet0  52:54:00:..  ipv4  192.168.122.50/24``; the
    prefix length is stripped. Returns None when no ipv4 row exists.
    """
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 4 and parts[2] == "ipv4":
            address = parts[3].split("/", 1)[0]
            if address:
                return address
    return None


# ── Operations ─────────────────────────────────────────────────────


async def get_lease_ipv4(guest, connect_uri=DEFAULT_CONNECT_URI):
    """Return the guest's leased IPv4 address, or None if it has none yet.

    Errors from virsh are treated as "no lease": the guest may still be
    booting.
    """
    rc, stdout, _ = await run_shell_cmd(lease_cmd(guest, connect_uri), timeout=30)
    if rc != 0:
        return None
    return parse_lease_ipv4(stdout)


async def check_connection(connect_uri=DEFAULT_CONNECT_URI, dry_run=False):
    """Fail unless libvirtd answers on *connect_uri*."""
    rc, _, _ = await run_shell_cmd(_list_cmd(connect_uri), dry_run=dry_run, timeout=60)
    if rc != 0:
        raise SetupError(
            "Cannot connect to libvirtd. Please ensure libvirtd is running and you have permission to connect.\n"
            f"  Try: virsh -c {connect_uri} list"
        )


async def guest_exists(guest, connect_uri=DEFAULT_CONNECT_URI):
    """True if libvirt already knows a domain called *guest*."""
    rc, _, _ = await run_shell_cmd(_dominfo_cmd(guest, connect_uri), timeout=60)
    return rc == 0


async def start_guest(guest, connect_uri=DEFAULT_CONNECT_URI, dry_run=False):
    """Start the guest; a guest that is already running is not an error.

    virt-install --import usually boots the domain itself, so ``virsh start``
    commonly reports "Domain is already active".
    """
    rc, _, stderr = await run_shell_cmd(_start_cmd(guest, connect_uri), dry_run=dry_run, timeout=120)
    if rc != 0:
        if "already active" in stderr:
            logger.debug(f"Guest '{guest}' is already running")
        else:
            logger.warning(f"virsh start {guest} failed: {stderr.strip()}")
    return rc == 0


async def remove_guest(guest, connect_uri=DEFAULT_CONNECT_URI, dry_run=False):
    """Power off (if running) and undefine the guest, deleting its storage."""
    rc, _, stderr = await run_shell_cmd(_destroy_cmd(guest, connect_uri), dry_run=dry_run, timeout=120)
    if rc != 0 and "not running" not in stderr:
        logger.debug(f"virsh destroy {guest}: {stderr.strip()}")
    await run_checked(_undefine_cmd(guest, connect_uri), f"undefine guest '{guest}'", dry_run=dry_run, timeout=300)
