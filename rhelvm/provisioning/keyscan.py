"""ssh-keyscan probe: fetch a host's offered public keys without logging in."""

import logging

from rhelvm.provisioning.shell import run_shell_cmd

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 3
SCAN_TIMEOUT = 5

# Key types ssh-keyscan may print: ssh-rsa, ssh-ed25519, ecdsa-sha2-*, sk-*
_KEY_TYPE_PREFIXES = ("ssh-", "ecdsa-", "sk-")


def _keyscan_cmd(address, timeout):
    """Build the ssh-keyscan command line."""
    return ["ssh-keyscan", "-T", str(timeout), address]


def is_key_line(line):
    """True if *line* looks like ``<host> <key-type> <key-material>``."""
    parts = line.split()
    return len(parts) >= 3 and not parts[0].startswith("#") and parts[1].startswith(_KEY_TYPE_PREFIXES)


async def scan_host_keys(address, timeout=SCAN_TIMEOUT):
    """Return the raw ssh-keyscan output lines for *address*.

    Returns an empty list when the host does not answer in time. The
    process gets a little longer than the connect timeout so a slow
    handshake is not cut off mid-scan.
    """
    rc, stdout, stderr = await run_shell_cmd(_keyscan_cmd(address, timeout), timeout=timeout + 10)
    if rc != 0 and not stdout:
        logger.debug(f"ssh-keyscan {address} failed: {stderr.strip()}")
    return stdout.splitlines()


async def ssh_is_up(address, timeout=PROBE_TIMEOUT):
    """Quick probe: does *address* offer at least one SSH host key?"""
    return any(is_key_line(line) for line in await scan_host_keys(address, timeout=timeout))
