"""Guest readiness polling: DHCP lease, then SSH, then host-key trust.

A guest usually holds a lease well before sshd is up, so the two waits are
separate phases with independent attempt budgets. Every failure here is
soft: the caller carries on and the user simply gets a host-key prompt on
first connection.
"""

import asyncio
import logging
import os

from rhelvm.provisioning import keyscan, known_hosts, virsh
from rhelvm.provisioning.shell import format_cmd
from rhelvm.provisioning.types import ReadinessResult, ReadinessStatus

logger = logging.getLogger(__name__)

_PROMPT_HINT = "You will see a host key verification prompt on first connection"


async def _poll(check, max_attempts, interval):
    """Await check() up to max_attempts times; return its first truthy value.

    Sleeps *interval* seconds between attempts, not after the last one.
    """
    for attempt in range(1, max_attempts + 1):
        result = await check()
        if result:
            logger.debug(f"Succeeded on attempt {attempt}/{max_attempts}")
            return result
        if attempt < max_attempts:
            await asyncio.sleep(interval)
    return None


async def wait_for_ssh_and_trust(
    guest_id,
    hostname,
    max_attempts=30,
    interval=2,
    connect_uri=virsh.DEFAULT_CONNECT_URI,
    known_hosts_path=known_hosts.DEFAULT_KNOWN_HOSTS,
    dry_run=False,
):
    """Wait for the guest to answer on SSH and trust its host keys as *hostname*.

    Steps:
        1. Poll the libvirt DHCP lease for the guest's IPv4 address
        2. Poll ssh-keyscan (3s timeout) until the address offers a key
        3. Purge *hostname* from known_hosts, scan again (5s timeout) and
           append the keys with the address replaced by *hostname*

    Returns:
        ReadinessResult. Timeouts are reported through its status, never
        raised.
    """
    known_hosts_path = os.path.expanduser(known_hosts_path)

    if dry_run:
        logger.info(f"[dry-run] Poll up to {max_attempts}x every {interval}s: {format_cmd(virsh.lease_cmd(guest_id, connect_uri))}")
        logger.info(f"[dry-run] Poll up to {max_attempts}x every {interval}s: ssh-keyscan -T {keyscan.PROBE_TIMEOUT} <address>")
        logger.info(f"[dry-run] ssh-keyscan -T {keyscan.SCAN_TIMEOUT} <address> -> {known_hosts_path} as {hostname}")
        return ReadinessResult(ReadinessStatus.TRUSTED)

    logger.info("Waiting for VM to acquire IP address...")
    address = await _poll(lambda: virsh.get_lease_ipv4(guest_id, connect_uri), max_attempts, interval)
    if not address:
        logger.warning("Timeout waiting for VM to acquire IP address")
        logger.warning(_PROMPT_HINT)
        return ReadinessResult(ReadinessStatus.IP_TIMEOUT)
    logger.info(f"VM acquired IP address: {address}")

    logger.info(f"Waiting for SSH to be available on {address}...")
    if not await _poll(lambda: keyscan.ssh_is_up(address), max_attempts, interval):
        logger.warning(f"Timeout waiting for SSH on {address}")
        logger.warning(_PROMPT_HINT)
        return ReadinessResult(ReadinessStatus.SSH_TIMEOUT, address=address)
    logger.info("SSH is available")

    logger.info(f"Retrieving SSH host keys from {address}...")
    try:
        known_hosts.ensure_store(known_hosts_path)
        known_hosts.remove_host(known_hosts_path, hostname)
    except OSError as e:
        logger.warning(f"Cannot update {known_hosts_path}: {e}")
        logger.warning(_PROMPT_HINT)
        return ReadinessResult(ReadinessStatus.STORE_FAILED, address=address)

    scanned = await keyscan.scan_host_keys(address, timeout=keyscan.SCAN_TIMEOUT)
    scanned = [line for line in scanned if keyscan.is_key_line(line)]
    if not scanned:
        logger.warning(f"Failed to retrieve SSH host keys from {address}")
        return ReadinessResult(ReadinessStatus.KEYSCAN_FAILED, address=address)

    try:
        added = known_hosts.replace_host_keys(known_hosts_path, hostname, scanned)
    except OSError as e:
        logger.warning(f"Cannot update {known_hosts_path}: {e}")
        logger.warning(_PROMPT_HINT)
        return ReadinessResult(ReadinessStatus.STORE_FAILED, address=address)
    logger.info(f"Added {added} SSH host key(s) for {hostname} to {known_hosts_path}")
    return ReadinessResult(ReadinessStatus.TRUSTED, address=address, keys_added=added)
