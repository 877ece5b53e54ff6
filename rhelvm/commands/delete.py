"""Delete command: remove a guest, its storage and its known_hosts entries."""

import asyncio
import logging
import sys

from rhelvm.config import DEFAULT_CONFIG_PATH, load_config
from rhelvm.errors import SetupError
from rhelvm.provisioning import known_hosts, virsh

logger = logging.getLogger(__name__)


async def delete_vm(name, config, keep_known_hosts=False, dry_run=False):
    """Destroy and undefine *name*; forget its host keys unless asked not to."""
    uri = config.connect_uri
    if not dry_run and not await virsh.guest_exists(name, uri):
        raise SetupError(f"VM '{name}' does not exist")

    logger.info(f"Deleting VM '{name}'...")
    await virsh.remove_guest(name, uri, dry_run=dry_run)
    logger.info("VM deleted.")

    if keep_known_hosts:
        return
    hostname = f"{name}.local"
    if dry_run:
        logger.info(f"[dry-run] remove {hostname} from {config.known_hosts}")
        return
    known_hosts.remove_host(config.known_hosts, hostname)


def handle_delete(args):
    """CLI handler for 'delete'."""
    try:
        config = load_config(args.config, required=False)
        if args.connect:
            config.connect_uri = args.connect
        asyncio.run(delete_vm(args.name, config, keep_known_hosts=args.keep_known_hosts, dry_run=args.dry_run))
    except SetupError as e:
        logger.error(str(e))
        sys.exit(1)


def register_delete_command(subparsers):
    """Register the 'delete' subcommand."""
    parser = subparsers.add_parser("delete", help="Delete a VM and all of its storage")
    parser.add_argument("name", help="VM name")
    parser.add_argument("--connect", default=None, help="libvirt URI (default: from config, qemu:///system)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--keep-known-hosts", action="store_true", help="Leave <name>.local entries in known_hosts")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    parser.set_defaults(func=handle_delete)
