"""Trust command: rerun the SSH readiness wait and host-key import for a guest."""

import asyncio
import logging
import sys

from rhelvm.config import DEFAULT_CONFIG_PATH, load_config
from rhelvm.errors import SetupError
from rhelvm.provisioning.readiness import wait_for_ssh_and_trust


logger = logging.getLogger(__name__)


def handle_trust(args):
    """CLI handler for 'trust'."""
    try:
        config = load_config(args.config, required=False)
    except SetupError as e:
        logger.error(str(e))
        sys.exit(1)
    connect_uri = args.connect or config.connect_uri
    hostname = args.hostname or f"{args.name}.local"

    result = asyncio.run(
        wait_for_ssh_and_trust(
            args.name,
            hostname,
            max_attempts=args.max_attempts,
            interval=args.interval,
            connect_uri=connect_uri,
            known_hosts_path=config.known_hosts,
            dry_run=args.dry_run,
        )
    )
    if not result.trusted:
        sys.exit(1)


def register_trust_command(subparsers):
    """Register the 'trust' subcommand."""
    parser = subparsers.add_parser("trust", help="Wait for SSH on a running VM and trust its host keys")
    parser.add_argument("name", help="VM name")
    parser.add_argument("--hostname", default=None, help="Name to record in known_hosts (default: <name>.local)")
    parser.add_argument("--connect", default=None, help="libvirt URI (default: from config, qemu:///system)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--max-attempts", type=int, default=30, help="Polls per readiness phase (default: 30)")
    parser.add_argument("--interval", type=float, default=2, help="Seconds between polls (default: 2)")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    parser.set_defaults(func=handle_trust)
