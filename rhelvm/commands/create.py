"""Create command: build, register and boot a local RHEL test VM."""

import asyncio
import logging
import os
import re
import sys

from rhelvm.config import DEFAULT_CONFIG_PATH, load_config
from rhelvm.errors import SetupError
from rhelvm.provisioning import customize, image, virsh
from rhelvm.provisioning.readiness import wait_for_ssh_and_trust
from rhelvm.provisioning.shell import require_tools
from rhelvm.provisioning.types import GuestSpec

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ["virsh", "virt-install", "virt-customize", "qemu-img"]
VERSION_RE = re.compile(r"^[0-9]+\.[0-9]+$")


def validate_args(version, name):
    """Check the RHEL version and guest name before touching anything."""
    if not VERSION_RE.match(version):
        raise SetupError("Version must be in format X.Y (e.g., 9.3)")
    if not name:
        raise SetupError("VM name must not be empty")
    if "." in name:
        raise SetupError("VM name cannot contain periods (.) as it is used as a hostname component")
    if not customize.HOSTNAME_RE.match(name):
        raise SetupError(f"VM name '{name}' is not a valid hostname (letters, digits and '-', max 63 characters)")


async def create_vm(spec, config, max_attempts=30, interval=2, dry_run=False):
    """Run the full provisioning sequence for *spec*.

    Steps:
        1. Preflight: tools, libvirtd, config, base image, name collision
        2. Overlay disk from the base image
        3. virt-customize: hostname, subscription, user, avahi, ssh key, sudo
        4. virt-install --import, then start. A failure in 3 or 4 removes
           the disk created in 2
        5. Wait for SSH and trust the host keys as <name>.local

    Raises:
        SetupError on any fatal step. A readiness timeout is not fatal.

    Returns:
        ReadinessResult from the final wait.
    """
    uri = config.connect_uri
    logger.info(f"Setting up VM: {spec.name} with RHEL {spec.version}")

    if not dry_run:
        require_tools(REQUIRED_TOOLS)
    logger.info("Checking libvirtd connection...")
    await virsh.check_connection(uri, dry_run=dry_run)

    config.validate()

    base_image = config.base_image(spec.version)
    if not dry_run:
        image.require_base_image(base_image, spec.version)
        if await virsh.guest_exists(spec.name, uri):
            raise SetupError(
                f"VM '{spec.name}' already exists. Please delete it first with: "
                f"virsh -c {uri} undefine --remove-all-storage {spec.name}"
            )

    try:
        ssh_key = customize.read_public_key(config.ssh_public_key)
    except SetupError:
        if not dry_run:
            raise
        ssh_key = "ssh-ed25519 AAAA... dry-run"
    script = customize.render_script(
        hostname=spec.name,
        org_id=config.org_id,
        activation_key=config.activation_key,
        username=config.username,
        ssh_key=ssh_key,
        password=config.user_password,
    )

    await image.create_overlay_disk(base_image, spec, dry_run=dry_run)
    try:
        await customize.customize_image(spec.disk_path, script, dry_run=dry_run)
        os_variant = await image.resolve_os_variant(spec.version, dry_run=dry_run)
        await image.define_guest(spec, os_variant, uri, dry_run=dry_run)
    except SetupError:
        # The disk was created by this run
        if not dry_run:
            image.remove_overlay_disk(spec)
        raise

    logger.info("Starting VM...")
    await virsh.start_guest(spec.name, uri, dry_run=dry_run)

    result = await wait_for_ssh_and_trust(
        spec.name,
        spec.hostname,
        max_attempts=max_attempts,
        interval=interval,
        connect_uri=uri,
        known_hosts_path=config.known_hosts,
        dry_run=dry_run,
    )
    if result.trusted:
        logger.info("SSH host keys configured - you can connect immediately")
    else:
        logger.warning("Could not automatically configure SSH host keys")

    _print_summary(spec, config)
    return result


def _print_summary(spec, config):
    uri = config.connect_uri
    logger.info("")
    logger.info(f"VM '{spec.name}' is ready!")
    logger.info(f"You can connect with: ssh {config.username}@{spec.hostname}")
    logger.info("")
    logger.info("Useful commands:")
    logger.info(f"  virsh -c {uri} console {spec.name}  # Connect to console")
    logger.info(f"  virsh -c {uri} shutdown {spec.name}  # Shutdown VM")
    logger.info(f"  virsh -c {uri} start {spec.name}     # Start VM")
    logger.info(f"  rhelvm delete {spec.name}            # Delete VM and its storage")


# ── CLI handlers ───────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'create'."""
    try:
        validate_args(args.version, args.name)
        config = load_config(args.config, required=not args.dry_run)
        if args.ssh_key:
            config.ssh_public_key = os.path.expanduser(args.ssh_key)
        if args.connect:
            config.connect_uri = args.connect
        if args.dry_run and not (config.org_id and config.activation_key):
            config.org_id = config.org_id or "dry-run-org"
            config.activation_key = config.activation_key or "dry-run-key"
        if args.dry_run and not config.username:
            config.username = "cloud-user"
        spec = GuestSpec(
            name=args.name,
            version=args.version,
            disk_dir=config.disk_dir,
            memory=args.memory,
            vcpus=args.vcpus,
            disk_size=args.disk_size,
            network=args.network,
        )
        asyncio.run(
            create_vm(
                spec,
                config,
                max_attempts=args.max_attempts,
                interval=args.interval,
                dry_run=args.dry_run,
            )
        )
    except SetupError as e:
        logger.error(str(e))
        sys.exit(1)


# ── Registration ───────────────────────────────────────────────────


def register_create_command(subparsers):
    """Register the 'create' subcommand."""
    parser = subparsers.add_parser("create", help="Create and boot a local RHEL test VM")
    parser.add_argument("name", help="VM name (also the hostname; no periods)")
    parser.add_argument("--version", required=True, help="RHEL version as <MAJOR>.<MINOR> (e.g. 9.3)")
    parser.add_argument("--memory", type=int, default=4096, help="Memory in MiB (default: 4096)")
    parser.add_argument("--vcpus", type=int, default=2, help="Virtual CPUs (default: 2)")
    parser.add_argument("--disk-size", default="16G", help="Overlay disk size (default: 16G)")
    parser.add_argument("--network", default="default", help="libvirt network (default: default)")
    parser.add_argument("--connect", default=None, help="libvirt URI (default: from config, qemu:///system)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--ssh-key", default=None, help="SSH public key to install (default: from config, ~/.ssh/id_rsa.pub)")
    parser.add_argument("--max-attempts", type=int, default=30, help="Polls per readiness phase (default: 30)")
    parser.add_argument("--interval", type=float, default=2, help="Seconds between polls (default: 2)")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    parser.set_defaults(func=handle_create)
