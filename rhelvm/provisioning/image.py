"""Disk and domain definition: base image, qcow2 overlay, virt-install."""

import logging
import os
import shutil

from rhelvm.errors import SetupError
from rhelvm.provisioning.shell import run_checked, run_shell_cmd

logger = logging.getLogger(__name__)

DOWNLOAD_URL = "https://access.redhat.com/downloads/content/rhel"
FALLBACK_OS_VARIANT = "rhel-unknown"


# ── Command builders ───────────────────────────────────────────────


def _qemu_img_create_cmd(base_image, disk_path, size):
    """Build qemu-img command for a qcow2 overlay backed by *base_image*."""
    return ["qemu-img", "create", "-f", "qcow2", "-F", "qcow2", "-b", base_image, disk_path, size]


def _osinfo_query_cmd():
    return ["osinfo-query", "os", "--fields", "short-id"]


def _virt_install_cmd(spec, os_variant, connect_uri):
    """Build virt-install command that imports the prepared disk."""
    return [
        "virt-install",
        "--connect", connect_uri,
        "--name", spec.name,
        "--memory", str(spec.memory),
        "--vcpus", str(spec.vcpus),
        "--disk", f"path={spec.disk_path},format=qcow2",
        "--network", f"network={spec.network}",
        "--os-variant", os_variant,
        "--import",
        "--noautoconsole",
    ]


# ── OS variant ─────────────────────────────────────────────────────


def parse_short_ids(output):
    """Short IDs from ``osinfo-query os --fields short-id`` (header skipped)."""
    ids = []
    for line in output.splitlines():
        value = line.strip()
        if not value or value.startswith("-") or value == "Short ID":
            continue
        ids.append(value)
    return ids


def pick_os_variant(version, available):
    """Most specific known variant: rhelX.Y, then rhelX-unknown, then rhel-unknown.

    Returns None when none of them is in *available*.
    """
    major = version.split(".", 1)[0]
    available = set(available)
    for candidate in (f"rhel{version}", f"rhel{major}-unknown", FALLBACK_OS_VARIANT):
        if candidate in available:
            return candidate
    return None


async def resolve_os_variant(version, dry_run=False):
    """Ask the osinfo database for the best variant of RHEL *version*."""
    variant = None
    if shutil.which("osinfo-query") and not dry_run:
        rc, stdout, _ = await run_shell_cmd(_osinfo_query_cmd(), timeout=60)
        if rc == 0:
            variant = pick_os_variant(version, parse_short_ids(stdout))

    if variant is None:
        logger.warning(f"Using OS variant: {FALLBACK_OS_VARIANT} (rhel{version} not found in osinfo database)")
        return FALLBACK_OS_VARIANT
    logger.info(f"Using OS variant: {variant}")
    return variant


# ── Operations ─────────────────────────────────────────────────────


def require_base_image(base_image, version):
    """Fail with download instructions when the base image is missing."""
    if not os.path.isfile(base_image):
        raise SetupError(
            f"Base image not found at {base_image}\n"
            f"  Please download the RHEL {version} KVM image from:\n"
            f"  {DOWNLOAD_URL}\n"
            f"  and place it at {base_image}"
        )
    logger.info(f"Base image found: {base_image}")


async def create_overlay_disk(base_image, spec, dry_run=False):
    """Create the guest's disk as a copy-on-write overlay of the base image."""
    if not dry_run:
        os.makedirs(spec.disk_dir, exist_ok=True)
        if os.path.exists(spec.disk_path):
            raise SetupError(f"Disk {spec.disk_path} already exists; remove it or pick another name")
    logger.info("Creating VM disk with backing file...")
    await run_checked(
        _qemu_img_create_cmd(base_image, spec.disk_path, spec.disk_size),
        "create VM disk",
        dry_run=dry_run,
    )


def remove_overlay_disk(spec):
    """Delete the overlay disk left behind by a failed create, if present."""
    if not os.path.exists(spec.disk_path):
        return
    try:
        os.remove(spec.disk_path)
    except OSError as e:
        logger.warning(f"Could not remove {spec.disk_path}: {e}")
        return
    logger.info(f"Removed incomplete disk {spec.disk_path}")


async def define_guest(spec, os_variant, connect_uri, dry_run=False):
    """Register the domain with libvirt via virt-install --import."""
    logger.info("Creating VM definition...")
    await run_checked(
        _virt_install_cmd(spec, os_variant, connect_uri),
        "create VM definition",
        dry_run=dry_run,
        timeout=900,
    )
    logger.info("VM created successfully!")
