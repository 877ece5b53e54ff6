"""Guest image customization: render the first-boot setup script, run virt-customize.

Every injected value is shell-quoted before substitution, so hostnames,
credentials or key material containing quotes, ``$`` or template-looking
text cannot change what the script does.
"""

import logging
import os
import re
import shlex
import string
import tempfile

from rhelvm.errors import SetupError
from rhelvm.provisioning.shell import run_checked

logger = logging.getLogger(__name__)

HOSTNAME_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")

# hostnamectl is unusable here: systemd is not running inside virt-customize.
SCRIPT_TEMPLATE = string.Template("""\
#!/bin/bash
set -e

echo $hostname > /etc/hostname

subscription-manager register --org=$org_id --activationkey=$activation_key
subscription-manager status

useradd -m -G wheel -s /bin/bash $username

dnf install -y avahi
systemctl enable avahi-daemon

mkdir -p $ssh_dir
chmod 700 $ssh_dir
printf '%s\\n' $ssh_key > $authorized_keys
chmod 600 $authorized_keys
chown -R $owner $ssh_dir

printf '%s ALL=(ALL) NOPASSWD: ALL\\n' $username > $sudoers
chmod 0440 $sudoers
$password_step""")

PASSWORD_TEMPLATE = string.Template("printf '%s\\n' $password | passwd --stdin $username\n")


def validate_identity(hostname, username):
    """Reject names that cannot be a hostname label or a portable username."""
    if not HOSTNAME_RE.match(hostname):
        raise SetupError(f"Invalid hostname '{hostname}': use letters, digits and '-' (max 63 characters)")
    if not USERNAME_RE.match(username):
        raise SetupError(f"Invalid username '{username}' for the guest account")


def render_script(hostname, org_id, activation_key, username, ssh_key, password=None):
    """Render the customization script with every value shell-quoted."""
    validate_identity(hostname, username)
    home = f"/home/{username}"
    q = shlex.quote
    password_step = ""
    if password:
        password_step = PASSWORD_TEMPLATE.substitute(password=q(password), username=q(username))
    return SCRIPT_TEMPLATE.substitute(
        hostname=q(hostname),
        org_id=q(org_id),
        activation_key=q(activation_key),
        username=q(username),
        ssh_key=q(ssh_key.strip()),
        ssh_dir=q(f"{home}/.ssh"),
        authorized_keys=q(f"{home}/.ssh/authorized_keys"),
        owner=q(f"{username}:{username}"),
        sudoers=q(f"/etc/sudoers.d/{username}"),
        password_step=password_step,
    )


def read_public_key(path):
    """Return the SSH public key the guest user will log in with."""
    try:
        with open(path) as f:
            key = f.read().strip()
    except FileNotFoundError:
        raise SetupError(f"SSH public key not found at {path}") from None
    if not key:
        raise SetupError(f"SSH public key at {path} is empty")
    return key


def _virt_customize_cmd(disk_path, script_path):
    return ["virt-customize", "-a", disk_path, "--run", script_path, "--selinux-relabel"]


async def customize_image(disk_path, script, dry_run=False):
    """Run *script* inside the disk image with virt-customize.

    The script lives in a private temporary file that is removed afterwards
    whatever the outcome.
    """
    logger.info("Customizing VM image...")
    fd, script_path = tempfile.mkstemp(prefix="rhelvm-customize-", suffix=".sh")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(script)
        os.chmod(script_path, 0o700)
        await run_checked(
            _virt_customize_cmd(disk_path, script_path),
            "customize VM image",
            dry_run=dry_run,
            timeout=1800,
        )
    finally:
        os.unlink(script_path)
