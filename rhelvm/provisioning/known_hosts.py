"""known_hosts maintenance: purge stale entries, publish keys under a hostname.

The store is the user's OpenSSH known_hosts file: one key per line,
``<host-token> <key-type> <key-material>``, ``#`` comments and blank lines
ignored. Only plain (unhashed) host tokens are matched when purging.
"""

import contextlib
import fcntl
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"


def ensure_store(path):
    """Create the store and its directory with owner-only permissions.

    Permissions are enforced on every call, whatever state the files were in.
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    os.chmod(directory, 0o700)
    with open(path, "a"):
        pass
    os.chmod(path, 0o600)


def _names_host(line, hostname):
    """True if the line's host-token list names *hostname* exactly."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return False
    fields = stripped.split()
    # Marker lines (@cert-authority / @revoked) carry the hosts in field 2
    token = fields[1] if fields[0].startswith("@") and len(fields) > 1 else fields[0]
    for host in token.split(","):
        if host.startswith("!"):
            continue
        if host == hostname:
            return True
        if host.startswith(f"[{hostname}]:"):
            return True
    return False


def rewrite_keys(lines, hostname):
    """Replace each key line's leading address token with *hostname*.

    Comment and blank lines are dropped.
    """
    rewritten = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split(None, 1)
        if len(parts) < 2:
            continue
        rewritten.append(f"{hostname} {parts[1]}")
    return rewritten


@contextlib.contextmanager
def _locked(path):
    """Hold an exclusive flock on *path* for the duration of the block."""
    with open(path, "r+") as f:
        fcntl.flock(f, fcntl.LOCK_EX)
        try:
            yield f
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)


def _remove_locked(f, hostname):
    f.seek(0)
    lines = f.readlines()
    kept = [line for line in lines if not _names_host(line, hostname)]
    removed = len(lines) - len(kept)
    if removed:
        f.seek(0)
        f.writelines(kept)
        f.truncate()
    return removed


def remove_host(path, hostname):
    """Delete every entry naming *hostname*. Returns the number removed."""
    if not os.path.exists(path):
        return 0
    with _locked(path) as f:
        removed = _remove_locked(f, hostname)
    if removed:
        logger.info(f"Removed {removed} existing entr{'y' if removed == 1 else 'ies'} for {hostname}")
    return removed


def replace_host_keys(path, hostname, scanned_lines):
    """Purge *hostname* and append the scanned keys under that name.

    Both steps run under one lock, so readers never see a half-written set.
    Returns the number of key lines appended.
    """
    entries = rewrite_keys(scanned_lines, hostname)
    ensure_store(path)
    with _locked(path) as f:
        removed = _remove_locked(f, hostname)
        if removed:
            logger.info(f"Removing existing entries for {hostname}...")
        f.seek(0, os.SEEK_END)
        if f.tell() > 0:
            f.seek(f.tell() - 1)
            if f.read(1) != "\n":
                f.write("\n")
        for entry in entries:
            f.write(entry + "\n")
    return len(entries)
