"""Shell command execution helpers."""

import asyncio
import logging
import shlex
import shutil

from rhelvm.errors import SetupError

logger = logging.getLogger(__name__)


def format_cmd(command):
    """Render an argument list as a copy-pasteable shell line."""
    return shlex.join(command)


async def run_shell_cmd(command, dry_run=False, timeout=600):
    """Run a command and return (returncode, stdout, stderr).

    Args:
        command: list of command arguments
        dry_run: if True, log the command instead of executing
        timeout: maximum seconds to wait for the command

    Returns:
        (returncode, stdout, stderr) tuple. A missing executable or a
        timeout is reported as returncode 1, never raised.
    """
    if dry_run:
        logger.info(f"[dry-run] {format_cmd(command)}")
        return 0, "", ""

    logger.debug(f"$ {format_cmd(command)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error(f"Error: '{command[0]}' not found. Is it installed and on PATH?")
        return 1, "", f"'{command[0]}' not found"

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {format_cmd(command)}")
        proc.kill()
        await proc.wait()
        return 1, "", f"timed out after {timeout}s"

    stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
    return proc.returncode, stdout, stderr


async def run_checked(command, what, dry_run=False, timeout=600):
    """Run a command whose failure aborts provisioning.

    Raises:
        SetupError: non-zero exit, with the tool's stderr in the message.
    """
    rc, stdout, stderr = await run_shell_cmd(command, dry_run=dry_run, timeout=timeout)
    if rc != 0:
        detail = stderr.strip() or stdout.strip() or f"exit status {rc}"
        raise SetupError(f"Failed to {what}: {detail}")
    return stdout


def require_tools(tools):
    """Fail unless every executable in *tools* is on PATH."""
    for tool in tools:
        if shutil.which(tool) is None:
            raise SetupError(f"{tool} is required but not installed")
