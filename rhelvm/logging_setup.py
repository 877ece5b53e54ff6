"""CLI logging setup: plain message format, warnings flagged."""

import logging
import sys

from rhelvm.redact import SecretRedactingFilter


class _CliFormatter(logging.Formatter):
    """``%(message)s`` for INFO and below; ``Warning:``/``Error:`` prefixes above."""

    _PREFIXES = {
        logging.WARNING: "Warning: ",
        logging.ERROR: "Error: ",
        logging.CRITICAL: "Error: ",
    }

    def format(self, record):
        message = super().format(record)
        prefix = self._PREFIXES.get(record.levelno, "")
        if prefix and not message.startswith(prefix) and message.strip():
            message = prefix + message
        return message


def setup_cli_logging(verbose=False):
    """Configure the root logger for CLI commands.

    Output reads like plain print() lines. Secret values are masked on every
    record before any handler sees it.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_CliFormatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
