#!/usr/bin/env python3
"""Local RHEL test VM tools — CLI entrypoint."""

import argparse

from rhelvm.commands.create import register_create_command
from rhelvm.commands.delete import register_delete_command
from rhelvm.commands.trust import register_trust_command
from rhelvm.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Provision local RHEL VMs for manual testing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every external command")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_create_command(subparsers)
    register_delete_command(subparsers)
    register_trust_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
