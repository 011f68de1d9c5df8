"""
Inventory CLI entrypoint for stagehand-inventory.

Usage:
    stagehand-inventory --version
    stagehand-inventory -i inventory --list
    stagehand-inventory -i inventory --host <hostname>
"""

import argparse
import json
import platform
import sys

from stagehand import __version__
from stagehand.cli import configure_logging
from stagehand.engine.errors import ExitCode, ParseError
from stagehand.engine.inventory import InventoryManager


def get_version_string() -> str:
    """Generate a detailed version string."""
    python_version = platform.python_version()
    os_info = f"{platform.system()} {platform.release()}"
    return (
        f"stagehand-inventory {__version__}\n"
        f"  python: {python_version}\n"
        f"  platform: {os_info}"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for stagehand-inventory."""
    parser = argparse.ArgumentParser(
        prog="stagehand-inventory",
        description="Show resolved inventory information as JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stagehand-inventory -i inventory.ini --list
  stagehand-inventory -i inventory.yml --host web1
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=get_version_string(),
    )

    parser.add_argument(
        "-i", "--inventory",
        dest="inventory",
        default=None,
        help="Inventory file",
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--list",
        action="store_true",
        dest="list_hosts",
        help="Output all groups and hosts (JSON)",
    )
    action.add_argument(
        "--host",
        dest="host",
        default=None,
        help="Output the variables of one host (JSON)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity",
    )

    return parser


def main(args: list[str] | None = None) -> int:
    """Main entrypoint for stagehand-inventory CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.list_hosts and not parsed.host:
        parser.print_help()
        return ExitCode.SUCCESS

    if not parsed.inventory:
        print("ERROR: Inventory (-i/--inventory) is required", file=sys.stderr)
        return ExitCode.PARSE_ERROR

    configure_logging(parsed.verbose)

    try:
        inventory = InventoryManager().parse(parsed.inventory)
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return ExitCode.PARSE_ERROR

    if parsed.list_hosts:
        print(json.dumps(inventory.to_dict(), indent=2, default=str))
        return ExitCode.SUCCESS

    host = inventory.hosts.get(parsed.host)
    if host is None:
        print(f"ERROR: Host not found: {parsed.host}", file=sys.stderr)
        return ExitCode.GENERIC_ERROR

    print(json.dumps(host.get_vars(), indent=2, default=str))
    return ExitCode.SUCCESS


if __name__ == "__main__":
    sys.exit(main())
