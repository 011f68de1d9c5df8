"""
Playbook CLI entrypoint for stagehand-playbook.

Usage:
    stagehand-playbook --version
    stagehand-playbook --help
    stagehand-playbook -i inventory playbook.yml
"""

import argparse
import json
import platform
import sys
from pathlib import Path

import yaml

from stagehand import __version__
from stagehand.cli import configure_logging
from stagehand.engine.errors import ExitCode, ParseError

LOG_LEVELS = ("debug", "info", "warning", "error")


def get_version_string() -> str:
    """Generate a detailed version string."""
    python_version = platform.python_version()
    os_info = f"{platform.system()} {platform.release()}"
    return (
        f"stagehand-playbook {__version__}\n"
        f"  python: {python_version}\n"
        f"  platform: {os_info}"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for stagehand-playbook."""
    parser = argparse.ArgumentParser(
        prog="stagehand-playbook",
        description="Apply declarative plays to the hosts of an inventory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stagehand-playbook -i inventory.yml site.yml
  stagehand-playbook -i hosts site.yml --check
  stagehand-playbook -i hosts site.yml -l web1 -e release=42 -v
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=get_version_string(),
    )

    parser.add_argument(
        "playbook",
        nargs="*",
        help="Playbook file(s) to run",
    )

    parser.add_argument(
        "-i", "--inventory",
        dest="inventory",
        default=None,
        help="Inventory file",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)",
    )

    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=LOG_LEVELS,
        default=None,
        help="Diagnostic log level (overrides -v)",
    )

    parser.add_argument(
        "-C", "--check",
        action="store_true",
        default=None,
        help="Run in check mode (dry run)",
    )

    parser.add_argument(
        "-l", "--limit",
        dest="limit",
        default=None,
        help="Limit to specific hosts/groups",
    )

    parser.add_argument(
        "-f", "--forks",
        dest="forks",
        type=int,
        default=None,
        help="Number of hosts to run in parallel (default: 5)",
    )

    parser.add_argument(
        "-T", "--timeout",
        dest="task_timeout",
        type=float,
        default=None,
        help="Default per-task timeout in seconds (default: 300)",
    )

    parser.add_argument(
        "-e", "--extra-vars",
        dest="extra_vars",
        action="append",
        default=[],
        help="Extra variables as key=value, JSON or @file (can be repeated)",
    )

    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Config file (default: ./stagehand.yml)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        default=None,
        help="Output results in JSON format",
    )

    return parser


def _parse_extra_vars(extra_vars_list: list[str]) -> dict:
    """Parse extra vars from command line."""
    result = {}
    for item in extra_vars_list:
        item = item.strip()

        if item.startswith('@'):
            path = Path(item[1:])
            try:
                file_vars = yaml.safe_load(path.read_text())
            except (OSError, yaml.YAMLError) as e:
                raise ParseError(f"cannot read extra vars: {e}", file_path=str(path))
            if not isinstance(file_vars, dict):
                raise ParseError("extra vars file must hold a mapping", file_path=str(path))
            result.update(file_vars)
            continue

        if item.startswith('{'):
            try:
                result.update(json.loads(item))
            except json.JSONDecodeError as e:
                raise ParseError(f"invalid JSON in extra vars: {e}")
            continue

        if '=' not in item:
            raise ParseError(f"extra vars must be key=value, JSON or @file: {item!r}")

        key, _, value = item.partition('=')
        value = value.strip()
        # Numbers, booleans and lists come through as their JSON types
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            pass
        result[key.strip()] = value

    return result


def main(args: list[str] | None = None) -> int:
    """Main entrypoint for stagehand-playbook CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.playbook:
        parser.print_help()
        return ExitCode.SUCCESS

    if not parsed.inventory:
        print("ERROR: Inventory (-i/--inventory) is required", file=sys.stderr)
        return ExitCode.PARSE_ERROR

    configure_logging(parsed.verbose, parsed.log_level)

    from stagehand.config import load_config
    from stagehand.engine.runner import PlaybookRunner

    try:
        config = load_config(Path(parsed.config) if parsed.config else None)
        extra_vars = {**config.extra_vars, **_parse_extra_vars(parsed.extra_vars)}
        config.apply_overrides(
            forks=parsed.forks,
            task_timeout=parsed.task_timeout,
            check_mode=parsed.check,
            json_output=parsed.json,
            limit=parsed.limit,
            verbosity=parsed.verbose,
            extra_vars=extra_vars,
        )
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return ExitCode.PARSE_ERROR

    runner = PlaybookRunner(
        inventory_source=parsed.inventory,
        playbook_paths=parsed.playbook,
        config=config,
    )
    return runner.run()


if __name__ == "__main__":
    sys.exit(main())
