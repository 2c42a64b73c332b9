"""
CLI for backing up and restoring Azure API Management subscription keys.

Usage:
    subkeys backup  -g mygroup -a myapim [-p myproduct] [-o ./my-backup.json]
    subkeys list    -g mygroup -a myapim [-p myproduct] [--show-keys]
    subkeys restore -g mygroup -a myapim -i backup/mygroup/myapim/subscriptions.json [--dry-run]
    subkeys delete  -g mygroup -a myapim [-p myproduct] [--dry-run] [--all]
    subkeys compare before.json after.json
    subkeys clean
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from rich.markup import escape

from . import __version__
from .commands import console, run_backup, run_clean, run_compare, run_delete, run_list, run_restore
from .config import (
    SCOPE_POLICIES,
    SCOPE_POLICY_GENERIC,
    BackupConfig,
    CompareConfig,
    DeleteConfig,
    ListConfig,
    RestoreConfig,
    backup_root,
)
from .errors import SubkeysError

logger = logging.getLogger(__name__)


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--resource-group", "-g", help="Azure resource group name (required)")
    parser.add_argument("--apim-name", "-a", help="Azure API Management instance name (required)")
    parser.add_argument("--subscription", "-s", help="Azure subscription ID (default: active Azure CLI subscription)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subkeys",
        description="Back up and restore subscription keys of Azure API Management instances",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose/debug logging")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("backup", help="Backup subscription keys to a JSON file")
    _add_target_args(p)
    p.add_argument("--product-id", "-p", help="Only back up subscriptions scoped to this product")
    p.add_argument(
        "--output",
        "-o",
        help="Output file path (default: backup/<resource-group>/<apim-name>[/<product-id>]/subscriptions.json)",
    )

    p = sub.add_parser("list", help="List subscription keys in the terminal")
    _add_target_args(p)
    p.add_argument("--product-id", "-p", help="Filter by product ID")
    p.add_argument("--show-keys", action="store_true", help="Print keys in full instead of masked")

    p = sub.add_parser("restore", help="Restore subscription keys from a backup file")
    _add_target_args(p)
    p.add_argument("--input", "-i", help="Backup file path to restore from (required)")
    p.add_argument("--dry-run", action="store_true", help="Preview changes without applying them")
    p.add_argument("--include-builtin", action="store_true", help="Also restore the built-in master subscription")
    p.add_argument(
        "--scope-policy",
        choices=SCOPE_POLICIES,
        default=SCOPE_POLICY_GENERIC,
        help="generic: carry over any scope suffix (instance scope when none); "
        "product: require a product id and skip records without one",
    )

    p = sub.add_parser("delete", help="Delete subscription keys from an instance")
    _add_target_args(p)
    p.add_argument("--product-id", "-p", help="Only delete subscriptions scoped to this product")
    p.add_argument("--dry-run", action="store_true", help="Preview deletions without applying them")
    p.add_argument("--all", action="store_true", help="Delete all subscriptions including built-in ones")

    p = sub.add_parser("compare", help="Compare subscription keys in two backup files")
    p.add_argument("files", nargs="*", metavar="FILE", help="Two backup files: FILE_A FILE_B")
    p.add_argument("-a", dest="file_a", help="First backup file path")
    p.add_argument("-b", dest="file_b", help="Second backup file path")

    sub.add_parser("clean", help="Delete the local backup folder and all its contents")
    return parser


COMMANDS = {
    "backup": (BackupConfig, run_backup),
    "list": (ListConfig, run_list),
    "restore": (RestoreConfig, run_restore),
    "delete": (DeleteConfig, run_delete),
    "compare": (CompareConfig, run_compare),
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not args.verbose:
        # the SDK's HTTP logging policy is chatty at INFO
        logging.getLogger("azure").setLevel(logging.WARNING)

    if not args.command:
        parser.print_help()
        return 2

    try:
        if args.command == "clean":
            run_clean(backup_root())
            return 0

        config_cls, run = COMMANDS[args.command]
        try:
            config = config_cls.from_args(args)
        except ValueError as exc:
            parser.error(str(exc))
        run(config)
    except SubkeysError as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        console.print(f"[error]Error: {escape(str(exc))}[/error]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[muted]Interrupted[/muted]")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
