#!/usr/bin/env python3
"""
axec CLI

Command-line interface for importing, listing, launching and removing
AppImages.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from common.exceptions import AxecError
from common.logging_config import setup_logging, get_logger
from axec.config import AxecConfig
from axec.manager import PackageManager

logger = get_logger("cli")


def get_manager(args) -> PackageManager:
    """Build the package manager from the environment and CLI overrides."""
    config = AxecConfig.from_env()
    if args.sandbox is not None:
        config.sandbox = args.sandbox
    return PackageManager.from_config(config)


def _print_warning(package_id: str, message: str) -> None:
    print(f"  warning: {message}", file=sys.stderr)


def cmd_add(args):
    """Import one or more AppImages."""
    manager = get_manager(args)
    manager.set_warning_callback(_print_warning)

    status = 0
    for path in args.paths:
        try:
            entry = manager.add(path)
        except AxecError as e:
            print(f"error: {e.message}", file=sys.stderr)
            status = 1
            continue

        print(f"Added {entry.name}")
        print(f"  id:   {entry.id}")
        print(f"  icon: {entry.icon_path or '-'}")
        print(f"  menu: {entry.menu_entry_path or '-'}")

    return status


def cmd_list(args):
    """List managed AppImages."""
    manager = get_manager(args)
    entries = manager.list()

    if args.json:
        payload = []
        for entry in entries:
            data = entry.to_dict()
            data["stale"] = entry.is_stale
            payload.append(data)
        print(json.dumps(payload, indent=2))
        return 0

    if not entries:
        print("No AppImages managed by axec.")
        return 0

    print(f"Managed AppImages ({len(entries)}):\n")
    for entry in entries:
        flags = []
        if entry.is_stale:
            flags.append("missing")
        if not entry.menu_integrated:
            flags.append("no menu entry")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {entry.id}: {entry.name}{suffix}")

    return 0


def cmd_info(args):
    """Show one catalog entry."""
    manager = get_manager(args)
    entry = manager.get(args.package_id)

    print(f"Name:        {entry.name}")
    print(f"ID:          {entry.id}")
    print(f"Stored at:   {entry.stored_path}")
    print(f"Icon:        {entry.icon_path or '-'}")
    print(f"Menu entry:  {entry.menu_entry_path or '-'}")
    if entry.source_name:
        print(f"Imported:    {entry.source_name} ({entry.added_at})")
    print(f"Status:      {'missing' if entry.is_stale else 'ok'}")
    return 0


def cmd_launch(args):
    """Launch a managed AppImage."""
    manager = get_manager(args)
    handle = manager.launch(args.package_id)
    print(f"Started {args.package_id} (pid {handle.pid})")
    return 0


def cmd_remove(args):
    """Remove a managed AppImage."""
    manager = get_manager(args)
    entry = manager.get(args.package_id)
    manager.remove(entry.id)
    print(f"Removed {entry.name}")
    return 0


def cmd_reintegrate(args):
    """Retry icon extraction and menu integration."""
    manager = get_manager(args)
    manager.set_warning_callback(_print_warning)
    entry = manager.reintegrate(args.package_id)
    print(f"{entry.name}: icon {entry.icon_path or '-'}, menu {entry.menu_entry_path or '-'}")
    return 0


def cmd_rename(args):
    """Change the display name."""
    manager = get_manager(args)
    manager.set_warning_callback(_print_warning)
    entry = manager.rename(args.package_id, args.name)
    print(f"Renamed {entry.id} to {entry.name}")
    return 0


def cmd_paths(args):
    """Show where axec keeps its files."""
    manager = get_manager(args)
    for key, value in manager.layout.to_dict().items():
        print(f"{key + ':':<26}{value if value is not None else '-'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="axec",
        description="Manage AppImages: import, menu integration, launch and removal",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--log-file", type=Path, help="Also write a debug log to this file"
    )
    sandbox = parser.add_mutually_exclusive_group()
    sandbox.add_argument(
        "--sandbox", dest="sandbox", action="store_true", default=None,
        help="Use sandboxed storage and skip menu integration",
    )
    sandbox.add_argument(
        "--no-sandbox", dest="sandbox", action="store_false",
        help="Force full desktop integration",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    add_p = subparsers.add_parser("add", help="Import AppImages")
    add_p.add_argument("paths", nargs="+", help="AppImage files")
    add_p.set_defaults(func=cmd_add)

    list_p = subparsers.add_parser("list", help="List managed AppImages")
    list_p.add_argument("--json", action="store_true", help="Machine-readable output")
    list_p.set_defaults(func=cmd_list)

    info_p = subparsers.add_parser("info", help="Show an entry")
    info_p.add_argument("package_id", help="Package ID")
    info_p.set_defaults(func=cmd_info)

    launch_p = subparsers.add_parser("launch", help="Launch an AppImage")
    launch_p.add_argument("package_id", help="Package ID")
    launch_p.set_defaults(func=cmd_launch)

    remove_p = subparsers.add_parser("remove", help="Remove an AppImage")
    remove_p.add_argument("package_id", help="Package ID")
    remove_p.set_defaults(func=cmd_remove)

    reint_p = subparsers.add_parser("reintegrate", help="Retry icon and menu integration")
    reint_p.add_argument("package_id", help="Package ID")
    reint_p.set_defaults(func=cmd_reintegrate)

    rename_p = subparsers.add_parser("rename", help="Change the display name")
    rename_p.add_argument("package_id", help="Package ID")
    rename_p.add_argument("name", help="New display name")
    rename_p.set_defaults(func=cmd_rename)

    paths_p = subparsers.add_parser("paths", help="Show storage locations")
    paths_p.set_defaults(func=cmd_paths)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
    )

    if args.command is None:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except AxecError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
