#!/usr/bin/env python3
"""
SBC Guard
Fail2Ban jail control and whitelist sync for an OpenSIPS SBC.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import sentry_sdk
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Ensure src is in python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import ConfigError, load_config  # noqa: E402
from const import APP_NAME, APP_VERSION, DEFAULT_CONFIG, LOGGER_PREFIX  # noqa: E402
from database import WhitelistError  # noqa: E402
from models.fail2ban import SyncOutcome  # noqa: E402
from services.fail2ban_service import Fail2banError  # noqa: E402
from services.factory import Services, build_services  # noqa: E402
from utils.logger import setup_exception_logging, setup_logging  # noqa: E402
from utils.validators import is_valid_ip  # noqa: E402

# Load environment variables from .env file
load_dotenv()

if os.getenv("SENTRY_DSN"):
    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        traces_sample_rate=1.0,
    )

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

console = Console()
logger = logging.getLogger(f"{LOGGER_PREFIX}.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} - Fail2Ban control for OpenSIPS")
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG, help=f"Path to configuration file (default: {DEFAULT_CONFIG})"
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command")

    status = sub.add_parser("status", help="Show jail status and banned IPs")
    status.add_argument("--json", action="store_true", help="Print status as JSON")

    ban = sub.add_parser("ban", help="Ban an IP manually")
    ban.add_argument("ip")

    unban = sub.add_parser("unban", help="Unban an IP")
    unban.add_argument("ip")
    unban.add_argument(
        "--whitelist", nargs="?", const="Auto-whitelisted after unban", metavar="COMMENT",
        help="Also add the IP to the whitelist",
    )

    unban_all = sub.add_parser("unban-all", help="Unban every IP in the jail (irreversible)")
    unban_all.add_argument("--yes", action="store_true", help="Confirm the bulk unban")

    wl = sub.add_parser("whitelist", help="Manage the whitelist")
    wl_sub = wl.add_subparsers(dest="wl_command", required=True)
    wl_sub.add_parser("list", help="List whitelist entries")
    wl_add = wl_sub.add_parser("add", help="Add an IP or CIDR")
    wl_add.add_argument("ip_or_cidr")
    wl_add.add_argument("-m", "--comment")
    wl_update = wl_sub.add_parser("update", help="Change an entry")
    wl_update.add_argument("ip_or_cidr")
    wl_update.add_argument("--new", dest="new_ip_or_cidr")
    wl_update.add_argument("-m", "--comment")
    wl_remove = wl_sub.add_parser("remove", help="Remove an entry")
    wl_remove.add_argument("ip_or_cidr")

    sub.add_parser("sync", help="Sync the whitelist to Fail2Ban now")
    sub.add_parser("drift", help="Compare the whitelist table with the jail config")
    sub.add_parser("dashboard", help="Start the terminal dashboard (default)")
    return parser


def _report(outcome: SyncOutcome) -> int:
    if outcome.ok:
        console.print(f"[green]{outcome.message}[/green]")
        return EXIT_OK
    style = "yellow" if outcome.saved else "red"
    console.print(f"[{style}]{outcome.message}[/{style}]")
    return EXIT_FAILED


def cmd_status(services: Services, args) -> int:
    try:
        status = services.fail2ban.get_status()
    except Fail2banError as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_FAILED

    if args.json:
        console.print_json(json.dumps(status.to_dict()))
        return EXIT_OK

    if not status.available:
        console.print(f"[bold red]{status.jail_name}:[/bold red] {status.error or 'unavailable'}")
        return EXIT_FAILED

    state = "[green]enabled[/green]" if status.enabled else "[red]disabled[/red]"
    console.print(f"[bold cyan]Jail {status.jail_name}[/bold cyan] {state}")
    console.print(
        f"Failed: {status.currently_failed} now / {status.total_failed} total   "
        f"Banned: [red]{status.currently_banned}[/red] now / {status.total_banned} total"
    )
    if status.banned_ips:
        table = Table("#", "Banned IP")
        for idx, ip in enumerate(status.banned_ips, 1):
            table.add_row(str(idx), ip)
        console.print(table)
    else:
        console.print("[dim]No active bans[/dim]")
    return EXIT_OK


def _check_ip(ip: str) -> bool:
    if is_valid_ip(ip):
        return True
    console.print(f"[red]'{ip}' is not a valid IP address[/red]")
    return False


def cmd_ban(services: Services, args) -> int:
    if not _check_ip(args.ip):
        return EXIT_USAGE
    if services.fail2ban.ban_ip(args.ip):
        console.print(f"[green]IP {args.ip} has been banned.[/green]")
        return EXIT_OK
    console.print(f"[red]Could not ban IP {args.ip}. Check logs for details.[/red]")
    return EXIT_FAILED


def cmd_unban(services: Services, args) -> int:
    if not _check_ip(args.ip):
        return EXIT_USAGE
    if args.whitelist is not None:
        try:
            return _report(services.whitelist.unban_and_whitelist(services.fail2ban, args.ip, args.whitelist))
        except WhitelistError as e:
            console.print(f"[yellow]IP {args.ip} unbanned, but not whitelisted: {e}[/yellow]")
            return EXIT_FAILED
    if services.fail2ban.unban_ip(args.ip):
        console.print(f"[green]IP {args.ip} has been unbanned.[/green]")
        return EXIT_OK
    console.print(f"[red]Could not unban IP {args.ip}. Check logs for details.[/red]")
    return EXIT_FAILED


def cmd_unban_all(services: Services, args) -> int:
    if not args.yes:
        console.print("[yellow]Refusing to unban every IP without --yes.[/yellow]")
        return EXIT_USAGE
    if services.fail2ban.unban_all():
        console.print("[yellow]All banned IPs have been unbanned.[/yellow]")
        return EXIT_OK
    console.print("[red]Failed to unban all IPs. Check logs for details.[/red]")
    return EXIT_FAILED


def cmd_whitelist(services: Services, args) -> int:
    manager = services.whitelist
    try:
        if args.wl_command == "list":
            table = Table("IP/CIDR", "Comment", "Created By", "Created At")
            for entry in manager.entries():
                created = entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else ""
                table.add_row(entry.ip_or_cidr, entry.comment or "", entry.created_by or "System", created)
            console.print(table)
            return EXIT_OK
        if args.wl_command == "add":
            return _report(manager.add(args.ip_or_cidr, args.comment))
        if args.wl_command == "update":
            if args.new_ip_or_cidr is None and args.comment is None:
                console.print("[yellow]Nothing to update: pass --new and/or --comment[/yellow]")
                return EXIT_USAGE
            kwargs = {"comment": args.comment} if args.comment is not None else {}
            return _report(manager.update(args.ip_or_cidr, args.new_ip_or_cidr, **kwargs))
        if args.wl_command == "remove":
            return _report(manager.remove(args.ip_or_cidr))
    except WhitelistError as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_USAGE
    return EXIT_USAGE


def cmd_sync(services: Services, args) -> int:
    return _report(services.whitelist.sync_now())


def cmd_drift(services: Services, args) -> int:
    drift = services.reconciler.drift()
    if not drift["missing"] and not drift["extra"]:
        console.print("[green]Whitelist and jail config are in sync.[/green]")
        return EXIT_OK
    for ip in drift["missing"]:
        console.print(f"[yellow]missing from config:[/yellow] {ip}")
    for ip in drift["extra"]:
        console.print(f"[yellow]only in config:[/yellow] {ip}")
    return EXIT_FAILED


def cmd_dashboard(services: Services, args) -> int:
    # Imported lazily so CLI commands do not pay for Textual startup
    from dashboard import SBCGuardDashboard

    SBCGuardDashboard(services).run()
    return EXIT_OK


COMMANDS = {
    "status": cmd_status,
    "ban": cmd_ban,
    "unban": cmd_unban,
    "unban-all": cmd_unban_all,
    "whitelist": cmd_whitelist,
    "sync": cmd_sync,
    "drift": cmd_drift,
    "dashboard": cmd_dashboard,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(level=log_level)
    setup_exception_logging()

    config_path = Path(args.config)
    if not config_path.exists():
        logger.warning(f"Config file '{args.config}' not found. Using defaults.")

    try:
        config = load_config(str(config_path))
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        return EXIT_USAGE

    command = args.command or "dashboard"
    try:
        services = build_services(config)
        return COMMANDS[command](services, args)
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return EXIT_OK
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.critical(f"Fatal error in '{command}': {e}", exc_info=True)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
