#!/usr/bin/env python3
"""
License Gate operator CLI

Commands:
  init-db   create tables
  seed      insert a demo license with two allow-list entries
  check     evaluate a license key / IP pair as the API would
  resync    rebuild the router address list from the database
  entries   show the router address list
  stats     audit counts per result for the last 24 hours
  serve     run the HTTP API
"""

from __future__ import annotations

import argparse
import sys
import uuid
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from app import configure_logging, create_app
from database import init_database
from licensing.audit import summarize_decisions
from licensing.config import LicensingConfig
from licensing.device.reconciler import DeviceReconciler
from licensing.errors import DeviceError
from licensing.evaluator import AuthorizationEvaluator
from licensing.models import AllowedIP, License
from licensing.service import AllowListService

console = Console()


def cmd_init_db(config: LicensingConfig, _args: argparse.Namespace) -> int:
    init_database(config.database_url)
    console.print("[green]Tables created[/green]")
    return 0


def cmd_seed(config: LicensingConfig, args: argparse.Namespace) -> int:
    db = init_database(config.database_url)
    key = args.key or str(uuid.uuid4())
    with db.get_session() as s:
        lic = License(
            name="Demo License",
            license_key=key,
            expires_at=datetime.now(tz=timezone.utc) + timedelta(days=365),
        )
        lic.allowed_ips = [
            AllowedIP(ip_cidr="127.0.0.1", note="Localhost for testing"),
            AllowedIP(ip_cidr="192.168.1.0/24", note="Local network"),
        ]
        s.add(lic)

    console.print(
        Panel.fit(
            f"License Key: [bold]{key}[/bold]\nAllowed IPs: 127.0.0.1, 192.168.1.0/24",
            title="Demo license created",
        )
    )
    return 0


def cmd_check(config: LicensingConfig, args: argparse.Namespace) -> int:
    db = init_database(config.database_url, create_tables=False)
    with db.get_session() as s:
        decision = AuthorizationEvaluator().evaluate(s, args.license_key, args.public_ip, args.machine_id)

    colour = "green" if decision.allowed else "red"
    console.print(f"[{colour}]{decision.reason.value}[/{colour}] {decision.message}")
    return 0 if decision.allowed else 1


def cmd_resync(config: LicensingConfig, _args: argparse.Namespace) -> int:
    if not config.device.enabled:
        console.print("[yellow]Router sync is disabled (ROUTER_SYNC_ENABLED)[/yellow]")
        return 0

    db = init_database(config.database_url, create_tables=False)
    service = AllowListService(DeviceReconciler(config.device))
    try:
        with db.get_session() as s:
            stats = service.resync_all(s)
    except DeviceError as exc:
        console.print(f"[red]Resync failed:[/red] {exc}")
        return 2

    console.print(f"[green]Resynced[/green] removed={stats['removed']} added={stats['added']}")
    return 0


def cmd_entries(config: LicensingConfig, _args: argparse.Namespace) -> int:
    reconciler = DeviceReconciler(config.device)
    if not reconciler.enabled:
        console.print("[yellow]Router sync is disabled (ROUTER_SYNC_ENABLED)[/yellow]")
        return 0
    try:
        entries = reconciler.list_entries()
    except DeviceError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2

    table = Table(title=config.device.address_list)
    table.add_column("ID")
    table.add_column("Address")
    table.add_column("License")
    for e in entries:
        table.add_row(str(e["id"]), str(e["address"]), str(e["license_id"] or "-"))
    console.print(table)
    return 0


def cmd_stats(config: LicensingConfig, _args: argparse.Namespace) -> int:
    db = init_database(config.database_url, create_tables=False)
    with db.get_session() as s:
        stats = summarize_decisions(s)

    table = Table(title=f"Auth decisions (last {stats['window_hours']:.0f}h, total {stats['total']})")
    table.add_column("Result")
    table.add_column("Count", justify="right")
    for result, count in sorted(stats["by_result"].items()):
        table.add_row(result, str(count))
    console.print(table)
    return 0


def cmd_serve(config: LicensingConfig, args: argparse.Namespace) -> int:
    create_app(config).run(host=args.host, port=args.port, debug=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="license-gate", description="License Gate operator CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables").set_defaults(func=cmd_init_db)

    seed = sub.add_parser("seed", help="Insert a demo license")
    seed.add_argument("--key", help="License key to use (default: random UUID)")
    seed.set_defaults(func=cmd_seed)

    check = sub.add_parser("check", help="Evaluate a license key from an IP")
    check.add_argument("license_key")
    check.add_argument("public_ip")
    check.add_argument("--machine-id", default=None)
    check.set_defaults(func=cmd_check)

    sub.add_parser("resync", help="Rebuild the router address list").set_defaults(func=cmd_resync)
    sub.add_parser("entries", help="Show the router address list").set_defaults(func=cmd_entries)
    sub.add_parser("stats", help="Audit counts per result").set_defaults(func=cmd_stats)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=3000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = LicensingConfig.from_env()
    configure_logging(config.log_level, config.log_dir)
    return args.func(config, args)


if __name__ == "__main__":
    sys.exit(main())
