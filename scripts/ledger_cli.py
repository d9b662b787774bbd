#!/usr/bin/env python3
"""
Operator CLI for the budget ledger.

Subcommands:
    init-db         Create every table in the configured database.
    sweep-overdue   Move pending invoices past their due date to overdue.
    report          Write one of the CSV reports for a project.
    import-budget   Import accounts and sub-accounts from a budget CSV.
    template        Write the budget import template CSV.

Usage:
    python3 scripts/ledger_cli.py [--config FILE] [--db-url URL] <command> [options]

Examples:
    python3 scripts/ledger_cli.py init-db
    python3 scripts/ledger_cli.py sweep-overdue --project 6f1c...
    python3 scripts/ledger_cli.py report cost-control --project 6f1c... --out reports/
    python3 scripts/ledger_cli.py import-budget --project 6f1c... budget.csv
    python3 scripts/ledger_cli.py template --out plantilla.csv
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

REPORT_CHOICES = ("budget", "cost-control", "pos", "invoices", "suppliers", "executive")
CLI_ACTOR = "cli"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Budget ledger operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: BUDGET_LEDGER_CONFIG env or packaged default).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL; overrides the config file and DATABASE_URL.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables.")

    sweep = sub.add_parser("sweep-overdue", help="Flip overdue invoices of a project.")
    sweep.add_argument("--project", required=True, type=UUID, help="Project UUID.")

    report = sub.add_parser("report", help="Write a CSV report.")
    report.add_argument("kind", choices=REPORT_CHOICES)
    report.add_argument("--project", required=True, type=UUID, help="Project UUID.")
    report.add_argument(
        "--project-name", default=None,
        help="Name used in titles and the file name (default: config project_name).",
    )
    report.add_argument(
        "--out", type=Path, default=Path("."),
        help="Output directory (default: current directory).",
    )

    imp = sub.add_parser("import-budget", help="Import a budget CSV into a project.")
    imp.add_argument("--project", required=True, type=UUID, help="Project UUID.")
    imp.add_argument("--actor-id", default=CLI_ACTOR, help="Actor recorded on created rows.")
    imp.add_argument("file", type=Path, help="Budget CSV file.")

    template = sub.add_parser("template", help="Write the budget import template.")
    template.add_argument("--out", type=Path, required=True, help="Output CSV file.")

    return parser.parse_args(argv)


def _write_template(out: Path) -> int:
    from budget_modules.ledger.importer import TEMPLATE_ROWS
    from budget_modules.reporting.reports import rows_to_csv

    out.write_text(rows_to_csv(TEMPLATE_ROWS), encoding="utf-8")
    print(f"Template written to {out}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    import yaml

    from budget_config import get_active_config
    from budget_config.bridges import build_service_configs
    from budget_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from budget_kernel.logging_config import LogContext, configure_logging, get_logger

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(level=config.log_level.upper())
    logger = get_logger("scripts.ledger_cli")

    if args.command == "template":
        return _write_template(args.out)

    try:
        init_engine_from_url(args.db_url or config.database_url)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    if args.command == "init-db":
        create_tables()
        print("Tables created.")
        return 0

    from budget_kernel.exceptions import BudgetLedgerError

    configs = build_service_configs(config)
    session = get_session()
    try:
        with LogContext.bind(project_id=args.project, actor_id=CLI_ACTOR):
            if args.command == "sweep-overdue":
                from budget_modules.invoices.service import InvoiceService

                service = InvoiceService(
                    session, args.project,
                    config=configs.invoices,
                    ledger_config=configs.ledger,
                    approval_config=configs.approvals,
                )
                result = service.sweep_overdue()
                print(
                    f"Checked {result.checked}, flipped {result.flipped}, "
                    f"failed {result.failed}."
                )
                return 0 if result.failed == 0 else 2

            if args.command == "report":
                from budget_modules.reporting.service import ReportingService

                service = ReportingService(
                    session, args.project,
                    project_name=args.project_name or config.project_name,
                )
                rendered = service.render(args.kind)
                args.out.mkdir(parents=True, exist_ok=True)
                path = args.out / rendered.filename
                path.write_text(rendered.content, encoding="utf-8")
                print(f"Report written to {path}")
                return 0

            if args.command == "import-budget":
                from budget_modules.ledger.service import LedgerService

                source = args.file.resolve()
                if not source.is_file():
                    print(f"ERROR: File not found: {source}", file=sys.stderr)
                    return 1
                service = LedgerService(session, args.project, config=configs.ledger)
                result = service.import_budget_csv(
                    source.read_text(encoding="utf-8-sig"), args.actor_id,
                )
                print(
                    f"Accounts created: {result.accounts_created}, "
                    f"sub-accounts created: {result.sub_accounts_created}, "
                    f"skipped: {len(result.skipped)}"
                )
                for skip in result.skipped:
                    print(f"  line {skip.line_number}: {skip.reason}")
                return 0
    except BudgetLedgerError as e:
        logger.error("cli_command_failed", extra={
            "command": args.command,
            "error_code": e.code,
        })
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()

    return 1


if __name__ == "__main__":
    sys.exit(main())
