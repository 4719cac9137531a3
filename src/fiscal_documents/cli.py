"""Command-line interface for Fiscal Documents."""

import argparse
import sys
from pathlib import Path
from uuid import UUID

from fiscal_documents import __version__
from fiscal_documents.config import DatabaseType, Settings, get_settings
from fiscal_documents.container import Container
from fiscal_documents.domain.audit import AuditAction, AuditEntityType
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.exceptions import ComplianceError, FiscalDocumentsError
from fiscal_documents.logging_config import LogContext, configure_logging


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    if args.database:
        settings = settings.model_copy(
            update={
                "database_type": DatabaseType.SQLITE,
                "sqlite_path": Path(args.database),
            }
        )
    return settings


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a valid id: {value}") from None


def cmd_init(args: argparse.Namespace) -> int:
    """Create the database schema."""
    settings = _settings_for(args)
    if settings.database_type == DatabaseType.SQLITE:
        db_path = Path(settings.sqlite_path)
        if db_path.exists() and not args.force:
            print(f"Database already exists at {db_path}")
            print("Use --force to reinitialize (WARNING: will delete existing data)")
            return 1
        if db_path.exists():
            db_path.unlink()
        db_path.parent.mkdir(parents=True, exist_ok=True)

    with Container(settings) as container:
        container.database.initialize()
    print(f"Initialized database at {settings.effective_database_url}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show what the database holds."""
    settings = _settings_for(args)
    if settings.database_type == DatabaseType.SQLITE and not Path(
        settings.sqlite_path
    ).exists():
        print(f"No database found at {settings.sqlite_path}")
        print("Run 'fiscal-docs init' to create a new database")
        return 1

    with Container(settings) as container:
        counterparties = container.counterparty_service.list_counterparties(
            active_only=False
        )
        summary = container.compliance_gateway.compliance_summary()

    print(f"Database: {settings.effective_database_url}")
    print(f"Counterparties: {len(counterparties)}")
    print(f"Issued documents: {summary.total_documents} (total {summary.total_amount})")
    for status, count in sorted(summary.counts.items(), key=lambda i: i[0].value):
        print(f"  - {status.value}: {count} ({summary.totals[status]})")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"Fiscal Documents v{__version__}")
    return 0


def cmd_counterparty_add(args: argparse.Namespace) -> int:
    counterparty = Counterparty(
        name=args.name,
        vat_number=args.vat,
        country=args.country,
        street=args.street or "",
        street_number=args.street_number or "",
        postal_code=args.postal_code or "",
        city=args.city or "",
        email=args.email,
    )
    with Container(_settings_for(args)) as container:
        container.counterparty_service.create(counterparty, actor=args.actor)
    print(f"Added counterparty {counterparty.name} ({counterparty.id})")
    return 0


def cmd_counterparty_list(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        counterparties = container.counterparty_service.list_counterparties(
            active_only=not args.all
        )
    if not counterparties:
        print("No counterparties found")
        return 0
    for c in counterparties:
        status = "active" if c.is_active else "inactive"
        print(f"{c.id}  {c.name}  VAT {c.vat_number or '-'}  {c.country}  [{status}]")
    return 0


def cmd_mydata_test(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        check = container.compliance_gateway.test_connection()
    if check.success:
        print(f"✓ {check.message} ({check.environment})")
        return 0
    print(f"✗ myDATA connection failed ({check.environment}): {check.error}")
    return 1


def cmd_mydata_submit(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        result = container.compliance_gateway.bulk_submit(
            args.document_ids, actor=args.actor
        )
    for outcome in result.results:
        if outcome.success:
            print(f"✓ {outcome.document_number}: mark {outcome.mark}")
        else:
            messages = "; ".join(e.get("message", "") for e in outcome.errors)
            print(f"✗ {outcome.document_id}: {messages}")
    print(f"Submitted: {result.submitted}  Failed: {result.failed}")
    return 0 if result.failed == 0 else 1


def cmd_mydata_status(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        status = container.compliance_gateway.get_status(
            args.document_id, actor=args.actor
        )
    print(f"Document {status.document_id}")
    print(f"  Status: {status.status.value}{' (updated)' if status.changed else ''}")
    print(f"  Mark: {status.mark or '-'}")
    if status.cancellation_mark:
        print(f"  Cancellation mark: {status.cancellation_mark}")
    return 0


def cmd_mydata_pending(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        documents = container.compliance_gateway.list_pending_submissions(
            limit=args.limit
        )
    if not documents:
        print("No documents awaiting submission")
        return 0
    for d in documents:
        print(
            f"{d.id}  {d.document_number or '(unnumbered)'}  "
            f"{d.document_type.value}  {d.issue_date}  {d.total} {d.currency}  "
            f"[{d.compliance.status.value}]"
        )
    return 0


def cmd_audit_list(args: argparse.Namespace) -> int:
    with Container(_settings_for(args)) as container:
        entries = container.audit_service.query(
            entity_type=AuditEntityType(args.entity_type) if args.entity_type else None,
            entity_id=args.entity_id,
            actor=args.actor_filter,
            action=AuditAction(args.action) if args.action else None,
            limit=args.limit,
        )
    if not entries:
        print("No audit entries found")
        return 0
    for entry in entries:
        print(
            f"{entry.timestamp.isoformat()}  {entry.actor or '-'}  "
            f"{entry.action.value}  {entry.entity_type.value}:{entry.entity_id}  "
            f"[{entry.outcome.value}] {entry.change_summary}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="fiscal-docs",
        description="Fiscal Documents - numbered invoices with myDATA compliance",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file (overrides FD_SQLITE_PATH)",
        default=None,
    )
    parser.add_argument(
        "--actor", default="cli", help="Actor recorded in the audit log"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    status_parser = subparsers.add_parser("status", help="Show database status")
    status_parser.set_defaults(func=cmd_status)

    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # counterparty commands
    counterparty_parser = subparsers.add_parser(
        "counterparty", help="Manage counterparties"
    )
    counterparty_subparsers = counterparty_parser.add_subparsers(
        dest="counterparty_command", help="Counterparty commands"
    )
    counterparty_add_parser = counterparty_subparsers.add_parser(
        "add", help="Register a counterparty"
    )
    counterparty_add_parser.add_argument("name", help="Legal name")
    counterparty_add_parser.add_argument("--vat", help="VAT number")
    counterparty_add_parser.add_argument(
        "--country", default="GR", help="Two-letter country code (default: GR)"
    )
    counterparty_add_parser.add_argument("--email", help="Billing email")
    counterparty_add_parser.add_argument("--street")
    counterparty_add_parser.add_argument("--street-number")
    counterparty_add_parser.add_argument("--postal-code")
    counterparty_add_parser.add_argument("--city")
    counterparty_add_parser.set_defaults(func=cmd_counterparty_add)

    counterparty_list_parser = counterparty_subparsers.add_parser(
        "list", help="List counterparties"
    )
    counterparty_list_parser.add_argument(
        "--all", action="store_true", help="Include inactive counterparties"
    )
    counterparty_list_parser.set_defaults(func=cmd_counterparty_list)

    # mydata commands
    mydata_parser = subparsers.add_parser("mydata", help="myDATA compliance service")
    mydata_subparsers = mydata_parser.add_subparsers(
        dest="mydata_command", help="myDATA commands"
    )
    mydata_test_parser = mydata_subparsers.add_parser(
        "test", help="Check connectivity and credentials"
    )
    mydata_test_parser.set_defaults(func=cmd_mydata_test)

    mydata_submit_parser = mydata_subparsers.add_parser(
        "submit", help="Submit one or more documents"
    )
    mydata_submit_parser.add_argument(
        "document_ids", nargs="+", type=_parse_uuid, help="Document ids"
    )
    mydata_submit_parser.set_defaults(func=cmd_mydata_submit)

    mydata_status_parser = mydata_subparsers.add_parser(
        "status", help="Refresh the compliance status of a document"
    )
    mydata_status_parser.add_argument("document_id", type=_parse_uuid)
    mydata_status_parser.set_defaults(func=cmd_mydata_status)

    mydata_pending_parser = mydata_subparsers.add_parser(
        "pending", help="List documents awaiting submission"
    )
    mydata_pending_parser.add_argument("--limit", type=int, default=100)
    mydata_pending_parser.set_defaults(func=cmd_mydata_pending)

    # audit commands
    audit_parser = subparsers.add_parser("audit", help="Inspect the audit log")
    audit_subparsers = audit_parser.add_subparsers(
        dest="audit_command", help="Audit commands"
    )
    audit_list_parser = audit_subparsers.add_parser("list", help="List audit entries")
    audit_list_parser.add_argument(
        "--entity-type", choices=[t.value for t in AuditEntityType]
    )
    audit_list_parser.add_argument("--entity-id", type=_parse_uuid)
    audit_list_parser.add_argument(
        "--by", dest="actor_filter", help="Only entries by this actor"
    )
    audit_list_parser.add_argument("--action", choices=[a.value for a in AuditAction])
    audit_list_parser.add_argument("--limit", type=int, default=50)
    audit_list_parser.set_defaults(func=cmd_audit_list)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "counterparty" and args.counterparty_command is None:
        counterparty_parser.print_help()
        return 0

    if args.command == "mydata" and args.mydata_command is None:
        mydata_parser.print_help()
        return 0

    if args.command == "audit" and args.audit_command is None:
        audit_parser.print_help()
        return 0

    configure_logging()
    try:
        with LogContext(actor=args.actor, command=args.command):
            result: int = args.func(args)
    except ComplianceError as e:
        print(f"Error: {e.message}")
        for error in e.errors:
            print(f"  - [{error.get('code') or '-'}] {error.get('message')}")
        return 1
    except FiscalDocumentsError as e:
        print(f"Error: {e.message}")
        return 1
    return result


if __name__ == "__main__":
    sys.exit(main())
