"""Command line entry point: run a batch audit locally or prepare the BigQuery table."""

import argparse
import asyncio
import json
import sys

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

from app.config.settings import get_config
from app.core.audit import run_batch_audit
from app.core.runner import build_runner
from app.errors.exceptions import AuditError, ValidationError
from app.schemas.common import AuditMode
from app.services.storage import create_date_partition_table, open_result_writer
from app.services.validators import validate_blocked_patterns, validate_urls


def _fail(message: str, code: int) -> None:
    print(json.dumps({"status": "failed", "error": message}))
    sys.exit(code)


async def _audit(args: argparse.Namespace) -> None:
    config = get_config()
    urls = validate_urls(args.urls)
    blocked = validate_blocked_patterns(args.blocked)
    mode = AuditMode(args.mode)

    results = await run_batch_audit(build_runner(config), urls, blocked, mode, config.field_mapping)

    if args.store:
        if not config.storage_configured:
            raise ValidationError("--store requires BQ_DATASET and BQ_TABLE")
        with open_result_writer(config) as writer:
            if writer is None:
                raise AuditError("BigQuery credentials unavailable; results not stored")
            await writer.write(results)

    print(json.dumps(results, indent=2))


def _create_table() -> None:
    config = get_config()
    if not config.storage_configured:
        raise ValidationError("BQ_DATASET and BQ_TABLE environment variables are required")
    client = bigquery.Client(project=config.project_id or None)
    try:
        table = create_date_partition_table(
            client, config.bq_dataset, config.bq_table, config.bq_location, config.field_mapping
        )
    finally:
        client.close()
    print(json.dumps({"status": "success", "table": table.full_table_id}))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lighthouse batch audit CLI")
    subcommands = parser.add_subparsers(dest="command", required=True)

    audit = subcommands.add_parser("audit", help="Audit URLs sequentially and print the records")
    audit.add_argument("urls", nargs="+", help="Absolute URLs to audit, in order")
    audit.add_argument(
        "--mode",
        choices=[m.value for m in AuditMode],
        default=AuditMode.MOBILE.value,
        help="Device profile (default: mobile; 'all' runs desktop then mobile)",
    )
    audit.add_argument(
        "--blocked",
        nargs="*",
        default=[],
        metavar="PATTERN",
        help="Request URL patterns to block during Lighthouse runs",
    )
    audit.add_argument("--store", action="store_true", help="Also write the records to BigQuery")

    subcommands.add_parser("create-table", help="Create the date-partitioned BigQuery results table")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch; exit 2 on bad input, 1 on audit failure."""
    args = build_parser().parse_args(argv)

    try:
        if args.command == "audit":
            asyncio.run(_audit(args))
        else:
            _create_table()
    except ValidationError as e:
        _fail(f"Validation error: {e}", 2)
    except AuditError as e:
        _fail(str(e), 1)
    except GoogleAPIError as e:
        _fail(f"BigQuery error: {e}", 1)


if __name__ == "__main__":
    main()
