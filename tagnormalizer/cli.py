"""Command-line entry point.

Examples:
    tagnormalizer --rules rules.json --subscription 0000-... --resource-group "rg-prod-*"
    tagnormalizer --rules rules.csv --apply --workers 4 --timeout 120
    tagnormalizer --provider aws --region eu-west-1 --rules rules.json

Dry run is the default; nothing is changed without --apply.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import Iterator, List, Optional

from rich.markup import escape

from . import __version__
from .batch import BatchDriver
from .config import Settings, audit, console, setup_logging
from .engine import ApplyVerifyEngine
from .errors import ResultSinkError, RuleFileError, TransportError
from .models import TagSnapshot
from .providers import PROVIDERS, excluding_types
from .rules import load_rules
from .sinks import CsvResultSink, JsonReportSink, MultiSink, print_summary, read_processed_ids
from .transport import RetryingTransport

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tagnormalizer",
        description="Collapse inconsistent resource tag keys onto canonical names.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--rules", required=True, help="JSON or CSV normalization rule table")
    p.add_argument("--provider", choices=PROVIDERS, default="azure", help="Cloud provider (default: azure)")
    p.add_argument("--subscription", action="append", dest="subscriptions", default=[],
                   help="Azure subscription id (repeatable; default: all enabled subscriptions)")
    p.add_argument("--resource-group", dest="resource_group",
                   help="Azure resource group name pattern, e.g. 'rg-prod-*'")
    p.add_argument("--region", action="append", dest="regions", default=[],
                   help="AWS region (repeatable; default: us-east-1)")
    p.add_argument("--resource-type", action="append", dest="resource_types", default=[],
                   help="AWS resource type filter such as ec2:instance (repeatable)")
    p.add_argument("--exclude-type", action="append", dest="exclude_types", default=[],
                   help="Resource type to leave untouched (repeatable)")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--apply", action="store_true", help="Apply changes (default is a dry run)")
    mode.add_argument("--dry-run", action="store_true", help="Force a dry run even if DRY_RUN=false")
    p.add_argument("--output", help="Result CSV path (default: OUTPUT_DIR/tag_normalization_<mode>_<ts>.csv)")
    p.add_argument("--report", help="Also write a JSON report to this path")
    p.add_argument("--resume", action="store_true",
                   help="Append to --output (required) and skip resources it already lists")
    p.add_argument("--workers", type=int, help="Resources processed concurrently")
    p.add_argument("--timeout", type=float, help="Per-resource deadline in seconds")
    p.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    return p


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    changes = {}
    if args.apply:
        changes["dry_run"] = False
    elif args.dry_run:
        changes["dry_run"] = True
    if args.workers is not None:
        changes["max_workers"] = args.workers
    if args.timeout is not None:
        changes["resource_timeout"] = args.timeout
    if args.log_level:
        changes["log_level"] = args.log_level.upper()
    return dataclasses.replace(base, **changes)


def _azure_setup(args):
    from azure.core.exceptions import AzureError

    from .providers.azure import AzureProvider, AzureTagTransport

    provider = AzureProvider()
    provider.authenticate()
    subscriptions = args.subscriptions
    if not subscriptions:
        accounts = provider.get_accounts()
        subscriptions = [a["id"] for a in accounts if a["state"].lower() == "enabled"]

    def resources() -> Iterator[TagSnapshot]:
        for sub_id in subscriptions:
            audit(f"Processing subscription {sub_id}")
            try:
                yield from provider.enumerate_resources(sub_id, args.resource_group)
            except (AzureError, TransportError) as e:
                log.warning("Enumeration failed in subscription %s, moving on: %s", sub_id, e)
                console.print(f"[red]Skipping rest of subscription {sub_id}: {escape(str(e))}[/red]")

    return resources(), AzureTagTransport(provider.credential)


def _aws_setup(args):
    from botocore.exceptions import BotoCoreError, ClientError

    from .providers.aws import DEFAULT_REGION, AwsProvider, AwsTagTransport

    provider = AwsProvider()
    regions = args.regions or [DEFAULT_REGION]

    def resources() -> Iterator[TagSnapshot]:
        for region in regions:
            audit(f"Processing region {region}")
            try:
                yield from provider.enumerate_resources(region, args.resource_types or None)
            except (ClientError, BotoCoreError, TransportError) as e:
                log.warning("Enumeration failed in region %s, moving on: %s", region, e)
                console.print(f"[red]Skipping rest of region {region}: {escape(str(e))}[/red]")

    return resources(), AwsTagTransport()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.resume and not args.output:
        parser.error("--resume needs --output pointing at the previous run's CSV")
    settings = settings_from_args(args, Settings.from_env())
    log_file = setup_logging(settings)
    if log_file:
        console.print(f"[cyan]Logging to {log_file}[/cyan]")

    try:
        rules = load_rules(args.rules)
    except RuleFileError as e:
        console.print(f"[red]Rule table error: {e}[/red]")
        return 1

    output = args.output or settings.default_output_path("csv")
    skip_ids = read_processed_ids(output) if args.resume else set()
    try:
        csv_sink = CsvResultSink(output, append=args.resume)
        json_sink = JsonReportSink(args.report, settings.dry_run) if args.report else None
    except ResultSinkError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    sink = MultiSink(csv_sink, json_sink)

    mode = "DRY RUN" if settings.dry_run else "APPLY"
    audit(f"Tag normalization starting ({mode}, {len(rules)} rules, workers={settings.max_workers})",
          style="bold yellow" if settings.dry_run else "bold red")

    try:
        if args.provider == "aws":
            resources, transport = _aws_setup(args)
        else:
            resources, transport = _azure_setup(args)
        transport = RetryingTransport(transport, max_attempts=settings.retry_max_attempts,
                                      base_delay=settings.retry_base_delay)
        engine = ApplyVerifyEngine(transport, dry_run=settings.dry_run)
        driver = BatchDriver(rules, engine, sink, workers=settings.max_workers,
                             resource_timeout=settings.resource_timeout, skip_ids=skip_ids)
        summary = driver.run(excluding_types(resources, args.exclude_types))
    except TransportError as e:
        console.print(f"[red]Provider setup failed: {e}[/red]")
        sink.close()
        return 1
    except KeyboardInterrupt:
        console.print("\n[red]Interrupted by user[/red]")
        sink.close()
        return 1
    except Exception as e:
        log.exception("Run failed: %s", e)
        console.print(f"[red]Error: {e}[/red]")
        sink.close()
        return 1

    if json_sink is not None:
        json_sink.summary = summary.as_dict()
    sink.close()
    print_summary(summary, settings.dry_run)
    audit(f"Results written to {output}", style="green")
    return 0


if __name__ == "__main__":
    sys.exit(main())
