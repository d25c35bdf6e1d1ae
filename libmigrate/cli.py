"""Command line interface for legacy library migrations."""

import argparse
import json
import logging
import sys

from .errors import MigrationError
from .extractors.sqlite_extractor import SQLiteExtractor
from .models.migration import MigrationConfig
from .orchestrator import MigrationOrchestrator
from .services.schema_prober import SchemaProber

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Legacy Library Migration - Move a legacy SQLite library database into a target store"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Probe a source
    probe_parser = subparsers.add_parser("probe", help="Show how a legacy database maps to entities")
    probe_parser.add_argument("file", help="Path to the legacy SQLite file")
    probe_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Run migration
    run_parser = subparsers.add_parser("run", help="Run a migration")
    run_parser.add_argument("--config", required=True, help="Path to migration config file")
    run_parser.add_argument("--source", help="Legacy SQLite file (overrides source_path)")
    run_parser.add_argument("--dry-run", action="store_true", help="Migrate into an in-memory store")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "probe":
            run_probe(args)
        elif args.command == "run":
            run_migration(args)
        else:
            parser.print_help()
            return 2
    except MigrationError as e:
        logger.error(str(e))
        return 1

    return 0


def run_probe(args):
    """Print the probe result for a legacy database."""
    prober = SchemaProber()
    with SQLiteExtractor(args.file) as extractor:
        result = prober.probe(extractor)

    output = result.to_dict()
    output["sources"] = prober.select_sources(result.mappings).to_dict()
    print(json.dumps(output, indent=2, default=str))


def run_migration(args):
    """Run a migration from config file."""
    with open(args.config) as f:
        config_data = json.load(f)

    config = MigrationConfig.from_dict(config_data)

    if args.source:
        config.source_path = args.source
    if args.dry_run:
        config.target = "memory"

    orchestrator = MigrationOrchestrator(config)
    result = orchestrator.run_migration()
    report = result.report or {}

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    print(f"Status: {result.status.value}")
    for step in result.steps:
        print(f"  {step.id:<12} {step.status.value:<12} {step.message or ''}")
    print(f"Categories: {report.get('categories', 0)}")
    print(f"Books: {report.get('books', 0)}")
    print(f"Students: {report.get('students', 0)}")
    borrowings = report.get("borrowings", {})
    print(f"Borrowings: {borrowings.get('active', 0)} active, {borrowings.get('historical', 0)} historical")
    print(f"Fines: {report.get('fines', 0)}")
    print(f"Errors: {report.get('errors', 0)}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")


if __name__ == "__main__":
    sys.exit(main())
