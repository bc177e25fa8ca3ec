#!/usr/bin/env python3
"""
Confluence Space Import Tool - Main CLI Entry Point

Imports a Confluence space export (zip or extracted directory) into the
document store, either as a new space or as pages added to an existing one.
"""

import argparse
import logging
import sys
import tempfile
from typing import List, Optional

import yaml

from config_loader import ConfigLoader, get_nested
from errors import ConfluenceImportError
from fetchers.archive import extract_archive
from importers.document_store import DocumentStore
from logger import log_config, log_section, setup_logging
from models import ImportMode, OrphanPolicy
from orchestrator import ImportOrchestrator, ImportReport

__version__ = "1.0.0"


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Import a Confluence space export into the document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import an export as a new space
  python import_space.py Confluence-space-export.zip

  # Add the pages to an existing space
  python import_space.py export/ --mode pages --space-id 7f3c...

  # Preview the page tree without writing anything
  python import_space.py export.zip --dry-run

  # Verbose logging
  python import_space.py export.zip -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        'archive',
        type=str,
        help='Space export .zip file or an already-extracted export directory'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--mode',
        choices=[m.value for m in ImportMode],
        help='space: create a new space; pages: add to an existing space (default: space)'
    )

    parser.add_argument(
        '--space-id',
        type=str,
        help='Target space id for --mode pages'
    )

    parser.add_argument(
        '--database',
        type=str,
        help='Path to the SQLite document store'
    )

    parser.add_argument(
        '--storage-dir',
        type=str,
        help='Directory for stored attachment files'
    )

    parser.add_argument(
        '--orphan-policy',
        choices=[p.value for p in OrphanPolicy],
        help='Pages whose parent is missing: skip, promote to root, or fail (default: skip)'
    )

    parser.add_argument(
        '--report-path',
        type=str,
        help='Write a JSON report to this path'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Parse and preview the page tree without writing'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def load_configuration(args: argparse.Namespace) -> dict:
    """Config file (optional) + defaults + CLI overrides, validated."""
    config = ConfigLoader.load(args.config) if args.config else {}
    config = ConfigLoader.with_defaults(config)
    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def run_import(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """
    Extract, import and report.

    Returns:
        Process exit code
    """
    report = ImportReport()
    mode = get_nested(config, 'import.mode')

    with tempfile.TemporaryDirectory(prefix='confluence-import-') as temp_dir:
        extract_dir = extract_archive(args.archive, temp_dir)

        # Dry runs never open the configured database
        store = DocumentStore(':memory:') if args.dry_run else None
        orchestrator = ImportOrchestrator(config, store=store)
        try:
            if args.dry_run:
                plan = orchestrator.plan(extract_dir, mode)
                print(report.format_plan_preview(plan))
                return 0

            result = orchestrator.run(
                extract_dir,
                mode,
                target_space_id=get_nested(config, 'import.space_id')
            )
        finally:
            orchestrator.store.close()

    report_data = report.generate_report(result)
    print(report.format_console_report(report_data))

    report_path = get_nested(config, 'report.path')
    if report_path:
        try:
            report.export_json_report(report_data, report_path)
        except OSError as e:
            logger.error(f"Failed to export JSON report: {str(e)}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = load_configuration(args)
    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except yaml.YAMLError as e:
        print(f"ERROR: Invalid configuration file: {e}", file=sys.stderr)
        return 2

    logging_config = config.get('logging', {})
    setup_logging(
        verbosity=args.verbose,
        log_file=logging_config.get('file'),
        log_format=logging_config.get('format'),
        date_format=logging_config.get('date_format'),
        level=logging_config.get('level')
    )
    logger = logging.getLogger('confluence_space_importer.cli')

    log_section("Confluence Space Import Tool")
    logger.info(f"Version: {__version__}")
    log_config(config)

    try:
        return run_import(config, args, logger)
    except ConfluenceImportError as e:
        logger.error(f"Import failed: {str(e)}")
        print(f"ERROR: Import failed: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nImport interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.exception("Unexpected error during import")
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
