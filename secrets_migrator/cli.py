"""Command line entry point: ``migrate-secrets export`` and ``migrate-secrets migrate``."""

import argparse
import logging
import sys
from typing import List, Optional

from .client import GitHubClient
from .config import MigrationConfig, load_config
from .errors import SecretMigrationError
from .export import SecretExporter, write_migration_report
from .orchestrator import SecretMigrator
from .values import ValueSource

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = 'secrets_migration.log'


def setup_logging(log_file: Optional[str] = DEFAULT_LOG_FILE, verbose: bool = False) -> None:
    """Log to the console and, unless disabled, to a file"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    # Keep request URLs and headers out of the log
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='migrate-secrets',
        description="Migrate GitHub Actions organization secrets from one organization to another.",
        epilog="""
Examples:
  migrate-secrets export -s source-org -o secrets.csv
  migrate-secrets migrate -s source-org -d target-org --values-file secrets.csv
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--log-file', default=DEFAULT_LOG_FILE,
                        help=f"File to write the log to (default: {DEFAULT_LOG_FILE}, '' to disable)")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    subparsers = parser.add_subparsers(dest='command', required=True)

    export_parser = subparsers.add_parser('export', help="Export the definitions of secrets to CSV")
    export_parser.add_argument('-s', '--source-org', '--sourceOrg', dest='source_org',
                               help="Organization with the secrets (default: owner of the current repository)")
    export_parser.add_argument('-o', '--output-file', '--outputFile', dest='output_file', default='secrets.csv',
                               help="File to write the output to (default: secrets.csv)")

    migrate_parser = subparsers.add_parser('migrate', help="Migrate secrets to another organization")
    migrate_parser.add_argument('-s', '--source-org', '--src', dest='source_org',
                                help="Organization with the secrets to migrate (default: owner of the current repository)")
    migrate_parser.add_argument('-d', '--dest-org', '--dest', dest='destination_org',
                                help="Organization where the secrets will be migrated (required)")
    migrate_parser.add_argument('--values-file',
                                help="CSV with 'name' and 'value' columns holding the plaintext values")
    migrate_parser.add_argument('--values-env-prefix',
                                help="Read values from environment variables named <PREFIX><SECRET_NAME>")
    migrate_parser.add_argument('--workers', type=int, help="Number of secrets migrated concurrently")
    migrate_parser.add_argument('--report-file', help="Write a CSV report of per-secret outcomes")
    return parser


def run_export(config: MigrationConfig) -> int:
    with GitHubClient(config.source_token, config.source_api_url, config.max_retries) as client:
        exporter = SecretExporter(client, config.source_org, config.workers)
        secrets = exporter.run(config.output_file)
    logger.info(f"Total secrets exported: {len(secrets)}")
    logger.info(f"Secrets exported to: {config.output_file}")
    return 0


def run_migration(config: MigrationConfig) -> int:
    if config.values_file:
        values = ValueSource.from_csv(config.values_file, env_prefix=config.values_env_prefix)
    else:
        values = ValueSource(env_prefix=config.values_env_prefix)
    if not config.values_file and not config.values_env_prefix:
        logger.warning("No values file or environment prefix given. Secret values cannot be read from "
                       "GitHub, so every secret will fail with a missing value.")

    with GitHubClient(config.source_token, config.source_api_url, config.max_retries) as source_client, \
            GitHubClient(config.target_token, config.target_api_url, config.max_retries) as target_client:
        migrator = SecretMigrator(source_client, target_client, config.source_org, config.destination_org,
                                  values, workers=config.workers, key_max_age=config.key_max_age)
        report = migrator.migrate()

    if config.report_file:
        write_migration_report(config.report_file, report)
    return report.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file or None, args.verbose)

    try:
        config = load_config(
            args.command,
            source_org=args.source_org,
            destination_org=getattr(args, 'destination_org', None),
            output_file=getattr(args, 'output_file', None),
            values_file=getattr(args, 'values_file', None),
            values_env_prefix=getattr(args, 'values_env_prefix', None),
            workers=getattr(args, 'workers', None),
            report_file=getattr(args, 'report_file', None),
        )
        if args.command == 'export':
            return run_export(config)
        return run_migration(config)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    except (SecretMigrationError, OSError) as e:
        logger.error(f"{args.command.capitalize()} failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
