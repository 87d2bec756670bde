#!/usr/bin/env python3
"""
Migrate Docker images from one Docker daemon to others.

This is a 'good' solution when the daemons do not share a registry: matching
images are saved from the source daemon once, and the archive is loaded into
every destination daemon concurrently.

Workflow:
1. Verify connectivity to the source daemon (and, as a warning, to each destination)
2. List all images on the source and keep those with tags matching the pattern
3. For each image, save it with its matched tags and load it into all destinations
4. Print a summary table (and optionally save a JSON report)

Hosts must be in the following format:
  tcp://[ip|dns]:(2375|2376)[,ca=/path/to/ca,cert=/path/to/cert,key=/path/to/key]
2375 is plain HTTP, 2376 (or any TLS option) is HTTPS.

Usage examples:
  # Show which images would be migrated (dry-run)
  python migrate_images.py -s tcp://192.168.56.2:2375 -d tcp://192.168.56.3:2375

  # Migrate all alpine images to two daemons
  python migrate_images.py -s tcp://192.168.56.2:2375 -d tcp://192.168.56.3:2375 \\
    -d tcp://192.168.56.4:2375 -p 'alpine.*' --apply

  # Migrate the images referenced by a compose file, over TLS
  python migrate_images.py -s tcp://192.168.56.2:2375 \\
    -d "tcp://192.168.56.3:2376,ca=~/ca.pem,cert=~/cert.pem,key=~/key.pem" \\
    --image-file docker-compose.yml --apply
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
_parent_dir = Path(__file__).parent.parent.absolute()
if str(_parent_dir) not in sys.path:
    sys.path.insert(0, str(_parent_dir))

from docker_migrate.archive import ArchiveProducer
from docker_migrate.broadcast import BroadcastLoader
from docker_migrate.config_manager import config_manager
from docker_migrate.docker_client import DockerDaemonClient, InvalidDaemonHostError
from docker_migrate.error_utils import ActionableError, create_config_error
from docker_migrate.health_checks import HealthChecker, required_checks_passed
from docker_migrate.logging_utils import get_logger, log_exception, setup_logging
from docker_migrate.migration import ImageMigrator, MigrationReport
from docker_migrate.pattern_matching import build_pattern_from_names, read_image_names_from_file
from docker_migrate.report_utils import add_timestamp_to_path, format_report_table, get_reports_dir, save_json

logger = get_logger(__name__)


class ArgumentError(Exception):
    """Raised when the source or destination hosts are not usable."""


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Migrate Docker images from one Docker daemon to others",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run: list the images that would be migrated
  python migrate_images.py --source-host tcp://192.168.56.2:2375 --destination-host tcp://192.168.56.3:2375

  # Migrate everything to two daemons
  python migrate_images.py --source-host tcp://192.168.56.2:2375 \\
    --destination-host tcp://192.168.56.3:2375 --destination-host tcp://192.168.56.4:2375 --apply

  # Migrate golang images to a TLS-protected daemon
  python migrate_images.py --source-host tcp://192.168.56.2:2375 \\
    --destination-host "tcp://192.168.56.3:2376,ca=~/ca-file,cert=~/cert-file,key=~/cert-key" \\
    --image-pattern 'golang.*' --apply
        """,
    )

    parser.add_argument(
        "-s",
        "--source-host",
        default=config_manager.get_source_host(),
        help="Host from where we are getting the images to migrate them to the destination hosts",
    )

    parser.add_argument(
        "-d",
        "--destination-host",
        action="append",
        dest="destination_hosts",
        default=None,
        help="Host where the images are going to (repeat for several hosts)",
    )

    parser.add_argument(
        "-p",
        "--image-pattern",
        default=None,
        help="Regular expression matched against 'repository:tag' names (default: .*, all tagged images)",
    )

    parser.add_argument(
        "--image-file",
        help="Migrate the images referenced by 'image: <name>' lines of this file (e.g. a compose file)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline for the whole migration in seconds (default: from config, 120)",
    )

    parser.add_argument(
        "--grace-period",
        type=float,
        default=None,
        help="Extra seconds to wait for in-flight loads once the deadline passed (default: from config, 5)",
    )

    parser.add_argument(
        "--apply",
        action="store_true",
        help="Actually migrate images (default: dry-run showing what would be migrated)",
    )

    parser.add_argument(
        "--skip-health-checks",
        action="store_true",
        help="Do not ping the daemons before migrating",
    )

    parser.add_argument(
        "--output",
        help="Write a JSON migration report to this file",
    )

    parser.add_argument(
        "--save-report",
        action="store_true",
        help="Write a timestamped JSON report to the configured reports directory",
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: from config, INFO)",
    )

    parser.add_argument(
        "--config",
        action="store_true",
        help="Show current configuration and exit",
    )

    return parser.parse_args(argv)


def resolve_pattern(args) -> str:
    """Pick the image pattern: --image-file, then --image-pattern, then config."""
    if args.image_file:
        names = read_image_names_from_file(args.image_file)
        logger.info(f"Found {len(names)} image references in {args.image_file}")
        return build_pattern_from_names(names)
    return args.image_pattern or config_manager.get_image_pattern()


def build_clients(source_host: str, destination_hosts: List[str]):
    """Create the source and destination daemon clients.

    Raises:
        ArgumentError: If the source host is blank or any host cannot be parsed
    """
    if not source_host or not source_host.strip():
        raise ArgumentError("source or destination hosts do not have valid values: --source-host is required")

    try:
        source = DockerDaemonClient.from_config(source_host, config_manager)
    except InvalidDaemonHostError as e:
        raise ArgumentError(create_config_error("source-host", source_host, str(e)).format_message()) from e

    destinations = []
    for host in destination_hosts:
        try:
            destinations.append(DockerDaemonClient.from_config(host, config_manager))
        except InvalidDaemonHostError as e:
            raise ArgumentError(create_config_error("destination-host", host, str(e)).format_message()) from e

    return source, destinations


def log_summary(report: MigrationReport) -> None:
    """Log the migration summary table and any errors"""
    logger.info("")
    logger.info("=" * 60)
    mode = "DRY RUN " if report.dry_run else ""
    logger.info(f"   {mode}MIGRATION SUMMARY")
    logger.info("=" * 60)
    for line in format_report_table(report.table_rows()).splitlines():
        logger.info(line)

    summary = report.to_dict()["summary"]
    logger.info(f"Images matched:       {summary['total_images']}")
    if not report.dry_run:
        logger.info(f"Images migrated:      {summary['images_migrated']}")
        logger.info(f"Images failed:        {summary['images_failed']}")
        logger.info(f"Destination failures: {summary['destination_failures']}")

    if report.errors:
        logger.error("")
        logger.error("Errors:")
        for message in report.errors:
            logger.error(f"  {message}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.log_level or config_manager.get_log_level())

    if args.config:
        config_manager.print_config()
        return 0

    dry_run = not args.apply and config_manager.is_dry_run_by_default()
    destination_hosts = args.destination_hosts if args.destination_hosts is not None else config_manager.get_destination_hosts()
    timeout = args.timeout if args.timeout is not None else config_manager.get_timeout()
    grace_period = args.grace_period if args.grace_period is not None else config_manager.get_grace_period()

    try:
        pattern = resolve_pattern(args)
        source, destinations = build_clients(args.source_host, destination_hosts)
    except (ArgumentError, ActionableError, OSError) as e:
        logger.error(getattr(e, "message", str(e)))
        return 1

    try:
        # Print mode banner
        logger.info("=" * 60)
        if dry_run:
            logger.info("   IMAGE MIGRATION - DRY RUN MODE (default)")
            logger.info("   No images will be saved or loaded. Use --apply to execute.")
        else:
            logger.info("   IMAGE MIGRATION - APPLY MODE")
            logger.warning("   Images WILL be loaded into the destination daemons!")
        logger.info("=" * 60)
        logger.info(f"Source daemon:        {source.host}")
        logger.info(f"Destination daemons:  {', '.join(d.host for d in destinations) or 'none'}")
        logger.info(f"Image pattern:        {pattern}")
        logger.info(f"Timeout:              {timeout:.0f}s")
        logger.info("")

        if not destinations:
            logger.warning("No destination hosts given; images will only be listed")

        if not args.skip_health_checks:
            checker = HealthChecker()
            results = checker.run_all_checks(source, destinations)
            if not required_checks_passed(results):
                checker.print_health_report(results)
                logger.error("Health checks failed, aborting migration")
                return 1
            for result in results:
                if not result.status:
                    logger.warning(f"{result.message}; its load will be reported as failed")

        migrator = ImageMigrator(
            producer=ArchiveProducer(chunk_size=config_manager.get_chunk_size()),
            loader=BroadcastLoader(grace_period=grace_period),
        )

        try:
            report = migrator.migrate(source, destinations, pattern, timeout=timeout, dry_run=dry_run)
        except ActionableError as e:
            # Selection failed: bad pattern, unreachable source or deadline
            logger.error(str(e))
            return 1

        log_summary(report)

        output_file = args.output
        if not output_file and args.save_report:
            output_file = add_timestamp_to_path(str(get_reports_dir() / "migration-report.json"))
        if output_file:
            save_json(output_file, report.to_dict())
            logger.info(f"\nReport saved to: {output_file}")

        if dry_run:
            logger.info("")
            logger.info("No changes were made. Use --apply to execute the migration.")
            return 0

        return 0 if report.succeeded else 1

    except KeyboardInterrupt:
        logger.warning("\nMigration interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"\nMigration failed: {e}")
        log_exception(logger, "Error in migration", exc_info=e)
        return 1
    finally:
        source.close()
        for destination in destinations:
            destination.close()


if __name__ == "__main__":
    sys.exit(main())
