"""
Health check utilities for verifying daemon connectivity before a migration.

This module provides health checks for:
- Configuration validity
- Source daemon connectivity (required)
- Destination daemon connectivity (optional: an unreachable destination is
  reported, and its load failure shows up in the migration report)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from docker_migrate.config_manager import ConfigValidationError, config_manager
from docker_migrate.docker_client import DockerDaemonError
from docker_migrate.error_utils import create_destination_load_error, create_source_unreachable_error
from docker_migrate.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check"""

    name: str
    status: bool  # True if healthy, False if unhealthy
    message: str
    details: Optional[Dict] = None
    required: bool = True


class HealthChecker:
    """Performs health checks on the daemons taking part in a migration"""

    def __init__(self, timeout: Optional[float] = None):
        """Initialize HealthChecker.

        Args:
            timeout: Seconds allowed per ping (defaults to the configured connect timeout)
        """
        self.timeout = timeout if timeout is not None else config_manager.get_connect_timeout()
        self.logger = get_logger(self.__class__.__name__)

    def check_configuration(self) -> HealthCheckResult:
        """Check that the loaded configuration validates"""
        try:
            config_manager.validate_config()
            return HealthCheckResult(
                name="configuration",
                status=True,
                message="Configuration is valid",
                details={"config_file": config_manager.config_file},
            )
        except ConfigValidationError as e:
            return HealthCheckResult(
                name="configuration",
                status=False,
                message="Configuration validation failed",
                details={"config_file": config_manager.config_file, "error": str(e)},
            )

    def check_daemon_connectivity(self, client, role: str = "source") -> HealthCheckResult:
        """Check if a Docker daemon answers its ping endpoint

        Args:
            client: Daemon client to ping
            role: "source" or "destination"; destinations are optional checks

        Returns:
            HealthCheckResult indicating daemon connectivity status
        """
        host = getattr(client, "host", repr(client))
        name = f"{role}_connectivity"
        required = role == "source"
        self.logger.info(f"Checking {role} daemon connectivity at {host}")

        try:
            healthy = client.ping(timeout=self.timeout)
        except DockerDaemonError as e:
            if required:
                actionable_error = create_source_unreachable_error(host, "ping", e)
            else:
                actionable_error = create_destination_load_error(host, e)
            return HealthCheckResult(
                name=name,
                status=False,
                message=f"Cannot connect to {role} daemon at {host}",
                details={
                    "host": host,
                    "error": e.message,
                    "suggestions": actionable_error.suggestions,
                },
                required=required,
            )

        if not healthy:
            return HealthCheckResult(
                name=name,
                status=False,
                message=f"{role.capitalize()} daemon at {host} did not answer the ping with OK",
                details={"host": host},
                required=required,
            )

        return HealthCheckResult(
            name=name,
            status=True,
            message=f"Successfully connected to {role} daemon at {host}",
            details={"host": host},
            required=required,
        )

    def run_all_checks(self, source, destinations: Sequence) -> List[HealthCheckResult]:
        """Run all health checks

        Args:
            source: Source daemon client
            destinations: Destination daemon clients

        Returns:
            List of HealthCheckResult objects
        """
        results = [self.check_configuration(), self.check_daemon_connectivity(source, role="source")]
        for destination in destinations:
            results.append(self.check_daemon_connectivity(destination, role="destination"))
        return results

    def print_health_report(self, results: List[HealthCheckResult]) -> bool:
        """Print a formatted health check report

        Args:
            results: List of HealthCheckResult objects

        Returns:
            True if all checks passed, False otherwise
        """
        print("\n" + "=" * 60)
        print("Health Check Report")
        print("=" * 60)

        all_healthy = True

        for result in results:
            status_icon = "✓" if result.status else "✗"
            status_text = "HEALTHY" if result.status else ("UNHEALTHY" if result.required else "UNREACHABLE (optional)")

            print(f"\n{status_icon} {result.name.upper().replace('_', ' ')}: {status_text}")
            print(f"   {result.message}")

            if result.details:
                for key, value in result.details.items():
                    if key == "suggestions":
                        for suggestion in value:
                            print(f"   - {suggestion}")
                    else:
                        print(f"   {key}: {value}")

            if not result.status:
                all_healthy = False

        print("\n" + "=" * 60)

        if all_healthy:
            print("✓ All health checks passed")
        else:
            print("✗ Some health checks failed - please review the issues above")

        print("=" * 60 + "\n")

        return all_healthy


def required_checks_passed(results: List[HealthCheckResult]) -> bool:
    """True when every required check is healthy."""
    return all(r.status for r in results if r.required)
