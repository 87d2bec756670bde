"""
Error types and message utilities for image migrations.

Every failure the migration engine reports is an ActionableError: a short
message, a category, suggested fixes and a details dict. The subclasses
below are the error kinds a migration run can produce; the create_* helpers
build them with suggestions that fit the failure at hand.
"""

from typing import List, Optional, Dict, Any
from enum import Enum


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class InvalidPatternError(ActionableError):
    """The image pattern is not a valid regular expression."""


class SourceUnreachableError(ActionableError):
    """The source daemon could not list or save images."""


class ArchiveReadError(ActionableError):
    """The archive stream from the source could not be read to the end."""


class DestinationLoadError(ActionableError):
    """A destination daemon failed to load the archive."""


class DeadlineExceededError(ActionableError):
    """The invocation deadline elapsed before the operation finished."""


def _error_details(error: Optional[Exception], **extra) -> Dict[str, Any]:
    details = dict(extra)
    if error is not None:
        details["error_type"] = type(error).__name__
        details["error_message"] = getattr(error, "message", str(error))
    return details


def create_invalid_pattern_error(pattern: str, error: Optional[Exception] = None) -> InvalidPatternError:
    """Create actionable error for an image pattern that does not compile"""
    suggestions = [
        "Use Python regular expression syntax, e.g. 'alpine.*' or '^golang:1\\.2[0-9]'",
        "Quote the pattern in your shell so it is passed through unchanged",
        "Use '.*' to migrate every tagged image",
    ]

    return InvalidPatternError(
        message=f"Invalid image pattern: {pattern!r}",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details=_error_details(error, pattern=pattern),
    )


def create_source_unreachable_error(host: str, operation: str, error: Exception) -> SourceUnreachableError:
    """Create actionable error for source daemon failures (listing or save)"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the source daemon is running and listening at {host}",
        "Check network connectivity and firewall rules to the daemon port (2375/2376)",
        "Verify the daemon API version is supported (DOCKER_API_VERSION)",
    ]

    if "no such image" in error_str or "404" in error_str:
        suggestions.insert(0, "The image may have been removed from the source since it was listed")

    if "tls" in error_str or "certificate" in error_str or "ssl" in error_str:
        suggestions.insert(0, "Check the ca/cert/key paths given with the source host")

    return SourceUnreachableError(
        message=f"Source daemon at {host} failed during {operation}",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details=_error_details(error, host=host, operation=operation),
    )


def create_archive_read_error(host: str, image_ids: List[str], error: Exception) -> ArchiveReadError:
    """Create actionable error for a save stream that could not be consumed"""
    suggestions = [
        "Retry the migration; the transfer may have been interrupted",
        f"Check free disk space on the source daemon at {host}",
        "Increase the migration timeout if the archive is large",
    ]

    return ArchiveReadError(
        message=f"Failed to read image archive from {host}",
        category=ErrorCategory.NETWORK,
        suggestions=suggestions,
        details=_error_details(error, host=host, images=", ".join(image_ids)),
    )


def create_destination_load_error(host: str, error: Optional[Exception] = None,
                                  daemon_message: Optional[str] = None) -> DestinationLoadError:
    """Create actionable error for a destination that failed to load the archive"""
    suggestions = [
        f"Verify the destination daemon is running and listening at {host}",
        "Check free disk space on the destination",
        "Check the destination daemon logs for the rejected layer or tag",
    ]

    details = _error_details(error, host=host)
    if daemon_message:
        details["daemon_message"] = daemon_message
        message = f"Destination daemon at {host} rejected the archive: {daemon_message}"
    else:
        message = f"Destination daemon at {host} failed to load the archive"

    return DestinationLoadError(
        message=message,
        category=ErrorCategory.RESOURCE if daemon_message else ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details=details,
    )


def create_deadline_exceeded_error(operation: str, timeout: Optional[float] = None,
                                   error: Optional[Exception] = None) -> DeadlineExceededError:
    """Create actionable error for work cut short by the shared deadline"""
    suggestions = [
        "Increase the migration timeout (--timeout or MIGRATION_TIMEOUT)",
        "Narrow the image pattern to migrate fewer images per run",
    ]

    if timeout is not None:
        message = f"Deadline of {timeout:g}s exceeded during {operation}"
    else:
        message = f"Deadline exceeded during {operation}"

    return DeadlineExceededError(
        message=message,
        category=ErrorCategory.TIMEOUT,
        suggestions=suggestions,
        details=_error_details(error, operation=operation, timeout=timeout),
    )


def create_config_error(field: str, value: Any, reason: str) -> ActionableError:
    """Create actionable error for configuration validation failures"""
    suggestions = [
        f"Check the '{field}' value in config.yaml",
        "Verify the value matches the expected format",
        "Check the config-example.yaml for correct format",
    ]

    if "host" in field.lower():
        suggestions.insert(1, "Hosts must look like tcp://host:2375 or tcp://host:2376,ca=...,cert=...,key=...")
    elif "timeout" in field.lower() or "grace" in field.lower():
        suggestions.insert(1, "Time values must be positive numbers")

    return ActionableError(
        message=f"Configuration error: Invalid value for '{field}'",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={
            "field": field,
            "value": value,
            "reason": reason
        }
    )
