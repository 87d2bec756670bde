#!/usr/bin/env python3
"""
Configuration Manager for Docker Daemon Migrator

This module handles loading and managing configuration from config.yaml
and environment variables.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


class ConfigManager:
    """Manages configuration for the Docker daemon migrator"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        # Allow override via environment variable for containerized deployments
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "source": {"host": ""},
            "destinations": {"hosts": []},
            "docker": {
                "api_version": "1.41",
                "connect_timeout": 10,  # Seconds to establish a connection to a daemon
            },
            "migration": {
                "image_pattern": ".*",
                "timeout": 120,  # Deadline shared by the whole invocation, in seconds
                "grace_period": 5,  # Extra wait for in-flight loads once the deadline has passed
                "chunk_size": 1024 * 1024,  # Bytes read per chunk from the save stream
                "output_dir": "reports",
            },
            "logging": {"level": "INFO"},
            "security": {"dry_run_by_default": True},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except Exception as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # Daemon configuration
    def get_source_host(self) -> str:
        """Get source daemon host from environment or config"""
        return os.environ.get("SOURCE_HOST") or self.config["source"]["host"] or ""

    def get_destination_hosts(self) -> List[str]:
        """Get destination daemon hosts.

        Priority: env DESTINATION_HOSTS (comma-separated) -> config.destinations.hosts
        """
        env_hosts = os.environ.get("DESTINATION_HOSTS")
        if env_hosts:
            return [h.strip() for h in env_hosts.split(",") if h.strip()]
        hosts = self.config["destinations"].get("hosts") or []
        if isinstance(hosts, str):
            hosts = [hosts]
        return [str(h).strip() for h in hosts if str(h).strip()]

    def get_api_version(self) -> str:
        """Get the Docker Engine API version to pin requests to"""
        return str(os.environ.get("DOCKER_API_VERSION") or self.config["docker"]["api_version"])

    def get_connect_timeout(self) -> float:
        """Get connect timeout from config, with type coercion"""
        timeout = self.config["docker"].get("connect_timeout", 10)
        try:
            return float(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"docker.connect_timeout must be a number, got: {timeout} (type: {type(timeout).__name__})"
            )

    # Migration configuration
    def get_image_pattern(self) -> str:
        """Get default image pattern from environment or config"""
        return os.environ.get("IMAGE_PATTERN") or self.config["migration"]["image_pattern"]

    def get_timeout(self) -> float:
        """Get the invocation deadline in seconds, with type coercion"""
        timeout = os.environ.get("MIGRATION_TIMEOUT") or self.config["migration"]["timeout"]
        try:
            return float(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"migration.timeout must be a number, got: {timeout} (type: {type(timeout).__name__})"
            )

    def get_grace_period(self) -> float:
        """Get grace period for in-flight loads after the deadline, with type coercion"""
        grace = self.config["migration"].get("grace_period", 5)
        try:
            return float(grace)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"migration.grace_period must be a number, got: {grace} (type: {type(grace).__name__})"
            )

    def get_chunk_size(self) -> int:
        """Get the read size used when consuming save streams"""
        chunk_size = self.config["migration"].get("chunk_size", 1024 * 1024)
        try:
            return int(chunk_size)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"migration.chunk_size must be an integer, got: {chunk_size} (type: {type(chunk_size).__name__})"
            )

    def get_output_dir(self) -> str:
        """Get output directory from config"""
        return self.config["migration"]["output_dir"]

    def get_log_level(self) -> str:
        """Get log level from environment or config"""
        return (os.environ.get("LOG_LEVEL") or self.config["logging"]["level"]).upper()

    def is_dry_run_by_default(self) -> bool:
        """Check if dry run is the default mode"""
        return self.config["security"].get("dry_run_by_default", True)

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        # Validate daemon hosts (both may be given on the command line instead)
        source_host = self.get_source_host()
        if source_host and not self._is_valid_daemon_host(source_host):
            errors.append(
                f"Source host '{source_host}' is invalid (expected format: tcp://host:port[,ca=...,cert=...,key=...])"
            )

        for host in self.get_destination_hosts():
            if not self._is_valid_daemon_host(host):
                errors.append(
                    f"Destination host '{host}' is invalid (expected format: tcp://host:port[,ca=...,cert=...,key=...])"
                )

        api_version = self.get_api_version()
        if not re.match(r"^\d+\.\d+$", api_version):
            errors.append(f"docker.api_version must look like '1.41', got: {api_version}")

        connect_timeout = self.get_connect_timeout()
        if connect_timeout <= 0:
            errors.append(f"docker.connect_timeout must be a positive number, got: {connect_timeout}")

        # Validate migration configuration
        pattern = self.get_image_pattern()
        if not pattern:
            errors.append("migration.image_pattern is required and cannot be empty")
        else:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"migration.image_pattern '{pattern}' is not a valid regular expression: {e}")

        timeout = self.get_timeout()
        if timeout <= 0:
            errors.append(f"migration.timeout must be a positive number (seconds), got: {timeout}")
        elif timeout > 3600:
            warnings.append(f"migration.timeout is very high ({timeout}s), a stuck daemon may hold the run that long")

        grace_period = self.get_grace_period()
        if grace_period < 0:
            errors.append(f"migration.grace_period must be a non-negative number, got: {grace_period}")

        chunk_size = self.get_chunk_size()
        if chunk_size < 1:
            errors.append(f"migration.chunk_size must be a positive integer, got: {chunk_size}")

        output_dir = self.get_output_dir()
        if not output_dir or not str(output_dir).strip():
            errors.append("migration.output_dir is required and cannot be empty")

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_daemon_host(self, host: str) -> bool:
        """Validate daemon host format"""
        if not host:
            return False
        address = host.split(",", 1)[0]
        pattern = r"^(tcp|http|https)://[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?/?$"
        return bool(re.match(pattern, address))

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Source Host: {self.get_source_host() or 'Not configured'}")
        destinations = self.get_destination_hosts()
        print(f"  Destination Hosts: {', '.join(destinations) if destinations else 'Not configured'}")
        print(f"  Docker API Version: {self.get_api_version()}")
        print(f"  Image Pattern: {self.get_image_pattern()}")
        print(f"  Timeout: {self.get_timeout()}s")
        print(f"  Grace Period: {self.get_grace_period()}s")
        print(f"  Output Directory: {self.get_output_dir()}")
        print(f"  Dry Run Default: {self.is_dry_run_by_default()}")


# Global config manager instance
# Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true environment variable
# This is useful for testing or when you know the config is valid
config_manager = ConfigManager(
    validate=os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes")
)
