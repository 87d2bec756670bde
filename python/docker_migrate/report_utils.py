"""
Utility functions for report generation and saving.

This module provides functions to:
- Format sizes for log output
- Save reports as JSON (optionally with a timestamped filename)
- Render migration results as a table
"""
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from tabulate import tabulate

from docker_migrate.config_manager import config_manager
from docker_migrate.logging_utils import get_logger

logger = get_logger(__name__)


# ============================================================================
# Formatting Utilities
# ============================================================================

def sizeof_fmt(num: float, suffix: str = "B") -> str:
	"""Format bytes into human-readable size.

	Args:
	    num: Number of bytes
	    suffix: Suffix to append (default: "B")

	Returns:
	    Formatted string like "1.5GiB", "500MiB", etc.
	"""
	for unit in ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi"):
		if abs(num) < 1024.0:
			return f"{num:3.1f}{unit}{suffix}"
		num /= 1024.0
	return f"{num:.1f}Yi{suffix}"


# ============================================================================
# Timestamp Utilities
# ============================================================================

def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/migration.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/migration-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()

    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


def get_reports_dir() -> Path:
    """Get the configured reports directory"""
    return Path(config_manager.get_output_dir())


# ============================================================================
# Report Saving Functions
# ============================================================================

def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename (default: False)

    Returns:
        Path to the saved file
    """
    if timestamp:
        path = add_timestamp_to_path(path)

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        json.dump(data, f, indent=2, default=_json_default)

    logger.info(f"Saved report to {target}")
    return str(target)


def format_report_table(rows: List[Dict[str, Any]]) -> str:
    """
    Render migration result rows as a grid table.

    Args:
        rows: Dicts with image, tags, destination and status keys

    Returns:
        Table string ("No images matched." when there are no rows)
    """
    if not rows:
        return "No images matched."
    headers = ["Image", "Tags", "Destination", "Status"]
    table_rows = [
        [row.get("image", ""), row.get("tags", ""), row.get("destination", ""), row.get("status", "")]
        for row in rows
    ]
    return tabulate(table_rows, headers=headers, tablefmt="grid")
