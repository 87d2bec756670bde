"""
Broadcast loading: deliver one archive to every destination daemon at once.

Each destination gets its own worker thread and its own read view of the
shared archive. Workers never raise; they return a DestinationOutcome, so
one destination failing cannot affect another. The join waits for all of
them, but never past the shared deadline plus a short grace period.
"""

import concurrent.futures
import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from docker_migrate.archive import ArchiveBlob
from docker_migrate.deadline import Deadline
from docker_migrate.docker_client import DockerDaemonError, parse_status_messages
from docker_migrate.error_utils import (
    ActionableError,
    create_deadline_exceeded_error,
    create_destination_load_error,
)
from docker_migrate.logging_utils import get_logger


@dataclass
class DestinationOutcome:
    """Result of loading one archive into one destination."""

    destination: Any
    error: Optional[ActionableError] = None
    messages: List[str] = field(default_factory=list)

    @property
    def host(self) -> str:
        return getattr(self.destination, "host", repr(self.destination))

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": self.host,
            "status": "success" if self.succeeded else "failed",
            "error": self.error.message if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "messages": list(self.messages),
        }


class DeadlineBoundReader:
    """Read view of an archive that stops yielding data once the deadline has passed.

    The HTTP layer pulls the request body block by block, so an upload still
    running after the deadline fails at its next block instead of landing late.
    """

    def __init__(self, raw: io.BytesIO, size: int, deadline: Deadline, operation: str):
        self.raw = raw
        self.size = size
        self.deadline = deadline
        self.operation = operation

    def __len__(self) -> int:
        return self.size

    def read(self, size: int = -1) -> bytes:
        self.deadline.check(self.operation)
        return self.raw.read(size)

    def close(self) -> None:
        self.raw.close()


def _embedded_error(messages: List[Dict[str, Any]]) -> Optional[str]:
    """Return the first error reported inside a daemon status stream, if any."""
    for message in messages:
        detail = message.get("errorDetail")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        if message.get("error"):
            return str(message["error"])
    return None


def _close_destination(destination) -> None:
    close = getattr(destination, "close", None)
    if callable(close):
        close()


def _informational_lines(messages: List[Dict[str, Any]]) -> List[str]:
    lines = []
    for message in messages:
        text = message.get("stream") or message.get("status")
        if text and str(text).strip():
            lines.append(str(text).strip())
    return lines


class BroadcastLoader:
    """Loads one ArchiveBlob into many destination daemons concurrently."""

    def __init__(self, grace_period: float = 5.0, quiet: bool = False):
        """Initialize BroadcastLoader.

        Args:
            grace_period: Seconds to keep waiting for in-flight loads after the deadline
            quiet: Ask destinations to suppress progress details in their responses
        """
        self.grace_period = grace_period
        self.quiet = quiet
        self.logger = get_logger(self.__class__.__name__)

    def load_one(self, blob: ArchiveBlob, destination, deadline: Optional[Deadline] = None) -> DestinationOutcome:
        """Load the archive into a single destination. Never raises."""
        host = getattr(destination, "host", repr(destination))
        operation = f"image load on {host}"
        try:
            timeout = deadline.timeout_for(operation) if deadline else None
            data = blob.reader()
            if deadline is not None:
                data = DeadlineBoundReader(data, blob.size, deadline, operation)
            body = destination.load_images(data, quiet=self.quiet, timeout=timeout)
        except ActionableError as e:
            self.logger.error(f"❌ {host}: {e.message}")
            return DestinationOutcome(destination=destination, error=e)
        except DockerDaemonError as e:
            if deadline is not None and deadline.expired:
                error = create_deadline_exceeded_error(operation, deadline.timeout, e)
            else:
                error = create_destination_load_error(host, e)
            self.logger.error(f"❌ {host}: {error.message} ({e.message})")
            return DestinationOutcome(destination=destination, error=error)
        except Exception as e:
            error = create_destination_load_error(host, e)
            self.logger.error(f"❌ {host}: unexpected error while loading archive: {e}")
            return DestinationOutcome(destination=destination, error=error)

        messages = parse_status_messages(body)
        lines = _informational_lines(messages)
        for line in lines:
            self.logger.info(f"  {host}: {line}")

        daemon_error = _embedded_error(messages)
        if daemon_error:
            error = create_destination_load_error(host, daemon_message=daemon_error)
            self.logger.error(f"❌ {host}: {error.message}")
            return DestinationOutcome(destination=destination, error=error, messages=lines)

        self.logger.info(f"✓ Loaded archive into {host}")
        return DestinationOutcome(destination=destination, messages=lines)

    def broadcast(self, blob: ArchiveBlob, destinations: Sequence[Any],
                  deadline: Optional[Deadline] = None) -> List[DestinationOutcome]:
        """Load the archive into every destination concurrently.

        Args:
            blob: Archive to deliver; shared read-only by all workers
            destinations: Destination daemon clients
            deadline: Shared invocation deadline

        Returns:
            Exactly one outcome per destination, in destination order. Destinations
            still loading when the deadline (plus grace period) passes get a
            DeadlineExceededError outcome.
        """
        destinations = list(destinations)
        if not destinations:
            return []

        self.logger.info(f"Broadcasting archive to {len(destinations)} destination(s)...")
        outcomes: List[Optional[DestinationOutcome]] = [None] * len(destinations)

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(destinations), thread_name_prefix="image-load"
        )
        try:
            future_to_index = {
                executor.submit(self.load_one, blob, destination, deadline): index
                for index, destination in enumerate(destinations)
            }

            wait_timeout = None
            if deadline is not None and deadline.remaining() is not None:
                wait_timeout = deadline.remaining() + self.grace_period

            done, not_done = concurrent.futures.wait(future_to_index, timeout=wait_timeout)

            for future in done:
                outcomes[future_to_index[future]] = future.result()

            for future in not_done:
                future.cancel()
                index = future_to_index[future]
                host = getattr(destinations[index], "host", repr(destinations[index]))
                error = create_deadline_exceeded_error(
                    f"image load on {host}", deadline.timeout if deadline else None
                )
                self.logger.error(f"❌ {host}: {error.message} (load abandoned)")
                outcomes[index] = DestinationOutcome(destination=destinations[index], error=error)
                _close_destination(destinations[index])
        finally:
            # Abandoned uploads stop at their next body read; do not block on the threads
            executor.shutdown(wait=False)

        succeeded = sum(1 for o in outcomes if o.succeeded)
        self.logger.info(f"Broadcast finished: {succeeded}/{len(destinations)} destinations loaded the archive")
        return outcomes
