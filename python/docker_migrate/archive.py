"""
Archive production: save a set of images from the source daemon into one
in-memory tarball that can be replayed to any number of destinations.
"""

import io
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from docker_migrate.deadline import Deadline
from docker_migrate.docker_client import DEFAULT_CHUNK_SIZE, ArchiveStreamError, DockerDaemonError
from docker_migrate.error_utils import (
    create_archive_read_error,
    create_deadline_exceeded_error,
    create_source_unreachable_error,
)
from docker_migrate.logging_utils import get_logger
from docker_migrate.report_utils import sizeof_fmt


@dataclass(frozen=True)
class ArchiveBlob:
    """Fully materialized image archive.

    The bytes are immutable, so any number of loaders can read them at the
    same time; each one takes its own reader().
    """

    data: bytes
    image_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def size(self) -> int:
        return len(self.data)

    def reader(self) -> io.BytesIO:
        """Independent read view positioned at the start of the archive."""
        return io.BytesIO(self.data)


class ArchiveProducer:
    """Saves images from a source daemon into an ArchiveBlob."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self.logger = get_logger(self.__class__.__name__)

    def produce(self, source, ids: Sequence[str], deadline: Optional[Deadline] = None) -> ArchiveBlob:
        """Save all given images with a single call and read the archive into memory.

        Args:
            source: Source daemon client
            ids: Image identifiers and/or "repository:tag" names, saved together
            deadline: Shared invocation deadline

        Returns:
            The complete archive

        Raises:
            SourceUnreachableError: The save call failed
            ArchiveReadError: The stream could not be read to the end
            DeadlineExceededError: The deadline passed before the archive was complete
        """
        names: List[str] = list(ids)
        host = getattr(source, "host", repr(source))
        operation = f"image save ({', '.join(names)})"

        timeout = deadline.timeout_for(operation) if deadline else None
        try:
            stream = source.save_images(names, timeout=timeout, chunk_size=self.chunk_size)
        except DockerDaemonError as e:
            if deadline is not None and deadline.expired:
                raise create_deadline_exceeded_error(operation, deadline.timeout, e) from e
            raise create_source_unreachable_error(host, "image save", e) from e

        buffer = bytearray()
        try:
            for chunk in stream:
                buffer.extend(chunk)
                if deadline is not None:
                    deadline.check(operation)
        except (ArchiveStreamError, OSError) as e:
            if deadline is not None and deadline.expired:
                raise create_deadline_exceeded_error(operation, deadline.timeout, e) from e
            raise create_archive_read_error(host, names, e) from e
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        blob = ArchiveBlob(data=bytes(buffer), image_ids=tuple(names))
        self.logger.info(f"Saved {len(names)} names from {host} into a {sizeof_fmt(blob.size)} archive")
        return blob
