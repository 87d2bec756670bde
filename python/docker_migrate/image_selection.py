"""
Image selection against the source daemon's image listing.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from docker_migrate.deadline import Deadline
from docker_migrate.docker_client import DockerDaemonError
from docker_migrate.error_utils import create_deadline_exceeded_error, create_source_unreachable_error
from docker_migrate.logging_utils import get_logger
from docker_migrate.pattern_matching import compile_pattern, match_tags


@dataclass(frozen=True)
class ImageRecord:
    """One image as listed by a daemon."""

    identifier: str
    tags: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, summary: Dict[str, Any]) -> "ImageRecord":
        """Build a record from an Engine API image summary (Id, RepoTags)."""
        tags = summary.get("RepoTags") or []
        # Untagged images are reported with the "<none>:<none>" placeholder by older daemons
        return cls(
            identifier=str(summary.get("Id", "")),
            tags=tuple(t for t in tags if t and t != "<none>:<none>"),
        )


class ImageSelector:
    """Selects the images on a source daemon whose tags match a pattern."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def list_images(self, source, deadline: Optional[Deadline] = None) -> List[ImageRecord]:
        """Fetch all images (including untagged ones) from the source."""
        timeout = deadline.timeout_for("image listing") if deadline else None
        try:
            summaries = source.list_images(all=True, timeout=timeout)
        except DockerDaemonError as e:
            if deadline is not None and deadline.expired:
                raise create_deadline_exceeded_error("image listing", deadline.timeout, e) from e
            raise create_source_unreachable_error(_host_of(source), "image listing", e) from e
        return [ImageRecord.from_api(s) for s in summaries]

    def select(self, source, pattern: str, deadline: Optional[Deadline] = None) -> Dict[str, List[str]]:
        """Map image identifier -> matched tags for every image with at least one match.

        Args:
            source: Source daemon client
            pattern: Regular expression matched against each "repository:tag"
            deadline: Shared invocation deadline

        Returns:
            Selection result; images without matching tags are left out

        Raises:
            InvalidPatternError: Pattern does not compile (checked before any network call)
            SourceUnreachableError: The listing call failed
            DeadlineExceededError: The deadline passed before the listing finished
        """
        regex = compile_pattern(pattern)

        images = self.list_images(source, deadline)
        self.logger.info(f"Found {len(images)} images on {_host_of(source)}")

        selection: Dict[str, List[str]] = {}
        for image in images:
            matched = match_tags(regex, image.tags)
            if matched:
                selection[image.identifier] = matched

        self.logger.info(f"{len(selection)} images match pattern {pattern!r}")
        for image_id, tags in selection.items():
            self.logger.debug(f"  {short_id(image_id)}: {', '.join(tags)}")
        return selection


def short_id(image_id: str) -> str:
    """Shorten "sha256:<hex>" identifiers to the 12 characters docker prints."""
    return image_id.split(":", 1)[-1][:12]


def _host_of(daemon) -> str:
    return getattr(daemon, "host", repr(daemon))
