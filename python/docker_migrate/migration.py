"""
Migration of images from one Docker daemon to others.

Workflow per invocation:
1. Select the images on the source whose tags match the pattern
2. For each selected image, save it (with its matched tags) into one archive
3. Broadcast that archive to every destination concurrently
4. Collect a per-image, per-destination report

Only selection failures abort a run. A failed save skips that image, and a
failed load only marks that destination; the remaining work still runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from docker_migrate.archive import ArchiveProducer
from docker_migrate.broadcast import BroadcastLoader, DestinationOutcome
from docker_migrate.deadline import Deadline
from docker_migrate.error_utils import ActionableError
from docker_migrate.image_selection import ImageSelector, short_id
from docker_migrate.logging_utils import get_logger


@dataclass
class ImageMigrationResult:
    """Outcome of one migration unit (one image and its matched tags)."""

    image_id: str
    tags: List[str]
    error: Optional[ActionableError] = None
    outcomes: List[DestinationOutcome] = field(default_factory=list)
    skipped: bool = False

    @property
    def names(self) -> List[str]:
        """Names submitted to the save call: the matched tags plus the image id."""
        return list(self.tags) + [self.image_id]

    @property
    def failed_destinations(self) -> List[DestinationOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.failed_destinations

    def errors(self) -> List[str]:
        label = f"{short_id(self.image_id)} ({', '.join(self.tags)})"
        messages = []
        if self.error is not None:
            messages.append(f"{label}: {self.error.message}")
        for outcome in self.failed_destinations:
            messages.append(f"{label} -> {outcome.host}: {outcome.error.message}")
        return messages

    def to_dict(self) -> Dict[str, Any]:
        if self.skipped:
            status = "skipped"
        else:
            status = "success" if self.succeeded else "failed"
        return {
            "image_id": self.image_id,
            "tags": list(self.tags),
            "status": status,
            "error": self.error.message if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "destinations": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class MigrationReport:
    """Aggregate result of one migrate() invocation."""

    source: str
    destinations: List[str]
    pattern: str
    dry_run: bool = False
    results: List[ImageMigrationResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    duration: float = 0.0

    @property
    def failed_images(self) -> List[ImageMigrationResult]:
        return [r for r in self.results if r.error is not None]

    @property
    def failed_destinations(self) -> List[DestinationOutcome]:
        return [o for r in self.results for o in r.failed_destinations]

    @property
    def succeeded(self) -> bool:
        return all(r.succeeded for r in self.results)

    @property
    def errors(self) -> List[str]:
        return [message for r in self.results for message in r.errors()]

    def table_rows(self) -> List[Dict[str, str]]:
        """One row per image x destination (one row per image when nothing was loaded)."""
        rows = []
        for result in self.results:
            image = short_id(result.image_id)
            tags = ", ".join(result.tags)
            if result.outcomes:
                for outcome in result.outcomes:
                    status = "✓ loaded" if outcome.succeeded else f"❌ {type(outcome.error).__name__}"
                    rows.append({"image": image, "tags": tags, "destination": outcome.host, "status": status})
            elif result.skipped:
                label = "would migrate" if self.dry_run else "skipped (no destinations)"
                rows.append({"image": image, "tags": tags, "destination": "-", "status": label})
            else:
                status = f"❌ {type(result.error).__name__}" if result.error else "-"
                rows.append({"image": image, "tags": tags, "destination": "-", "status": status})
        return rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "total_images": len(self.results),
                "images_migrated": sum(1 for r in self.results if r.succeeded and not r.skipped),
                "images_failed": len(self.failed_images),
                "destination_failures": len(self.failed_destinations),
                "dry_run": self.dry_run,
                "succeeded": self.succeeded,
            },
            "images": [r.to_dict() for r in self.results],
            "errors": self.errors,
            "metadata": {
                "source": self.source,
                "destinations": list(self.destinations),
                "pattern": self.pattern,
                "timestamp": self.started_at.isoformat(),
                "duration_seconds": round(self.duration, 3),
            },
        }


class ImageMigrator:
    """Copies matching images from a source daemon to destination daemons."""

    def __init__(
        self,
        selector: Optional[ImageSelector] = None,
        producer: Optional[ArchiveProducer] = None,
        loader: Optional[BroadcastLoader] = None,
    ):
        self.selector = selector or ImageSelector()
        self.producer = producer or ArchiveProducer()
        self.loader = loader or BroadcastLoader()
        self.logger = get_logger(self.__class__.__name__)

    def migrate_image(self, source, destinations: Sequence[Any], image_id: str, tags: List[str],
                      deadline: Optional[Deadline] = None) -> ImageMigrationResult:
        """Run one migration unit: save the image once, then broadcast it."""
        result = ImageMigrationResult(image_id=image_id, tags=list(tags))
        try:
            blob = self.producer.produce(source, result.names, deadline)
        except ActionableError as e:
            self.logger.error(f"❌ Failed to save {short_id(image_id)} ({', '.join(tags)}): {e.message}")
            result.error = e
            return result

        result.outcomes = self.loader.broadcast(blob, destinations, deadline)
        return result

    def migrate(self, source, destinations: Sequence[Any], pattern: str,
                timeout: Optional[float] = None, dry_run: bool = False) -> MigrationReport:
        """Migrate every image whose tags match pattern.

        Args:
            source: Source daemon client
            destinations: Destination daemon clients (empty list: nothing is saved or loaded)
            pattern: Regular expression matched against "repository:tag" names
            timeout: Deadline for the whole invocation, in seconds (None: unbounded)
            dry_run: Only select; report what would be migrated

        Returns:
            MigrationReport with one result per matched image

        Raises:
            InvalidPatternError, SourceUnreachableError, DeadlineExceededError:
                if selection fails; nothing is migrated in that case
        """
        deadline = Deadline(timeout)
        destinations = list(destinations)
        report = MigrationReport(
            source=getattr(source, "host", repr(source)),
            destinations=[getattr(d, "host", repr(d)) for d in destinations],
            pattern=pattern,
            dry_run=dry_run,
        )

        selection = self.selector.select(source, pattern, deadline)

        # Stable order so logs and reports line up between runs
        units = sorted(selection.items(), key=lambda item: (item[1][0], item[0]))
        total = len(units)

        for index, (image_id, tags) in enumerate(units, 1):
            label = f"{short_id(image_id)} ({', '.join(tags)})"
            if dry_run or not destinations:
                action = "Would migrate" if dry_run else "No destinations, skipping"
                self.logger.info(f"[{index}/{total}] {action} {label}")
                report.results.append(ImageMigrationResult(image_id=image_id, tags=list(tags), skipped=True))
                continue

            self.logger.info(f"[{index}/{total}] Migrating {label}...")
            report.results.append(self.migrate_image(source, destinations, image_id, tags, deadline))

        report.duration = deadline.elapsed()
        if report.errors:
            self.logger.warning(f"Migration finished with {len(report.errors)} error(s)")
        else:
            self.logger.info(f"Migration finished: {total} image(s) processed without errors")
        return report


def migrate(source, destinations: Sequence[Any], pattern: str,
            timeout: Optional[float] = None, dry_run: bool = False) -> MigrationReport:
    """Migrate matching images with a default ImageMigrator."""
    return ImageMigrator().migrate(source, destinations, pattern, timeout=timeout, dry_run=dry_run)
