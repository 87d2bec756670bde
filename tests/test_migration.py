"""Unit tests for docker_migrate/migration.py (end-to-end against fake daemons)"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))


@pytest.fixture(autouse=True)
def patch_environment():
    """Patch environment for all tests"""
    with patch.dict(os.environ, {"SKIP_CONFIG_VALIDATION": "true"}):
        yield


def _loaded_names(destination):
    """Names saved into each archive a destination received."""
    return [payload.decode() for payload in destination.loaded]


@pytest.fixture
def echo_source(make_daemon, sample_images):
    """Source whose archives contain the names they were saved with"""
    source = make_daemon("tcp://source:2375", images=sample_images)
    recording_save = source.save_images

    def save_images(names, timeout=None, chunk_size=None):
        recording_save(names, timeout=timeout, chunk_size=chunk_size)
        return iter([",".join(names).encode()])

    source.save_images = save_images
    return source


class TestMigrateScenarios:
    """End-to-end migrations"""

    def test_single_image_single_destination(self, make_daemon, echo_source, sample_images):
        from docker_migrate.migration import migrate

        destination = make_daemon("tcp://dest:2375")
        report = migrate(echo_source, [destination], "alpine.*", timeout=30)

        alpine_id = sample_images[0]["Id"]
        assert report.succeeded
        assert len(report.results) == 1
        assert report.results[0].image_id == alpine_id
        assert report.results[0].tags == ["alpine:latest", "alpine:3.16"]
        assert _loaded_names(destination) == [f"alpine:latest,alpine:3.16,{alpine_id}"]

    def test_all_images_to_two_destinations(self, make_daemon, echo_source, sample_images):
        from docker_migrate.migration import migrate

        destinations = [make_daemon("tcp://dest1:2375"), make_daemon("tcp://dest2:2375")]
        report = migrate(echo_source, destinations, ".*", timeout=30)

        assert report.succeeded
        assert [r.tags[0] for r in report.results] == ["alpine:latest", "golang:latest"]
        for destination in destinations:
            assert len(destination.loaded) == 2
        # One save per image, never one per destination
        assert echo_source.ops().count("save") == 2

    def test_unreachable_destination_only_fails_that_destination(self, make_daemon, echo_source):
        from docker_migrate.docker_client import DockerDaemonConnectionError
        from docker_migrate.error_utils import DestinationLoadError
        from docker_migrate.migration import migrate

        healthy = make_daemon("tcp://dest1:2375")
        unreachable = make_daemon(
            "tcp://dest2:2375",
            load_error=DockerDaemonConnectionError(
                "tcp://dest2:2375", "Cannot connect to the Docker daemon at tcp://dest2:2375"
            ),
        )
        report = migrate(echo_source, [healthy, unreachable], ".*", timeout=30)

        assert not report.succeeded
        assert len(healthy.loaded) == 2
        for result in report.results:
            assert result.error is None
            assert len(result.outcomes) == 2
            assert result.outcomes[0].succeeded
            assert isinstance(result.outcomes[1].error, DestinationLoadError)
        assert len(report.failed_destinations) == 2
        assert unreachable.ops().count("load") == 2
        assert all("tcp://dest2:2375" in message for message in report.errors)

    def test_no_match_does_nothing(self, make_daemon, echo_source):
        from docker_migrate.migration import migrate

        destination = make_daemon("tcp://dest:2375")
        report = migrate(echo_source, [destination], "^nothing-matches$", timeout=30)

        assert report.succeeded
        assert report.results == []
        assert echo_source.ops() == ["list"]
        assert destination.calls == []


class TestMigrateFailures:
    """Failure handling of ImageMigrator.migrate"""

    def test_invalid_pattern_aborts_before_any_call(self, make_daemon, echo_source):
        from docker_migrate.error_utils import InvalidPatternError
        from docker_migrate.migration import migrate

        destination = make_daemon("tcp://dest:2375")
        with pytest.raises(InvalidPatternError):
            migrate(echo_source, [destination], "([", timeout=30)

        assert echo_source.calls == []
        assert destination.calls == []

    def test_unreachable_source_aborts(self, make_daemon):
        from docker_migrate.docker_client import DockerDaemonConnectionError
        from docker_migrate.error_utils import SourceUnreachableError
        from docker_migrate.migration import migrate

        source = make_daemon(
            "tcp://source:2375",
            list_error=DockerDaemonConnectionError("tcp://source:2375", "Cannot connect to the Docker daemon"),
        )
        destination = make_daemon("tcp://dest:2375")
        with pytest.raises(SourceUnreachableError):
            migrate(source, [destination], ".*", timeout=30)

        assert destination.calls == []

    def test_failed_save_skips_image_and_continues(self, make_daemon, sample_images):
        from docker_migrate.archive import ArchiveProducer
        from docker_migrate.docker_client import DockerDaemonError
        from docker_migrate.error_utils import SourceUnreachableError
        from docker_migrate.migration import ImageMigrator

        alpine_id = sample_images[0]["Id"]
        source = make_daemon("tcp://source:2375", images=sample_images)
        recording_save = source.save_images

        def save_images(names, timeout=None, chunk_size=None):
            stream = recording_save(names, timeout=timeout, chunk_size=chunk_size)
            if alpine_id in names:
                raise DockerDaemonError(source.host, "No such image", status_code=404)
            return stream

        source.save_images = save_images
        destination = make_daemon("tcp://dest:2375")

        report = ImageMigrator(producer=ArchiveProducer()).migrate(source, [destination], ".*", timeout=30)

        alpine, golang = report.results
        assert isinstance(alpine.error, SourceUnreachableError)
        assert alpine.outcomes == []
        assert golang.succeeded
        assert len(destination.loaded) == 1
        assert report.to_dict()["summary"]["images_failed"] == 1

    def test_expired_deadline_fails_selection(self, make_daemon, echo_source):
        from docker_migrate.error_utils import DeadlineExceededError
        from docker_migrate.migration import migrate

        with pytest.raises(DeadlineExceededError):
            migrate(echo_source, [make_daemon("tcp://dest:2375")], ".*", timeout=0)

    def test_hung_destination_bounded_by_timeout(self, make_daemon, echo_source):
        from docker_migrate.broadcast import BroadcastLoader
        from docker_migrate.error_utils import DeadlineExceededError
        from docker_migrate.migration import ImageMigrator

        fast = make_daemon("tcp://fast:2375")
        hung = make_daemon("tcp://hung:2375", load_delay=2.0)
        migrator = ImageMigrator(loader=BroadcastLoader(grace_period=0.1))

        report = migrator.migrate(echo_source, [fast, hung], "alpine", timeout=0.5)

        (result,) = report.results
        assert result.outcomes[0].succeeded
        assert isinstance(result.outcomes[1].error, DeadlineExceededError)
        assert report.duration < 1.5


class TestDryRunAndEmptyDestinations:
    """Selection-only runs"""

    def test_dry_run_selects_without_saving(self, make_daemon, echo_source):
        from docker_migrate.migration import migrate

        destination = make_daemon("tcp://dest:2375")
        report = migrate(echo_source, [destination], ".*", timeout=30, dry_run=True)

        assert report.dry_run
        assert len(report.results) == 2
        assert all(r.skipped for r in report.results)
        assert echo_source.ops() == ["list"]
        assert destination.calls == []

    def test_no_destinations_is_a_noop_after_selection(self, echo_source):
        from docker_migrate.migration import migrate

        report = migrate(echo_source, [], ".*", timeout=30)

        assert report.succeeded
        assert all(r.skipped and r.outcomes == [] for r in report.results)
        assert "save" not in echo_source.ops()


class TestMigrationReport:
    """Tests for MigrationReport output"""

    def test_to_dict_structure(self, make_daemon, echo_source):
        from docker_migrate.migration import migrate

        report = migrate(echo_source, [make_daemon("tcp://dest:2375")], "golang", timeout=30)
        data = report.to_dict()

        assert data["summary"]["total_images"] == 1
        assert data["summary"]["images_migrated"] == 1
        assert data["summary"]["succeeded"] is True
        assert data["images"][0]["status"] == "success"
        assert data["images"][0]["destinations"][0]["destination"] == "tcp://dest:2375"
        assert data["metadata"]["source"] == "tcp://source:2375"
        assert data["metadata"]["pattern"] == "golang"
        assert data["errors"] == []

    def test_table_rows(self, make_daemon, echo_source):
        from docker_migrate.migration import migrate

        report = migrate(echo_source, [make_daemon("tcp://dest:2375")], "golang", timeout=30)
        rows = report.table_rows()

        assert len(rows) == 1
        assert rows[0]["destination"] == "tcp://dest:2375"
        assert rows[0]["tags"] == "golang:latest"
        assert "loaded" in rows[0]["status"]

    def test_dry_run_rows(self, echo_source):
        from docker_migrate.migration import migrate

        report = migrate(echo_source, [], ".*", dry_run=True)

        assert [row["status"] for row in report.table_rows()] == ["would migrate", "would migrate"]
