"""Unit tests for docker_migrate/deadline.py"""

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


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDeadline:
    """Tests for Deadline"""

    def test_remaining_counts_down(self):
        from docker_migrate.deadline import Deadline

        clock = FakeClock()
        deadline = Deadline(120, clock=clock)
        clock.now += 20

        assert deadline.remaining() == pytest.approx(100)
        assert deadline.elapsed() == pytest.approx(20)
        assert not deadline.expired

    def test_remaining_never_negative(self):
        from docker_migrate.deadline import Deadline

        clock = FakeClock()
        deadline = Deadline(10, clock=clock)
        clock.now += 50

        assert deadline.remaining() == 0
        assert deadline.expired

    def test_unbounded_deadline(self):
        from docker_migrate.deadline import Deadline

        deadline = Deadline(None)

        assert deadline.remaining() is None
        assert not deadline.expired
        assert deadline.timeout_for("image listing") is None
        assert deadline.timeout_for("image listing", cap=10) == 10

    def test_check_raises_once_expired(self):
        from docker_migrate.deadline import Deadline
        from docker_migrate.error_utils import DeadlineExceededError, ErrorCategory

        clock = FakeClock()
        deadline = Deadline(120, clock=clock)
        deadline.check("image save")

        clock.now += 121
        with pytest.raises(DeadlineExceededError) as exc_info:
            deadline.check("image save")

        assert exc_info.value.message == "Deadline of 120s exceeded during image save"
        assert exc_info.value.category == ErrorCategory.TIMEOUT

    def test_sub_second_timeout_is_reported_exactly(self):
        from docker_migrate.deadline import Deadline
        from docker_migrate.error_utils import DeadlineExceededError

        clock = FakeClock()
        deadline = Deadline(0.2, clock=clock)
        clock.now += 1

        with pytest.raises(DeadlineExceededError) as exc_info:
            deadline.check("image load on tcp://dest:2375")

        assert exc_info.value.message == "Deadline of 0.2s exceeded during image load on tcp://dest:2375"

    def test_timeout_for_is_capped(self):
        from docker_migrate.deadline import Deadline

        clock = FakeClock()
        deadline = Deadline(120, clock=clock)

        assert deadline.timeout_for("ping", cap=10) == 10
        clock.now += 115
        assert deadline.timeout_for("ping", cap=10) == pytest.approx(5)

    def test_timeout_for_raises_when_expired(self):
        from docker_migrate.deadline import Deadline
        from docker_migrate.error_utils import DeadlineExceededError

        with pytest.raises(DeadlineExceededError):
            Deadline(0).timeout_for("image load on tcp://dest:2375")
