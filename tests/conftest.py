"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-process fake Docker daemon.
"""
import os
import sys
import threading
import time
from pathlib import Path

import pytest

# Set SKIP_CONFIG_VALIDATION before any docker_migrate import creates the global config
os.environ.setdefault("SKIP_CONFIG_VALIDATION", "true")

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

ALPINE_ID = "sha256:e66264b98777e12192600bf9b4d663655c98a090072e1bab49e233d7531d1294"
GOLANG_ID = "sha256:759ab1463be2d6b6a6ee0d4c3a1ba5d3e3d0d6b2f1c0a7a1c8f7f14bd2b1e1a7"


class FakeDaemon:
    """Stands in for DockerDaemonClient; records every call it receives."""

    def __init__(self, host, images=None, chunks=None, list_error=None, save_error=None,
                 stream_error=None, load_error=None, load_body=None, load_delay=0.0, ping_ok=True,
                 read_size=None, chunk_delay=0.0):
        self.host = host
        self.images = images if images is not None else []
        self.chunks = chunks if chunks is not None else [b"archive-", b"bytes"]
        self.list_error = list_error
        self.save_error = save_error
        self.stream_error = stream_error
        self.load_error = load_error
        self.load_body = load_body
        self.load_delay = load_delay
        self.ping_ok = ping_ok
        self.read_size = read_size
        self.chunk_delay = chunk_delay
        self.calls = []
        self.loaded = []
        self.timeouts = []
        self.closed = False
        self._lock = threading.Lock()

    def close(self):
        self.closed = True

    def _record(self, op, *args, timeout=None):
        with self._lock:
            self.calls.append((op,) + args)
            self.timeouts.append((op, timeout))

    def ops(self):
        return [c[0] for c in self.calls]

    def ping(self, timeout=None):
        self._record("ping", timeout=timeout)
        if self.list_error:
            raise self.list_error
        return self.ping_ok

    def list_images(self, all=True, timeout=None):
        self._record("list", all, timeout=timeout)
        if self.list_error:
            raise self.list_error
        return [dict(image) for image in self.images]

    def save_images(self, names, timeout=None, chunk_size=None):
        self._record("save", list(names), timeout=timeout)
        if self.save_error:
            raise self.save_error

        def _stream():
            for chunk in self.chunks:
                yield chunk
            if self.stream_error:
                raise self.stream_error

        return _stream()

    def load_images(self, data, quiet=False, timeout=None):
        self._record("load", timeout=timeout)
        if self.load_delay:
            time.sleep(self.load_delay)
        if self.load_error:
            raise self.load_error
        if self.read_size:
            payload = self._read_in_chunks(data)
        else:
            payload = data.read() if hasattr(data, "read") else data
        with self._lock:
            self.loaded.append(payload)
        return self.load_body

    def _read_in_chunks(self, data):
        """Pull the body the way an HTTP upload does: one block at a time"""
        parts = []
        while True:
            block = data.read(self.read_size)
            if not block:
                return b"".join(parts)
            parts.append(block)
            time.sleep(self.chunk_delay)


@pytest.fixture
def make_daemon():
    """Factory fixture building FakeDaemon instances"""
    return FakeDaemon


@pytest.fixture
def sample_images():
    """Listing with an alpine image (two tags), a golang image and an untagged layer"""
    return [
        {"Id": ALPINE_ID, "RepoTags": ["alpine:latest", "alpine:3.16"]},
        {"Id": GOLANG_ID, "RepoTags": ["golang:latest"]},
        {"Id": "sha256:0000intermediate", "RepoTags": None},
    ]
