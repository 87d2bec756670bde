"""
Docker Engine API client for daemon-to-daemon image transfers.

This module provides a small client for the three Engine API operations a
migration needs (list, save, load) plus a ping used by health checks. One
client wraps one daemon; it is created by the CLI and handed to the
migration engine, which only calls its methods.

Hosts use the format: tcp://[ip|dns]:(2375|2376)[,ca=PATH,cert=PATH,key=PATH]
tcp:// is plain HTTP on 2375 and HTTPS on 2376 or whenever TLS material is given.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple, Union
from urllib.parse import urlsplit

import requests


DEFAULT_API_VERSION = "1.41"
DEFAULT_CHUNK_SIZE = 1024 * 1024


class InvalidDaemonHostError(ValueError):
    """Raised when a daemon host string cannot be parsed."""


class DockerDaemonError(Exception):
    """Raised when a daemon call fails or the daemon answers with an error status."""

    def __init__(self, host: str, message: str, status_code: Optional[int] = None):
        self.host = host
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class DockerDaemonConnectionError(DockerDaemonError):
    """Raised when the daemon cannot be reached."""


class DockerDaemonTimeoutError(DockerDaemonConnectionError):
    """Raised when a daemon call exceeds its timeout."""


class ArchiveStreamError(DockerDaemonError):
    """Raised when a save stream breaks off before it is fully read."""


@dataclass(frozen=True)
class DaemonAddress:
    """Parsed form of a daemon host string."""

    host: str
    base_url: str
    verify: Union[bool, str] = True
    cert: Optional[Tuple[str, str]] = None

    @property
    def uses_tls(self) -> bool:
        return self.base_url.startswith("https://")


def parse_daemon_host(host: str) -> DaemonAddress:
    """Parse a daemon host string into a base URL and TLS settings.

    Args:
        host: e.g. "tcp://192.168.56.2:2375" or
              "tcp://192.168.56.3:2376,ca=~/ca.pem,cert=~/cert.pem,key=~/key.pem"

    Returns:
        DaemonAddress for the host.

    Raises:
        InvalidDaemonHostError: If the string is not a supported daemon address.
    """
    if not host or not host.strip():
        raise InvalidDaemonHostError("unable to parse docker host ``")

    address, *options = [part.strip() for part in host.strip().split(",")]
    parsed = urlsplit(address)
    if parsed.scheme not in ("tcp", "http", "https") or not parsed.hostname:
        raise InvalidDaemonHostError(f"unable to parse docker host `{host}`")
    try:
        port = parsed.port
    except ValueError:
        raise InvalidDaemonHostError(f"unable to parse docker host `{host}`: invalid port")

    tls_options = {}
    for option in options:
        key, sep, value = option.partition("=")
        if not sep or key not in ("ca", "cert", "key") or not value:
            raise InvalidDaemonHostError(f"unable to parse docker host `{host}`: unknown option `{option}`")
        tls_options[key] = os.path.expanduser(value)

    if ("cert" in tls_options) != ("key" in tls_options):
        raise InvalidDaemonHostError(f"unable to parse docker host `{host}`: cert and key must be given together")

    if parsed.scheme == "tcp":
        scheme = "https" if tls_options or port == 2376 else "http"
    else:
        scheme = parsed.scheme
    if tls_options and scheme == "http":
        raise InvalidDaemonHostError(f"unable to parse docker host `{host}`: TLS options require https")

    if port is None:
        port = 2376 if scheme == "https" else 2375

    cert = (tls_options["cert"], tls_options["key"]) if "cert" in tls_options else None
    verify: Union[bool, str] = tls_options.get("ca", True)

    return DaemonAddress(
        host=address,
        base_url=f"{scheme}://{parsed.hostname}:{port}",
        verify=verify,
        cert=cert,
    )


class DockerDaemonClient:
    """Client for one Docker daemon reached over the Engine HTTP API."""

    def __init__(
        self,
        host: str,
        api_version: str = DEFAULT_API_VERSION,
        connect_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize DockerDaemonClient.

        Args:
            host: Daemon host string (see parse_daemon_host)
            api_version: Engine API version to pin requests to
            connect_timeout: Upper bound for establishing the connection, in seconds
            session: Optional requests session (a new one is created by default)
        """
        self.address = parse_daemon_host(host)
        self.host = self.address.host
        self.api_version = api_version
        self.connect_timeout = connect_timeout
        self.session = session or requests.Session()
        self.session.verify = self.address.verify
        if self.address.cert:
            self.session.cert = self.address.cert
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, host: str, config_manager) -> "DockerDaemonClient":
        """Build a client using the API version and connect timeout from configuration."""
        return cls(
            host,
            api_version=config_manager.get_api_version(),
            connect_timeout=config_manager.get_connect_timeout(),
        )

    def __repr__(self) -> str:
        return f"DockerDaemonClient({self.host!r})"

    def __enter__(self) -> "DockerDaemonClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _url(self, path: str, versioned: bool = True) -> str:
        if versioned:
            return f"{self.address.base_url}/v{self.api_version}{path}"
        return f"{self.address.base_url}{path}"

    def _timeouts(self, timeout: Optional[float]) -> Tuple[float, Optional[float]]:
        """(connect, read) timeouts for requests, bounded by the call timeout."""
        if timeout is None:
            return self.connect_timeout, None
        return min(self.connect_timeout, timeout), timeout

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract the daemon's error message from an error response."""
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("message"):
                return str(body["message"])
        except ValueError:
            pass
        text = (response.text or "").strip()
        return text or response.reason or f"HTTP {response.status_code}"

    def _request(self, method: str, path: str, timeout: Optional[float] = None,
                 versioned: bool = True, **kwargs) -> requests.Response:
        url = self._url(path, versioned=versioned)
        self.logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, timeout=self._timeouts(timeout), **kwargs)
        except requests.exceptions.Timeout as e:
            raise DockerDaemonTimeoutError(self.host, f"Request to the Docker daemon at {self.host} timed out: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise DockerDaemonConnectionError(
                self.host,
                f"Cannot connect to the Docker daemon at {self.host}. Is the docker daemon running?",
            ) from e
        except requests.exceptions.RequestException as e:
            raise DockerDaemonError(self.host, f"Request to the Docker daemon at {self.host} failed: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            response.close()
            raise DockerDaemonError(
                self.host,
                f"Error response from daemon at {self.host}: {message}",
                status_code=response.status_code,
            )
        return response

    def ping(self, timeout: Optional[float] = None) -> bool:
        """Check that the daemon answers /_ping with OK."""
        response = self._request("GET", "/_ping", timeout=timeout, versioned=False)
        return response.text.strip() == "OK"

    def list_images(self, all: bool = True, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """List images on the daemon.

        Args:
            all: Include intermediate/untagged images
            timeout: Seconds allowed for the call

        Returns:
            Image summaries as returned by the Engine API (Id, RepoTags, ...)
        """
        response = self._request("GET", "/images/json", timeout=timeout, params={"all": "1" if all else "0"})
        try:
            images = response.json()
        except ValueError as e:
            raise DockerDaemonError(self.host, f"Invalid image listing from daemon at {self.host}: {e}") from e
        if not isinstance(images, list):
            raise DockerDaemonError(self.host, f"Unexpected image listing from daemon at {self.host}: {images!r}")
        return images

    def save_images(self, names: List[str], timeout: Optional[float] = None,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Export one tarball holding all the given images.

        The request is issued immediately, so a daemon that refuses the save
        raises here. The returned iterator yields the archive in chunks and
        raises ArchiveStreamError if the stream breaks off.
        """
        response = self._request(
            "GET", "/images/get", timeout=timeout, params=[("names", name) for name in names], stream=True
        )
        return self._iter_archive(response, chunk_size)

    def _iter_archive(self, response: requests.Response, chunk_size: int) -> Iterator[bytes]:
        try:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        except (requests.exceptions.RequestException, OSError) as e:
            raise ArchiveStreamError(self.host, f"Archive stream from {self.host} was interrupted: {e}") from e
        finally:
            response.close()

    def load_images(self, data: Union[bytes, BinaryIO], quiet: bool = False,
                    timeout: Optional[float] = None) -> Optional[str]:
        """Import an image tarball.

        Args:
            data: Archive bytes or a readable binary stream
            quiet: Suppress progress details in the response
            timeout: Seconds allowed for the call

        Returns:
            The informational body the daemon sent back (JSON status lines), or None if empty.
        """
        response = self._request(
            "POST",
            "/images/load",
            timeout=timeout,
            params={"quiet": "1" if quiet else "0"},
            data=data,
            headers={"Content-Type": "application/x-tar"},
        )
        try:
            body = response.text
        except (requests.exceptions.RequestException, OSError) as e:
            raise DockerDaemonConnectionError(
                self.host, f"Lost connection to {self.host} while reading the load response: {e}"
            ) from e
        finally:
            response.close()
        return body if body and body.strip() else None


def parse_status_messages(body: Optional[str]) -> List[Dict[str, Any]]:
    """Split a daemon status body into its JSON messages.

    The daemon writes one JSON object per line, e.g.
    {"stream": "Loaded image: alpine:latest\\n"} or
    {"errorDetail": {"message": "..."}, "error": "..."}.
    Lines that are not JSON are kept as {"stream": line}.
    """
    messages = []
    if not body:
        return messages
    decoder = json.JSONDecoder()
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            message, _ = decoder.raw_decode(line)
        except ValueError:
            messages.append({"stream": line})
            continue
        messages.append(message if isinstance(message, dict) else {"stream": str(message)})
    return messages
