"""Fetch of the server's version metadata document."""

import logging
import time

import requests

from .config import DetectorConfig
from .models import VersionRecord

logger = logging.getLogger(__name__)


class NetworkError(Exception):
    """Raised when the metadata request fails or returns a non-2xx status.

    Attributes:
        status_code: HTTP status code, or None if no response was received.
        timed_out: Whether the transport reported a timeout.
    """

    def __init__(self, message: str, status_code: int | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


class MalformedResponseError(Exception):
    """Raised when the response body is not valid version metadata."""

    pass


def parse_version_document(data: object) -> VersionRecord:
    """Validate a decoded version document.

    Expects ``{"version": "<non-empty string>", "lastUpdated": "<string>"}``;
    ``lastUpdated`` may be omitted.

    Raises:
        MalformedResponseError: If the document doesn't have that shape.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")

    version = data.get("version")
    if not isinstance(version, str) or not version:
        raise MalformedResponseError(f"Missing or invalid 'version' field: {version!r}")

    last_updated = data.get("lastUpdated")
    if last_updated is not None and not isinstance(last_updated, str):
        raise MalformedResponseError(f"Invalid 'lastUpdated' field: {last_updated!r}")

    return VersionRecord(version=version, last_updated=last_updated)


class VersionFetcher:
    """Fetches the current version document, bypassing HTTP caches."""

    def __init__(self, config: DetectorConfig, session: requests.Session | None = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def __call__(self) -> VersionRecord:
        return self.fetch()

    def fetch(self) -> VersionRecord:
        """Fetch and validate the version document.

        Returns:
            VersionRecord parsed from the response body.

        Raises:
            NetworkError: On transport failure or non-2xx status.
            MalformedResponseError: If the body isn't valid version metadata.
        """
        url = self._config.version_url
        try:
            response = self._session.get(
                url,
                # Cache-busting parameter, same role as the no-cache headers
                params={"_": str(int(time.time() * 1000))},
                headers={
                    "Cache-Control": "no-cache",
                    "Pragma": "no-cache",
                    "User-Agent": self._config.user_agent,
                    "Accept": "application/json",
                },
                timeout=self._config.timeout,
            )
        except requests.Timeout as e:
            raise NetworkError(f"Request timeout: {e}", timed_out=True) from e
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

        record = parse_version_document(data)
        logger.debug("Remote version: %s (last updated: %s)", record.version, record.last_updated)
        return record
