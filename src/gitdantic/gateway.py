"""Remote blob gateways.

A gateway moves the raw bytes of one file in and out of a repository together
with the file's revision token. Writes are guarded: they only succeed when the
caller supplies the revision currently stored remotely, or ``None`` to create
a file that does not exist yet.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from .config import RepositoryConfig
from .exceptions import ConflictError, DecodeError, NotFoundError, TransportError
from .utils import blob_sha

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class Blob:
    """Raw file content paired with the revision it was read at."""

    content: bytes
    revision: str


class BlobGateway(ABC):
    """Abstract interface for reading and writing versioned files."""

    @abstractmethod
    async def read(self, path: str) -> Blob:
        """Return the current content and revision of ``path``.

        Raises :class:`NotFoundError` when no file exists at ``path``.
        """

    @abstractmethod
    async def write(
        self,
        path: str,
        content: bytes,
        expected_revision: str | None,
        *,
        message: str,
    ) -> str:
        """Replace ``path`` with ``content`` and return the new revision.

        ``expected_revision`` must match the remote revision, or be ``None`` to
        create a file that does not exist. Raises :class:`ConflictError`
        otherwise.
        """


@dataclass
class RetryConfig:
    """Retry policy for transient GitHub API failures.

    Args:
        max_attempts: Maximum number of attempts (including the first one)
        retry_status_codes: HTTP status codes that trigger a retry
        backoff_factor: Delay multiplier (delay = backoff_factor * 2^attempt)
        max_backoff: Upper bound for a single delay, in seconds
        retry_exceptions: httpx exception types that trigger a retry
    """

    max_attempts: int = 3
    retry_status_codes: set[int] = field(default_factory=lambda: {429, 502, 503, 504})
    backoff_factor: float = 1.0
    max_backoff: float = 60.0
    retry_exceptions: tuple[type[Exception], ...] = (
        httpx.ConnectError,
        httpx.ConnectTimeout,
        httpx.ReadTimeout,
        httpx.PoolTimeout,
    )


class GithubGateway(BlobGateway):
    """Gateway backed by the GitHub repository contents API.

    A fresh ``httpx.AsyncClient`` is opened per request. Status codes map onto
    the gateway errors: 404 on read is :class:`NotFoundError`, 409 and 422 on
    write are :class:`ConflictError`, anything else unsuccessful (including
    timeouts and connection failures) is :class:`TransportError`.
    """

    def __init__(
        self,
        config: RepositoryConfig,
        *,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        retry: RetryConfig | None = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.retry = retry
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {config.token}",
            "User-Agent": f"{config.owner}-{config.repo}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def url_for(self, path: str) -> str:
        return f"{self.config.contents_url}/{quote(path, safe='/')}"

    async def read(self, path: str) -> Blob:
        params = {"ref": self.config.branch} if self.config.branch else None
        logger.debug("GET %s", path)
        response = await self._request("GET", path, params=params)
        if response.status_code == 404:
            raise NotFoundError(path)
        self._raise_for_status(response, "GET", path)

        payload = self._json(response, path)
        if not isinstance(payload, dict):
            raise TransportError(f"'{path}' is not a file", status_code=response.status_code)
        encoded = payload.get("content")
        if encoded is None or payload.get("encoding") == "none":
            raise TransportError(
                f"No content returned for '{path}'", status_code=response.status_code
            )
        revision = payload.get("sha")
        if not revision:
            raise TransportError(f"No sha returned for '{path}'", status_code=response.status_code)
        return Blob(content=_b64decode(encoded, path), revision=str(revision))

    async def write(
        self,
        path: str,
        content: bytes,
        expected_revision: str | None,
        *,
        message: str,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
        }
        if expected_revision is not None:
            body["sha"] = expected_revision
        if self.config.branch:
            body["branch"] = self.config.branch

        logger.debug("PUT %s (sha=%s)", path, expected_revision)
        response = await self._request("PUT", path, json=body)
        if response.status_code in (409, 422):
            raise ConflictError(path, expected_revision, detail=_error_message(response))
        self._raise_for_status(response, "PUT", path)

        payload = self._json(response, path)
        revision = (payload.get("content") or {}).get("sha") if isinstance(payload, dict) else None
        if not revision:
            raise TransportError(f"No sha returned for '{path}'", status_code=response.status_code)
        return str(revision)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self.url_for(path)
        retry = self.retry
        attempts = retry.max_attempts if retry is not None else 1
        for attempt in range(attempts):
            last_attempt = attempt + 1 >= attempts
            try:
                async with httpx.AsyncClient(
                    headers=self._headers,
                    timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                ) as client:
                    response = await client.request(method, url, **kwargs)
            except httpx.RequestError as exc:
                if (
                    retry is not None
                    and isinstance(exc, retry.retry_exceptions)
                    and not last_attempt
                ):
                    delay = _backoff(retry, attempt)
                    logger.warning(
                        "GitHub %s %s failed with %s, retrying in %.1fs (attempt %s/%s)",
                        method, path, type(exc).__name__, delay, attempt + 1, attempts,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransportError(f"GitHub {method} {path} failed: {exc!r}") from exc

            if (
                retry is not None
                and response.status_code in retry.retry_status_codes
                and not last_attempt
            ):
                delay = _retry_after(retry, response)
                if delay is None:
                    delay = _backoff(retry, attempt)
                logger.warning(
                    "GitHub %s %s returned %s, retrying in %.1fs (attempt %s/%s)",
                    method, path, response.status_code, delay, attempt + 1, attempts,
                )
                await asyncio.sleep(delay)
                continue
            return response
        raise TransportError(f"GitHub {method} {path} made no attempts")

    @staticmethod
    def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
        if response.is_success:
            return
        raise TransportError(
            f"GitHub {method} {path} failed with status {response.status_code}: "
            f"{_error_message(response)}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"Malformed JSON response for '{path}'", status_code=response.status_code
            ) from exc


class MemoryGateway(BlobGateway):
    """In-process gateway with the same guarded-write semantics as GitHub.

    Revisions are git blob ids, so writing identical content twice yields the
    same revision. Every accepted write is recorded in ``commits`` as a
    ``(path, message)`` pair.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.commits: list[tuple[str, str]] = []

    def revision_of(self, path: str) -> str | None:
        content = self.files.get(path)
        return blob_sha(content) if content is not None else None

    async def read(self, path: str) -> Blob:
        try:
            content = self.files[path]
        except KeyError:
            raise NotFoundError(path) from None
        return Blob(content=content, revision=blob_sha(content))

    async def write(
        self,
        path: str,
        content: bytes,
        expected_revision: str | None,
        *,
        message: str,
    ) -> str:
        current = self.revision_of(path)
        if current != expected_revision:
            raise ConflictError(path, expected_revision)
        self.files[path] = content
        self.commits.append((path, message))
        return blob_sha(content)


def _b64decode(encoded: str, path: str) -> bytes:
    # GitHub wraps base64 content with newlines.
    try:
        return base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"invalid base64 content: {exc}", path=path) from exc


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text


def _backoff(retry: RetryConfig, attempt: int) -> float:
    return min(retry.backoff_factor * (2**attempt), retry.max_backoff)


def _retry_after(retry: RetryConfig, response: httpx.Response) -> float | None:
    """Seconds requested by a ``Retry-After`` header, capped at ``max_backoff``."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return min(max(float(value), 0.0), retry.max_backoff)
    except ValueError:
        return None
