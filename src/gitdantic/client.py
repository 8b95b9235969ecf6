from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from .codecs import FORMAT_REGISTRY, Codec, resolve_codec
from .collection import Collection
from .config import DEFAULT_API_BASE, GitdanticSettings, RepositoryConfig
from .exceptions import ConfigurationError, UnknownFormatError
from .gateway import BlobGateway, GithubGateway, RetryConfig
from .utils import collection_path, normalize_prefix

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Client:
    """Entry point for a repository used as a document database.

    Parameters
    ----------
    token:
        GitHub token sent as a bearer credential.
    owner, repo:
        Repository coordinates.
    api_base:
        Alternate API root, e.g. a GitHub Enterprise ``https://host/api/v3``.
    path_prefix:
        Prepended verbatim to every collection path (``"db/"`` keeps all
        collections in a ``db`` directory).
    branch:
        Branch to read from and commit to; the repository default otherwise.
    format:
        Default serialization format for collections (``"json"`` or ``"yaml"``).
    gateway:
        Gateway override. Defaults to a :class:`GithubGateway` for the
        repository; :class:`~gitdantic.gateway.MemoryGateway` is useful offline.

    Construction is purely local; the repository is only contacted when a
    collection is read or written.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        api_base: str | None = None,
        path_prefix: str | None = None,
        branch: str | None = None,
        format: str = "json",
        gateway: BlobGateway | None = None,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        retry: RetryConfig | None = None,
    ) -> None:
        if not token:
            raise ConfigurationError("A token is required")
        if not owner or not owner.strip():
            raise ConfigurationError("Repository owner must not be empty")
        if not repo or not repo.strip():
            raise ConfigurationError("Repository name must not be empty")

        self.config = RepositoryConfig(
            owner=owner.strip(),
            repo=repo.strip(),
            token=token,
            api_base=_validate_api_base(api_base or DEFAULT_API_BASE),
            path_prefix=normalize_prefix(path_prefix),
            branch=branch or None,
        )
        if format.lower() not in FORMAT_REGISTRY:
            raise UnknownFormatError(f"Unsupported format '{format}'")
        self.format = format
        self.gateway = gateway or GithubGateway(
            self.config,
            timeout=timeout,
            connect_timeout=connect_timeout,
            retry=retry,
        )

    @classmethod
    def from_settings(cls, settings: GitdanticSettings | None = None, **overrides: Any) -> "Client":
        """Build a client from ``GITDANTIC_*`` environment settings."""
        settings = settings or GitdanticSettings()
        retry = RetryConfig(max_attempts=settings.max_attempts) if settings.max_attempts > 1 else None
        options: dict[str, Any] = {
            "api_base": settings.api_base,
            "path_prefix": settings.path_prefix,
            "branch": settings.branch,
            "format": settings.format,
            "timeout": settings.timeout,
            "connect_timeout": settings.connect_timeout,
            "retry": retry,
        }
        options.update(overrides)
        return cls(
            settings.token.get_secret_value(),
            settings.owner,
            settings.repo,
            **options,
        )

    def __repr__(self) -> str:
        return f"Client(owner={self.config.owner!r}, repo={self.config.repo!r})"

    def collection(
        self,
        model: type[T],
        name: str,
        *,
        format: str | None = None,
        codec: Codec[T] | None = None,
    ) -> Collection[T]:
        """Return a new, unbound handle for collection ``name``.

        Handles never share revision state, even for the same name; each one
        learns the remote revision from its own reads and writes.
        """
        if not name or not name.strip():
            raise ConfigurationError("Collection name must not be empty")
        if codec is None:
            codec = resolve_codec(format or self.format, model)
        path = collection_path(self.config.path_prefix, name, codec.extension)
        logger.debug("Opened collection %s at %s", name, path)
        return Collection(name, path, codec=codec, gateway=self.gateway)


def _validate_api_base(value: str) -> str:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid API base '{value}'") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"API base must be an absolute http(s) URL, got '{value}'")
    return value
