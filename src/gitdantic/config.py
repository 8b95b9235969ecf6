"""Environment-driven configuration for :class:`gitdantic.Client`.

Every setting can be supplied as a ``GITDANTIC_*`` environment variable or in
a ``.env`` file in the working directory, e.g.::

    GITDANTIC_TOKEN=ghp_...
    GITDANTIC_OWNER=octocat
    GITDANTIC_REPO=notes-db
    GITDANTIC_PATH_PREFIX=collections/
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE = "https://api.github.com"


class GitdanticSettings(BaseSettings):
    """Connection settings resolved from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="GITDANTIC_",
        env_file=".env",
        extra="ignore",
    )

    token: SecretStr
    owner: str
    repo: str
    api_base: str = DEFAULT_API_BASE
    path_prefix: str | None = None
    branch: str | None = None
    format: str = "json"
    timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=1, ge=1)


@dataclass(frozen=True)
class RepositoryConfig:
    """Immutable connection details shared by a client and its collections."""

    owner: str
    repo: str
    token: str = field(repr=False)
    api_base: str = DEFAULT_API_BASE
    path_prefix: str = ""
    branch: str | None = None

    @property
    def contents_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/repos/{self.owner}/{self.repo}/contents"
