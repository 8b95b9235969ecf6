"""
Pydantic document collections stored in a GitHub repository.

Each :class:`Collection` is one file in the repository holding an array of
documents validated by a Pydantic ``BaseModel``. Writes are guarded by the
file's revision (its blob sha), so concurrent changes surface as
:class:`~gitdantic.exceptions.ConflictError` instead of being lost.
"""

from .client import Client
from .codecs import Codec, JsonCodec, YamlCodec
from .collection import Collection, CollectionQuery
from .config import GitdanticSettings, RepositoryConfig
from .exceptions import (
    ConfigurationError,
    ConflictError,
    DecodeError,
    GitdanticError,
    NotFoundError,
    TransportError,
    UnknownFormatError,
)
from .gateway import Blob, BlobGateway, GithubGateway, MemoryGateway, RetryConfig

__all__ = (
    "Blob",
    "BlobGateway",
    "Client",
    "Codec",
    "Collection",
    "CollectionQuery",
    "ConfigurationError",
    "ConflictError",
    "DecodeError",
    "GitdanticError",
    "GithubGateway",
    "GitdanticSettings",
    "JsonCodec",
    "MemoryGateway",
    "NotFoundError",
    "RepositoryConfig",
    "RetryConfig",
    "TransportError",
    "UnknownFormatError",
    "YamlCodec",
)
