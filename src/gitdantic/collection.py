from __future__ import annotations

import logging
from operator import attrgetter
from typing import Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from .codecs import Codec
from .exceptions import DecodeError, NotFoundError
from .gateway import BlobGateway

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
Predicate = Callable[[T], bool]
Step = Callable[[List[T]], List[T]]

INSERT_MESSAGE = "Insert"
OVERWRITE_MESSAGE = "Overwrite"
CREATE_MESSAGE = "Creating Collection '{name}'"


class Collection(Generic[T]):
    """Typed sequence of Pydantic models stored in one repository file.

    Parameters
    ----------
    name:
        Logical collection name.
    path:
        Repository path of the backing file.
    codec:
        Codec translating the document list to and from the file's bytes.
    gateway:
        Gateway used for every remote read and guarded write.

    A handle starts unbound (``revision is None``) and learns the remote
    revision from its own successful reads and writes only. Every write is
    guarded by that revision, so a concurrent change made elsewhere surfaces
    as :class:`~gitdantic.exceptions.ConflictError`; it is never retried or
    merged here. Callers re-fetch, reapply their change and try again.
    """

    def __init__(
        self,
        name: str,
        path: str,
        *,
        codec: Codec[T],
        gateway: BlobGateway,
    ) -> None:
        self.name = name
        self.path = path
        self.codec = codec
        self._gateway = gateway
        self._revision: str | None = None

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, path={self.path!r}, revision={self._revision!r})"

    @property
    def model(self) -> type[T]:
        return self.codec.model

    @property
    def revision(self) -> str | None:
        """Revision last observed by this handle, ``None`` while unbound."""
        return self._revision

    # Remote operations -------------------------------------------------
    async def fetch_all(self) -> List[T]:
        """Read and decode every document, binding the handle to the revision read."""
        blob = await self._gateway.read(self.path)
        try:
            documents = self.codec.decode(blob.content)
        except DecodeError as exc:
            raise DecodeError(str(exc), path=self.path) from exc
        self._revision = blob.revision
        logger.debug(
            "Fetched %s documents from %s at %s", len(documents), self.path, blob.revision
        )
        return documents

    async def current(self) -> List[T]:
        """Fetch the documents as they are now; nothing is served from cache."""
        return await self.fetch_all()

    async def overwrite(
        self,
        documents: Iterable[T],
        *,
        message: str | None = None,
        force: bool = False,
    ) -> None:
        """Replace the whole collection with ``documents``.

        The write is guarded by the cached revision, or asks for creation when
        the handle is unbound. With ``force=True`` the handle first reads the
        remote revision and writes against it, so the last writer wins.
        """
        documents = list(documents)
        expected = await self._remote_revision() if force else self._revision
        await self._write(documents, message or OVERWRITE_MESSAGE, expected)

    async def append(
        self,
        documents: T | Sequence[T],
        *,
        message: str | None = None,
    ) -> None:
        """Add one or more documents after the existing ones.

        Reading and writing are two separate round trips; a write landing in
        between makes the second one fail with ``ConflictError``. A missing
        file is created.
        """
        if isinstance(documents, BaseModel):
            new_documents = [documents]
        else:
            new_documents = list(documents)
        try:
            existing = await self.fetch_all()
        except NotFoundError:
            logger.info("Collection %s does not exist yet; creating it on append", self.name)
            existing, expected = [], None
        else:
            expected = self._revision
        await self._write(existing + new_documents, message or INSERT_MESSAGE, expected)

    async def ensure(self, *, message: str | None = None) -> List[T]:
        """Return the documents, creating an empty collection when it is missing."""
        try:
            return await self.fetch_all()
        except NotFoundError:
            logger.info("Collection %s does not exist yet; creating it", self.name)
        await self._write([], message or CREATE_MESSAGE.format(name=self.name), None)
        return []

    # Local querying ----------------------------------------------------
    def query(self) -> "CollectionQuery[T]":
        return CollectionQuery(self)

    def filter(self, predicate: Predicate) -> "CollectionQuery[T]":
        return CollectionQuery(self, (_where(predicate),))

    def order_by(self, field: str) -> "CollectionQuery[T]":
        return CollectionQuery(self, (_sorted_by(field),))

    def head(self, n: int = 5) -> "CollectionQuery[T]":
        return CollectionQuery(self, (_window(n, from_end=False),))

    def tail(self, n: int = 5) -> "CollectionQuery[T]":
        return CollectionQuery(self, (_window(n, from_end=True),))

    async def count(self) -> int:
        return len(await self.current())

    async def first(self) -> Optional[T]:
        return await self.query().first()

    async def last(self) -> Optional[T]:
        return await self.query().last()

    # Internal helpers --------------------------------------------------
    async def _write(self, documents: List[T], message: str, expected: str | None) -> None:
        payload = self.codec.encode(documents)
        revision = await self._gateway.write(self.path, payload, expected, message=message)
        self._revision = revision
        logger.info(
            "Wrote %s documents to %s (%s -> %s)",
            len(documents),
            self.path,
            expected or "new",
            revision,
        )

    async def _remote_revision(self) -> str | None:
        try:
            blob = await self._gateway.read(self.path)
        except NotFoundError:
            return None
        return blob.revision


def _where(predicate: Predicate) -> Step:
    def step(items: List[T]) -> List[T]:
        return [item for item in items if predicate(item)]

    return step


def _sorted_by(field: str) -> Step:
    descending = field.startswith("-")
    key = attrgetter(field[1:] if descending else field)

    def step(items: List[T]) -> List[T]:
        return sorted(items, key=key, reverse=descending)

    return step


def _window(n: int, *, from_end: bool) -> Step:
    if n < 0:
        raise ValueError(f"{'tail' if from_end else 'head'} expects a non-negative integer")

    def step(items: List[T]) -> List[T]:
        return items[max(len(items) - n, 0):] if from_end else items[:n]

    return step


class CollectionQuery(Generic[T]):
    """Immutable pipeline of local steps over the documents of a collection.

    Steps run in the order they were chained. ``to_list`` and friends fetch
    the collection once per call; ``apply`` runs the pipeline over documents
    the caller already holds, without any remote call.
    """

    def __init__(self, collection: Collection[T], steps: Sequence[Step] = ()) -> None:
        self._collection = collection
        self._steps = tuple(steps)

    def _then(self, step: Step) -> "CollectionQuery[T]":
        return CollectionQuery(self._collection, self._steps + (step,))

    def filter(self, predicate: Predicate) -> "CollectionQuery[T]":
        return self._then(_where(predicate))

    def order_by(self, field: str) -> "CollectionQuery[T]":
        """Sort by attribute ``field``; a leading ``-`` sorts descending."""
        return self._then(_sorted_by(field))

    def head(self, n: int = 5) -> "CollectionQuery[T]":
        return self._then(_window(n, from_end=False))

    def tail(self, n: int = 5) -> "CollectionQuery[T]":
        return self._then(_window(n, from_end=True))

    def apply(self, documents: Iterable[T]) -> List[T]:
        items = list(documents)
        for step in self._steps:
            items = step(items)
        return items

    async def to_list(self) -> List[T]:
        return self.apply(await self._collection.current())

    async def count(self) -> int:
        return len(await self.to_list())

    async def first(self) -> Optional[T]:
        items = await self.to_list()
        return items[0] if items else None

    async def last(self) -> Optional[T]:
        items = await self.to_list()
        return items[-1] if items else None
