from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Mapping, Sequence, TypeVar

import orjson
import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError

from .exceptions import DecodeError, UnknownFormatError

T = TypeVar("T", bound=BaseModel)


class Codec(ABC, Generic[T]):
    """Translate between a sequence of documents and the bytes of one file."""

    extension: str

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._adapter: TypeAdapter[List[T]] = TypeAdapter(List[model])  # type: ignore[valid-type]

    @abstractmethod
    def encode(self, documents: Sequence[T]) -> bytes:
        """Serialize the full document sequence."""

    @abstractmethod
    def load(self, payload: bytes) -> Any:
        """Parse raw bytes into plain Python data."""

    def decode(self, payload: bytes) -> List[T]:
        """Parse and validate ``payload`` as a list of ``model`` instances."""
        try:
            data = self.load(payload)
        except UnicodeDecodeError as exc:
            raise DecodeError("content is not valid UTF-8") from exc
        if not isinstance(data, list):
            raise DecodeError(
                f"expected an array of documents, found {type(data).__name__}"
            )
        try:
            return self._adapter.validate_python(data)
        except ValidationError as exc:
            raise DecodeError(
                f"documents do not match {self.model.__name__}: {exc}"
            ) from exc

    def _dump(self, documents: Sequence[T]) -> list[dict[str, Any]]:
        return [document.model_dump(mode="json", by_alias=True) for document in documents]


class JsonCodec(Codec[T]):
    extension = ".json"

    def encode(self, documents: Sequence[T]) -> bytes:
        return orjson.dumps(self._dump(documents), option=orjson.OPT_INDENT_2) + b"\n"

    def load(self, payload: bytes) -> Any:
        try:
            return orjson.loads(payload)
        except orjson.JSONDecodeError as exc:
            raise DecodeError(f"invalid JSON: {exc}") from exc


class YamlCodec(Codec[T]):
    extension = ".yaml"

    def encode(self, documents: Sequence[T]) -> bytes:
        text = yaml.safe_dump(self._dump(documents), allow_unicode=True, sort_keys=False)
        return text.encode("utf-8")

    def load(self, payload: bytes) -> Any:
        text = payload.decode("utf-8")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DecodeError(f"invalid YAML: {exc}") from exc
        # An empty file holds no documents.
        return [] if data is None else data


FORMAT_REGISTRY: Mapping[str, type[Codec]] = {
    "json": JsonCodec,
    ".json": JsonCodec,
    "yaml": YamlCodec,
    "yml": YamlCodec,
    ".yaml": YamlCodec,
    ".yml": YamlCodec,
}


def resolve_codec(name: str, model: type[T]) -> Codec[T]:
    try:
        codec_cls = FORMAT_REGISTRY[name.lower()]
    except KeyError as exc:
        raise UnknownFormatError(f"Unsupported format '{name}'") from exc
    return codec_cls(model)
