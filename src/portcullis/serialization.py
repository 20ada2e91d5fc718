"""msgspec codecs shared by the state store and the JSON responses."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

import msgspec
from msgspec import structs

T = TypeVar("T")

_json_encoder = msgspec.json.Encoder()
_json_decoder = msgspec.json.Decoder()
_msgpack_encoder = msgspec.msgpack.Encoder()


def _plain(value: Any) -> Any:
    if isinstance(value, msgspec.Struct):
        return _plain(structs.asdict(value))
    if isinstance(value, dict):
        return {key: _plain(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(item) for item in value]
    return value


def json_encode(value: Any) -> bytes:
    """Serialize ``value`` to JSON bytes.

    Structs nested inside plain containers are flattened first so they
    encode with their field names, including defaults.
    """

    if isinstance(value, msgspec.Struct):
        return _json_encoder.encode(value)
    return _json_encoder.encode(_plain(value))


def json_decode(data: bytes) -> Any:
    return _json_decoder.decode(data)


@lru_cache(maxsize=None)
def _msgpack_decoder(model: type[T]) -> msgspec.msgpack.Decoder[T]:
    return msgspec.msgpack.Decoder(model)


def msgpack_encode(value: Any) -> bytes:
    return _msgpack_encoder.encode(value)


def msgpack_decode(data: bytes, model: type[T]) -> T:
    """Deserialize msgpack ``data`` into an instance of ``model``."""

    return _msgpack_decoder(model).decode(data)


__all__ = ["json_decode", "json_encode", "msgpack_decode", "msgpack_encode"]
