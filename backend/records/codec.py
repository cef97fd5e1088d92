"""
Protobuf codec for recorded matches.

The game service describes its wire format with a protobuf schema that changes
between client versions. The codec is built at runtime from a serialized
FileDescriptorSet (the schema definition) and its version string, so the same
definition bytes can be persisted next to every match decoded with them.

Every message on the wire is wrapped in a `Wrapper{name, data}` envelope where
`name` is the fully qualified type tag (".lq.RecordNewRound") and `data` the
serialized payload. A match payload is a Wrapper around `GameDetailRecords`,
whose records are themselves Wrappers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import DecodeError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from google.protobuf.descriptor import Descriptor, MethodDescriptor
    from google.protobuf.message import Message

DEFAULT_PACKAGE = "lq"

_DETAIL_RECORDS_TYPE = "GameDetailRecords"


class CodecError(Exception):
    """Raised when bytes cannot be decoded with the loaded schema."""


def message_to_dict(message: Message) -> dict[str, Any]:
    """Convert a decoded message into plain Python values.

    Only fields that are set (or non-default in proto3) are included. Nested
    messages become dicts, repeated fields become lists, bytes stay bytes.
    """
    result: dict[str, Any] = {}
    for field, value in message.ListFields():
        repeated = field.is_repeated
        if field.type == FieldDescriptor.TYPE_MESSAGE:
            result[field.name] = [message_to_dict(item) for item in value] if repeated else message_to_dict(value)
        elif repeated:
            result[field.name] = list(value)
        else:
            result[field.name] = value
    return result


class RecordCodec:
    """Schema-versioned decoder for wrapped protobuf messages."""

    def __init__(self, definition: bytes, version: str, package: str = DEFAULT_PACKAGE) -> None:
        self.definition = definition
        self.version = version
        self._package = package
        self._pool = descriptor_pool.DescriptorPool()

        descriptor_set = descriptor_pb2.FileDescriptorSet()
        try:
            descriptor_set.ParseFromString(definition)
        except DecodeError as exc:
            raise CodecError(f"invalid schema definition for version {version}: {exc}") from exc
        # Files must be listed dependencies-first, as protoc emits them.
        for file_proto in descriptor_set.file:
            self._pool.AddSerializedFile(file_proto.SerializeToString())

        self._classes: dict[str, type[Message]] = {}
        self._wrapper = self.message_class(f".{package}.Wrapper")

    def _descriptor(self, type_name: str) -> Descriptor:
        try:
            return self._pool.FindMessageTypeByName(type_name.lstrip("."))
        except KeyError as exc:
            raise CodecError(f"unknown message type {type_name} in schema {self.version}") from exc

    def message_class(self, type_name: str) -> type[Message]:
        """Return the generated class for a fully qualified type tag."""
        name = type_name.lstrip(".")
        cls = self._classes.get(name)
        if cls is None:
            cls = message_factory.GetMessageClass(self._descriptor(name))
            self._classes[name] = cls
        return cls

    def has_type(self, type_name: str) -> bool:
        try:
            self._descriptor(type_name)
        except CodecError:
            return False
        return True

    def find_method(self, method_name: str) -> MethodDescriptor:
        """Look up an RPC method by its fully qualified name (".lq.Lobby.fetchGameRecord")."""
        service_name, _, name = method_name.lstrip(".").rpartition(".")
        try:
            method = self._pool.FindServiceByName(service_name).FindMethodByName(name)
        except KeyError as exc:
            raise CodecError(f"unknown method {method_name} in schema {self.version}") from exc
        if method is None:
            raise CodecError(f"unknown method {method_name} in schema {self.version}")
        return method

    def wrap(self, type_name: str, payload: bytes) -> bytes:
        return self._wrapper(name=type_name, data=payload).SerializeToString()

    def unwrap(self, data: bytes) -> tuple[str, bytes]:
        """Split a Wrapper envelope into (type tag, payload bytes)."""
        wrapper = self._wrapper()
        try:
            wrapper.ParseFromString(data)
        except DecodeError as exc:
            raise CodecError(f"invalid wrapper envelope: {exc}") from exc
        return wrapper.name, wrapper.data

    def decode_message(self, type_name: str, payload: bytes) -> Message:
        message = self.message_class(type_name)()
        try:
            message.ParseFromString(payload)
        except DecodeError as exc:
            raise CodecError(f"invalid {type_name} payload: {exc}") from exc
        return message

    def decode(self, type_name: str, payload: bytes) -> dict[str, Any]:
        """Decode a payload given its type tag into a plain dict."""
        return message_to_dict(self.decode_message(type_name, payload))

    def iter_records(self, data: bytes) -> Iterator[tuple[str, bytes]]:
        """Yield (type tag, payload bytes) for every record of a match payload.

        Older payloads list records directly; newer ones carry them as the
        results of game actions, where actions without a result are skipped.
        """
        name, payload = self.unwrap(data)
        if name.lstrip(".") != f"{self._package}.{_DETAIL_RECORDS_TYPE}":
            raise CodecError(f"expected {_DETAIL_RECORDS_TYPE} envelope, got {name}")
        details = self.decode_message(name, payload)

        actions = getattr(details, "actions", None)
        if actions:
            raw_records = [action.result for action in actions if len(action.result) > 0]
        else:
            raw_records = list(details.records)

        for raw in raw_records:
            yield self.unwrap(raw)
