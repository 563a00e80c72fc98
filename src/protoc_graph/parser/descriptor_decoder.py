"""Decode a binary FileDescriptorSet into FileRecord models.

The bundle is whatever ``protoc --descriptor_set_out`` (or ``buf build -o -``)
writes. Wire-level decoding is left to the protobuf runtime; this module maps
the descriptor protos onto the package's own dataclasses and assigns
fully-qualified names to every declared type.
"""

from __future__ import annotations

import logging
from typing import List

from google.protobuf import descriptor_pb2 as d2
from google.protobuf.message import DecodeError as ProtobufDecodeError

from protoc_graph.models import (
    ENUM,
    GROUP,
    MESSAGE,
    SCALAR,
    EnumDef,
    EnumValueDef,
    FieldDef,
    FileRecord,
    MessageDef,
    MethodDef,
    ServiceDef,
)

logger = logging.getLogger(__name__)

FDP = d2.FieldDescriptorProto

SCALAR_TYPE_NAMES = {
    FDP.TYPE_DOUBLE: "double",
    FDP.TYPE_FLOAT: "float",
    FDP.TYPE_INT64: "int64",
    FDP.TYPE_UINT64: "uint64",
    FDP.TYPE_INT32: "int32",
    FDP.TYPE_FIXED64: "fixed64",
    FDP.TYPE_FIXED32: "fixed32",
    FDP.TYPE_BOOL: "bool",
    FDP.TYPE_STRING: "string",
    FDP.TYPE_BYTES: "bytes",
    FDP.TYPE_UINT32: "uint32",
    FDP.TYPE_SFIXED32: "sfixed32",
    FDP.TYPE_SFIXED64: "sfixed64",
    FDP.TYPE_SINT32: "sint32",
    FDP.TYPE_SINT64: "sint64",
}

REFERENCE_KINDS = {
    FDP.TYPE_MESSAGE: MESSAGE,
    FDP.TYPE_ENUM: ENUM,
    FDP.TYPE_GROUP: GROUP,
}


class DecodeError(Exception):
    """Raised when a descriptor bundle is malformed or ambiguous."""


def decode_descriptor_set(data: bytes) -> List[FileRecord]:
    """Decode a serialized FileDescriptorSet into FileRecords, in file order.

    Empty input is a valid, empty bundle. Unknown fields are ignored.
    """
    if not data:
        return []

    fds = d2.FileDescriptorSet()
    try:
        fds.ParseFromString(bytes(data))
    except ProtobufDecodeError as e:
        raise DecodeError(f"Invalid descriptor bundle ({len(data)} bytes): {e}") from e

    files = [_build_file(f) for f in fds.file]
    logger.debug("Decoded %d file(s) from %d byte(s)", len(files), len(data))
    return files


def describe_files(files: List[FileRecord]) -> List[str]:
    """One line per decoded file: path, package and top-level declaration counts."""
    lines = []
    for f in files:
        lines.append(
            f"{f.path} (package: {f.package or '<none>'}) "
            f"messages={len(f.messages)} enums={len(f.enums)} services={len(f.services)}"
        )
    return lines


def _text(value, what: str) -> str:
    # proto2 string fields come back as bytes when they are not valid UTF-8
    if isinstance(value, str):
        return value
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid UTF-8 in {what}: {bytes(value)!r}") from e


def _qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


def _build_file(desc: d2.FileDescriptorProto) -> FileRecord:
    path = _text(desc.name, "file name")
    package = _text(desc.package, f"package of '{path}'")
    syntax = _text(desc.syntax, f"syntax of '{path}'")
    return FileRecord(
        path=path,
        package=package,
        imports=[_text(d, f"import of '{path}'") for d in desc.dependency],
        messages=[_build_message(m, package, syntax) for m in desc.message_type],
        enums=[_build_enum(e, package) for e in desc.enum_type],
        services=[_build_service(s, package) for s in desc.service],
        syntax=syntax,
    )


def _build_message(desc: d2.DescriptorProto, scope: str, syntax: str) -> MessageDef:
    full_name = _qualify(scope, _text(desc.name, f"message name in '{scope}'"))
    return MessageDef(
        name=full_name,
        fields=[_build_field(f, full_name, syntax) for f in desc.field],
        nested_messages=[_build_message(n, full_name, syntax) for n in desc.nested_type],
        nested_enums=[_build_enum(e, full_name) for e in desc.enum_type],
        is_map_entry=desc.options.map_entry,
    )


def _build_field(desc: d2.FieldDescriptorProto, owner: str, syntax: str) -> FieldDef:
    name = _text(desc.name, f"field name in '{owner}'")
    if desc.HasField("type") and desc.type in SCALAR_TYPE_NAMES:
        kind = SCALAR
        type_name = SCALAR_TYPE_NAMES[desc.type]
    elif desc.HasField("type") and desc.type in REFERENCE_KINDS:
        kind = REFERENCE_KINDS[desc.type]
        type_name = _text(desc.type_name, f"type of '{owner}.{name}'")
    else:
        # Unresolved descriptors may leave the type unset and only name it
        kind = MESSAGE
        type_name = _text(desc.type_name, f"type of '{owner}.{name}'")

    return FieldDef(
        name=name,
        number=desc.number,
        type_name=type_name,
        kind=kind,
        label=_label(desc, syntax),
    )


def _label(desc: d2.FieldDescriptorProto, syntax: str) -> str:
    if desc.label == FDP.LABEL_REPEATED:
        return "repeated"
    if desc.label == FDP.LABEL_REQUIRED:
        return "required"
    # proto3 fields only track presence when declared `optional`
    if syntax == "proto3" and not desc.proto3_optional:
        return "singular"
    return "optional"


def _build_enum(desc: d2.EnumDescriptorProto, scope: str) -> EnumDef:
    name = _qualify(scope, _text(desc.name, f"enum name in '{scope}'"))
    values = [
        EnumValueDef(name=_text(v.name, f"value name in '{name}'"), number=v.number)
        for v in desc.value
    ]
    return EnumDef(name=name, values=values)


def _build_service(desc: d2.ServiceDescriptorProto, scope: str) -> ServiceDef:
    name = _qualify(scope, _text(desc.name, f"service name in '{scope}'"))
    methods = []
    for m in desc.method:
        method_name = _text(m.name, f"method name in '{name}'")
        methods.append(
            MethodDef(
                name=method_name,
                input_type=_text(m.input_type, f"input of '{name}.{method_name}'"),
                output_type=_text(m.output_type, f"output of '{name}.{method_name}'"),
                client_streaming=m.client_streaming,
                server_streaming=m.server_streaming,
            )
        )
    return ServiceDef(name=name, methods=methods)
