import pytest
from google.protobuf import descriptor_pb2 as d2

from protoc_graph.models import ENUM, MESSAGE, SCALAR
from protoc_graph.parser.descriptor_decoder import DecodeError, decode_descriptor_set, describe_files

FDP = d2.FieldDescriptorProto


def _field(name, number, type_=FDP.TYPE_STRING, type_name="", label=FDP.LABEL_OPTIONAL, proto3_optional=False):
    f = FDP(name=name, number=number, type=type_, label=label)
    if type_name:
        f.type_name = type_name
    if proto3_optional:
        f.proto3_optional = True
    return f


def _file(name, package="", messages=(), enums=(), services=(), deps=(), syntax="proto3"):
    return d2.FileDescriptorProto(
        name=name,
        package=package,
        dependency=list(deps),
        message_type=list(messages),
        enum_type=list(enums),
        service=list(services),
        syntax=syntax,
    )


def _bundle(*files) -> bytes:
    return d2.FileDescriptorSet(file=list(files)).SerializeToString()


class TestEmptyAndMalformedInput:
    def test_empty_input_yields_no_files(self):
        assert decode_descriptor_set(b"") == []

    def test_empty_descriptor_set_yields_no_files(self):
        assert decode_descriptor_set(d2.FileDescriptorSet().SerializeToString()) == []

    def test_garbage_raises_decode_error(self):
        with pytest.raises(DecodeError):
            decode_descriptor_set(b"not a valid protobuf")

    def test_truncated_bundle_raises_decode_error(self):
        data = _bundle(
            _file(
                "user/v1/user.proto",
                package="user.v1",
                messages=[d2.DescriptorProto(name="User", field=[_field("id", 1)])],
            )
        )
        with pytest.raises(DecodeError) as exc_info:
            decode_descriptor_set(data[:-3])
        assert exc_info.value.__cause__ is not None

    def test_truncated_varint_raises_decode_error(self):
        # Tag for field 1 (length-delimited) followed by an unterminated varint length
        with pytest.raises(DecodeError):
            decode_descriptor_set(b"\x0a\xff\xff")

    def test_invalid_utf8_file_name(self):
        # FileDescriptorSet.file { name: ff fe fd }
        data = b"\x0a\x05" + b"\x0a\x03\xff\xfe\xfd"
        with pytest.raises(DecodeError):
            decode_descriptor_set(data)

    def test_invalid_utf8_package(self):
        # FileDescriptorSet.file { name: "a.proto" package: ff fe }
        inner = b"\x0a\x07a.proto" + b"\x12\x02\xff\xfe"
        with pytest.raises(DecodeError):
            decode_descriptor_set(b"\x0a" + bytes([len(inner)]) + inner)

    def test_invalid_utf8_type_reference(self):
        # DescriptorProto "M" { field { name: "f" number: 1 type: MESSAGE type_name: ff } }
        field = b"\x0a\x01f" + b"\x18\x01" + b"\x28\x0b" + b"\x32\x01\xff"
        message = b"\x0a\x01M" + b"\x12" + bytes([len(field)]) + field
        inner = b"\x0a\x07a.proto" + b"\x22" + bytes([len(message)]) + message
        with pytest.raises(DecodeError):
            decode_descriptor_set(b"\x0a" + bytes([len(inner)]) + inner)

    def test_unknown_fields_are_skipped(self):
        data = _bundle(_file("a.proto", package="a", messages=[d2.DescriptorProto(name="A")]))
        # Field 99, varint wire type, value 1
        data += b"\x98\x06\x01"
        files = decode_descriptor_set(data)
        assert len(files) == 1
        assert files[0].messages[0].name == "a.A"


class TestFileRecords:
    def test_file_attributes(self):
        data = _bundle(
            _file(
                "order/v1/order.proto",
                package="order.v1",
                deps=["google/protobuf/timestamp.proto", "common/v1/money.proto"],
            )
        )
        files = decode_descriptor_set(data)
        assert len(files) == 1
        record = files[0]
        assert record.path == "order/v1/order.proto"
        assert record.package == "order.v1"
        assert record.imports == ["google/protobuf/timestamp.proto", "common/v1/money.proto"]
        assert record.syntax == "proto3"

    def test_files_keep_bundle_order(self):
        data = _bundle(_file("b.proto", package="b"), _file("a.proto", package="a"), _file("c.proto"))
        files = decode_descriptor_set(data)
        assert [f.path for f in files] == ["b.proto", "a.proto", "c.proto"]
        assert files[2].package == ""

    def test_describe_files(self):
        data = _bundle(
            _file("a.proto", package="a", messages=[d2.DescriptorProto(name="A")]),
            _file("b.proto"),
        )
        lines = describe_files(decode_descriptor_set(data))
        assert lines == [
            "a.proto (package: a) messages=1 enums=0 services=0",
            "b.proto (package: <none>) messages=0 enums=0 services=0",
        ]


class TestMessages:
    def test_nested_types_get_qualified_names(self):
        inner = d2.DescriptorProto(
            name="Inner",
            nested_type=[d2.DescriptorProto(name="Deepest")],
        )
        outer = d2.DescriptorProto(
            name="Outer",
            nested_type=[inner],
            enum_type=[d2.EnumDescriptorProto(name="Kind")],
        )
        files = decode_descriptor_set(_bundle(_file("x.proto", package="pkg.v1", messages=[outer])))

        msg = files[0].messages[0]
        assert msg.name == "pkg.v1.Outer"
        assert msg.nested_messages[0].name == "pkg.v1.Outer.Inner"
        assert msg.nested_messages[0].nested_messages[0].name == "pkg.v1.Outer.Inner.Deepest"
        assert msg.nested_enums[0].name == "pkg.v1.Outer.Kind"
        assert [m.name for m in msg.walk()] == [
            "pkg.v1.Outer",
            "pkg.v1.Outer.Inner",
            "pkg.v1.Outer.Inner.Deepest",
        ]

    def test_no_package_leaves_bare_names(self):
        files = decode_descriptor_set(_bundle(_file("x.proto", messages=[d2.DescriptorProto(name="Lonely")])))
        assert files[0].messages[0].name == "Lonely"

    def test_fields_in_declaration_order(self):
        msg = d2.DescriptorProto(
            name="Order",
            field=[
                _field("id", 1, FDP.TYPE_INT64),
                _field("status", 3, FDP.TYPE_ENUM, ".shop.Status"),
                _field("customer", 2, FDP.TYPE_MESSAGE, ".shop.Customer"),
            ],
        )
        fields = decode_descriptor_set(_bundle(_file("o.proto", package="shop", messages=[msg])))[0].messages[0].fields

        assert [f.name for f in fields] == ["id", "status", "customer"]
        assert [f.number for f in fields] == [1, 3, 2]
        assert fields[0].type_name == "int64"
        assert fields[0].kind == SCALAR
        assert fields[0].is_reference is False
        assert fields[1].type_name == ".shop.Status"
        assert fields[1].kind == ENUM
        assert fields[2].type_name == ".shop.Customer"
        assert fields[2].kind == MESSAGE
        assert fields[2].is_reference is True

    def test_map_entry_flag(self):
        entry = d2.DescriptorProto(
            name="LabelsEntry",
            field=[_field("key", 1), _field("value", 2)],
            options=d2.MessageOptions(map_entry=True),
        )
        msg = d2.DescriptorProto(
            name="Pod",
            field=[_field("labels", 1, FDP.TYPE_MESSAGE, ".k.Pod.LabelsEntry", FDP.LABEL_REPEATED)],
            nested_type=[entry],
        )
        pod = decode_descriptor_set(_bundle(_file("k.proto", package="k", messages=[msg])))[0].messages[0]
        assert pod.is_map_entry is False
        assert pod.nested_messages[0].is_map_entry is True


class TestLabels:
    def _labels(self, syntax, fields):
        msg = d2.DescriptorProto(name="M", field=fields)
        record = decode_descriptor_set(_bundle(_file("m.proto", package="m", messages=[msg], syntax=syntax)))[0]
        return [f.label for f in record.messages[0].fields]

    def test_proto3_labels(self):
        labels = self._labels(
            "proto3",
            [
                _field("plain", 1),
                _field("maybe", 2, proto3_optional=True),
                _field("many", 3, label=FDP.LABEL_REPEATED),
            ],
        )
        assert labels == ["singular", "optional", "repeated"]

    def test_proto2_labels(self):
        labels = self._labels(
            "proto2",
            [
                _field("opt", 1),
                _field("req", 2, label=FDP.LABEL_REQUIRED),
                _field("rep", 3, label=FDP.LABEL_REPEATED),
            ],
        )
        assert labels == ["optional", "required", "repeated"]

    def test_missing_syntax_is_proto2(self):
        assert self._labels("", [_field("opt", 1)]) == ["optional"]


class TestEnumsAndServices:
    def test_enum_values_keep_order_and_duplicates(self):
        enum = d2.EnumDescriptorProto(
            name="Status",
            value=[
                d2.EnumValueDescriptorProto(name="UNKNOWN", number=0),
                d2.EnumValueDescriptorProto(name="ACTIVE", number=2),
                d2.EnumValueDescriptorProto(name="ENABLED", number=2),
                d2.EnumValueDescriptorProto(name="INACTIVE", number=1),
            ],
        )
        record = decode_descriptor_set(_bundle(_file("s.proto", package="s", enums=[enum])))[0]
        values = record.enums[0].values
        assert record.enums[0].name == "s.Status"
        assert [(v.name, v.number) for v in values] == [
            ("UNKNOWN", 0),
            ("ACTIVE", 2),
            ("ENABLED", 2),
            ("INACTIVE", 1),
        ]

    def test_service_methods(self):
        service = d2.ServiceDescriptorProto(
            name="Chat",
            method=[
                d2.MethodDescriptorProto(name="Send", input_type=".chat.Msg", output_type=".chat.Ack"),
                d2.MethodDescriptorProto(
                    name="Stream",
                    input_type=".chat.Msg",
                    output_type=".chat.Msg",
                    client_streaming=True,
                    server_streaming=True,
                ),
            ],
        )
        record = decode_descriptor_set(_bundle(_file("c.proto", package="chat", services=[service])))[0]
        svc = record.services[0]
        assert svc.name == "chat.Chat"
        assert [m.name for m in svc.methods] == ["Send", "Stream"]
        assert svc.methods[0].input_type == ".chat.Msg"
        assert svc.methods[0].output_type == ".chat.Ack"
        assert svc.methods[0].client_streaming is False
        assert svc.methods[1].client_streaming is True
        assert svc.methods[1].server_streaming is True
