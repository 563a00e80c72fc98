from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List

# Field kinds
SCALAR = "scalar"
MESSAGE = "message"
ENUM = "enum"
GROUP = "group"


@dataclass
class FieldDef:
    name: str
    number: int
    type_name: str
    kind: str = SCALAR
    label: str = "singular"

    @property
    def is_reference(self) -> bool:
        return self.kind != SCALAR


@dataclass
class EnumValueDef:
    name: str
    number: int


@dataclass
class EnumDef:
    name: str
    values: List[EnumValueDef] = field(default_factory=list)


@dataclass
class MessageDef:
    name: str
    fields: List[FieldDef] = field(default_factory=list)
    nested_messages: List[MessageDef] = field(default_factory=list)
    nested_enums: List[EnumDef] = field(default_factory=list)
    is_map_entry: bool = False

    def walk(self) -> Iterator[MessageDef]:
        """Yield this message followed by all nested messages, depth first."""
        yield self
        for nested in self.nested_messages:
            yield from nested.walk()


@dataclass
class MethodDef:
    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass
class ServiceDef:
    name: str
    methods: List[MethodDef] = field(default_factory=list)


@dataclass
class FileRecord:
    path: str
    package: str = ""
    imports: List[str] = field(default_factory=list)
    messages: List[MessageDef] = field(default_factory=list)
    enums: List[EnumDef] = field(default_factory=list)
    services: List[ServiceDef] = field(default_factory=list)
    syntax: str = ""
