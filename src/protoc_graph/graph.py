"""Graph data model produced by the analyzer.

``GraphData.to_dict()`` is the JSON contract consumed by renderers:
``{"nodes": [...], "edges": [...], "packages": [...]}`` with camelCase keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class NodeType(str, Enum):
    SERVICE = "service"
    MESSAGE = "message"
    ENUM = "enum"
    EXTERNAL = "external"


@dataclass
class FieldInfo:
    name: str
    number: int
    type_name: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "number": self.number,
            "typeName": self.type_name,
            "label": self.label,
        }


@dataclass
class EnumValueInfo:
    name: str
    number: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "number": self.number}


@dataclass
class MethodSignature:
    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "inputType": self.input_type,
            "outputType": self.output_type,
        }


@dataclass
class MessageSummary:
    """A message shown inside an expanded service node."""

    name: str
    fields: List[FieldInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}


@dataclass
class ServiceDetails:
    methods: List[MethodSignature] = field(default_factory=list)
    messages: List[MessageSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "methods": [m.to_dict() for m in self.methods],
            "messages": [m.to_dict() for m in self.messages],
        }


@dataclass
class MessageDetails:
    fields: List[FieldInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"fields": [f.to_dict() for f in self.fields]}


@dataclass
class EnumDetails:
    values: List[EnumValueInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"values": [v.to_dict() for v in self.values]}


@dataclass
class ExternalDetails:
    def to_dict(self) -> Dict[str, Any]:
        return {}


NodeDetails = Union[ServiceDetails, MessageDetails, EnumDetails, ExternalDetails]

_DETAILS_BY_TYPE = {
    NodeType.SERVICE: ServiceDetails,
    NodeType.MESSAGE: MessageDetails,
    NodeType.ENUM: EnumDetails,
    NodeType.EXTERNAL: ExternalDetails,
}


@dataclass
class Node:
    id: str
    type: NodeType
    package: str
    label: str
    file: str
    details: NodeDetails

    def __post_init__(self) -> None:
        expected = _DETAILS_BY_TYPE[self.type]
        if not isinstance(self.details, expected):
            raise TypeError(
                f"Node '{self.id}' of type {self.type.value} needs "
                f"{expected.__name__}, got {type(self.details).__name__}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "package": self.package,
            "label": self.label,
            "file": self.file,
            "details": self.details.to_dict(),
        }


@dataclass(frozen=True)
class Edge:
    source: str
    target: str

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target}


@dataclass
class Package:
    id: str
    node_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "nodeIds": list(self.node_ids)}


@dataclass
class GraphData:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    packages: List[Package] = field(default_factory=list)

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_type(self, node_type: NodeType) -> List[Node]:
        return [n for n in self.nodes if n.type == node_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "packages": [p.to_dict() for p in self.packages],
        }
