"""Build the dependency graph from decoded FileRecords and their symbol table.

Every message, enum and service declared in a non-reserved file becomes a
node keyed by its fully-qualified name. Type references that cannot be
expanded from the bundle collapse onto one External node per import path.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from protoc_graph.config import DEFAULT_PACKAGE, AnalyzerConfig
from protoc_graph.graph import (
    Edge,
    EnumDetails,
    EnumValueInfo,
    ExternalDetails,
    FieldInfo,
    GraphData,
    MessageDetails,
    MessageSummary,
    MethodSignature,
    Node,
    NodeDetails,
    NodeType,
    Package,
    ServiceDetails,
)
from protoc_graph.models import (
    MESSAGE,
    EnumDef,
    FieldDef,
    FileRecord,
    MessageDef,
    ServiceDef,
)
from protoc_graph.symbol_table import Symbol, SymbolTable, build_symbol_table

logger = logging.getLogger(__name__)

_REFERENCE_RE = re.compile(r"^\.?[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

# Top-level google.protobuf type -> file under google/protobuf/
WELL_KNOWN_FILES: Dict[str, str] = {
    "Any": "any.proto",
    "Api": "api.proto",
    "Method": "api.proto",
    "Mixin": "api.proto",
    "Duration": "duration.proto",
    "Empty": "empty.proto",
    "FieldMask": "field_mask.proto",
    "SourceContext": "source_context.proto",
    "Struct": "struct.proto",
    "Value": "struct.proto",
    "ListValue": "struct.proto",
    "NullValue": "struct.proto",
    "Timestamp": "timestamp.proto",
    "Type": "type.proto",
    "Field": "type.proto",
    "Enum": "type.proto",
    "EnumValue": "type.proto",
    "Option": "type.proto",
    "Syntax": "type.proto",
    "DoubleValue": "wrappers.proto",
    "FloatValue": "wrappers.proto",
    "Int64Value": "wrappers.proto",
    "UInt64Value": "wrappers.proto",
    "Int32Value": "wrappers.proto",
    "UInt32Value": "wrappers.proto",
    "BoolValue": "wrappers.proto",
    "StringValue": "wrappers.proto",
    "BytesValue": "wrappers.proto",
    "FileDescriptorSet": "descriptor.proto",
    "FileDescriptorProto": "descriptor.proto",
    "DescriptorProto": "descriptor.proto",
    "FieldDescriptorProto": "descriptor.proto",
    "EnumDescriptorProto": "descriptor.proto",
    "ServiceDescriptorProto": "descriptor.proto",
    "MethodDescriptorProto": "descriptor.proto",
    "FileOptions": "descriptor.proto",
    "MessageOptions": "descriptor.proto",
    "FieldOptions": "descriptor.proto",
    "EnumOptions": "descriptor.proto",
    "EnumValueOptions": "descriptor.proto",
    "ServiceOptions": "descriptor.proto",
    "MethodOptions": "descriptor.proto",
}


class AnalysisError(Exception):
    """Raised when a type reference is not a dotted identifier."""


def split_type_name(name: str) -> Tuple[str, str]:
    """Split a dotted name into (package, type chain).

    The type chain starts at the first segment beginning with an upper-case
    letter: ``google.protobuf.Timestamp`` -> (``google.protobuf``,
    ``Timestamp``). Without such a segment the last segment is the type.
    """
    parts = name.lstrip(".").split(".")
    for idx, seg in enumerate(parts):
        if seg and seg[0].isupper():
            return ".".join(parts[:idx]), ".".join(parts[idx:])
    return ".".join(parts[:-1]), parts[-1]


def to_snake(name: str) -> str:
    """PascalCase -> snake_case: FieldMask -> field_mask, HTTPInfo -> http_info."""
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    return s.lower()


class Analyzer:
    """Turns FileRecords plus a complete SymbolTable into GraphData.

    The analyzer only holds configuration; every call to ``analyze`` works
    on its own node and edge sets.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self._config = config or AnalyzerConfig()

    def analyze(self, files: Sequence[FileRecord], table: SymbolTable) -> GraphData:
        return _GraphBuilder(self._config, table).build(files)


def analyze(files: Sequence[FileRecord], config: Optional[AnalyzerConfig] = None) -> GraphData:
    """Build the symbol table for ``files`` and analyze them."""
    table = build_symbol_table(files)
    return Analyzer(config).analyze(files, table)


class _GraphBuilder:
    def __init__(self, config: AnalyzerConfig, table: SymbolTable):
        self._config = config
        self._table = table
        self._nodes: Dict[str, Node] = {}
        self._edges: List[Edge] = []
        self._edge_keys: Set[Tuple[str, str]] = set()

    def build(self, files: Sequence[FileRecord]) -> GraphData:
        expanded = [f for f in files if not self._config.is_reserved(f.path)]

        # 1. Nodes for every declared type, file order then declaration order
        for record in expanded:
            self._add_file_nodes(record)
        defined = len(self._nodes)

        # 2. Edges; unresolved targets add External nodes as they are met
        for record in expanded:
            self._add_file_edges(record)

        nodes = list(self._nodes.values())
        graph = GraphData(
            nodes=nodes,
            edges=list(self._edges),
            packages=_group_packages(nodes),
        )
        logger.debug(
            "Analyzed %d file(s): %d node(s) (%d external), %d edge(s), %d package(s)",
            len(files),
            len(graph.nodes),
            len(graph.nodes) - defined,
            len(graph.edges),
            len(graph.packages),
        )
        return graph

    # -- nodes --

    def _add_file_nodes(self, record: FileRecord) -> None:
        for top in record.messages:
            for message in top.walk():
                if message.is_map_entry:
                    continue
                self._add_node(record, message.name, NodeType.MESSAGE, self._message_details(record, message))
                for enum in message.nested_enums:
                    self._add_node(record, enum.name, NodeType.ENUM, _enum_details(enum))
        for enum in record.enums:
            self._add_node(record, enum.name, NodeType.ENUM, _enum_details(enum))
        for service in record.services:
            self._add_node(record, service.name, NodeType.SERVICE, self._service_details(record, service))

    def _add_node(self, record: FileRecord, name: str, node_type: NodeType, details: NodeDetails) -> None:
        package = record.package
        label = name[len(package) + 1:] if package else name
        self._nodes[name] = Node(
            id=name,
            type=node_type,
            package=package or DEFAULT_PACKAGE,
            label=label,
            file=record.path,
            details=details,
        )

    def _message_details(self, record: FileRecord, message: MessageDef) -> MessageDetails:
        return MessageDetails(fields=self._field_infos(record, message))

    def _field_infos(self, record: FileRecord, message: MessageDef) -> List[FieldInfo]:
        return [
            FieldInfo(
                name=f.name,
                number=f.number,
                type_name=self._field_type_display(record, message, f),
                label=f.label,
            )
            for f in message.fields
        ]

    def _service_details(self, record: FileRecord, service: ServiceDef) -> ServiceDetails:
        methods: List[MethodSignature] = []
        messages: List[MessageSummary] = []
        seen: Set[str] = set()
        scope = record.package

        for method in service.methods:
            resolved = []
            for member, ref in (("input", method.input_type), ("output", method.output_type)):
                symbol = self._resolve(ref, scope, record, service.name, f"{method.name} {member}")
                resolved.append(symbol.name if symbol else ref.lstrip("."))
                if (
                    symbol is not None
                    and symbol.kind == MESSAGE
                    and symbol.name not in seen
                    and not self._config.is_reserved(symbol.file.path)
                ):
                    seen.add(symbol.name)
                    messages.append(
                        MessageSummary(
                            name=symbol.name,
                            fields=self._field_infos(symbol.file, symbol.definition),
                        )
                    )
            methods.append(
                MethodSignature(
                    name=method.name,
                    input_type=resolved[0],
                    output_type=resolved[1],
                    client_streaming=method.client_streaming,
                    server_streaming=method.server_streaming,
                )
            )

        return ServiceDetails(methods=methods, messages=messages)

    def _field_type_display(self, record: FileRecord, message: MessageDef, f: FieldDef) -> str:
        if not f.is_reference:
            return f.type_name
        symbol = self._resolve(f.type_name, message.name, record, message.name, f.name)
        if symbol is None:
            return f.type_name.lstrip(".")
        map_entry = _map_entry(symbol)
        if map_entry is not None:
            key, value = _map_key_value(map_entry)
            if key is None or value is None:
                return symbol.name
            return (
                f"map<{self._field_type_display(symbol.file, map_entry, key)}, "
                f"{self._field_type_display(symbol.file, map_entry, value)}>"
            )
        return symbol.name

    # -- edges --

    def _add_file_edges(self, record: FileRecord) -> None:
        for top in record.messages:
            for message in top.walk():
                if message.is_map_entry:
                    continue
                for f in message.fields:
                    for target in self._field_targets(record, message, f):
                        self._add_edge(message.name, target)

        for service in record.services:
            for method in service.methods:
                for member, ref in (("input", method.input_type), ("output", method.output_type)):
                    symbol = self._resolve(ref, record.package, record, service.name, f"{method.name} {member}")
                    self._add_edge(service.name, self._target_id(record, ref, symbol))

    def _field_targets(self, record: FileRecord, message: MessageDef, f: FieldDef) -> List[str]:
        if not f.is_reference:
            return []
        symbol = self._resolve(f.type_name, message.name, record, message.name, f.name)
        map_entry = _map_entry(symbol)
        if map_entry is not None and not self._config.is_reserved(symbol.file.path):
            # map<K, V> depends on V only; keys are always scalar
            _, value = _map_key_value(map_entry)
            if value is None:
                return []
            return self._field_targets(symbol.file, map_entry, value)
        return [self._target_id(record, f.type_name, symbol)]

    def _add_edge(self, source: str, target: str) -> None:
        key = (source, target)
        if key in self._edge_keys:
            return
        self._edge_keys.add(key)
        self._edges.append(Edge(source=source, target=target))

    # -- resolution --

    def _resolve(
        self,
        reference: str,
        scope: str,
        record: FileRecord,
        owner: str,
        member: str,
    ) -> Optional[Symbol]:
        if not _REFERENCE_RE.match(reference):
            raise AnalysisError(
                f"Malformed type reference {reference!r} for '{member}' "
                f"in '{owner}' ({record.path})"
            )
        return self._table.resolve(reference, scope)

    def _target_id(self, record: FileRecord, reference: str, symbol: Optional[Symbol]) -> str:
        if symbol is not None:
            if not self._config.is_reserved(symbol.file.path):
                return symbol.name
            return self._external_node(symbol.file.path)
        return self._external_node(self._external_location(record, reference))

    def _external_location(self, record: FileRecord, reference: str) -> str:
        """Pick the import path that provides an unresolved reference."""
        package, type_chain = split_type_name(reference)
        top_type = type_chain.split(".")[0]

        if package == "google.protobuf" and top_type in WELL_KNOWN_FILES:
            return f"google/protobuf/{WELL_KNOWN_FILES[top_type]}"

        candidates = [
            imp
            for imp in record.imports
            if self._table.file(imp) is None or self._config.is_reserved(imp)
        ]
        package_dir = package.replace(".", "/")
        for imp in candidates:
            if posixpath.dirname(imp) == package_dir:
                return imp
        if len(candidates) == 1:
            return candidates[0]

        file_name = f"{to_snake(top_type)}.proto"
        return f"{package_dir}/{file_name}" if package_dir else file_name

    def _external_node(self, path: str) -> str:
        if path not in self._nodes:
            package = _external_package(path, self._table.file(path))
            self._nodes[path] = Node(
                id=path,
                type=NodeType.EXTERNAL,
                package=package or DEFAULT_PACKAGE,
                label=path,
                file=path,
                details=ExternalDetails(),
            )
        return path


def _enum_details(enum: EnumDef) -> EnumDetails:
    return EnumDetails(values=[EnumValueInfo(name=v.name, number=v.number) for v in enum.values])


def _map_entry(symbol: Optional[Symbol]) -> Optional[MessageDef]:
    if symbol is not None and symbol.kind == MESSAGE and symbol.definition.is_map_entry:
        return symbol.definition
    return None


def _map_key_value(entry: MessageDef) -> Tuple[Optional[FieldDef], Optional[FieldDef]]:
    by_number = {f.number: f for f in entry.fields}
    return by_number.get(1), by_number.get(2)


def _external_package(path: str, record: Optional[FileRecord]) -> str:
    """Package of an External node, from its import path alone.

    A file present in the bundle keeps its declared package; otherwise the
    directory of the path stands in (`common/v1/money.proto` -> `common.v1`).
    """
    if record is not None:
        return record.package
    return posixpath.dirname(path).replace("/", ".")


def _group_packages(nodes: Sequence[Node]) -> List[Package]:
    packages: Dict[str, Package] = {}
    for node in nodes:
        package = packages.setdefault(node.package, Package(id=node.package))
        package.node_ids.append(node.id)
    return list(packages.values())
