"""Global symbol table over every type declared in a descriptor bundle.

Nested declarations are flattened into one table keyed by dotted
fully-qualified name (``pkg.Outer.Inner``). The table is complete before any
reference is resolved, so resolution does not depend on file order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Union

from protoc_graph.models import ENUM, MESSAGE, EnumDef, FileRecord, MessageDef, ServiceDef
from protoc_graph.parser.descriptor_decoder import DecodeError

logger = logging.getLogger(__name__)

SERVICE = "service"

Definition = Union[MessageDef, EnumDef, ServiceDef]


@dataclass
class Symbol:
    name: str
    kind: str
    definition: Definition
    file: FileRecord


class SymbolTable:
    """Fully-qualified name -> Symbol, in registration order."""

    def __init__(self) -> None:
        self._symbols: Dict[str, Symbol] = {}
        self._files: Dict[str, FileRecord] = {}

    # -- building --

    def add_file(self, record: FileRecord) -> None:
        if record.path in self._files:
            raise DecodeError(f"Duplicate file '{record.path}' in descriptor bundle")
        self._files[record.path] = record

    def register(self, definition: Definition, kind: str, record: FileRecord) -> None:
        existing = self._symbols.get(definition.name)
        if existing is not None:
            raise DecodeError(
                f"Duplicate type '{definition.name}' declared in "
                f"'{existing.file.path}' and '{record.path}'"
            )
        self._symbols[definition.name] = Symbol(
            name=definition.name,
            kind=kind,
            definition=definition,
            file=record,
        )

    # -- lookup --

    def lookup(self, name: str) -> Optional[Symbol]:
        """Exact lookup by fully-qualified name; a leading dot is ignored."""
        return self._symbols.get(name.lstrip("."))

    def resolve(self, reference: str, scope: str = "") -> Optional[Symbol]:
        """Resolve a type reference the way protoc scopes names.

        A leading dot makes the reference absolute. Otherwise the reference is
        tried inside ``scope`` and then in each enclosing scope, innermost
        first, ending at the root.
        """
        if reference.startswith("."):
            return self.lookup(reference)

        parts = scope.split(".") if scope else []
        while True:
            candidate = ".".join(parts + [reference])
            symbol = self._symbols.get(candidate)
            if symbol is not None:
                return symbol
            if not parts:
                return None
            parts.pop()

    def file(self, path: str) -> Optional[FileRecord]:
        return self._files.get(path)

    @property
    def file_paths(self) -> List[str]:
        return list(self._files)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._symbols)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())


def build_symbol_table(files: Sequence[FileRecord]) -> SymbolTable:
    """Register every message, enum and service across all files.

    Raises DecodeError when a fully-qualified name (or a file path) is
    declared twice.
    """
    table = SymbolTable()
    for record in files:
        table.add_file(record)
        for top in record.messages:
            for message in top.walk():
                table.register(message, MESSAGE, record)
                for enum in message.nested_enums:
                    table.register(enum, ENUM, record)
        for enum in record.enums:
            table.register(enum, ENUM, record)
        for service in record.services:
            table.register(service, SERVICE, record)

    logger.debug("Registered %d symbol(s) from %d file(s)", len(table), len(files))
    return table
