from __future__ import annotations

import json
from typing import Dict

from protoc_graph.config import OUTPUT_FORMATS
from protoc_graph.graph import GraphData, NodeType


def count_graph(graph: GraphData) -> Dict[str, int]:
    """Count files, node kinds, edges and packages of a graph.

    Files are the distinct source files of service/message/enum nodes;
    external import paths are counted separately.
    """
    counts = {
        "files": 0,
        "services": 0,
        "messages": 0,
        "enums": 0,
        "externals": 0,
        "edges": len(graph.edges),
        "packages": len(graph.packages),
    }
    files = set()
    for node in graph.nodes:
        if node.type == NodeType.SERVICE:
            counts["services"] += 1
        elif node.type == NodeType.MESSAGE:
            counts["messages"] += 1
        elif node.type == NodeType.ENUM:
            counts["enums"] += 1
        elif node.type == NodeType.EXTERNAL:
            counts["externals"] += 1
            continue
        else:
            raise ValueError(f"Unhandled node type: {node.type!r}")
        files.add(node.file)
    counts["files"] = len(files)
    return counts


def format_json(graph: GraphData, indent: int = 2) -> str:
    return json.dumps(graph.to_dict(), indent=indent)


def format_summary(graph: GraphData) -> str:
    counts = count_graph(graph)
    lines = [
        f"Files: {counts['files']}",
        f"Services: {counts['services']}",
        f"Messages: {counts['messages']}",
        f"Enums: {counts['enums']}",
        f"External: {counts['externals']}",
        f"Dependencies: {counts['edges']}",
        f"Packages: {counts['packages']}",
    ]
    return "\n".join(lines) + "\n"


def render(graph: GraphData, output_format: str) -> str:
    """Render a graph in one of the supported output formats."""
    if output_format == "json":
        return format_json(graph) + "\n"
    if output_format == "summary":
        return format_summary(graph)
    if output_format == "markdown":
        from protoc_graph.formatter.markdown_formatter import format_markdown

        return format_markdown(graph)
    raise ValueError(
        f"Unknown output format '{output_format}'. "
        f"Expected one of: {', '.join(OUTPUT_FORMATS)}"
    )
