from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from protoc_graph.formatter.text_formatter import count_graph
from protoc_graph.graph import GraphData, NodeType


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def format_markdown(graph: GraphData) -> str:
    """Render a diff-friendly Markdown report of the graph.

    Sections for services, messages, enums and external dependencies are
    omitted when empty.
    """
    env = _get_template_env()
    template = env.get_template("report.md.j2")

    return template.render(
        counts=count_graph(graph),
        services=graph.nodes_of_type(NodeType.SERVICE),
        messages=graph.nodes_of_type(NodeType.MESSAGE),
        enums=graph.nodes_of_type(NodeType.ENUM),
        externals=graph.nodes_of_type(NodeType.EXTERNAL),
    )
