from __future__ import annotations

import logging
from typing import Optional

from protoc_graph.analyzer import Analyzer
from protoc_graph.config import AnalyzerConfig
from protoc_graph.graph import GraphData
from protoc_graph.parser.descriptor_decoder import decode_descriptor_set, describe_files
from protoc_graph.symbol_table import build_symbol_table

logger = logging.getLogger(__name__)


def analyze_bytes(data: bytes, config: Optional[AnalyzerConfig] = None) -> GraphData:
    """Decode a descriptor bundle and build its dependency graph.

    Raises DecodeError for malformed or ambiguous bundles and AnalysisError
    for malformed type references. No partial graph is returned.
    """
    # 1. Decode
    files = decode_descriptor_set(data)
    if logger.isEnabledFor(logging.DEBUG):
        for line in describe_files(files):
            logger.debug("  %s", line)

    # 2. Register every declared type before resolving anything
    table = build_symbol_table(files)

    # 3. Resolve references and build nodes/edges/packages
    graph = Analyzer(config).analyze(files, table)
    logger.debug("Pipeline produced %d node(s), %d edge(s)", len(graph.nodes), len(graph.edges))
    return graph
