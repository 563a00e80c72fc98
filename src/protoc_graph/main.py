from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from protoc_graph.analyzer import AnalysisError
from protoc_graph.config import DEFAULT_EXTERNAL_PREFIXES, OUTPUT_FORMATS, AnalyzerConfig
from protoc_graph.formatter.text_formatter import render
from protoc_graph.parser.descriptor_decoder import DecodeError
from protoc_graph.pipeline import analyze_bytes


def _read_input(input_path: Optional[str]) -> bytes:
    """Read the whole descriptor bundle from a file, or stdin for None / '-'."""
    if input_path is None or input_path == "-":
        return sys.stdin.buffer.read()
    return Path(input_path).read_bytes()


def run(
    input_path: Optional[str],
    config: AnalyzerConfig,
    out_path: Optional[str] = None,
) -> int:
    """Main pipeline: read, decode, analyze, render. Returns the exit status."""
    try:
        data = _read_input(input_path)
    except OSError as e:
        print(f"FATAL: cannot read input: {e}", file=sys.stderr)
        return 1

    try:
        graph = analyze_bytes(data, config)
    except (DecodeError, AnalysisError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    output = render(graph, config.output_format)
    if out_path:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        Path(out_path).write_text(output, encoding="utf-8")
        print(f"Wrote {config.output_format} output to {out_path}", file=sys.stderr)
    else:
        sys.stdout.write(output)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Build a dependency graph from a binary protobuf descriptor set",
    )
    parser.add_argument(
        "input",
        nargs="?",
        default=None,
        help="Descriptor set file (protoc --descriptor_set_out / buf build -o). Reads stdin if omitted or '-'",
    )
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument(
        "--out",
        required=False,
        help="Write output to this file instead of stdout",
    )
    parser.add_argument(
        "--external-prefix",
        action="append",
        dest="external_prefixes",
        metavar="PREFIX",
        help=(
            "Import path prefix always treated as external; repeat to give several. "
            f"Replaces the default ({', '.join(DEFAULT_EXTERNAL_PREFIXES)})"
        ),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging, including the decoded file listing, on stderr",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = AnalyzerConfig(
        external_prefixes=tuple(args.external_prefixes or DEFAULT_EXTERNAL_PREFIXES),
        output_format=args.format,
    )
    sys.exit(run(args.input, config, out_path=args.out))


if __name__ == "__main__":
    main()
