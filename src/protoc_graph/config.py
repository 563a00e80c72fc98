from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

# Import path prefixes for standard and build-tool-generated protos.
DEFAULT_EXTERNAL_PREFIXES: Tuple[str, ...] = ("google/", "buf/")

OUTPUT_FORMATS: Tuple[str, ...] = ("json", "summary", "markdown")

# Package id used for files without a package declaration
DEFAULT_PACKAGE = "default"


@dataclass(frozen=True)
class AnalyzerConfig:
    external_prefixes: Tuple[str, ...] = DEFAULT_EXTERNAL_PREFIXES
    output_format: str = "json"

    def __post_init__(self) -> None:
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unknown output format '{self.output_format}'. "
                f"Expected one of: {', '.join(OUTPUT_FORMATS)}"
            )

    def is_reserved(self, path: str) -> bool:
        """True if the import path is always treated as external."""
        return any(path.startswith(prefix) for prefix in self.external_prefixes)
