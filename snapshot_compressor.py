"""Text-level compression of rendered accessibility snapshots."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple, Union

Transformation = Tuple[Pattern[str], str]

DEFAULT_TRANSFORMATIONS: List[Tuple[str, str]] = [
    (r"^listitem", "li"),
    (r"^link", "a"),
    (r"^text: (.*?)$", r'"\1"'),
    (r'^heading "([^"]+)" \[level=(\d+)\]', r'h\2 "\1"'),
]
DEFAULT_FILTERED_PREFIXES = ["/url:"]

_QUOTED_LINE = re.compile(r'^([^"]*)"([^"]+)"(.*)$')
_LIST_MARKER = re.compile(r"^- ")


@dataclass
class CompressionStats:
    lines_removed: int = 0
    transformations_applied: int = 0
    duplicates_removed: int = 0


@dataclass
class CompressionResult:
    compressed: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    stats: CompressionStats = field(default_factory=CompressionStats)


class SnapshotCompressor:
    """Shortens snapshot text without touching refs.

    Lines are trimmed and stripped of their ``- `` marker, low-value lines
    are dropped by prefix, verbose roles are rewritten by an ordered list of
    regex substitutions, and a quoted string identical to the previous
    line's is replaced with ``[same as above]``.
    """

    def __init__(
        self,
        transformations: Optional[Sequence[Tuple[Union[str, Pattern[str]], str]]] = None,
        filtered_prefixes: Optional[Sequence[str]] = None,
        enable_deduplication: bool = True,
    ):
        source = DEFAULT_TRANSFORMATIONS if transformations is None else transformations
        self.transformations: List[Transformation] = [
            (re.compile(pattern), replacement) for pattern, replacement in source
        ]
        self.filtered_prefixes: List[str] = list(
            DEFAULT_FILTERED_PREFIXES if filtered_prefixes is None else filtered_prefixes
        )
        self.enable_deduplication = enable_deduplication

    def compress(self, snapshot: str) -> str:
        return self.compress_with_metrics(snapshot).compressed

    def compress_with_metrics(self, snapshot: str) -> CompressionResult:
        lines = snapshot.split("\n")
        processed = [_LIST_MARKER.sub("", line.strip(), count=1) for line in lines]
        processed = [line for line in processed if not self._is_filtered(line)]
        lines_removed = len(lines) - len(processed)

        processed = [self._transform(line) for line in processed]
        processed = [line for line in processed if line]

        duplicates = 0
        if self.enable_deduplication:
            processed, duplicates = self._deduplicate(processed)

        compressed = "\n".join(processed)
        original_size = len(snapshot)
        return CompressionResult(
            compressed=compressed,
            original_size=original_size,
            compressed_size=len(compressed),
            compression_ratio=1 - len(compressed) / original_size if original_size > 0 else 0.0,
            stats=CompressionStats(
                lines_removed=lines_removed,
                transformations_applied=len(self.transformations),
                duplicates_removed=duplicates,
            ),
        )

    def add_transformation(self, pattern: Union[str, Pattern[str]], replacement: str) -> None:
        self.transformations.append((re.compile(pattern), replacement))

    def add_filtered_prefix(self, prefix: str) -> None:
        self.filtered_prefixes.append(prefix)

    def get_config(self) -> dict:
        return {
            "transformations": list(self.transformations),
            "filtered_prefixes": list(self.filtered_prefixes),
            "enable_deduplication": self.enable_deduplication,
        }

    def _is_filtered(self, line: str) -> bool:
        return any(line.startswith(prefix) for prefix in self.filtered_prefixes)

    def _transform(self, line: str) -> str:
        for pattern, replacement in self.transformations:
            line = pattern.sub(replacement, line)
        return line

    @staticmethod
    def _deduplicate(lines: List[str]) -> Tuple[List[str], int]:
        last_quoted = ""
        count = 0
        result = []
        for line in lines:
            match = _QUOTED_LINE.match(line)
            if not match:
                result.append(line)
                continue
            prefix, quoted, suffix = match.groups()
            if quoted == last_quoted:
                count += 1
                result.append(f"{prefix}[same as above]{suffix}")
                continue
            last_quoted = quoted
            result.append(line)
        return result, count
