"""Exceptions raised while indexing and reading FASTQ read groups.

Parsing-stage conditions (a filename that fits no grammar, a group missing a
read type) are returned as data by :mod:`fastqset.index`. The exceptions here
cover the conditions that must stop the caller: a slot claimed twice, a
structurally invalid record, streams of one group that fall out of step, and
region rules that a read cannot satisfy.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence


class FastqSetError(Exception):
    """Base class for all fastqset errors."""


class DuplicateSlotError(FastqSetError):
    """Two files claim the same (sample, lane, chunk, read type) slot."""

    def __init__(self, message: str, *, key: tuple, paths: Sequence[str | Path]) -> None:
        super().__init__(message)
        self.key = key
        self.paths = [str(p) for p in paths]


class IncompleteGroupError(FastqSetError):
    """Raised on request when read groups lack mandatory read types."""

    def __init__(self, message: str, *, missing: Mapping[tuple, Sequence[str]]) -> None:
        super().__init__(message)
        self.missing = {k: list(v) for k, v in missing.items()}


class MalformedRecordError(FastqSetError):
    """A FASTQ record is structurally invalid or truncated."""

    def __init__(
        self,
        message: str,
        *,
        path: str | Path,
        offset: int,
        record_index: int,
    ) -> None:
        super().__init__(f"{message} (file {path}, record {record_index}, byte offset {offset})")
        self.path = str(path)
        self.offset = int(offset)
        self.record_index = int(record_index)


class UnevenStreamLengthsError(FastqSetError):
    """Some streams of a read group ended while others still had records."""

    def __init__(
        self,
        message: str,
        *,
        index: int,
        exhausted: Sequence[str],
        remaining: Sequence[str],
    ) -> None:
        super().__init__(message)
        self.index = int(index)
        self.exhausted = list(exhausted)
        self.remaining = list(remaining)


class DesynchronizedReadsError(FastqSetError):
    """Records at the same position carry different read names."""

    def __init__(self, message: str, *, index: int, headers: Mapping[str, str]) -> None:
        super().__init__(message)
        self.index = int(index)
        self.headers = dict(headers)


class RegionOutOfBoundsError(FastqSetError):
    """A configured region does not fit inside the read."""

    def __init__(
        self,
        message: str,
        *,
        read_type: str,
        region: str,
        read_length: int,
        index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.read_type = read_type
        self.region = region
        self.read_length = int(read_length)
        self.index = index


class StaleReadSetError(FastqSetError):
    """A region view was used after its reader advanced to the next record."""


class InvalidLayoutError(FastqSetError, ValueError):
    """A region layout violates ordering, overlap or naming rules."""


class InvalidWhitelistError(FastqSetError, ValueError):
    """A barcode whitelist line is not a valid barcode."""
