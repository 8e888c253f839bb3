"""Shared value types: read types, group keys, records and read sets."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import StaleReadSetError


class ReadType(enum.Enum):
    """Which physical read of a molecule a FASTQ file holds.

    Declaration order is the output order used everywhere (R1, R2, I1, I2).
    """

    R1 = "R1"
    R2 = "R2"
    I1 = "I1"
    I2 = "I2"

    @property
    def is_index(self) -> bool:
        return self in (ReadType.I1, ReadType.I2)

    @classmethod
    def parse(cls, token: str) -> "ReadType":
        try:
            return cls(token)
        except ValueError:
            raise ValueError(
                f"Unknown read type '{token}'; expected one of {[r.value for r in cls]}"
            ) from None


READ_TYPE_ORDER: Tuple[ReadType, ...] = tuple(ReadType)

# (sample, lane, chunk)
GroupKey = Tuple[str, int, int]


@dataclass(frozen=True)
class FilenameKey:
    """Structured description of one FASTQ filename.

    Attributes
    ----------
    sample:
        Sample name (bcl2fastq) or sample index sequence (BCL processor).
    lane:
        Lane number, >= 1. ``L001`` and lane 1 are the same lane.
    read_type:
        Read held by the file.
    chunk:
        Chunk number, >= 1.
    sample_index:
        ``S<n>`` number or ``si-`` sequence as written in the name. Kept for
        re-rendering; not part of equality.
    interleaved:
        True for ``RA`` files holding R1 and R2 records alternately.
    grammar:
        ``"bcl2fastq"`` or ``"bcl_processor"``.
    """

    sample: str
    lane: int
    read_type: ReadType
    chunk: int
    sample_index: str = field(default="1", compare=False)
    interleaved: bool = field(default=False, compare=False)
    grammar: str = field(default="bcl2fastq", compare=False)

    @property
    def group_key(self) -> GroupKey:
        return (self.sample, self.lane, self.chunk)


@dataclass(frozen=True)
class NoMatch:
    """Filename that fits none of the known grammars."""

    path: str
    reason: str = "filename does not match a known FASTQ naming grammar"


@dataclass(frozen=True)
class ReadGroup:
    """The FASTQ files of one sample/lane/chunk."""

    sample: str
    lane: int
    chunk: int
    members: Mapping[ReadType, Path]
    r1_interleaved: bool = False

    @property
    def key(self) -> GroupKey:
        return (self.sample, self.lane, self.chunk)

    @property
    def read_types(self) -> List[ReadType]:
        """Read types delivered by this group, in ReadType order."""
        present = set(self.members)
        if self.r1_interleaved and ReadType.R1 in present:
            present.add(ReadType.R2)
        return [rt for rt in READ_TYPE_ORDER if rt in present]

    def path(self, read_type: ReadType) -> Optional[Path]:
        return self.members.get(read_type)

    def describe(self) -> str:
        types = ",".join(rt.value for rt in self.read_types)
        suffix = " (R1 interleaved)" if self.r1_interleaved else ""
        return f"{self.sample} lane {self.lane} chunk {self.chunk}: {types}{suffix}"


@dataclass(frozen=True)
class Record:
    """One FASTQ record; ``header`` excludes the leading '@'."""

    header: str
    seq: bytes
    qual: bytes
    offset: int = 0

    def __len__(self) -> int:
        return len(self.seq)


class RawReadSet:
    """One synchronized step across all streams of a read group.

    The set owns the bytes of the step. Region views handed out by
    :func:`fastqset.projection.project` borrow from it and stop working once
    the reader advances (:meth:`invalidate`).
    """

    __slots__ = ("index", "records", "_valid")

    def __init__(self, index: int, records: Dict[ReadType, Record]) -> None:
        self.index = index
        self.records = records
        self._valid = True

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def check_valid(self) -> None:
        if not self._valid:
            raise StaleReadSetError(
                f"Read set {self.index} was invalidated when the reader advanced; "
                "copy region data with to_bytes() to keep it."
            )

    @property
    def read_types(self) -> List[ReadType]:
        return [rt for rt in READ_TYPE_ORDER if rt in self.records]

    def __contains__(self, read_type: object) -> bool:
        return read_type in self.records

    def __getitem__(self, read_type: ReadType) -> Record:
        return self.records[read_type]

    def header(self, read_type: ReadType = ReadType.R1) -> str:
        return self.records[read_type].header

    def __repr__(self) -> str:
        types = ",".join(rt.value for rt in self.read_types)
        return f"RawReadSet(index={self.index}, read_types={types}, valid={self._valid})"
