"""Project a synchronized :class:`RawReadSet` onto a :class:`RegionLayout`.

Projection never copies read bytes. Each :class:`RegionSlice` is a start/stop
pair into the record owned by the read set, handed out as ``memoryview``
slices. When the reader advances, the read set is invalidated and every
slice derived from it raises :class:`~fastqset.errors.StaleReadSetError`;
use :meth:`RegionSlice.to_bytes` to keep data across steps.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .barcodes import Barcode, BarcodeWhitelist
from .errors import RegionOutOfBoundsError
from .layout import BARCODE, SAMPLE_INDEX, TRIM, UMI, RegionLayout
from .models import READ_TYPE_ORDER, GroupKey, RawReadSet, ReadGroup, ReadType
from .reader import SyncReadPairReader, normalize_header
from .sseq import SSeq
from .subsample import SubsampleFilter

logger = logging.getLogger(__name__)


class RegionSlice:
    """Non-owning view of one named region of one read."""

    __slots__ = ("read_type", "name", "start", "stop", "_raw")

    def __init__(self, raw: RawReadSet, read_type: ReadType, name: str, start: int, stop: int) -> None:
        self._raw = raw
        self.read_type = read_type
        self.name = name
        self.start = start
        self.stop = stop

    def __len__(self) -> int:
        return self.stop - self.start

    @property
    def seq(self) -> memoryview:
        self._raw.check_valid()
        return memoryview(self._raw.records[self.read_type].seq)[self.start : self.stop]

    @property
    def qual(self) -> memoryview:
        self._raw.check_valid()
        return memoryview(self._raw.records[self.read_type].qual)[self.start : self.stop]

    def to_bytes(self) -> Tuple[bytes, bytes]:
        """Copy out ``(sequence, quality)``; the copies outlive the step."""
        return bytes(self.seq), bytes(self.qual)

    def seq_str(self) -> str:
        return bytes(self.seq).decode("ascii")

    def qual_str(self) -> str:
        return bytes(self.qual).decode("ascii")

    def quality_scores(self) -> np.ndarray:
        """Phred scores (Phred+33 decoded) as an int16 array."""
        return np.frombuffer(self.qual, dtype=np.uint8).astype(np.int16) - 33

    def to_sseq(self) -> SSeq:
        return SSeq(self.seq)

    def has_n(self) -> bool:
        return b"N" in bytes(self.seq)

    def __repr__(self) -> str:
        return f"RegionSlice({self.read_type.value}:{self.name} [{self.start}:{self.stop}])"


class ReadPair:
    """Named regions of all reads of one molecule, for one reader step."""

    __slots__ = ("group_key", "regions", "_raw")

    def __init__(
        self,
        raw: RawReadSet,
        regions: Dict[ReadType, Dict[str, RegionSlice]],
        group_key: Optional[GroupKey] = None,
    ) -> None:
        self._raw = raw
        self.regions = regions
        self.group_key = group_key

    @property
    def index(self) -> int:
        return self._raw.index

    @property
    def raw(self) -> RawReadSet:
        return self._raw

    @property
    def valid(self) -> bool:
        return self._raw.valid

    @property
    def header(self) -> str:
        """Normalized read name shared by all reads of the pair."""
        first = self._raw.read_types[0]
        return normalize_header(self._raw.header(first))

    @property
    def read_types(self) -> List[ReadType]:
        return [rt for rt in READ_TYPE_ORDER if rt in self.regions]

    def region_names(self, read_type: ReadType) -> List[str]:
        return list(self.regions.get(read_type, {}))

    def get(self, read_type: ReadType, name: str) -> Optional[RegionSlice]:
        return self.regions.get(read_type, {}).get(name)

    def __getitem__(self, key: Tuple[ReadType, str]) -> RegionSlice:
        read_type, name = key
        try:
            return self.regions[read_type][name]
        except KeyError:
            raise KeyError(f"No region '{name}' in {read_type.value}") from None

    def seq(self, read_type: ReadType, name: str) -> memoryview:
        return self[read_type, name].seq

    def qual(self, read_type: ReadType, name: str) -> memoryview:
        return self[read_type, name].qual

    def find(self, name: str) -> Optional[RegionSlice]:
        """First region called ``name`` in ReadType order."""
        for rt in self.read_types:
            sl = self.regions[rt].get(name)
            if sl is not None:
                return sl
        return None

    def barcode(
        self,
        whitelist: BarcodeWhitelist,
        *,
        gem_group: int = 1,
        correct: bool = False,
    ) -> Optional[Barcode]:
        """Check the barcode region against ``whitelist``; None without a barcode region."""
        bc = self.find(BARCODE)
        if bc is None:
            return None
        return whitelist.check(bc.to_sseq(), gem_group=gem_group, correct=correct)

    def bam_tags(self, barcode: Optional[Barcode] = None) -> List[Tuple[str, str]]:
        """SAM auxiliary tags for the special regions present in this pair.

        RX/QX raw barcode, CB checked barcode (only when ``barcode`` is valid),
        TR/TQ bases trimmed from R1, UR/UY UMI, BC/QT sample index.
        """
        tags: List[Tuple[str, str]] = []
        bc = self.find(BARCODE)
        if bc is not None:
            tags += [("RX", bc.seq_str()), ("QX", bc.qual_str())]
        if barcode is not None and barcode.is_valid:
            tags.append(("CB", str(barcode)))
        trim = self.get(ReadType.R1, TRIM)
        if trim is not None:
            tags += [("TR", trim.seq_str()), ("TQ", trim.qual_str())]
        umi = self.find(UMI)
        if umi is not None:
            tags += [("UR", umi.seq_str()), ("UY", umi.qual_str())]
        si = self.find(SAMPLE_INDEX)
        if si is not None:
            tags += [("BC", si.seq_str()), ("QT", si.qual_str())]
        return tags

    def __repr__(self) -> str:
        parts = [f"{rt.value}:{','.join(self.regions[rt])}" for rt in self.read_types]
        return f"ReadPair(index={self.index}, {' '.join(parts)})"


def project(raw: RawReadSet, layout: RegionLayout, *, group_key: Optional[GroupKey] = None) -> ReadPair:
    """Slice every read present in both ``raw`` and ``layout`` into its regions.

    Raises
    ------
    RegionOutOfBoundsError
        A fixed region ends past the read, or a rest-of-read region starts past it.
    """
    raw.check_valid()
    regions: Dict[ReadType, Dict[str, RegionSlice]] = {}
    for rt in raw.read_types:
        if rt not in layout:
            continue
        read_len = len(raw[rt].seq)
        slices: Dict[str, RegionSlice] = {}
        for region in layout.regions(rt):
            if region.is_rest:
                if region.start > read_len:
                    raise RegionOutOfBoundsError(
                        f"Region {rt.value}:{region.name} starts at {region.start} but read "
                        f"{raw.index} is only {read_len} bases",
                        read_type=rt.value,
                        region=region.name,
                        read_length=read_len,
                        index=raw.index,
                    )
                stop = read_len
            else:
                stop = region.end
                assert stop is not None
                if stop > read_len:
                    raise RegionOutOfBoundsError(
                        f"Region {rt.value}:{region.name} [{region.start}:{stop}] exceeds read "
                        f"{raw.index} of length {read_len}",
                        read_type=rt.value,
                        region=region.name,
                        read_length=read_len,
                        index=raw.index,
                    )
            slices[region.name] = RegionSlice(raw, rt, region.name, region.start, stop)
        regions[rt] = slices
    return ReadPair(raw, regions, group_key=group_key)


def iter_read_pairs(
    group: ReadGroup,
    layout: RegionLayout,
    *,
    subsample: Optional[SubsampleFilter] = None,
) -> Iterator[ReadPair]:
    """Read, optionally subsample, and project one read group.

    Each ReadPair is valid until the next one is requested.
    """
    with SyncReadPairReader(group) as reader:
        for raw in reader:
            if subsample is not None and not subsample.accept_read_set(raw):
                continue
            yield project(raw, layout, group_key=group.key)
