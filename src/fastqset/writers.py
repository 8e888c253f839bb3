from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional

import pysam
from tqdm import tqdm

from .barcodes import BarcodeWhitelist
from .filenames import render_filename
from .layout import SEQ
from .models import FilenameKey, RawReadSet, ReadGroup, ReadType
from .projection import ReadPair
from .utils import ensure_outdir, open_maybe_compressed

logger = logging.getLogger(__name__)

_FLAG_PAIRED = 0x1
_FLAG_UNMAPPED = 0x4
_FLAG_MATE_UNMAPPED = 0x8
_FLAG_READ1 = 0x40
_FLAG_READ2 = 0x80


def read_group_id(group: ReadGroup) -> str:
    return f"{group.sample}:{group.lane}:{group.chunk}"


class FastqGroupWriter:
    """Write the reads of one group as bcl2fastq-named FASTQ files.

    Interleaved input is written out as separate R1 and R2 files.
    """

    def __init__(
        self,
        outdir: str | Path,
        group: ReadGroup,
        *,
        extension: str = ".fastq.gz",
    ) -> None:
        self.outdir = Path(outdir)
        self.group = group
        self.extension = extension
        self.records_written = 0
        self.paths: Dict[ReadType, Path] = {}
        for rt in group.read_types:
            key = FilenameKey(sample=group.sample, lane=group.lane, read_type=rt, chunk=group.chunk)
            self.paths[rt] = self.outdir / render_filename(key, extension=extension)
        self._handles: Dict[ReadType, IO[bytes]] = {}
        self._stack: Optional[ExitStack] = None

    def open(self) -> "FastqGroupWriter":
        ensure_outdir(self.outdir)
        stack = ExitStack()
        try:
            for rt, path in self.paths.items():
                self._handles[rt] = stack.enter_context(open_maybe_compressed(path, "wb"))
        except BaseException:
            stack.close()
            self._handles = {}
            raise
        self._stack = stack
        return self

    def write(self, raw: RawReadSet) -> None:
        for rt, fh in self._handles.items():
            rec = raw[rt]
            fh.write(b"@" + rec.header.encode("ascii") + b"\n" + rec.seq + b"\n+\n" + rec.qual + b"\n")
        self.records_written += 1

    def close(self) -> None:
        if self._stack is not None:
            self._stack.close()
            self._stack = None
            self._handles = {}
            logger.info("Wrote %d record(s) to %s", self.records_written, self.outdir)

    def __enter__(self) -> "FastqGroupWriter":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()


def _unmapped_segment(
    name: str,
    seq: str,
    qual: str,
    flag: int,
    tags: List[tuple],
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    a.reference_id = -1
    a.reference_start = -1
    a.next_reference_id = -1
    a.next_reference_start = -1
    a.mapping_quality = 0
    a.query_qualities = pysam.qualitystring_to_array(qual)
    for tag, value in tags:
        a.set_tag(tag, value, value_type="Z")
    return a


def write_unaligned_bam(
    pairs: Iterable[ReadPair],
    out_bam: str | Path,
    *,
    group: ReadGroup,
    seq_region: str = SEQ,
    whitelist: Optional[BarcodeWhitelist] = None,
    gem_group: int = 1,
    correct_barcodes: bool = False,
    progress: bool = False,
) -> int:
    """Write read pairs as unmapped BAM records carrying barcode/UMI/trim tags.

    R1 and R2 use the ``seq_region`` of each read; a pair without R2 is
    written as a single unpaired record. With a ``whitelist``, pairs whose
    barcode is on it (after one-mismatch correction if ``correct_barcodes``)
    also get a ``CB`` tag of the form ``SEQ-<gem_group>``. Returns the number
    of pairs written.
    """
    rg = read_group_id(group)
    header = {
        "HD": {"VN": "1.6", "SO": "unsorted"},
        "RG": [{"ID": rg, "SM": group.sample, "PU": f"{group.sample}.{group.lane}.{group.chunk}"}],
    }

    it: Iterable[ReadPair] = pairs
    if progress:
        it = tqdm(it, unit="pair", desc=f"Writing {Path(out_bam).name}")

    n = 0
    n_valid = 0
    with pysam.AlignmentFile(str(out_bam), "wb", header=header) as bam:
        for pair in it:
            r1 = pair[ReadType.R1, seq_region]
            r2 = pair.get(ReadType.R2, seq_region)
            barcode = None
            if whitelist is not None:
                barcode = pair.barcode(whitelist, gem_group=gem_group, correct=correct_barcodes)
                if barcode is not None and barcode.is_valid:
                    n_valid += 1
            tags = pair.bam_tags(barcode) + [("RG", rg)]
            name = pair.header
            if r2 is None:
                bam.write(_unmapped_segment(name, r1.seq_str(), r1.qual_str(), _FLAG_UNMAPPED, tags))
            else:
                base = _FLAG_PAIRED | _FLAG_UNMAPPED | _FLAG_MATE_UNMAPPED
                bam.write(_unmapped_segment(name, r1.seq_str(), r1.qual_str(), base | _FLAG_READ1, tags))
                bam.write(_unmapped_segment(name, r2.seq_str(), r2.qual_str(), base | _FLAG_READ2, tags))
            n += 1

    logger.info("Wrote %d read pair(s) to %s", n, out_bam)
    if whitelist is not None:
        logger.info("%d of %d pair(s) have a whitelisted barcode", n_valid, n)
    return n
