from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, Iterable, Tuple

from .filenames import render_filename
from .layout import RegionLayout
from .models import FilenameKey, ReadType
from .utils import ensure_outdir, open_maybe_compressed, write_json

ToyRecord = Tuple[str, str, str]


def write_fastq(path: str | Path, records: Iterable[ToyRecord]) -> int:
    """Write ``(header, seq, qual)`` records; the codec follows the extension."""
    n = 0
    with open_maybe_compressed(path, "wb") as fh:
        for header, seq, qual in records:
            fh.write(f"@{header}\n{seq}\n+\n{qual}\n".encode("ascii"))
            n += 1
    return n


def _random_read(rng: random.Random, length: int) -> Tuple[str, str]:
    seq = "".join(rng.choice("ACGT") for _ in range(length))
    qual = "".join(chr(33 + rng.randint(20, 40)) for _ in range(length))
    return seq, qual


def make_toy_data(
    *,
    outdir: str | Path,
    sample: str = "SampleA",
    n_reads: int = 20,
    read_length: int = 50,
    index_length: int = 8,
    with_index: bool = True,
    seed: int = 7,
) -> Dict[str, str]:
    """Create one synchronized read group plus a matching region layout.

    The outputs include:
    - ``{sample}_S1_L001_R1_001.fastq.gz`` and ``..._R2_001.fastq.gz``
    - ``..._I1_001.fastq.gz`` when ``with_index`` is set
    - layout.json (16 bp barcode at the start of R1)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)

    read_types = [ReadType.R1, ReadType.R2] + ([ReadType.I1] if with_index else [])
    per_type: Dict[ReadType, list] = {rt: [] for rt in read_types}
    mate = {ReadType.R1: "1", ReadType.R2: "2", ReadType.I1: "3"}

    sample_index = "".join(rng.choice("ACGT") for _ in range(index_length))
    for i in range(1, n_reads + 1):
        for rt in read_types:
            length = index_length if rt.is_index else read_length
            seq, qual = _random_read(rng, length)
            if rt.is_index:
                seq = sample_index
            per_type[rt].append((f"{sample}:{i}/{mate[rt]} 1:N:0:{sample_index}", seq, qual))

    summary: Dict[str, str] = {"outdir": str(outdir_p)}
    for rt in read_types:
        key = FilenameKey(sample=sample, lane=1, read_type=rt, chunk=1)
        path = outdir_p / render_filename(key)
        write_fastq(path, per_type[rt])
        summary[rt.value] = str(path)

    layout_path = outdir_p / "layout.json"
    write_json(layout_path, RegionLayout.dna(bc_in_read=1, bc_length=16).to_dict())
    summary["layout"] = str(layout_path)

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
