"""Filename grammars for demultiplexed FASTQ files.

Two conventions are recognised:

- bcl2fastq / BCL Convert::

    {sample}_S{n}_L{lane:03}_{R1|R2|I1|I2}_{chunk:03}.fastq[.gz]

- the older BCL processor layout, where ``RA`` files interleave R1 and R2::

    read-{RA|I1|I2}_si-{index}_lane-{lane:03}-chunk-{chunk:03}.fastq[.gz]

``.lz4`` is accepted in place of ``.gz`` for locally cached copies.

Parsing never raises: names outside both grammars come back as
:class:`~fastqset.models.NoMatch` so a directory scan can carry on.
"""

from __future__ import annotations

import os
import re
from typing import Union

from .models import FilenameKey, NoMatch, ReadType

_BCL2FASTQ = re.compile(
    r"^(?P<sample>.+)_S(?P<sample_index>\d+)_L(?P<lane>\d{3})_(?P<read>R1|R2|I1|I2)"
    r"_(?P<chunk>\d{3})\.fastq(?P<ext>\.gz|\.lz4)?$"
)

_BCL_PROCESSOR = re.compile(
    r"^read-(?P<read>RA|I1|I2)_si-(?P<sample>[^_/]+)_lane-(?P<lane>\d{3})"
    r"-chunk-(?P<chunk>\d{3})\.fastq(?P<ext>\.gz|\.lz4)?$"
)

FASTQ_EXTENSIONS = (".fastq", ".fastq.gz", ".fastq.lz4")

PathLikeStr = Union[str, "os.PathLike[str]"]


def _numbers(m: re.Match) -> tuple[int, int] | None:
    lane = int(m.group("lane"))
    chunk = int(m.group("chunk"))
    if lane < 1 or chunk < 1:
        return None
    return lane, chunk


def parse_filename(path: PathLikeStr) -> FilenameKey | NoMatch:
    """Parse one path into a :class:`FilenameKey`, or return :class:`NoMatch`.

    Only the basename is inspected. Tokens are case-sensitive (uppercase only).
    Lane and chunk must be >= 1; ``000`` fields do not match.
    """
    try:
        raw = os.fspath(path)
    except TypeError:
        return NoMatch(path=repr(path), reason="not a filesystem path")
    if not isinstance(raw, str):
        return NoMatch(path=repr(raw), reason="not a text path")

    name = os.path.basename(raw)

    m = _BCL2FASTQ.match(name)
    if m is not None:
        nums = _numbers(m)
        if nums is None:
            return NoMatch(path=raw, reason="lane and chunk numbers must be >= 1")
        lane, chunk = nums
        return FilenameKey(
            sample=m.group("sample"),
            lane=lane,
            read_type=ReadType(m.group("read")),
            chunk=chunk,
            sample_index=m.group("sample_index"),
            grammar="bcl2fastq",
        )

    m = _BCL_PROCESSOR.match(name)
    if m is not None:
        nums = _numbers(m)
        if nums is None:
            return NoMatch(path=raw, reason="lane and chunk numbers must be >= 1")
        lane, chunk = nums
        token = m.group("read")
        interleaved = token == "RA"
        return FilenameKey(
            sample=m.group("sample"),
            lane=lane,
            read_type=ReadType.R1 if interleaved else ReadType(token),
            chunk=chunk,
            sample_index=m.group("sample"),
            interleaved=interleaved,
            grammar="bcl_processor",
        )

    return NoMatch(path=raw)


def render_filename(key: FilenameKey, *, extension: str = ".fastq.gz") -> str:
    """Render the canonical filename for ``key`` in its own grammar.

    ``parse_filename(render_filename(key)) == key`` for every renderable key.
    """
    if extension not in FASTQ_EXTENSIONS:
        raise ValueError(f"Unsupported extension '{extension}'; expected one of {FASTQ_EXTENSIONS}")
    if not (1 <= key.lane <= 999 and 1 <= key.chunk <= 999):
        raise ValueError(f"Lane and chunk must be in 1..999 to render a filename: {key}")

    if key.grammar == "bcl_processor":
        if "_" in key.sample or "/" in key.sample:
            raise ValueError(f"Sample index '{key.sample}' cannot contain '_' or '/'")
        if key.interleaved:
            token = "RA"
        elif key.read_type.is_index:
            token = key.read_type.value
        else:
            raise ValueError("BCL processor names carry R1/R2 only as an interleaved RA file")
        return f"read-{token}_si-{key.sample}_lane-{key.lane:03d}-chunk-{key.chunk:03d}{extension}"

    if "/" in key.sample or not key.sample:
        raise ValueError(f"Invalid sample name for a filename: '{key.sample}'")
    if not key.sample_index.isdigit():
        raise ValueError(f"bcl2fastq sample number must be numeric, got '{key.sample_index}'")
    return (
        f"{key.sample}_S{key.sample_index}_L{key.lane:03d}_{key.read_type.value}"
        f"_{key.chunk:03d}{extension}"
    )


def is_fastq_name(path: PathLikeStr) -> bool:
    """Cheap extension test used when listing directories."""
    return os.fspath(path).endswith(FASTQ_EXTENSIONS)
