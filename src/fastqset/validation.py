"""Fast pre-checks on FASTQ files that only look at size and magic bytes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .utils import GZIP_MAGIC, LZ4_FRAME_MAGIC, codec_for_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileIssue:
    path: str
    problem: str


def check_fastq_file(path: str | Path) -> Optional[FileIssue]:
    """Return a FileIssue when a file is missing, empty or has the wrong magic bytes.

    Nothing is decompressed; this catches truncated uploads and mislabelled
    extensions before a reader is opened.
    """
    p = Path(path)
    if not p.exists():
        return FileIssue(path=str(p), problem="file does not exist")
    if not p.is_file():
        return FileIssue(path=str(p), problem="not a regular file")
    size = p.stat().st_size
    if size == 0:
        return FileIssue(path=str(p), problem="file is empty")

    codec = codec_for_path(p)
    with open(p, "rb") as fh:
        head = fh.read(4)

    if codec == "gzip" and not head.startswith(GZIP_MAGIC):
        return FileIssue(path=str(p), problem="'.gz' extension but no gzip header")
    if codec == "lz4" and head != LZ4_FRAME_MAGIC:
        return FileIssue(path=str(p), problem="'.lz4' extension but no LZ4 frame header")
    if codec == "plain" and not head.startswith(b"@"):
        return FileIssue(path=str(p), problem="plain FASTQ does not start with '@'")
    return None
