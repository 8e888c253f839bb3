"""Pull-based FASTQ record parsing over plain, gzip and LZ4 files."""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path
from typing import IO, Callable, Iterator, Optional, Tuple

from .errors import MalformedRecordError
from .models import Record
from .utils import codec_for_path, open_maybe_compressed

logger = logging.getLogger(__name__)

_EOL = b"\r\n"


def parse_record(
    stream: IO[bytes],
    *,
    offset: int = 0,
    record_index: int = 0,
    path: str | Path = "<stream>",
) -> Tuple[Optional[Record], int]:
    """Read exactly one 4-line FASTQ record from a binary stream.

    Returns ``(record, bytes_consumed)``; ``(None, 0)`` at a clean end of
    stream. ``offset`` and ``record_index`` only label the record and any
    error raised for it.

    Raises
    ------
    MalformedRecordError
        Truncated record, bad header/separator line, or sequence and quality
        of different lengths.
    """
    header = stream.readline()
    if not header:
        return None, 0

    lines = [header]
    for _ in range(3):
        line = stream.readline()
        if not line:
            break
        lines.append(line)
    consumed = sum(len(x) for x in lines)

    if len(lines) < 4:
        raise MalformedRecordError(
            f"Truncated record: expected 4 lines, found {len(lines)}",
            path=path,
            offset=offset,
            record_index=record_index,
        )

    _, seq_line, sep_line, qual_line = lines
    if not header.startswith(b"@"):
        raise MalformedRecordError(
            "Header line does not start with '@'",
            path=path,
            offset=offset,
            record_index=record_index,
        )
    if not sep_line.startswith(b"+"):
        raise MalformedRecordError(
            "Separator line does not start with '+'",
            path=path,
            offset=offset,
            record_index=record_index,
        )

    seq = seq_line.rstrip(_EOL)
    qual = qual_line.rstrip(_EOL)
    if len(seq) != len(qual):
        raise MalformedRecordError(
            f"Sequence length {len(seq)} does not match quality length {len(qual)}",
            path=path,
            offset=offset,
            record_index=record_index,
        )

    try:
        name = header[1:].rstrip(_EOL).decode("ascii")
    except UnicodeDecodeError:
        raise MalformedRecordError(
            "Header is not ASCII text",
            path=path,
            offset=offset,
            record_index=record_index,
        ) from None

    return Record(header=name, seq=seq, qual=qual, offset=offset), consumed


class RecordStream:
    """Pull-based reader of FASTQ records from one (possibly compressed) file.

    ``offset`` counts bytes of the *decompressed* stream, so error positions
    can be located with ``zcat file | head -c``.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        opener: Callable[[str | Path, str], IO[bytes]] = open_maybe_compressed,
    ) -> None:
        self.path = Path(path)
        self._opener = opener
        self._fh: Optional[IO[bytes]] = None
        self.offset = 0
        self.records_read = 0
        self.exhausted = False

    @property
    def codec(self) -> str:
        return codec_for_path(self.path)

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def open(self) -> "RecordStream":
        if self._fh is None:
            self._fh = self._opener(self.path, "rb")
            logger.debug("Opened %s (%s)", self.path, self.codec)
        return self

    def next_record(self) -> Optional[Record]:
        """Return the next record, or None once the file is exhausted."""
        if self.exhausted:
            return None
        if self._fh is None:
            raise ValueError(f"Record stream for {self.path} is not open")

        # lz4.frame reports corrupt frames as RuntimeError.
        try:
            rec, consumed = parse_record(
                self._fh,
                offset=self.offset,
                record_index=self.records_read,
                path=self.path,
            )
        except (EOFError, gzip.BadGzipFile, zlib.error, RuntimeError) as e:
            raise MalformedRecordError(
                f"Compressed stream is truncated or corrupt: {e}",
                path=self.path,
                offset=self.offset,
                record_index=self.records_read,
            ) from e

        if rec is None:
            self.exhausted = True
            logger.debug("%s: end of stream after %d records", self.path, self.records_read)
            return None
        self.offset += consumed
        self.records_read += 1
        return rec

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "RecordStream":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def __iter__(self) -> Iterator[Record]:
        while True:
            rec = self.next_record()
            if rec is None:
                return
            yield rec


def open_record_stream(path: str | Path) -> RecordStream:
    return RecordStream(path).open()
