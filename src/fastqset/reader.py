"""Lockstep reading of all FASTQ files of one read group.

Every call to :meth:`SyncReadPairReader.next_read_set` takes exactly one
record from every file of the group. The reader never skips ahead to
re-align files: a file that ends early or a read name that differs between
files puts the reader in the ``FAILED`` state and the same error is raised
on every later call. Silent truncation (as ``zip`` would do) is never an
outcome.

States::

    UNOPENED --open--> READY --next--> READY
                         |--next at end of all files--> EXHAUSTED
                         |--validation error----------> FAILED
    any state --close--> CLOSED (FAILED and EXHAUSTED stay as they are)
"""

from __future__ import annotations

import enum
import logging
import re
from contextlib import ExitStack
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import DesynchronizedReadsError, UnevenStreamLengthsError
from .index import sorted_members
from .models import READ_TYPE_ORDER, RawReadSet, ReadGroup, ReadType, Record
from .records import RecordStream

logger = logging.getLogger(__name__)

# Illumina-style mate suffix on the read name: /1, /2 (and /3 for some index reads).
_MATE_SUFFIX = re.compile(r"/[123]$")


def normalize_header(header: str) -> str:
    """Reduce a FASTQ header to the part shared by all reads of one molecule.

    Drops a leading '@', everything after the first whitespace (the comment,
    e.g. ``1:N:0:ACGT``) and a trailing ``/1``, ``/2`` or ``/3``.
    """
    h = header[1:] if header.startswith("@") else header
    parts = h.split(None, 1)
    if not parts:
        return ""
    return _MATE_SUFFIX.sub("", parts[0])


class ReaderState(enum.Enum):
    UNOPENED = "unopened"
    READY = "ready"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CLOSED = "closed"


class SyncReadPairReader:
    """Read the files of a :class:`ReadGroup` in lockstep.

    Use as a context manager or iterator::

        with SyncReadPairReader(group) as reader:
            for read_set in reader:
                ...

    File handles are released when all files end, on the first error, and
    on :meth:`close` (which is safe to call in any state).

    A :class:`RawReadSet` is only valid until the next step; the reader
    invalidates it when it advances.
    """

    def __init__(self, group: ReadGroup) -> None:
        self.group = group
        self.state = ReaderState.UNOPENED
        self.records_read = 0
        self._streams: List[Tuple[ReadType, RecordStream]] = []
        self._stack: Optional[ExitStack] = None
        self._error: Optional[Exception] = None
        self._current: Optional[RawReadSet] = None

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def open(self) -> "SyncReadPairReader":
        if self.state is ReaderState.READY:
            return self
        if self.state is not ReaderState.UNOPENED:
            raise ValueError(f"Cannot open a reader in state {self.state.value}")

        stack = ExitStack()
        try:
            for rt, path in sorted_members(self.group):
                stream = stack.enter_context(RecordStream(path))
                self._streams.append((rt, stream))
        except BaseException:
            stack.close()
            self._streams = []
            raise
        self._stack = stack
        self.state = ReaderState.READY
        logger.info("Opened read group %s", self.group.describe())
        return self

    def _release(self) -> None:
        if self._stack is not None:
            self._stack.close()
            self._stack = None

    def _fail(self, err: Exception) -> None:
        self._error = err
        self.state = ReaderState.FAILED
        self._release()
        logger.error("Read group %s failed at record %d: %s", self.group.key, self.records_read, err)

    def _stream_label(self, rt: ReadType, stream: RecordStream) -> str:
        return f"{rt.value} ({stream.path.name})"

    def _advance(self) -> Tuple[Dict[ReadType, Record], List[str]]:
        """Pull one record from every stream; return records and labels of ended streams."""
        got: Dict[ReadType, Record] = {}
        ended: List[str] = []
        for rt, stream in self._streams:
            rec = stream.next_record()
            if rec is None:
                ended.append(self._stream_label(rt, stream))
            else:
                got[rt] = rec
            if rt is ReadType.R1 and self.group.r1_interleaved:
                mate = stream.next_record() if rec is not None else None
                if mate is None:
                    ended.append(f"R2 (interleaved in {stream.path.name})")
                else:
                    got[ReadType.R2] = mate
        return got, ended

    def _check_headers(self, index: int, got: Dict[ReadType, Record]) -> None:
        ordered = [rt for rt in READ_TYPE_ORDER if rt in got]
        ref_rt = ordered[0]
        ref = normalize_header(got[ref_rt].header)
        for rt in ordered[1:]:
            if normalize_header(got[rt].header) != ref:
                headers = {r.value: got[r].header for r in ordered}
                detail = ", ".join(f"{k}='{v}'" for k, v in headers.items())
                raise DesynchronizedReadsError(
                    f"Read names disagree at record {index} of read group "
                    f"{self.group.describe()}: {detail}",
                    index=index,
                    headers=headers,
                )

    def next_read_set(self) -> Optional[RawReadSet]:
        """Advance every stream by one record.

        Returns None once all streams ended together (end of read group).

        Raises
        ------
        UnevenStreamLengthsError, DesynchronizedReadsError, MalformedRecordError
            The reader enters FAILED and re-raises the same error afterwards.
            Any other error raised while reading (an OSError, say) does too.
        """
        if self.state is ReaderState.FAILED:
            assert self._error is not None
            raise self._error
        if self.state is ReaderState.CLOSED:
            raise ValueError("Reader is closed")
        if self.state is ReaderState.EXHAUSTED:
            return None
        if self.state is ReaderState.UNOPENED:
            self.open()

        if self._current is not None:
            self._current.invalidate()
            self._current = None

        index = self.records_read
        try:
            got, ended = self._advance()
            if ended and got:
                remaining = [rt.value for rt in READ_TYPE_ORDER if rt in got]
                raise UnevenStreamLengthsError(
                    f"Files of read group {self.group.describe()} have different lengths: "
                    f"{', '.join(ended)} ended at record {index} while "
                    f"{', '.join(remaining)} still had records",
                    index=index,
                    exhausted=ended,
                    remaining=remaining,
                )
            if ended:
                self.state = ReaderState.EXHAUSTED
                self._release()
                logger.info("Read group %s: %d record(s) read", self.group.key, self.records_read)
                return None
            self._check_headers(index, got)
        except Exception as e:
            # Some streams may already have advanced; the group cannot be resumed.
            self._fail(e)
            raise

        self.records_read += 1
        self._current = RawReadSet(index, got)
        return self._current

    def close(self) -> None:
        if self._current is not None:
            self._current.invalidate()
            self._current = None
        self._release()
        if self.state in (ReaderState.UNOPENED, ReaderState.READY):
            self.state = ReaderState.CLOSED

    def __enter__(self) -> "SyncReadPairReader":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def __iter__(self) -> Iterator[RawReadSet]:
        return self

    def __next__(self) -> RawReadSet:
        rs = self.next_read_set()
        if rs is None:
            raise StopIteration
        return rs


def open_reader(group: ReadGroup) -> SyncReadPairReader:
    return SyncReadPairReader(group).open()


def iter_read_sets(groups: Iterable[ReadGroup]) -> Iterator[RawReadSet]:
    """Read several groups (e.g. the chunks of one lane) one after the other."""
    for group in groups:
        with SyncReadPairReader(group) as reader:
            yield from reader
