"""GEM barcodes checked against a barcode whitelist.

A whitelist file holds one barcode per line; anything after the first
whitespace on a line is ignored, as are blank lines and ``#`` comments.
The file may be gzip or LZ4 compressed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .errors import InvalidWhitelistError
from .sseq import SSeq
from .utils import open_maybe_compressed

logger = logging.getLogger(__name__)

SeqLike = Union[SSeq, str, bytes]


@dataclass(frozen=True)
class Barcode:
    """A barcode sequence tagged with its GEM group and whitelist status."""

    gem_group: int
    seq: SSeq
    is_valid: bool

    def __str__(self) -> str:
        return f"{self.seq}-{self.gem_group}"


def load_whitelist(path: str | Path) -> Dict[SSeq, int]:
    """Map every whitelisted barcode to its 0-based position in the file."""
    barcodes: Dict[SSeq, int] = {}
    with open_maybe_compressed(path, "rb") as fh:
        for lineno, line in enumerate(fh, start=1):
            fields = line.split()
            if not fields or fields[0].startswith(b"#"):
                continue
            try:
                seq = SSeq(fields[0])
            except ValueError as e:
                raise InvalidWhitelistError(f"{path}:{lineno}: {e}") from None
            barcodes.setdefault(seq, len(barcodes))
    if not barcodes:
        raise InvalidWhitelistError(f"Whitelist {path} contains no barcodes")
    logger.info("Loaded %d whitelisted barcode(s) from %s", len(barcodes), path)
    return barcodes


def _as_sseq(seq: SeqLike) -> SSeq:
    return seq if isinstance(seq, SSeq) else SSeq(seq)


class BarcodeWhitelist:
    """Set of valid barcodes with optional one-mismatch correction."""

    def __init__(self, barcodes: Union[Dict[SSeq, int], Iterable[SeqLike]]) -> None:
        if isinstance(barcodes, dict):
            self._index = dict(barcodes)
        else:
            self._index = {}
            for bc in barcodes:
                self._index.setdefault(_as_sseq(bc), len(self._index))

    @classmethod
    def from_file(cls, path: str | Path) -> "BarcodeWhitelist":
        return cls(load_whitelist(path))

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, seq: object) -> bool:
        if not isinstance(seq, (SSeq, str, bytes)):
            return False
        return _as_sseq(seq) in self._index

    def index_of(self, seq: SeqLike) -> Optional[int]:
        return self._index.get(_as_sseq(seq))

    def correct(self, seq: SeqLike) -> Optional[SSeq]:
        """Return ``seq`` if whitelisted, else its only whitelisted one-mismatch neighbor.

        None when there is no such neighbor or more than one.
        """
        seq = _as_sseq(seq)
        if seq in self._index:
            return seq
        hits = {n for n in seq.one_hamming_neighbors() if n in self._index}
        if len(hits) == 1:
            return hits.pop()
        return None

    def check(self, seq: SeqLike, *, gem_group: int = 1, correct: bool = False) -> Barcode:
        """Build a :class:`Barcode`, optionally replacing ``seq`` by its correction."""
        seq = _as_sseq(seq)
        if correct:
            fixed = self.correct(seq)
            if fixed is not None:
                return Barcode(gem_group, fixed, True)
            return Barcode(gem_group, seq, False)
        return Barcode(gem_group, seq, seq in self._index)
