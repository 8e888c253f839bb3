"""Short DNA sequences (barcodes, UMIs) restricted to ``ACGTN``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

MAX_SSEQ_LENGTH = 23
_ACGTN = b"ACGTN"
_ACGT = b"ACGT"
_TWO_BIT = {ord("A"): 0, ord("C"): 1, ord("G"): 2, ord("T"): 3}


@dataclass(frozen=True, order=True)
class SSeq:
    """Up to 23 bases of uppercase ``ACGTN``; ordered and hashed by content."""

    seq: bytes

    def __init__(self, seq: Union[str, bytes, bytearray, memoryview]) -> None:
        data = seq.encode("ascii") if isinstance(seq, str) else bytes(seq)
        if len(data) > MAX_SSEQ_LENGTH:
            raise ValueError(f"SSeq holds at most {MAX_SSEQ_LENGTH} bases, got {len(data)}")
        for i, c in enumerate(data):
            if c not in _ACGTN:
                raise ValueError(f"Non ACGTN character {chr(c)!r} at position {i}")
        object.__setattr__(self, "seq", data)

    def __len__(self) -> int:
        return len(self.seq)

    def __str__(self) -> str:
        return self.seq.decode("ascii")

    def has_n(self) -> bool:
        return b"N" in self.seq

    def is_homopolymer(self) -> bool:
        if not self.seq:
            raise ValueError("Empty sequence has no homopolymer status")
        return self.seq.count(self.seq[:1]) == len(self.seq)

    def has_homopolymer_suffix(self, base: str, n: int) -> bool:
        """True if the last ``n`` bases are all ``base``."""
        return len(self.seq) >= n and self.seq.endswith(base.encode("ascii") * n)

    def has_polyt_suffix(self, n: int) -> bool:
        return self.has_homopolymer_suffix("T", n)

    def encode_2bit(self) -> int:
        """Pack up to 16 ACGT bases into an int (A=0, C=1, G=2, T=3, first base most significant)."""
        if len(self.seq) > 16:
            raise ValueError("2-bit encoding supports at most 16 bases")
        value = 0
        for c in self.seq:
            try:
                value = (value << 2) | _TWO_BIT[c]
            except KeyError:
                raise ValueError(f"Cannot 2-bit encode non-ACGT sequence {self}") from None
        return value

    def one_hamming_neighbors(self, *, skip_n: bool = False) -> Iterator["SSeq"]:
        """Yield every sequence one substitution away.

        N positions are either mutated to each of ACGT or skipped (``skip_n``).
        """
        for pos, base in enumerate(self.seq):
            if skip_n and base == ord("N"):
                continue
            for c in _ACGT:
                if c != base:
                    yield SSeq(self.seq[:pos] + bytes((c,)) + self.seq[pos + 1 :])
