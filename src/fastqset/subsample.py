"""Deterministic, stateless subsampling of read pairs.

Each read pair is mapped to a uniform value in [0, 1) by hashing its key
(normalized read name or ordinal index) with keyed BLAKE2b, the seed being
the hash key. A pair is kept when that value is below the rate. Nothing is
counted or advanced, so re-reading the same data with the same seed keeps the
same pairs regardless of restart point or how the work is split across
processes, and lowering the rate keeps a subset of what a higher rate kept.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, TypeVar, Union

import numpy as np

from .models import RawReadSet
from .reader import normalize_header

logger = logging.getLogger(__name__)

Key = Union[int, str, bytes]
T = TypeVar("T")

_SEED_LIMIT = 1 << 64
_KEY_BY = ("header", "index")


def _check_seed(seed: int) -> int:
    if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)):
        raise TypeError(f"Seed must be an int, got {type(seed).__name__}")
    seed = int(seed)
    if not 0 <= seed < _SEED_LIMIT:
        raise ValueError(f"Seed must fit in 64 bits (0 <= seed < 2**64), got {seed}")
    return seed


def _check_rate(rate: float) -> float:
    rate = float(rate)
    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"Subsample rate must be in [0, 1], got {rate}")
    return rate


def _key_bytes(key: Key) -> bytes:
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
        # Ordinals live in their own namespace so 7 and "7" hash differently.
        return b"#" + str(int(key)).encode("ascii")
    raise TypeError(f"Subsample key must be int, str or bytes, got {type(key).__name__}")


def subsample_uniform(seed: int, key: Key) -> float:
    """Hash ``(seed, key)`` to a float uniformly distributed in [0, 1)."""
    h = hashlib.blake2b(_key_bytes(key), digest_size=8, key=_check_seed(seed).to_bytes(8, "little"))
    return (int.from_bytes(h.digest(), "little") >> 11) * (1.0 / (1 << 53))


def accept(seed: int, key: Key, rate: float) -> bool:
    """True if the pair identified by ``key`` is kept at ``rate``."""
    return subsample_uniform(seed, key) < _check_rate(rate)


def subsample_uniforms(seed: int, keys: Iterable[Key]) -> np.ndarray:
    """Uniform values for many keys; compare with several rates without re-hashing."""
    return np.fromiter((subsample_uniform(seed, k) for k in keys), dtype=np.float64)


def acceptance_mask(seed: int, keys: Iterable[Key], rate: float) -> np.ndarray:
    return subsample_uniforms(seed, keys) < _check_rate(rate)


def make_seed(entropy: Optional[int] = None) -> int:
    """Draw a 64-bit seed once per run (from OS entropy unless ``entropy`` is given)."""
    rng = np.random.default_rng(entropy)
    return int(rng.integers(0, _SEED_LIMIT - 1, dtype=np.uint64, endpoint=True))


@dataclass(frozen=True)
class SubsampleFilter:
    """Keep read pairs at ``rate`` using ``seed``.

    ``by="header"`` keys on the normalized read name, so the decision for a
    molecule does not depend on its position in the file. ``by="index"``
    keys on the ordinal of the read pair within its read group.
    """

    seed: int
    rate: float
    by: str = "header"

    def __post_init__(self) -> None:
        object.__setattr__(self, "seed", _check_seed(self.seed))
        object.__setattr__(self, "rate", _check_rate(self.rate))
        if self.by not in _KEY_BY:
            raise ValueError(f"Subsample key must be one of {_KEY_BY}, got '{self.by}'")

    def uniform(self, key: Key) -> float:
        return subsample_uniform(self.seed, key)

    def accept(self, key: Key) -> bool:
        return self.uniform(key) < self.rate

    def key_for(self, item: object) -> Key:
        """Subsample key of a RawReadSet or anything exposing one as ``.raw``."""
        raw = item if isinstance(item, RawReadSet) else getattr(item, "raw")
        if self.by == "index":
            return raw.index
        return normalize_header(raw.header(raw.read_types[0]))

    def accept_read_set(self, raw: RawReadSet) -> bool:
        return self.accept(self.key_for(raw))

    def filter(self, items: Iterable[T]) -> Iterator[T]:
        """Yield the kept RawReadSets or ReadPairs, preserving order."""
        for item in items:
            if self.accept(self.key_for(item)):
                yield item
