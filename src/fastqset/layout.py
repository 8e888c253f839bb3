"""Region layouts: which bases of each read are barcode, UMI, trimmed or insert.

A layout maps each :class:`ReadType` to an ordered tuple of :class:`Region`.
Every region has a fixed start offset; its length is either fixed or
:data:`REST` (to the end of the read, resolved per read at projection time).

Example JSON accepted by :func:`load_layout`::

    {
      "R1": [
        {"name": "barcode", "start": 0, "length": 16},
        {"name": "umi", "start": 16, "length": 12},
        {"name": "seq", "start": 28, "length": "rest"}
      ],
      "R2": [{"name": "seq", "start": 0, "length": "rest"}]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import InvalidLayoutError
from .models import READ_TYPE_ORDER, ReadType

logger = logging.getLogger(__name__)

BARCODE = "barcode"
UMI = "umi"
TRIM = "trim"
SEQ = "seq"
SAMPLE_INDEX = "sample_index"


class _RestOfRead:
    _instance: Optional["_RestOfRead"] = None

    def __new__(cls) -> "_RestOfRead":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REST"


REST = _RestOfRead()

Length = Union[int, _RestOfRead]


@dataclass(frozen=True)
class Region:
    """A named slice ``[start, start + length)`` of one read."""

    name: str
    start: int
    length: Length = REST

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidLayoutError("Region name must not be empty")
        if isinstance(self.start, bool) or not isinstance(self.start, int) or self.start < 0:
            raise InvalidLayoutError(f"Region '{self.name}': start must be an int >= 0, got {self.start!r}")
        if self.length is not REST:
            if isinstance(self.length, bool) or not isinstance(self.length, int) or self.length <= 0:
                raise InvalidLayoutError(
                    f"Region '{self.name}': length must be a positive int or REST, got {self.length!r}"
                )

    @property
    def is_rest(self) -> bool:
        return self.length is REST

    @property
    def end(self) -> Optional[int]:
        """Exclusive end offset, or None for a rest-of-read region."""
        if self.length is REST:
            return None
        return self.start + int(self.length)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "start": self.start, "length": "rest" if self.is_rest else self.length}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Region":
        try:
            name = str(data["name"])
        except KeyError:
            raise InvalidLayoutError(f"Region entry without a name: {dict(data)}") from None
        length = data.get("length", "rest")
        if length is None or length == "rest":
            length = REST
        return cls(name=name, start=data.get("start", 0), length=length)


def _validate(read_type: ReadType, regions: Tuple[Region, ...]) -> None:
    names = set()
    prev: Optional[Region] = None
    for r in regions:
        if r.name in names:
            raise InvalidLayoutError(f"{read_type.value}: duplicate region name '{r.name}'")
        names.add(r.name)
        if prev is not None:
            if prev.is_rest:
                raise InvalidLayoutError(
                    f"{read_type.value}: region '{r.name}' follows rest-of-read region '{prev.name}'"
                )
            assert prev.end is not None
            if r.start < prev.end:
                raise InvalidLayoutError(
                    f"{read_type.value}: region '{r.name}' (start {r.start}) overlaps "
                    f"'{prev.name}' (end {prev.end}) or is out of order"
                )
        prev = r


class RegionLayout:
    """Per-read-type region lists, validated at construction."""

    def __init__(self, regions: Mapping[Union[ReadType, str], Iterable[Region]]) -> None:
        self._regions: Dict[ReadType, Tuple[Region, ...]] = {}
        for key, regs in regions.items():
            rt = key if isinstance(key, ReadType) else ReadType.parse(str(key))
            tup = tuple(regs)
            _validate(rt, tup)
            self._regions[rt] = tup

    @property
    def read_types(self) -> List[ReadType]:
        return [rt for rt in READ_TYPE_ORDER if rt in self._regions]

    def regions(self, read_type: ReadType) -> Tuple[Region, ...]:
        return self._regions.get(read_type, ())

    def region(self, read_type: ReadType, name: str) -> Region:
        for r in self.regions(read_type):
            if r.name == name:
                return r
        raise KeyError(f"No region '{name}' in {read_type.value}")

    def __contains__(self, read_type: object) -> bool:
        return read_type in self._regions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegionLayout):
            return NotImplemented
        return self._regions == other._regions

    def __repr__(self) -> str:
        return f"RegionLayout({self.to_dict()!r})"

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {rt.value: [r.to_dict() for r in self._regions[rt]] for rt in self.read_types}

    @classmethod
    def from_dict(cls, data: Mapping[str, Iterable[Mapping[str, Any]]]) -> "RegionLayout":
        return cls({key: [Region.from_dict(r) for r in regs] for key, regs in data.items()})

    @classmethod
    def whole_reads(cls, read_types: Iterable[ReadType] = READ_TYPE_ORDER) -> "RegionLayout":
        """One rest-of-read ``seq`` region per read type."""
        return cls({rt: [Region(SEQ, 0)] for rt in read_types})

    @classmethod
    def dna(
        cls,
        *,
        bc_in_read: Optional[int] = 1,
        bc_length: Optional[int] = 16,
        trim_r1: int = 0,
        trim_r2: int = 0,
    ) -> "RegionLayout":
        """Layout for GEM-barcoded DNA libraries.

        The barcode is the first ``bc_length`` bases of R1 (``bc_in_read=1``)
        or the I2 read (``bc_in_read=None``; whole read when ``bc_length`` is
        None). ``trim_r1`` bases after the R1 barcode and the first ``trim_r2``
        bases of R2 are exposed as ``trim`` and excluded from ``seq``. I1 is
        exposed as ``sample_index``.
        """
        if trim_r1 < 0 or trim_r2 < 0:
            raise InvalidLayoutError("trim_r1 and trim_r2 must be >= 0")

        r1: List[Region] = []
        i2: List[Region] = []
        if bc_in_read == 1:
            length = 16 if bc_length is None else bc_length
            r1.append(Region(BARCODE, 0, length))
            r1_start = length
        elif bc_in_read is None:
            i2.append(Region(BARCODE, 0, REST if bc_length is None else bc_length))
            r1_start = 0
        else:
            raise InvalidLayoutError(f"Unsupported barcode read {bc_in_read}; expected 1 or None (I2)")

        if trim_r1:
            r1.append(Region(TRIM, r1_start, trim_r1))
        r1.append(Region(SEQ, r1_start + trim_r1))

        r2: List[Region] = []
        if trim_r2:
            r2.append(Region(TRIM, 0, trim_r2))
        r2.append(Region(SEQ, trim_r2))

        regions: Dict[ReadType, List[Region]] = {
            ReadType.R1: r1,
            ReadType.R2: r2,
            ReadType.I1: [Region(SAMPLE_INDEX, 0)],
        }
        if i2:
            regions[ReadType.I2] = i2
        return cls(regions)


def load_layout(path: str | Path) -> RegionLayout:
    """Load a layout from a JSON file (see module docstring for the format)."""
    with open(path, "rt", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise InvalidLayoutError(f"Layout file {path} must contain a JSON object")
    layout = RegionLayout.from_dict(data)
    logger.info("Loaded region layout from %s: %s", path, layout.to_dict())
    return layout
