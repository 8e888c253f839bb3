"""Small file helpers: codec detection, compressed open, output dirs and JSON."""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import IO, Any

import lz4.frame

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
LZ4_FRAME_MAGIC = b"\x04\x22\x4d\x18"


def codec_for_path(path: str | Path) -> str:
    """Return the codec implied by the file extension: 'gzip', 'lz4' or 'plain'."""
    p = str(path)
    if p.endswith(".gz"):
        return "gzip"
    if p.endswith(".lz4"):
        return "lz4"
    return "plain"


def open_maybe_compressed(path: str | Path, mode: str = "rb") -> IO:
    """Open a plain, gzip or LZ4-frame file according to its extension."""
    codec = codec_for_path(path)
    p = str(path)
    if codec == "gzip":
        return gzip.open(p, mode)
    if codec == "lz4":
        return lz4.frame.open(p, mode)
    return open(p, mode)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
