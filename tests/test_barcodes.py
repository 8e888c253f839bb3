import gzip
from pathlib import Path

import pytest

from fastqset.barcodes import Barcode, BarcodeWhitelist, load_whitelist
from fastqset.errors import InvalidWhitelistError
from fastqset.layout import Region, RegionLayout
from fastqset.models import RawReadSet, ReadType, Record
from fastqset.projection import project
from fastqset.sseq import SSeq


def _pair(r1: str):
    rec = Record(header="m1 1:N:0:1", seq=r1.encode(), qual=b"I" * len(r1))
    layout = RegionLayout({ReadType.R1: [Region("barcode", 0, 4), Region("seq", 4)]})
    return project(RawReadSet(0, {ReadType.R1: rec}), layout)


def test_load_whitelist_skips_comments_and_extra_columns(tmp_path: Path):
    path = tmp_path / "wl.txt.gz"
    with gzip.open(path, "wb") as f:
        f.write(b"# 10x whitelist\nACGT\tfoo\n\nTTTT\nACGT\n")
    wl = load_whitelist(path)
    assert wl == {SSeq("ACGT"): 0, SSeq("TTTT"): 1}


def test_load_whitelist_rejects_bad_barcode(tmp_path: Path):
    path = tmp_path / "wl.txt"
    path.write_text("ACGT\nAC-T\n")
    with pytest.raises(InvalidWhitelistError, match=":2:"):
        load_whitelist(path)


def test_load_whitelist_rejects_empty_file(tmp_path: Path):
    path = tmp_path / "wl.txt"
    path.write_text("# nothing\n")
    with pytest.raises(InvalidWhitelistError):
        load_whitelist(path)


def test_whitelist_membership_and_index():
    wl = BarcodeWhitelist(["ACGT", "TTTT"])
    assert len(wl) == 2
    assert "ACGT" in wl
    assert SSeq("TTTT") in wl
    assert "GGGG" not in wl
    assert 12 not in wl
    assert wl.index_of("TTTT") == 1
    assert wl.index_of("GGGG") is None


def test_correct_unique_neighbor():
    wl = BarcodeWhitelist(["ACGT"])
    assert wl.correct("ACGT") == SSeq("ACGT")
    assert wl.correct("ACGA") == SSeq("ACGT")
    assert wl.correct("ACGN") == SSeq("ACGT")
    assert wl.correct("AGGA") is None


def test_correct_ambiguous_neighbor_is_rejected():
    wl = BarcodeWhitelist(["AAAA", "AAAC"])
    assert wl.correct("AAAG") is None


def test_check_builds_barcode():
    wl = BarcodeWhitelist(["ACGT"])
    assert wl.check("ACGT", gem_group=2) == Barcode(2, SSeq("ACGT"), True)
    assert wl.check("ACGA") == Barcode(1, SSeq("ACGA"), False)
    assert wl.check("ACGA", correct=True) == Barcode(1, SSeq("ACGT"), True)
    assert str(Barcode(3, SSeq("ACGT"), True)) == "ACGT-3"


def test_read_pair_barcode_and_cb_tag():
    wl = BarcodeWhitelist(["ACGT"])
    pair = _pair("ACGTGGGG")
    bc = pair.barcode(wl, gem_group=2)
    assert bc == Barcode(2, SSeq("ACGT"), True)
    tags = dict(pair.bam_tags(bc))
    assert tags["CB"] == "ACGT-2"
    assert tags["RX"] == "ACGT"


def test_invalid_barcode_gets_no_cb_tag():
    wl = BarcodeWhitelist(["ACGT"])
    pair = _pair("TTTTGGGG")
    bc = pair.barcode(wl)
    assert bc is not None and not bc.is_valid
    assert "CB" not in dict(pair.bam_tags(bc))
    assert "CB" not in dict(pair.bam_tags())


def test_read_pair_without_barcode_region():
    rec = Record(header="m1", seq=b"ACGT", qual=b"IIII")
    pair = project(RawReadSet(0, {ReadType.R1: rec}), RegionLayout.whole_reads([ReadType.R1]))
    assert pair.barcode(BarcodeWhitelist(["ACGT"])) is None
