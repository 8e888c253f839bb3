from pathlib import Path

import pytest

from fastqset.filenames import is_fastq_name, parse_filename, render_filename
from fastqset.models import FilenameKey, NoMatch, ReadType


def test_parse_bcl2fastq_name():
    key = parse_filename("/data/run1/SampleA_S1_L001_R2_001.fastq.gz")
    assert isinstance(key, FilenameKey)
    assert key.sample == "SampleA"
    assert key.lane == 1
    assert key.chunk == 1
    assert key.read_type is ReadType.R2
    assert key.group_key == ("SampleA", 1, 1)


def test_sample_names_may_contain_underscores():
    key = parse_filename("my_sample_v2_S12_L004_I1_010.fastq")
    assert isinstance(key, FilenameKey)
    assert key.sample == "my_sample_v2"
    assert key.sample_index == "12"
    assert (key.lane, key.chunk) == (4, 10)


def test_leading_zeros_do_not_matter_for_equality():
    a = parse_filename("S_S1_L001_R1_001.fastq.gz")
    b = FilenameKey(sample="S", lane=1, read_type=ReadType.R1, chunk=1)
    assert a == b


@pytest.mark.parametrize(
    "name",
    [
        "SampleA_S1_L001_r1_001.fastq.gz",
        "SampleA_S1_L001_R3_001.fastq.gz",
        "SampleA_S1_L01_R1_001.fastq.gz",
        "SampleA_S1_L001_R1_001.fq.gz",
        "SampleA_S1_L001_R1_001.fastq.bz2",
        "SampleA_S1_L000_R1_001.fastq.gz",
        "SampleA_S1_L001_R1_000.fastq.gz",
        "_S1_L001_R1_001.fastq.gz",
        "",
        "README.txt",
    ],
)
def test_non_matching_names(name):
    assert isinstance(parse_filename(name), NoMatch)


def test_parse_is_total_for_odd_inputs():
    assert isinstance(parse_filename(b"SampleA_S1_L001_R1_001.fastq"), NoMatch)
    assert isinstance(parse_filename(None), NoMatch)  # type: ignore[arg-type]
    assert isinstance(parse_filename(Path("x") / "\udcff.fastq"), NoMatch)


def test_bcl_processor_names():
    ra = parse_filename("read-RA_si-ACGTACGT_lane-002-chunk-003.fastq.gz")
    assert isinstance(ra, FilenameKey)
    assert ra.read_type is ReadType.R1
    assert ra.interleaved
    assert ra.sample == "ACGTACGT"
    assert (ra.lane, ra.chunk) == (2, 3)

    i1 = parse_filename("read-I1_si-ACGTACGT_lane-002-chunk-003.fastq.lz4")
    assert isinstance(i1, FilenameKey)
    assert i1.read_type is ReadType.I1
    assert i1.group_key == ra.group_key


@pytest.mark.parametrize(
    "name",
    [
        "SampleA_S1_L001_R1_001.fastq.gz",
        "Sample_with_parts_S7_L008_I2_123.fastq",
        "SampleA_S1_L001_R1_001.fastq.lz4",
        "read-RA_si-GATTACA_lane-001-chunk-001.fastq.gz",
        "read-I2_si-GATTACA_lane-004-chunk-010.fastq",
    ],
)
def test_render_round_trip(name):
    key = parse_filename(name)
    assert isinstance(key, FilenameKey)
    ext = name[name.index(".fastq"):]
    assert render_filename(key, extension=ext) == name
    assert parse_filename(render_filename(key)) == key


def test_render_rejects_unrenderable_keys():
    with pytest.raises(ValueError):
        render_filename(FilenameKey(sample="S", lane=1000, read_type=ReadType.R1, chunk=1))
    with pytest.raises(ValueError):
        render_filename(FilenameKey(sample="a/b", lane=1, read_type=ReadType.R1, chunk=1))
    with pytest.raises(ValueError):
        render_filename(FilenameKey(sample="S", lane=1, read_type=ReadType.R1, chunk=1), extension=".fq")


def test_is_fastq_name():
    assert is_fastq_name("x.fastq")
    assert is_fastq_name("x.fastq.gz")
    assert is_fastq_name("x.fastq.lz4")
    assert not is_fastq_name("x.bam")
