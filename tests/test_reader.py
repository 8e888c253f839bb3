import random
from pathlib import Path
from typing import List, Tuple

import lz4.frame
import pytest

from fastqset.errors import DesynchronizedReadsError, MalformedRecordError, StaleReadSetError, UnevenStreamLengthsError
from fastqset.index import build_read_groups
from fastqset.models import ReadGroup, ReadType
from fastqset.records import RecordStream
from fastqset.reader import ReaderState, SyncReadPairReader, iter_read_sets, normalize_header
from fastqset.toy_data import write_fastq


def _records(names: List[str], seq: str = "ACGTACGT") -> List[Tuple[str, str, str]]:
    return [(n, seq, "I" * len(seq)) for n in names]


def _group(tmp_path: Path, files: dict, **kwargs) -> ReadGroup:
    paths = []
    for name, names in files.items():
        write_fastq(tmp_path / name, _records(names))
        paths.append(tmp_path / name)
    result = build_read_groups(paths, **kwargs)
    (group,) = result.groups.values()
    return group


R1 = "SampleA_S1_L001_R1_001.fastq.gz"
R2 = "SampleA_S1_L001_R2_001.fastq.gz"
I1 = "SampleA_S1_L001_I1_001.fastq.gz"


@pytest.mark.parametrize(
    "header, expected",
    [
        ("@read1/1", "read1"),
        ("read1/2", "read1"),
        ("read1/3", "read1"),
        ("M00:1:FC:1:1101:1000:2000 1:N:0:ACGT", "M00:1:FC:1:1101:1000:2000"),
        ("read1/1 extra comment", "read1"),
        ("read1/4", "read1/4"),
        ("", ""),
    ],
)
def test_normalize_header(header, expected):
    assert normalize_header(header) == expected


def test_three_synchronized_records(tmp_path: Path):
    group = _group(
        tmp_path,
        {
            R1: ["read1/1", "read2/1", "read3/1"],
            R2: ["read1/2", "read2/2", "read3/2"],
        },
    )
    assert group.key == ("SampleA", 1, 1)
    assert group.read_types == [ReadType.R1, ReadType.R2]

    reader = SyncReadPairReader(group)
    sets = []
    while True:
        rs = reader.next_read_set()
        if rs is None:
            break
        assert normalize_header(rs.header(ReadType.R1)) == normalize_header(rs.header(ReadType.R2))
        sets.append(rs.index)
    assert sets == [0, 1, 2]
    assert reader.state is ReaderState.EXHAUSTED
    assert reader.next_read_set() is None
    reader.close()
    assert reader.state is ReaderState.EXHAUSTED


def test_mandatory_index_read_flags_incomplete(tmp_path: Path):
    for name, mate in ((R1, 1), (R2, 2)):
        write_fastq(tmp_path / name, _records([f"read{i}/{mate}" for i in (1, 2, 3)]))
    result = build_read_groups(
        [tmp_path / R1, tmp_path / R2], mandatory=(ReadType.R1, ReadType.I1)
    )
    assert ("SampleA", 1, 1) in result.incomplete


def test_short_r2_raises_uneven_on_third_call(tmp_path: Path):
    group = _group(
        tmp_path,
        {
            R1: ["read1/1", "read2/1", "read3/1"],
            R2: ["read1/2", "read2/2"],
        },
    )
    reader = SyncReadPairReader(group)
    assert reader.next_read_set() is not None
    assert reader.next_read_set() is not None
    with pytest.raises(UnevenStreamLengthsError) as ei:
        reader.next_read_set()
    assert ei.value.index == 2
    assert ei.value.remaining == ["R1"]
    assert reader.state is ReaderState.FAILED

    # The failure is sticky.
    with pytest.raises(UnevenStreamLengthsError):
        reader.next_read_set()
    reader.close()
    assert reader.state is ReaderState.FAILED


def test_desynchronized_at_first_differing_index(tmp_path: Path):
    group = _group(
        tmp_path,
        {
            R1: ["a/1", "b/1", "c/1", "d/1"],
            R2: ["a/2", "b/2", "x/2", "d/2"],
            I1: ["a/3", "b/3", "c/3", "d/3"],
        },
    )
    with SyncReadPairReader(group) as reader:
        got = []
        with pytest.raises(DesynchronizedReadsError) as ei:
            for rs in reader:
                got.append(rs.index)
        assert got == [0, 1]
        assert ei.value.index == 2
        assert ei.value.headers == {"R1": "c/1", "R2": "x/2", "I1": "c/3"}
        assert reader.error is ei.value


def test_malformed_record_fails_reader(tmp_path: Path):
    write_fastq(tmp_path / R1, _records(["a/1", "b/1"]))
    (tmp_path / "SampleA_S1_L001_R2_001.fastq").write_bytes(b"@a/2\nACGT\n+\nIIII\n@b/2\nACGT\n+\nII\n")
    (group,) = build_read_groups([tmp_path / R1, tmp_path / "SampleA_S1_L001_R2_001.fastq"]).groups.values()
    reader = SyncReadPairReader(group)
    assert reader.next_read_set() is not None
    with pytest.raises(MalformedRecordError):
        reader.next_read_set()
    assert reader.state is ReaderState.FAILED


def test_interleaved_r1(tmp_path: Path):
    ra = "read-RA_si-ACGT_lane-001-chunk-001.fastq.gz"
    i1 = "read-I1_si-ACGT_lane-001-chunk-001.fastq.gz"
    group = _group(tmp_path, {ra: ["a/1", "a/2", "b/1", "b/2"], i1: ["a", "b"]})
    assert group.r1_interleaved
    with SyncReadPairReader(group) as reader:
        sets = [(rs.read_types, rs.header(ReadType.R2)) for rs in reader]
    assert sets == [
        ([ReadType.R1, ReadType.R2, ReadType.I1], "a/2"),
        ([ReadType.R1, ReadType.R2, ReadType.I1], "b/2"),
    ]


def test_interleaved_missing_mate_is_uneven(tmp_path: Path):
    ra = "read-RA_si-ACGT_lane-001-chunk-001.fastq.gz"
    group = _group(tmp_path, {ra: ["a/1", "a/2", "b/1"]})
    reader = SyncReadPairReader(group)
    assert reader.next_read_set() is not None
    with pytest.raises(UnevenStreamLengthsError):
        reader.next_read_set()


def test_read_set_is_invalidated_on_advance(tmp_path: Path):
    group = _group(tmp_path, {R1: ["a/1", "b/1"], R2: ["a/2", "b/2"]})
    reader = SyncReadPairReader(group)
    first = reader.next_read_set()
    assert first is not None and first.valid
    second = reader.next_read_set()
    assert second is not None and second.valid
    assert not first.valid
    with pytest.raises(StaleReadSetError):
        first.check_valid()
    reader.close()
    assert not second.valid


def test_close_is_safe_in_any_state(tmp_path: Path):
    group = _group(tmp_path, {R1: ["a/1"], R2: ["a/2"]})

    unopened = SyncReadPairReader(group)
    unopened.close()
    unopened.close()
    assert unopened.state is ReaderState.CLOSED
    with pytest.raises(ValueError):
        unopened.next_read_set()

    early = SyncReadPairReader(group).open()
    early.close()
    assert early.state is ReaderState.CLOSED


def test_missing_file_raises_on_open(tmp_path: Path):
    result = build_read_groups([tmp_path / R1])
    (group,) = result.groups.values()
    with pytest.raises(FileNotFoundError):
        SyncReadPairReader(group).open()


def test_iter_read_sets_chains_chunks(tmp_path: Path):
    write_fastq(tmp_path / R1, _records(["a/1", "b/1"]))
    write_fastq(tmp_path / "SampleA_S1_L001_R1_002.fastq.gz", _records(["c/1"]))
    groups = build_read_groups(sorted(tmp_path.iterdir())).groups.values()
    headers = [rs.header() for rs in iter_read_sets(groups)]
    assert headers == ["a/1", "b/1", "c/1"]


def test_corrupt_lz4_member_fails_reader_and_releases_handles(tmp_path: Path):
    rng = random.Random(5)
    names = [f"m{i}" for i in range(400)]
    write_fastq(tmp_path / R1, [(f"{n}/1", "ACGT", "IIII") for n in names])
    plain = "".join(
        f"@{n}/2\n{''.join(rng.choice('ACGT') for _ in range(60))}\n+\n{'I' * 60}\n" for n in names
    ).encode("ascii")
    buf = bytearray(lz4.frame.compress(plain, content_checksum=True))
    buf[16:80] = b"\xff" * 64
    r2 = tmp_path / "SampleA_S1_L001_R2_001.fastq.lz4"
    r2.write_bytes(bytes(buf))
    (group,) = build_read_groups([tmp_path / R1, r2]).groups.values()

    reader = SyncReadPairReader(group)
    with pytest.raises(MalformedRecordError) as ei:
        for _ in reader:
            pass
    assert reader.state is ReaderState.FAILED
    assert not any(stream.is_open for _, stream in reader._streams)
    with pytest.raises(MalformedRecordError) as again:
        reader.next_read_set()
    assert again.value is ei.value


def test_unexpected_read_error_fails_reader(tmp_path: Path, monkeypatch):
    group = _group(tmp_path, {R1: ["a/1", "b/1"], R2: ["a/2", "b/2"]})
    reader = SyncReadPairReader(group)
    assert reader.next_read_set() is not None

    def _broken(self):
        raise OSError("device went away")

    monkeypatch.setattr(RecordStream, "next_record", _broken)
    with pytest.raises(OSError) as ei:
        reader.next_read_set()
    assert reader.state is ReaderState.FAILED
    assert reader.error is ei.value
    with pytest.raises(OSError):
        reader.next_read_set()
