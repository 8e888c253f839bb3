"""Group FASTQ files from a directory into complete read groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import DuplicateSlotError, IncompleteGroupError
from .filenames import is_fastq_name, parse_filename
from .models import READ_TYPE_ORDER, FilenameKey, GroupKey, NoMatch, ReadGroup, ReadType
from .validation import FileIssue, check_fastq_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncompleteGroup:
    """A read group lacking at least one mandatory read type."""

    group: ReadGroup
    missing: Tuple[ReadType, ...]

    def describe(self) -> str:
        miss = ",".join(rt.value for rt in self.missing)
        return f"{self.group.describe()} [missing {miss}]"


@dataclass
class IndexResult:
    """Outcome of grouping a file listing.

    ``groups`` holds complete groups only. Groups missing a mandatory read type
    are kept in ``incomplete`` so the caller can decide whether to use them.
    """

    groups: Dict[GroupKey, ReadGroup] = field(default_factory=dict)
    incomplete: Dict[GroupKey, IncompleteGroup] = field(default_factory=dict)
    unmatched: List[NoMatch] = field(default_factory=list)
    file_issues: List[FileIssue] = field(default_factory=list)

    def require_complete(self) -> Dict[GroupKey, ReadGroup]:
        """Return ``groups``; raise IncompleteGroupError if any group is incomplete."""
        if self.incomplete:
            missing = {k: [rt.value for rt in ig.missing] for k, ig in self.incomplete.items()}
            lines = [ig.describe() for ig in self.incomplete.values()]
            raise IncompleteGroupError(
                f"{len(self.incomplete)} read group(s) lack mandatory read types:\n  "
                + "\n  ".join(lines),
                missing=missing,
            )
        return self.groups

    def summary(self) -> Dict[str, object]:
        def _group(g: ReadGroup) -> Dict[str, object]:
            return {
                "sample": g.sample,
                "lane": g.lane,
                "chunk": g.chunk,
                "read_types": [rt.value for rt in g.read_types],
                "r1_interleaved": g.r1_interleaved,
                "files": {rt.value: str(p) for rt, p in sorted_members(g)},
            }

        return {
            "groups": [_group(g) for g in self.groups.values()],
            "incomplete": [
                dict(_group(ig.group), missing=[rt.value for rt in ig.missing])
                for ig in self.incomplete.values()
            ],
            "unmatched": [{"path": nm.path, "reason": nm.reason} for nm in self.unmatched],
            "file_issues": [{"path": fi.path, "problem": fi.problem} for fi in self.file_issues],
        }


def sorted_members(group: ReadGroup) -> List[Tuple[ReadType, Path]]:
    return [(rt, group.members[rt]) for rt in READ_TYPE_ORDER if rt in group.members]


def _missing_types(group: ReadGroup, mandatory: Sequence[ReadType]) -> Tuple[ReadType, ...]:
    present = set(group.read_types)
    required = [ReadType.R1] + [rt for rt in mandatory if rt != ReadType.R1]
    return tuple(rt for rt in READ_TYPE_ORDER if rt in required and rt not in present)


def build_read_groups(
    paths: Iterable[str | Path],
    *,
    mandatory: Sequence[ReadType] = (ReadType.R1,),
    check_files: bool = False,
) -> IndexResult:
    """Group FASTQ paths into read groups keyed by (sample, lane, chunk).

    Parameters
    ----------
    paths:
        Candidate files. Only names are inspected unless ``check_files`` is set.
    mandatory:
        Read types every group must have. R1 is always mandatory.
    check_files:
        Run :func:`fastqset.validation.check_fastq_file` on every matched file.

    Raises
    ------
    DuplicateSlotError
        If two files claim the same (sample, lane, chunk, read type) slot.
    """
    slots: Dict[GroupKey, Dict[ReadType, Tuple[Path, FilenameKey]]] = {}
    result = IndexResult()
    seen: set = set()

    for raw in paths:
        path = Path(raw)
        if str(path) in seen:
            logger.debug("Skipping repeated path %s", path)
            continue
        seen.add(str(path))

        parsed = parse_filename(path)
        if isinstance(parsed, NoMatch):
            result.unmatched.append(parsed)
            continue

        members = slots.setdefault(parsed.group_key, {})
        taken = members.get(parsed.read_type)
        clash: Optional[Path] = taken[0] if taken is not None else None
        if clash is None and parsed.read_type == ReadType.R2:
            r1 = members.get(ReadType.R1)
            if r1 is not None and r1[1].interleaved:
                clash = r1[0]
        if clash is None and parsed.read_type == ReadType.R1 and parsed.interleaved:
            r2 = members.get(ReadType.R2)
            clash = r2[0] if r2 is not None else None
        if clash is not None:
            sample, lane, chunk = parsed.group_key
            raise DuplicateSlotError(
                f"Two files claim {parsed.read_type.value} of sample {sample} "
                f"lane {lane} chunk {chunk}: {clash} and {path}",
                key=parsed.group_key + (parsed.read_type.value,),
                paths=[clash, path],
            )
        members[parsed.read_type] = (path, parsed)

    for key in sorted(slots):
        members = slots[key]
        sample, lane, chunk = key
        r1 = members.get(ReadType.R1)
        group = ReadGroup(
            sample=sample,
            lane=lane,
            chunk=chunk,
            members={rt: members[rt][0] for rt in READ_TYPE_ORDER if rt in members},
            r1_interleaved=bool(r1 is not None and r1[1].interleaved),
        )
        missing = _missing_types(group, mandatory)
        if missing:
            result.incomplete[key] = IncompleteGroup(group=group, missing=missing)
        else:
            result.groups[key] = group

        if check_files:
            for _, p in sorted_members(group):
                issue = check_fastq_file(p)
                if issue is not None:
                    result.file_issues.append(issue)

    logger.info(
        "Indexed %d read group(s) (%d incomplete, %d unmatched file(s))",
        len(result.groups),
        len(result.incomplete),
        len(result.unmatched),
    )
    for ig in result.incomplete.values():
        logger.warning("Incomplete read group: %s", ig.describe())
    for nm in result.unmatched:
        logger.debug("Unmatched file %s: %s", nm.path, nm.reason)
    for fi in result.file_issues:
        logger.warning("File pre-check failed for %s: %s", fi.path, fi.problem)
    return result


def scan_directory(directory: str | Path, *, recursive: bool = False) -> List[Path]:
    """List files with a FASTQ extension, sorted by path."""
    d = Path(directory)
    if not d.is_dir():
        raise NotADirectoryError(f"Not a directory: {d}")
    it = d.rglob("*") if recursive else d.iterdir()
    return sorted(p for p in it if p.is_file() and is_fastq_name(p.name))


def index_directory(
    directory: str | Path,
    *,
    recursive: bool = False,
    mandatory: Sequence[ReadType] = (ReadType.R1,),
    check_files: bool = False,
) -> IndexResult:
    files = scan_directory(directory, recursive=recursive)
    logger.info("Found %d FASTQ file(s) under %s", len(files), directory)
    return build_read_groups(files, mandatory=mandatory, check_files=check_files)


def chunks_by_lane(groups: Iterable[ReadGroup]) -> Dict[Tuple[str, int], List[ReadGroup]]:
    """Collect the chunks of each (sample, lane), sorted by chunk number."""
    out: Dict[Tuple[str, int], List[ReadGroup]] = {}
    for g in groups:
        out.setdefault((g.sample, g.lane), []).append(g)
    for lst in out.values():
        lst.sort(key=lambda g: g.chunk)
    return dict(sorted(out.items()))


class ReadGroupIndex:
    """Read-only view over an :class:`IndexResult` with lookup helpers."""

    def __init__(self, result: IndexResult) -> None:
        self.result = result

    @classmethod
    def build(cls, paths: Iterable[str | Path], **kwargs) -> "ReadGroupIndex":
        return cls(build_read_groups(paths, **kwargs))

    @classmethod
    def from_directory(cls, directory: str | Path, **kwargs) -> "ReadGroupIndex":
        return cls(index_directory(directory, **kwargs))

    @property
    def groups(self) -> Dict[GroupKey, ReadGroup]:
        return self.result.groups

    @property
    def incomplete(self) -> Dict[GroupKey, IncompleteGroup]:
        return self.result.incomplete

    @property
    def unmatched(self) -> List[NoMatch]:
        return self.result.unmatched

    def get(self, sample: str, lane: int, chunk: int = 1) -> ReadGroup:
        key = (sample, int(lane), int(chunk))
        if key in self.result.groups:
            return self.result.groups[key]
        if key in self.result.incomplete:
            return self.result.incomplete[key].group
        raise KeyError(f"No read group for sample {sample} lane {lane} chunk {chunk}")

    def select(
        self,
        *,
        sample: Optional[str] = None,
        lane: Optional[int] = None,
        chunk: Optional[int] = None,
    ) -> List[ReadGroup]:
        return [
            g
            for g in self.result.groups.values()
            if (sample is None or g.sample == sample)
            and (lane is None or g.lane == lane)
            and (chunk is None or g.chunk == chunk)
        ]

    def __iter__(self) -> Iterator[ReadGroup]:
        return iter(self.result.groups.values())

    def __len__(self) -> int:
        return len(self.result.groups)
