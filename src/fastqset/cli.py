from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from . import __version__
from .barcodes import BarcodeWhitelist
from .errors import FastqSetError
from .index import IndexResult, index_directory
from .layout import RegionLayout, load_layout
from .models import ReadGroup, ReadType
from .projection import iter_read_pairs
from .reader import SyncReadPairReader
from .report import render_scan_report
from .subsample import SubsampleFilter, make_seed
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .writers import FastqGroupWriter, write_unaligned_bam


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _dir_exists(p: str) -> str:
    if not Path(p).is_dir():
        raise argparse.ArgumentTypeError(f"Not a directory: {p}")
    return p


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _read_type_list(value: str) -> List[ReadType]:
    try:
        return [ReadType.parse(tok.strip()) for tok in value.split(",") if tok.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_group_selection(p: argparse.ArgumentParser) -> None:
    p.add_argument("--sample", default=None, help="Only read groups of this sample.")
    p.add_argument("--lane", type=int, default=None, help="Only read groups of this lane.")
    p.add_argument("--chunk", type=int, default=None, help="Only read groups of this chunk.")
    p.add_argument(
        "--mandatory",
        type=_read_type_list,
        default=[ReadType.R1],
        help="Comma-separated read types every group must have (default: R1).",
    )
    p.add_argument("--recursive", action="store_true", help="Also look in subdirectories.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="fastqset",
        description=(
            "fastqset: group Illumina FASTQ files into read groups, read them in lockstep "
            "with pairing checks, subsample reproducibly and export unaligned BAM."
        ),
    )
    p.add_argument("--version", action="version", version=f"fastqset {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common tasks.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny synchronized R1/R2/I1 read group for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--n-reads", type=int, default=20, help="Records per file.")
    t.add_argument("--seed", type=int, default=7, help="Random seed for sequences.")
    t.add_argument("--no-index", action="store_true", help="Do not write an I1 file.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # scan
    # -----------------
    s = sub.add_parser(
        "scan",
        help="Group the FASTQ files of a directory and report incomplete or unmatched files.",
    )
    s.add_argument("directory", type=_dir_exists, help="Directory holding FASTQ files.")
    s.add_argument(
        "--mandatory",
        type=_read_type_list,
        default=[ReadType.R1],
        help="Comma-separated read types every group must have (default: R1).",
    )
    s.add_argument("--recursive", action="store_true", help="Also look in subdirectories.")
    s.add_argument(
        "--check-files",
        action="store_true",
        help="Pre-check existence, size and compression magic of every grouped file.",
    )
    s.add_argument("--json", action="store_true", help="Print the scan summary as JSON.")
    s.add_argument("--report", default=None, help="Write an HTML scan report to this path.")
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # check
    # -----------------
    c = sub.add_parser(
        "check",
        help="Read every selected read group to the end and verify record pairing.",
    )
    c.add_argument("directory", type=_dir_exists, help="Directory holding FASTQ files.")
    _add_group_selection(c)
    c.add_argument("--json-out", default=None, help="Write per-group read counts to this JSON file.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # subsample
    # -----------------
    ss = sub.add_parser(
        "subsample",
        help="Write a reproducible subsample of every selected read group as FASTQ.",
    )
    ss.add_argument("directory", type=_dir_exists, help="Directory holding FASTQ files.")
    _add_group_selection(ss)
    ss.add_argument("--rate", type=float, required=True, help="Fraction of read pairs to keep (0-1).")
    ss.add_argument(
        "--seed",
        type=int,
        default=None,
        help="64-bit seed. Drawn once and printed when omitted; reuse it to reproduce the run.",
    )
    ss.add_argument(
        "--by",
        choices=["header", "index"],
        default="header",
        help="Subsample key: normalized read name (default) or ordinal within the group.",
    )
    ss.add_argument("--outdir", required=True, help="Output directory.")
    ss.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    ss.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # export-bam
    # -----------------
    e = sub.add_parser(
        "export-bam",
        help="Write one read group as unaligned BAM with barcode/UMI tags.",
    )
    e.add_argument("directory", type=_dir_exists, help="Directory holding FASTQ files.")
    _add_group_selection(e)
    e.add_argument("--out", required=True, help="Output BAM path.")
    e.add_argument("--layout", type=_path_exists, default=None, help="Region layout JSON.")
    e.add_argument(
        "--bc-length",
        type=int,
        default=16,
        help="Barcode length at the start of R1 (ignored with --layout).",
    )
    e.add_argument(
        "--bc-in-i2",
        action="store_true",
        help="Barcode is the I2 read rather than the start of R1 (ignored with --layout).",
    )
    e.add_argument("--trim-r1", type=int, default=0, help="Bases after the R1 barcode to trim.")
    e.add_argument("--trim-r2", type=int, default=0, help="Bases at the start of R2 to trim.")
    e.add_argument("--rate", type=float, default=None, help="Optionally subsample at this rate.")
    e.add_argument("--seed", type=int, default=None, help="Seed for --rate.")
    e.add_argument(
        "--by",
        choices=["header", "index"],
        default="header",
        help="Subsample key for --rate: normalized read name (default) or ordinal within the group.",
    )
    e.add_argument(
        "--whitelist",
        type=_path_exists,
        default=None,
        help="Barcode whitelist (one barcode per line). Whitelisted barcodes get a CB tag.",
    )
    e.add_argument("--gem-group", type=int, default=1, help="GEM group appended to CB tags (default: 1).")
    e.add_argument(
        "--correct-barcodes",
        action="store_true",
        help="Accept barcodes one mismatch from a single whitelisted barcode (needs --whitelist).",
    )
    e.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    e.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "fastqset quickstart (copy/paste):",
        "",
        "1) Find read groups and missing files:",
        "   fastqset scan fastqs/ --mandatory R1,R2,I1 --check-files --report scan.html",
        "",
        "2) Verify that R1/R2/I1 stay paired to the last record:",
        "   fastqset check fastqs/ --sample SampleA --lane 1",
        "",
        "3) Reproducible 10% subsample (the seed is printed if omitted):",
        "   fastqset subsample fastqs/ --rate 0.1 --seed 42 --outdir sub/",
        "",
        "4) Unaligned BAM with barcode tags (16 bp barcode at the start of R1):",
        "   fastqset export-bam fastqs/ --sample SampleA --lane 1 --out SampleA.bam --bc-length 16",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(
        outdir=outdir,
        n_reads=int(args.n_reads),
        seed=int(args.seed),
        with_index=not bool(args.no_index),
    )
    print(json.dumps(summary, indent=2))
    return 0


def _index(args: argparse.Namespace, *, check_files: bool = False) -> IndexResult:
    return index_directory(
        args.directory,
        recursive=bool(args.recursive),
        mandatory=args.mandatory,
        check_files=check_files,
    )


def _selected_groups(args: argparse.Namespace, result: IndexResult) -> List[ReadGroup]:
    groups = result.require_complete()
    selected = [
        g
        for g in groups.values()
        if (args.sample is None or g.sample == args.sample)
        and (args.lane is None or g.lane == args.lane)
        and (args.chunk is None or g.chunk == args.chunk)
    ]
    if not selected:
        raise ValueError(f"No complete read group matches the selection in {args.directory}")
    return selected


def cmd_scan(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        result = _index(args, check_files=bool(args.check_files))
    except (FastqSetError, OSError) as e:
        return _handle_error(e)

    if args.json:
        print(json.dumps(result.summary(), indent=2, sort_keys=True))
    else:
        lines = []
        for g in result.groups.values():
            lines.append(f"OK         {g.describe()}")
        for ig in result.incomplete.values():
            lines.append(f"INCOMPLETE {ig.describe()}")
        for fi in result.file_issues:
            lines.append(f"BAD FILE   {fi.path}: {fi.problem}")
        for nm in result.unmatched:
            lines.append(f"UNMATCHED  {nm.path}: {nm.reason}")
        lines.append(
            f"{len(result.groups)} complete, {len(result.incomplete)} incomplete, "
            f"{len(result.unmatched)} unmatched"
        )
        print("\n".join(lines))

    if args.report:
        render_scan_report(
            out_path=args.report,
            version=__version__,
            directory=str(args.directory),
            result=result,
            mandatory=[rt.value for rt in args.mandatory],
        )

    return 0 if not result.incomplete and not result.file_issues else 1


def _length_stats(lengths: List[int]) -> Dict[str, float]:
    if not lengths:
        return {"min": 0, "max": 0, "mean": 0.0}
    arr = np.asarray(lengths, dtype=np.int64)
    return {"min": int(arr.min()), "max": int(arr.max()), "mean": round(float(arr.mean()), 2)}


def _check_group(group: ReadGroup) -> Dict[str, object]:
    lengths: Dict[ReadType, List[int]] = {rt: [] for rt in group.read_types}
    with SyncReadPairReader(group) as reader:
        for raw in tqdm(reader, unit="read", desc=group.describe(), leave=False):
            for rt in raw.read_types:
                lengths[rt].append(len(raw[rt]))
        n = reader.records_read
    return {
        "sample": group.sample,
        "lane": group.lane,
        "chunk": group.chunk,
        "read_sets": n,
        "read_lengths": {rt.value: _length_stats(v) for rt, v in lengths.items()},
    }


def cmd_check(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    logger = logging.getLogger("fastqset")
    logger.info("fastqset %s", __version__)

    try:
        groups = _selected_groups(args, _index(args))
        results = []
        for g in groups:
            stats = _check_group(g)
            results.append(stats)
            print(f"OK {g.describe()}: {stats['read_sets']} read set(s)")
        if args.json_out:
            write_json(args.json_out, {"groups": results})
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_subsample(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "subsample.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("fastqset")
    logger.info("fastqset %s", __version__)

    try:
        seed = make_seed() if args.seed is None else int(args.seed)
        filt = SubsampleFilter(seed=seed, rate=float(args.rate), by=args.by)
        groups = _selected_groups(args, _index(args))

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Seed: {filt.seed}  rate: {filt.rate}  key: {filt.by}")
            print("Planned outputs:")
            for g in groups:
                for p in FastqGroupWriter(outdir, g).paths.values():
                    print(f"  {g.describe()} -> {p}")
            print(f"  subsample_summary.json -> {outdir / 'subsample_summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)
        per_group = []
        for g in groups:
            total = 0
            with FastqGroupWriter(outdir, g) as writer, SyncReadPairReader(g) as reader:
                for raw in tqdm(reader, unit="read", desc=g.describe()):
                    total += 1
                    if filt.accept_read_set(raw):
                        writer.write(raw)
            per_group.append(
                {
                    "sample": g.sample,
                    "lane": g.lane,
                    "chunk": g.chunk,
                    "read_sets": total,
                    "kept": writer.records_written,
                    "files": {rt.value: str(p) for rt, p in writer.paths.items()},
                }
            )
            logger.info("%s: kept %d of %d read set(s)", g.describe(), writer.records_written, total)

        summary = {"seed": filt.seed, "rate": filt.rate, "by": filt.by, "groups": per_group}
        write_json(outdir / "subsample_summary.json", summary)
        print(f"seed={filt.seed}")
        print(str(outdir / "subsample_summary.json"))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def _layout_from_args(args: argparse.Namespace) -> RegionLayout:
    if args.layout:
        return load_layout(args.layout)
    return RegionLayout.dna(
        bc_in_read=None if args.bc_in_i2 else 1,
        bc_length=int(args.bc_length),
        trim_r1=int(args.trim_r1),
        trim_r2=int(args.trim_r2),
    )


def cmd_export_bam(args: argparse.Namespace) -> int:
    out_bam = Path(args.out).expanduser().resolve()
    log_path = _log_path(out_bam.parent, "export-bam.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("fastqset")
    logger.info("fastqset %s", __version__)

    try:
        layout = _layout_from_args(args)
        groups = _selected_groups(args, _index(args))
        if len(groups) != 1:
            names = ", ".join(g.describe() for g in groups)
            raise ValueError(
                f"export-bam writes one read group; {len(groups)} match ({names}). "
                "Narrow the selection with --sample/--lane/--chunk."
            )
        group = groups[0]

        filt: Optional[SubsampleFilter] = None
        if args.rate is not None:
            seed = make_seed() if args.seed is None else int(args.seed)
            filt = SubsampleFilter(seed=seed, rate=float(args.rate), by=args.by)

        if args.correct_barcodes and not args.whitelist:
            raise ValueError("--correct-barcodes needs --whitelist")
        whitelist = BarcodeWhitelist.from_file(args.whitelist) if args.whitelist else None

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Read group: {group.describe()}")
            print(f"Layout: {json.dumps(layout.to_dict())}")
            if filt is not None:
                print(f"Seed: {filt.seed}  rate: {filt.rate}  key: {filt.by}")
            if whitelist is not None:
                print(f"Whitelist: {len(whitelist)} barcode(s), gem group {args.gem_group}")
            print("Planned outputs:")
            print(f"  BAM -> {out_bam}")
            return 0

        ensure_outdir(out_bam.parent)
        n = write_unaligned_bam(
            iter_read_pairs(group, layout, subsample=filt),
            out_bam,
            group=group,
            whitelist=whitelist,
            gem_group=int(args.gem_group),
            correct_barcodes=bool(args.correct_barcodes),
            progress=True,
        )
        if filt is not None:
            print(f"seed={filt.seed}")
        logger.info("Exported %d read pair(s) from %s", n, group.describe())
        print(str(out_bam))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "scan":
        return cmd_scan(args)
    if args.cmd == "check":
        return cmd_check(args)
    if args.cmd == "subsample":
        return cmd_subsample(args)
    if args.cmd == "export-bam":
        return cmd_export_bam(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
