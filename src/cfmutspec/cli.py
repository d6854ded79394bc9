from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .engine import call_spectrum
from .errors import InputFormatError
from .lengths import LengthBin
from .models import CATEGORIES, EngineConfig, SpectrumEntry
from .motifs import MOTIF_TYPES
from .plotting import plot_length_profile, plot_sbs96_spectrum, plot_support_counts
from .report import render_report
from .spectrum import entries_to_matrix
from .toy_data import make_toy_data
from .utils import iter_tsv_rows
from .validation import check_fasta_index


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


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _seed(value: str) -> Optional[int]:
    if value.strip().lower() == "none":
        return None
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Seed must be an integer or 'none', got {value!r}")


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, InputFormatError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cfmutspec",
        description=(
            "cfMutSpec: resolve per-locus consensus from cfDNA fragment annotations and "
            "build the SBS96 trinucleotide mutation spectrum."
        ),
    )
    p.add_argument("--version", action="version", version=f"cfmutspec {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, locus VCF, and fragment table for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Call per-locus consensus and tabulate the SBS96 spectrum.",
    )
    c.add_argument(
        "--fragments",
        required=True,
        type=_path_exists,
        help="Fragment table (TSV/TSV.GZ) with fragment_id, chrom, start, end, locus_info, locus_status.",
    )
    c.add_argument(
        "--loci",
        required=True,
        type=_path_exists,
        help="Candidate SNV loci (.vcf/.vcf.gz/.bcf, or TSV with chrom/pos/ref/alt).",
    )
    c.add_argument("--ref", required=True, type=_path_exists, help="Reference FASTA (indexed).")
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument(
        "--seed",
        type=_seed,
        default=123,
        help="Seed for tie-breaks and fragment/base choices (per-locus streams); 'none' for unseeded runs.",
    )
    c.add_argument(
        "--no-normalize",
        action="store_true",
        help="Report raw counts instead of fractions of all counted substitutions.",
    )
    c.add_argument(
        "--exclude-type",
        nargs="+",
        default=[],
        choices=list(CATEGORIES),
        help="Drop loci with any support of these type(s).",
    )
    c.add_argument(
        "--retain-type",
        nargs="+",
        default=[],
        choices=list(CATEGORIES),
        help="Keep only loci with support of at least one of these type(s).",
    )
    c.add_argument(
        "--remove-type",
        nargs="+",
        default=[],
        choices=list(CATEGORIES),
        help="Ignore support of these type(s) when assigning mutant loci to CO_MUT/SO_MUT.",
    )
    c.add_argument(
        "--chromosomes",
        nargs="+",
        default=None,
        help="Restrict loci and fragments to these contigs (names as in the input files).",
    )
    c.add_argument(
        "--no-require-pass",
        action="store_true",
        help="Do not require FILTER=PASS for VCF loci.",
    )
    c.add_argument(
        "--contig-style",
        choices=["ucsc", "ensembl", "auto"],
        default="auto",
        help="Contig naming style to reconcile loci/fragments with the reference.",
    )
    c.add_argument(
        "--length-comparison",
        choices=["ref", "outer"],
        default="ref",
        help="Population compared with mutant fragments in the length profile.",
    )
    c.add_argument(
        "--length-normalize",
        action="store_true",
        help="Down-sample the comparison fragments to the number of mutant fragments.",
    )
    c.add_argument("--isize-min", type=int, default=1, help="Smallest insert size in the histogram.")
    c.add_argument("--isize-max", type=int, default=1000, help="Largest insert size in the histogram.")
    c.add_argument("--motif-length", type=int, default=3, help="Bases per fragment end motif.")
    c.add_argument(
        "--motif-type",
        choices=list(MOTIF_TYPES),
        default="s",
        help="End motif at the fragment 5' end (s) or 3' end (e).",
    )
    c.add_argument(
        "--motif-by-status",
        action="store_true",
        help="Report end motifs separately for reference- and mutant-supporting fragments.",
    )
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")

    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Commands
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "cfMutSpec quickstart (copy/paste):",
        "",
        "1) Try it on toy data:",
        "   cfmutspec make-toy-data --outdir toy/",
        "   cfmutspec call \\",
        "     --fragments toy/fragments.tsv \\",
        "     --loci toy/loci.vcf.gz \\",
        "     --ref toy/toy_ref.fa \\",
        "     --outdir toy_run/",
        "   Outputs: toy_run/report.html, toy_run/spectrum.tsv, toy_run/summary.json",
        "",
        "2) Raw counts, concordant support only:",
        "   cfmutspec call \\",
        "     --fragments fragments.tsv.gz \\",
        "     --loci somatic.vcf.gz \\",
        "     --ref hg38.fa \\",
        "     --no-normalize --retain-type CO_MUT \\",
        "     --outdir results_co/",
        "",
        "3) Length profile against outer fragments, down-sampled:",
        "   cfmutspec call \\",
        "     --fragments fragments.tsv.gz \\",
        "     --loci loci.tsv \\",
        "     --ref hg38.fa \\",
        "     --length-comparison outer --length-normalize \\",
        "     --outdir results_len/",
        "",
        "4) 5' end motifs of reference vs mutant fragments, chr1 only:",
        "   cfmutspec call \\",
        "     --fragments fragments.tsv.gz \\",
        "     --loci loci.tsv \\",
        "     --ref hg38.fa \\",
        "     --chromosomes chr1 --motif-type s --motif-length 4 --motif-by-status \\",
        "     --outdir results_motifs/",
        "",
        "Tip: use --dry-run to validate inputs without writing anything.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _read_length_bins(path: str) -> List[LengthBin]:
    return [
        LengthBin(
            mutant=row["mutant"] == "true",
            size_rounded=int(row["size_rounded"]),
            count=int(row["count"]),
            proportion=float(row["proportion"]),
        )
        for _, row in iter_tsv_rows(path)
    ]


def _write_plots(run: Dict[str, Any], outdir: Path) -> Dict[str, str]:
    plots_dir = outdir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    sbs96_png = plots_dir / "sbs96.png"
    categories_png = plots_dir / "consensus_categories.png"
    lengths_png = plots_dir / "length_profile.png"

    spectrum = run["spectrum"]
    entries = [
        SpectrumEntry(channel=c, overlap_type=o, value=float(v))
        for c, o, v in zip(spectrum["channels"], spectrum["overlap_types"], spectrum["values"])
    ]
    plot_sbs96_spectrum(
        matrix=entries_to_matrix(entries),
        out_png=sbs96_png,
        normalized=bool(run["normalize_counts"]),
    )
    plot_support_counts(consensus_categories=run["consensus_categories"], out_png=categories_png)
    plot_length_profile(bins=_read_length_bins(run["outputs"]["length_profile_tsv"]), out_png=lengths_png)

    return {
        "sbs96": str(Path("plots") / sbs96_png.name),
        "categories": str(Path("plots") / categories_png.name),
        "lengths": str(Path("plots") / lengths_png.name),
    }


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "call.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("cfmutspec")
    logger.info("cfmutspec %s", __version__)

    try:
        check_fasta_index(args.ref)
        if args.isize_max < args.isize_min:
            raise ValueError("--isize-max must be >= --isize-min")
        if args.motif_length < 1:
            raise ValueError("--motif-length must be >= 1")

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Fragments: {args.fragments}")
            print(f"Loci: {args.loci}")
            print(f"Reference: {args.ref}")
            print("Planned outputs:")
            for name in (
                "report.html",
                "consensus.tsv",
                "trinucleotides.tsv",
                "spectrum.tsv",
                "length_profile.tsv",
                "insert_sizes.tsv",
                "end_motifs.tsv",
                "summary.json",
            ):
                print(f"  {name} -> {outdir / name}")
            return 0

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "report.html"))
            return 0

        config = EngineConfig(
            deterministic_seed=args.seed,
            normalize_counts=not bool(args.no_normalize),
            exclude_if_type_present=tuple(args.exclude_type),
            retain_if_type_present=tuple(args.retain_type),
            remove_type=tuple(args.remove_type),
            progress=True,
        )

        run = call_spectrum(
            fragments_path=args.fragments,
            loci_path=args.loci,
            ref_fa=args.ref,
            outdir=outdir,
            config=config,
            contig_style=args.contig_style,
            require_pass=not bool(args.no_require_pass),
            length_comparison=args.length_comparison,
            length_normalize=bool(args.length_normalize),
            isize_min=int(args.isize_min),
            isize_max=int(args.isize_max),
            chromosomes=args.chromosomes,
            motif_type=args.motif_type,
            motif_length=int(args.motif_length),
            motif_by_status=bool(args.motif_by_status),
        )

        plots_rel = _write_plots(run, outdir)
        report_path = render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "call":
        return cmd_call(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
