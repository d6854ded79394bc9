from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .consensus import build_consensus_table
from .fragments import load_fragments
from .joiner import join_fragments_to_loci
from .lengths import (
    InsertSizeBin,
    LengthBin,
    insert_size_profile,
    mutant_length_profile,
    summarize_lengths,
)
from .loci import build_locus_table, load_loci
from .motifs import MotifCount, end_motif_profile
from .models import (
    CATEGORIES,
    OUTER_FRAGMENT,
    ConsensusRecord,
    EngineConfig,
    Fragment,
    JoinedRow,
    Locus,
    ResolvedCall,
    SpectrumEntry,
    TrinucleotideRecord,
)
from .spectrum import aggregate_spectrum, record_stratum
from .status import resolve_statuses
from .trinucleotide import FastaReference, ReferenceAccessor, classify_trinucleotides
from .utils import ensure_outdir, write_json, write_tsv
from .validation import check_fasta_index, resolve_contig_style

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    rows: List[JoinedRow]
    calls: List[ResolvedCall]
    consensus: List[ConsensusRecord]
    trinucleotides: List[TrinucleotideRecord]
    spectrum: List[SpectrumEntry]
    stats: Dict[str, int] = field(default_factory=dict)

    def status_widths(self) -> List[Tuple[str, int]]:
        """(status, width) for every resolved call plus one entry per outer fragment."""
        out = [(c.status, c.width) for c in self.calls]
        out.extend((OUTER_FRAGMENT, r.width) for r in self.rows if r.is_outer)
        return out


def run_engine(
    fragments: Sequence[Fragment],
    loci: Sequence[Locus],
    reference: ReferenceAccessor,
    config: Optional[EngineConfig] = None,
) -> EngineResult:
    """Join, resolve, select consensus, classify and aggregate in one pass."""
    config = config or EngineConfig()
    stats: Dict[str, int] = {}

    table = build_locus_table(loci)
    rows, join_stats = join_fragments_to_loci(fragments, table)
    stats.update(join_stats)

    calls, status_stats = resolve_statuses(rows)
    stats.update(status_stats)

    consensus, consensus_stats = build_consensus_table(
        calls, seed=config.deterministic_seed, progress=config.progress
    )
    stats.update(consensus_stats)

    trinucs, trinuc_stats = classify_trinucleotides(consensus, reference)
    stats.update(trinuc_stats)

    spectrum, spectrum_stats = aggregate_spectrum(
        trinucs,
        normalize_counts=config.normalize_counts,
        exclude_if_type_present=config.exclude_if_type_present,
        retain_if_type_present=config.retain_if_type_present,
        remove_type=config.remove_type,
    )
    stats.update(spectrum_stats)

    return EngineResult(
        rows=rows,
        calls=calls,
        consensus=consensus,
        trinucleotides=trinucs,
        spectrum=spectrum,
        stats=stats,
    )


def write_consensus_tsv(path: str | Path, records: Sequence[ConsensusRecord]) -> int:
    columns = (
        ["target_mutation", "locus_id"]
        + list(CATEGORIES)
        + [f"{c}_flength" for c in CATEGORIES]
        + ["consensus_category", "consensus_mismatch", "consensus_fragment_id"]
    )
    rows = (
        [str(r.locus.target_key), r.locus.record_id or str(r.locus.target_key)]
        + [r.support[c] for c in CATEGORIES]
        + [r.median_length[c] for c in CATEGORIES]
        + [r.category, r.consensus_mismatch, r.fragment_id]
        for r in records
    )
    return write_tsv(path, columns, rows)


def write_trinucleotide_tsv(
    path: str | Path,
    records: Sequence[TrinucleotideRecord],
    remove_type: Sequence[str] = (),
) -> int:
    """``overlap_type`` is the spectrum stratum, or ``removed`` when ``remove_type`` leaves none."""
    columns = ["target_mutation", "consensus_mismatch", "overlap_type", "ref_tri", "SBS96"]
    rows = (
        [
            str(r.consensus.locus.target_key),
            r.consensus.consensus_mismatch,
            record_stratum(r, remove_type) or "removed",
            r.ref_tri,
            r.channel,
        ]
        for r in records
    )
    return write_tsv(path, columns, rows)


def write_spectrum_tsv(path: str | Path, entries: Sequence[SpectrumEntry]) -> int:
    return write_tsv(path, ["SBS96", "overlap_type", "value"], ([e.channel, e.overlap_type, e.value] for e in entries))


def write_length_tsv(path: str | Path, bins: Sequence[LengthBin]) -> int:
    return write_tsv(
        path,
        ["mutant", "size_rounded", "count", "proportion"],
        ([str(b.mutant).lower(), b.size_rounded, b.count, b.proportion] for b in bins),
    )


def write_insert_size_tsv(path: str | Path, bins: Sequence[InsertSizeBin]) -> int:
    return write_tsv(path, ["insert_size", "count", "prop"], ([b.insert_size, b.count, b.prop] for b in bins))


def write_end_motif_tsv(path: str | Path, profile: Dict[str, List[MotifCount]]) -> int:
    """One row per motif; split profiles get ``n_ref``/``fraction_ref``/``n_mut``/``fraction_mut`` columns."""
    if set(profile) == {"all"}:
        return write_tsv(path, ["motif", "n", "fraction"], ([m.motif, m.n, m.fraction] for m in profile["all"]))
    rows = (
        [ref.motif, ref.n, ref.fraction, mut.n, mut.fraction]
        for ref, mut in zip(profile["ref"], profile["mut"])
    )
    return write_tsv(path, ["motif", "n_ref", "fraction_ref", "n_mut", "fraction_mut"], rows)


def call_spectrum(
    *,
    fragments_path: str,
    loci_path: str,
    ref_fa: str,
    outdir: str | Path,
    config: Optional[EngineConfig] = None,
    contig_style: str = "auto",
    require_pass: bool = True,
    length_comparison: str = "ref",
    length_normalize: bool = False,
    isize_min: int = 1,
    isize_max: int = 1000,
    chromosomes: Optional[Sequence[str]] = None,
    motif_type: str = "s",
    motif_length: int = 3,
    motif_by_status: bool = False,
) -> Dict[str, object]:
    """Main workhorse: load inputs, run the engine, write tables and return the summary dict."""
    t0 = time.time()
    config = config or EngineConfig()
    outdir_path = ensure_outdir(outdir)

    check_fasta_index(ref_fa)

    loci, locus_stats = load_loci(loci_path, require_pass=require_pass, chromosomes=chromosomes)
    fragments, fragment_stats = load_fragments(fragments_path, chromosomes=chromosomes)

    with FastaReference(ref_fa) as reference:
        loci, fragments = resolve_contig_style(loci, fragments, reference.contigs, contig_style)
        result = run_engine(fragments, loci, reference, config)
        motif_profile, motif_stats = end_motif_profile(
            fragments,
            reference,
            calls=result.calls,
            motif_type=motif_type,
            motif_length=motif_length,
            by_status=motif_by_status,
        )

    length_bins = mutant_length_profile(
        result.status_widths(),
        comparison=length_comparison,
        normalize=length_normalize,
        seed=config.deterministic_seed,
    )
    fragment_widths = list({r.fragment_id: r.width for r in result.rows}.values())
    isize_bins = insert_size_profile(fragment_widths, isize_min=isize_min, isize_max=isize_max)

    outputs = {
        "consensus_tsv": str(outdir_path / "consensus.tsv"),
        "trinucleotide_tsv": str(outdir_path / "trinucleotides.tsv"),
        "spectrum_tsv": str(outdir_path / "spectrum.tsv"),
        "length_profile_tsv": str(outdir_path / "length_profile.tsv"),
        "insert_size_tsv": str(outdir_path / "insert_sizes.tsv"),
        "end_motif_tsv": str(outdir_path / "end_motifs.tsv"),
    }
    write_consensus_tsv(outputs["consensus_tsv"], result.consensus)
    write_trinucleotide_tsv(outputs["trinucleotide_tsv"], result.trinucleotides, config.remove_type)
    write_spectrum_tsv(outputs["spectrum_tsv"], result.spectrum)
    write_length_tsv(outputs["length_profile_tsv"], length_bins)
    write_insert_size_tsv(outputs["insert_size_tsv"], isize_bins)
    write_end_motif_tsv(outputs["end_motif_tsv"], motif_profile)

    dt = time.time() - t0
    logger.info(
        "Wrote %d consensus records and %d classified substitutions to %s (%.1fs)",
        len(result.consensus),
        len(result.trinucleotides),
        outdir_path,
        dt,
    )

    summary: Dict[str, object] = {
        "fragments_path": fragments_path,
        "loci_path": loci_path,
        "ref_fa": ref_fa,
        "deterministic_seed": config.deterministic_seed,
        "normalize_counts": bool(config.normalize_counts),
        "exclude_if_type_present": list(config.exclude_if_type_present),
        "retain_if_type_present": list(config.retain_if_type_present),
        "remove_type": list(config.remove_type),
        "length_comparison": length_comparison,
        "length_normalize": bool(length_normalize),
        "chromosomes": list(chromosomes) if chromosomes is not None else None,
        "end_motifs": {
            "motif_type": motif_type,
            "motif_length": int(motif_length),
            "by_status": bool(motif_by_status),
            "stats": motif_stats,
        },
        "locus_stats": locus_stats,
        "fragment_stats": fragment_stats,
        "counts": result.stats,
        "consensus_categories": {c: sum(1 for r in result.consensus if r.category == c) for c in CATEGORIES},
        "lengths": summarize_lengths(length_bins),
        "spectrum": {
            "channels": [e.channel for e in result.spectrum],
            "overlap_types": [e.overlap_type for e in result.spectrum],
            "values": [e.value for e in result.spectrum],
        },
        "outputs": outputs,
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", summary)
    return summary
