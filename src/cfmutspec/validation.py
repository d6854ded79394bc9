from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .models import Fragment, Locus, LocusAnnotation, LocusKey

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_fasta_index(fasta_path: str | Path) -> None:
    """Ensure a FASTA has a .fai index; raise ValueError with fix instructions."""
    fa = Path(fasta_path)
    fai = fa.with_suffix(fa.suffix + ".fai")
    if fai.exists():
        return
    raise ValueError("Reference FASTA is not indexed. Run: samtools faidx " + str(fa))


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == "ucsc":
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == "ensembl":
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig


def remap_loci(loci: Sequence[Locus], style: str) -> List[Locus]:
    return [
        Locus(chrom=remap_contig(x.chrom, style), pos=x.pos, ref=x.ref, alt=x.alt, record_id=x.record_id)
        for x in loci
    ]


def remap_fragments(fragments: Sequence[Fragment], style: str) -> List[Fragment]:
    out: List[Fragment] = []
    for f in fragments:
        annotations = tuple(
            LocusAnnotation(
                locus_key=LocusKey(remap_contig(a.locus_key.chrom, style), a.locus_key.pos),
                bases=a.bases,
                status_label=a.status_label,
            )
            for a in f.annotations
        )
        out.append(
            Fragment(
                fragment_id=f.fragment_id,
                chrom=remap_contig(f.chrom, style),
                start=f.start,
                end=f.end,
                strand=f.strand,
                annotations=annotations,
            )
        )
    return out


def resolve_contig_style(
    loci: Sequence[Locus],
    fragments: Sequence[Fragment],
    reference_contigs: Sequence[str],
    requested: str = "auto",
) -> Tuple[List[Locus], List[Fragment]]:
    """Bring loci and fragments onto the reference's contig naming (chr1 vs 1).

    Raises ValueError when no locus contig is present in the reference afterwards.
    """
    ref_style = detect_contig_style(reference_contigs)
    target_style = requested
    if requested == "auto":
        target_style = ref_style

    loci_style = detect_contig_style(x.chrom for x in loci)
    frag_style = detect_contig_style(f.chrom for f in fragments)

    out_loci = list(loci)
    out_frags = list(fragments)
    if target_style in ("ucsc", "ensembl"):
        if loci_style not in ("unknown", target_style):
            logger.warning(
                "Contig style mismatch detected (loci=%s, reference=%s). Remapping loci to %s style.",
                loci_style,
                ref_style,
                target_style,
            )
            out_loci = remap_loci(out_loci, target_style)
        if frag_style not in ("unknown", target_style):
            logger.warning(
                "Contig style mismatch detected (fragments=%s, reference=%s). Remapping fragments to %s style.",
                frag_style,
                ref_style,
                target_style,
            )
            out_frags = remap_fragments(out_frags, target_style)

    if out_loci and reference_contigs:
        overlap = set(x.chrom for x in out_loci).intersection(reference_contigs)
        if not overlap:
            raise ValueError(
                "Contig mismatch between loci and reference FASTA (e.g., chr1 vs 1). "
                "Use --contig-style {ucsc,ensembl,auto} to override."
            )
    return out_loci, out_frags
