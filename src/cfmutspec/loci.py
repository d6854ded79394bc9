from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pysam

from .errors import InputFormatError
from .models import DNA_BASES, Locus, LocusKey
from .utils import iter_tsv_rows

logger = logging.getLogger(__name__)

_LOCUS_COLUMNS = ("chrom", "pos", "ref", "alt")
_VCF_SUFFIXES = (".vcf", ".vcf.gz", ".bcf")


def _is_vcf(path: str | Path) -> bool:
    p = str(path).lower()
    return any(p.endswith(s) for s in _VCF_SUFFIXES)


def _new_stats() -> Dict[str, int]:
    return {
        "records_total": 0,
        "loci_kept": 0,
        "loci_skipped_filter": 0,
        "loci_skipped_non_snv": 0,
        "loci_skipped_duplicate": 0,
    }


def _is_snv(ref: str, alt: str) -> bool:
    return len(ref) == 1 and len(alt) == 1 and ref in DNA_BASES and alt in DNA_BASES and ref != alt


def load_loci_vcf(
    vcf_path: str | Path,
    *,
    require_pass: bool = True,
) -> Tuple[List[Locus], Dict[str, int]]:
    """Load candidate SNV loci from a VCF.

    Multi-allelic records contribute their first ALT allele only; indels and
    non-ACGT alleles are skipped.
    """
    stats = _new_stats()
    loci: List[Locus] = []

    with pysam.VariantFile(str(vcf_path)) as vcf:
        for rec in vcf:
            stats["records_total"] += 1

            if require_pass:
                # In pysam, rec.filter.keys() returns set of filter names; PASS may be absent when empty.
                filt = list(rec.filter.keys())
                if len(filt) > 0 and not (len(filt) == 1 and filt[0] == "PASS"):
                    stats["loci_skipped_filter"] += 1
                    continue

            ref = (rec.ref or "").upper()
            alts = list(rec.alts or [])
            alt = alts[0].upper() if alts else ""
            if not _is_snv(ref, alt):
                stats["loci_skipped_non_snv"] += 1
                continue

            chrom = str(rec.contig)
            pos = int(rec.pos)  # VCF is 1-based
            rid = rec.id if rec.id is not None else f"{chrom}:{pos}:{ref}:{alt}"
            loci.append(Locus(chrom=chrom, pos=pos, ref=ref, alt=alt, record_id=rid))

    return loci, stats


def load_loci_tsv(tsv_path: str | Path) -> Tuple[List[Locus], Dict[str, int]]:
    """Load loci from a TSV with columns chrom, pos, ref, alt (1-based positions)."""
    stats = _new_stats()
    loci: List[Locus] = []
    path = str(tsv_path)

    for lineno, row in iter_tsv_rows(path):
        missing = [c for c in _LOCUS_COLUMNS if c not in row]
        if missing:
            raise InputFormatError(f"missing column(s): {', '.join(missing)}", path=path, line=lineno)
        stats["records_total"] += 1
        try:
            pos = int(row["pos"])
        except ValueError:
            raise InputFormatError(f"position is not an integer: {row['pos']!r}", path=path, line=lineno)
        if pos < 1:
            raise InputFormatError(f"position must be 1-based: {pos}", path=path, line=lineno)

        ref = row["ref"].strip().upper()
        alt = row["alt"].strip().upper()
        if not _is_snv(ref, alt):
            stats["loci_skipped_non_snv"] += 1
            continue
        chrom = row["chrom"].strip()
        loci.append(Locus(chrom=chrom, pos=pos, ref=ref, alt=alt, record_id=f"{chrom}:{pos}:{ref}:{alt}"))

    return loci, stats


def load_loci(
    path: str | Path,
    *,
    require_pass: bool = True,
    chromosomes: Optional[Iterable[str]] = None,
) -> Tuple[List[Locus], Dict[str, int]]:
    """Load the locus table from VCF or TSV, sorted by (chrom, pos).

    Parameters
    ----------
    path:
        VCF/VCF.GZ/BCF, or TSV(.gz) with chrom/pos/ref/alt columns.
    require_pass:
        VCF only: require FILTER to be PASS or empty.
    chromosomes:
        Optional set of contigs to keep.

    Returns
    -------
    loci:
        One Locus per coordinate (first record wins on duplicate coordinates).
    stats:
        Counters about records kept/skipped.
    """
    if _is_vcf(path):
        loci, stats = load_loci_vcf(path, require_pass=require_pass)
    else:
        loci, stats = load_loci_tsv(path)

    keep = set(chromosomes) if chromosomes is not None else None
    seen: Dict[LocusKey, Locus] = {}
    stats["loci_skipped_chrom"] = 0
    for locus in loci:
        if keep is not None and locus.chrom not in keep:
            stats["loci_skipped_chrom"] += 1
            continue
        if locus.locus_key in seen:
            stats["loci_skipped_duplicate"] += 1
            logger.warning(
                "Duplicate locus %s (%s>%s); keeping %s>%s",
                locus.locus_key,
                locus.ref,
                locus.alt,
                seen[locus.locus_key].ref,
                seen[locus.locus_key].alt,
            )
            continue
        seen[locus.locus_key] = locus

    out = sorted(seen.values(), key=lambda x: (x.chrom, x.pos))
    stats["loci_kept"] = len(out)
    if not out:
        logger.warning("No usable SNV loci were found in %s", path)
    return out, stats


def build_locus_table(loci: Iterable[Locus]) -> Dict[LocusKey, Locus]:
    """Hash index of loci by coordinate."""
    table: Dict[LocusKey, Locus] = {}
    for locus in loci:
        table.setdefault(locus.locus_key, locus)
    return table
