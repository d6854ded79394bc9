from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Protocol, Tuple

import pysam

from .errors import AmbiguousBaseError, ReferenceMismatchError
from .models import DNA_BASES, ConsensusRecord, TrinucleotideRecord

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans("ACGTacgt", "TGCAtgca")
_PURINES = frozenset("AG")


class ReferenceAccessor(Protocol):
    """Anything that returns reference bases for a 1-based inclusive interval."""

    def fetch(self, chrom: str, start: int, end: int) -> str:
        ...


class FastaReference:
    """Indexed FASTA reference backed by ``pysam.FastaFile``."""

    def __init__(self, fasta_path: str | Path) -> None:
        self.path = str(fasta_path)
        self._fasta = pysam.FastaFile(self.path)

    @property
    def contigs(self) -> List[str]:
        return list(self._fasta.references)

    def fetch(self, chrom: str, start: int, end: int) -> str:
        # pysam is 0-based half-open
        return self._fasta.fetch(chrom, start - 1, end)

    def close(self) -> None:
        self._fasta.close()

    def __enter__(self) -> "FastaReference":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class SequenceDictReference:
    """In-memory reference, mostly for toy data and tests."""

    def __init__(self, sequences: Mapping[str, str]) -> None:
        self._seqs = dict(sequences)

    @property
    def contigs(self) -> List[str]:
        return list(self._seqs)

    def fetch(self, chrom: str, start: int, end: int) -> str:
        if chrom not in self._seqs:
            raise KeyError(f"Unknown contig: {chrom}")
        seq = self._seqs[chrom]
        return seq[max(start - 1, 0) : end]


def reverse_complement(seq: str) -> str:
    return seq.translate(_COMPLEMENT)[::-1]


def sbs96_label(ref_tri: str, mut_base: str) -> str:
    return f"{ref_tri[0]}[{ref_tri[1]}>{mut_base}]{ref_tri[2]}"


def normalize_trinucleotide(ref_tri: str, ref_base: str, mut_base: str) -> Tuple[str, str, str]:
    """Orient a substitution so the reference base is a pyrimidine.

    Purine-reference substitutions are reverse-complemented as a whole
    (window, reference and mutant base). Raises AmbiguousBaseError on any base
    outside A/C/G/T.
    """
    ref_tri = ref_tri.upper()
    ref_base = ref_base.upper()
    mut_base = mut_base.upper()
    if len(ref_tri) != 3 or any(b not in DNA_BASES for b in ref_tri):
        raise AmbiguousBaseError(f"Reference window {ref_tri!r} is not an ACGT trinucleotide", sequence=ref_tri)
    if ref_base not in DNA_BASES or mut_base not in DNA_BASES:
        raise AmbiguousBaseError(f"Substitution {ref_base}>{mut_base} is not ACGT", sequence=ref_base + mut_base)

    if ref_base in _PURINES:
        return reverse_complement(ref_tri), reverse_complement(ref_base), reverse_complement(mut_base)
    return ref_tri, ref_base, mut_base


def fetch_trinucleotide(reference: ReferenceAccessor, chrom: str, pos: int) -> str:
    """Reference bases at pos-1 .. pos+1 (1-based), uppercased."""
    if pos < 2:
        raise AmbiguousBaseError(f"No 5' flank at {chrom}:{pos}")
    window = reference.fetch(chrom, pos - 1, pos + 1).upper()
    if len(window) != 3:
        raise AmbiguousBaseError(
            f"Reference window at {chrom}:{pos} is truncated ({window!r})", sequence=window
        )
    if any(b not in DNA_BASES for b in window):
        raise AmbiguousBaseError(
            f"Reference window at {chrom}:{pos} contains non-ACGT bases ({window!r})", sequence=window
        )
    return window


def classify_record(record: ConsensusRecord, reference: ReferenceAccessor) -> TrinucleotideRecord:
    """Attach the SBS96 channel to a finalized consensus record."""
    locus = record.locus
    window = fetch_trinucleotide(reference, locus.chrom, locus.pos)
    if window[1] != locus.ref:
        raise ReferenceMismatchError(
            f"Reference base at {locus.locus_key} is {window[1]}, locus table says {locus.ref}"
        )
    ref_tri, ref_base, mut_base = normalize_trinucleotide(window, locus.ref, record.consensus_base)
    return TrinucleotideRecord(
        consensus=record,
        ref_tri=ref_tri,
        ref_base=ref_base,
        mut_base=mut_base,
        channel=sbs96_label(ref_tri, mut_base),
    )


def classify_trinucleotides(
    records: Iterable[ConsensusRecord],
    reference: ReferenceAccessor,
) -> Tuple[List[TrinucleotideRecord], Dict[str, int]]:
    """Classify all consensus records; bad windows are counted and excluded."""
    stats = {
        "records_classified": 0,
        "records_ambiguous_base": 0,
        "records_reference_mismatch": 0,
        "records_missing_contig": 0,
    }
    out: List[TrinucleotideRecord] = []
    for rec in records:
        try:
            out.append(classify_record(rec, reference))
        except AmbiguousBaseError as e:
            stats["records_ambiguous_base"] += 1
            logger.warning("Excluding %s: %s", rec.locus.target_key, e)
            continue
        except KeyError as e:
            stats["records_missing_contig"] += 1
            logger.warning("Excluding %s: %s", rec.locus.target_key, e)
            continue
        except ReferenceMismatchError as e:
            stats["records_reference_mismatch"] += 1
            logger.warning("Excluding %s: %s", rec.locus.target_key, e)
            continue
        stats["records_classified"] += 1
    return out, stats
