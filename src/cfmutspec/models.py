from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# Per-(fragment, locus) status labels.
REF_CONCORDANT = "REF:concordant"
REF_SINGLE_READ = "REF:single_read"
MUT_CONCORDANT = "MUT:concordant"
MUT_SINGLE_READ = "MUT:single_read"
MUT_DISCORDANT = "MUT:discordant"
OTHER_CONCORDANT = "other_base:concordant"
OTHER_SINGLE_READ = "other_base:single_read"
OUTER_FRAGMENT = "outer_fragment"

# Support categories, in output column order.
CO_MUT = "CO_MUT"
SO_MUT = "SO_MUT"
CO_REF = "CO_REF"
SO_REF = "SO_REF"
DO = "DO"
SO_OTHER = "SO_OTHER"
CO_OTHER = "CO_OTHER"

CATEGORIES: Tuple[str, ...] = (CO_MUT, SO_MUT, CO_REF, SO_REF, DO, SO_OTHER, CO_OTHER)

STATUS_TO_CATEGORY: Dict[str, str] = {
    MUT_CONCORDANT: CO_MUT,
    MUT_SINGLE_READ: SO_MUT,
    REF_CONCORDANT: CO_REF,
    REF_SINGLE_READ: SO_REF,
    MUT_DISCORDANT: DO,
    OTHER_SINGLE_READ: SO_OTHER,
    OTHER_CONCORDANT: CO_OTHER,
}

# Suffix of the consensus_mismatch string for each selectable category.
CONSENSUS_LABELS: Dict[str, str] = {
    CO_MUT: "MUT",
    SO_MUT: "MUT",
    DO: "discordant",
    SO_OTHER: "other_base_single_read",
    CO_OTHER: "other_base_concordant",
}

# "Matches reference" placeholder used by the upstream mismatch annotator.
REF_PLACEHOLDER = "R"
REF_TOKEN = "REF"

DNA_BASES = frozenset("ACGT")


@dataclass(frozen=True, order=True)
class LocusKey:
    """Genomic coordinate of a candidate site (1-based)."""

    chrom: str
    pos: int

    def __str__(self) -> str:
        return f"{self.chrom}:{self.pos}"


@dataclass(frozen=True, order=True)
class TargetKey:
    chrom: str
    pos: int
    ref: str
    alt: str

    def __str__(self) -> str:
        return f"{self.chrom}:{self.pos}:{self.ref}:{self.alt}"


@dataclass(frozen=True)
class Locus:
    """A candidate single-base substitution.

    Attributes
    ----------
    chrom:
        Contig name as present in the reference FASTA.
    pos:
        1-based genomic position.
    ref:
        Reference base (A/C/G/T), uppercase.
    alt:
        Alternate base (A/C/G/T), uppercase.
    record_id:
        Optional identifier (VCF ID or CHROM:POS:REF:ALT).
    """

    chrom: str
    pos: int
    ref: str
    alt: str
    record_id: str = ""

    @property
    def locus_key(self) -> LocusKey:
        return LocusKey(self.chrom, self.pos)

    @property
    def target_key(self) -> TargetKey:
        return TargetKey(self.chrom, self.pos, self.ref, self.alt)


@dataclass(frozen=True)
class LocusAnnotation:
    """Raw per-mate observation of one fragment at one locus, as annotated upstream.

    ``bases`` holds one character per mate covering the locus; ``R`` stands for
    "matches reference" and the literal ``REF`` for a reference-only call.
    """

    locus_key: LocusKey
    bases: str
    status_label: Optional[str] = None


@dataclass(frozen=True)
class Fragment:
    """Paired-end fragment (1-based inclusive interval)."""

    fragment_id: str
    chrom: str
    start: int
    end: int
    strand: str = "*"
    annotations: Tuple[LocusAnnotation, ...] = ()

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class JoinedRow:
    """One (fragment, locus) overlap, or a single outer row for unannotated fragments."""

    fragment_id: str
    width: int
    annotation: Optional[LocusAnnotation]
    locus: Optional[Locus]

    @property
    def is_outer(self) -> bool:
        return self.annotation is None


@dataclass(frozen=True)
class ResolvedCall:
    """Per-fragment status at a locus after mate reconciliation."""

    fragment_id: str
    width: int
    locus: Locus
    status: str
    mate_bases: Tuple[str, ...]
    candidate_bases: Tuple[str, ...]

    @property
    def category(self) -> str:
        return STATUS_TO_CATEGORY[self.status]


@dataclass(frozen=True)
class ConsensusRecord:
    """Locus-level summary with the single consensus mismatch."""

    locus: Locus
    support: Dict[str, int]
    median_length: Dict[str, Optional[float]]
    category: str
    consensus_base: str
    fragment_id: str = ""

    @property
    def consensus_mismatch(self) -> str:
        label = CONSENSUS_LABELS[self.category]
        return f"{self.locus.chrom}:{self.locus.pos}:{self.consensus_base}:{label}"


@dataclass(frozen=True)
class TrinucleotideRecord:
    consensus: ConsensusRecord
    ref_tri: str  # pyrimidine-oriented reference window
    ref_base: str
    mut_base: str
    channel: str


@dataclass(frozen=True)
class SpectrumEntry:
    channel: str
    overlap_type: str
    value: float


@dataclass(frozen=True)
class EngineConfig:
    """Run-level knobs.

    deterministic_seed:
        Seed for the consensus tie-breaks. ``None`` draws fresh entropy per run.
    normalize_counts:
        Report spectrum values as fractions of all counted records.
    exclude_if_type_present / retain_if_type_present:
        Support categories used to filter loci before the spectrum is counted.
    remove_type:
        Support categories ignored when the stratum of mutant loci is derived.
    """

    deterministic_seed: Optional[int] = 123
    normalize_counts: bool = True
    exclude_if_type_present: Tuple[str, ...] = ()
    retain_if_type_present: Tuple[str, ...] = ()
    remove_type: Tuple[str, ...] = ()
    progress: bool = False
