from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import (
    CATEGORIES,
    CO_MUT,
    CO_OTHER,
    DO,
    SO_MUT,
    SO_OTHER,
    SpectrumEntry,
    TrinucleotideRecord,
)

logger = logging.getLogger(__name__)

MUTATION_TYPES: Tuple[str, ...] = ("C>A", "C>G", "C>T", "T>A", "T>C", "T>G")
FLANK_BASES: Tuple[str, ...] = ("A", "C", "G", "T")
OVERLAP_TYPES: Tuple[str, ...] = (CO_MUT, SO_MUT, DO)

# Other-base support keeps the read-pair topology of the locus.
CATEGORY_TO_STRATUM: Dict[str, str] = {
    CO_MUT: CO_MUT,
    SO_MUT: SO_MUT,
    DO: DO,
    CO_OTHER: CO_MUT,
    SO_OTHER: SO_MUT,
}


def sbs96_channels() -> List[str]:
    """The 96 channels, grouped by substitution type, then 5' and 3' base."""
    return [
        f"{left}[{mut}]{right}"
        for mut in MUTATION_TYPES
        for left in FLANK_BASES
        for right in FLANK_BASES
    ]


SBS96_CHANNELS: Tuple[str, ...] = tuple(sbs96_channels())
_CHANNEL_INDEX: Dict[str, int] = {c: i for i, c in enumerate(SBS96_CHANNELS)}


def _check_categories(names: Sequence[str], what: str) -> None:
    unknown = [n for n in names if n not in CATEGORIES]
    if unknown:
        raise ValueError(f"Unknown support type(s) in {what}: {unknown}; expected {list(CATEGORIES)}")


def filter_records(
    records: Iterable[TrinucleotideRecord],
    *,
    exclude_if_type_present: Sequence[str] = (),
    retain_if_type_present: Sequence[str] = (),
) -> List[TrinucleotideRecord]:
    """Drop loci with support in any excluded type; keep only loci with support in a retained type."""
    _check_categories(exclude_if_type_present, "exclude_if_type_present")
    _check_categories(retain_if_type_present, "retain_if_type_present")

    out: List[TrinucleotideRecord] = []
    for rec in records:
        support = rec.consensus.support
        if exclude_if_type_present and any(support.get(t, 0) > 0 for t in exclude_if_type_present):
            continue
        if retain_if_type_present and not any(support.get(t, 0) > 0 for t in retain_if_type_present):
            continue
        out.append(rec)
    return out


def record_stratum(record: TrinucleotideRecord, remove_type: Sequence[str] = ()) -> Optional[str]:
    """Overlap-type stratum of a record, or None when ``remove_type`` leaves it unsupported.

    Support in ``remove_type`` is ignored. Mutant consensus records (CO_MUT,
    SO_MUT) then take CO_MUT if concordant support remains, else SO_MUT if
    single-read support remains. Other categories keep their fixed stratum.
    """
    category = record.consensus.category
    if not remove_type or category not in (CO_MUT, SO_MUT):
        return CATEGORY_TO_STRATUM[category]
    support = record.consensus.support
    for stratum in (CO_MUT, SO_MUT):
        if stratum not in remove_type and support.get(stratum, 0) > 0:
            return stratum
    return None


def count_matrix(records: Iterable[TrinucleotideRecord], remove_type: Sequence[str] = ()) -> np.ndarray:
    """Raw counts, shape (96, 3): channels x (CO_MUT, SO_MUT, DO)."""
    counts = np.zeros((len(SBS96_CHANNELS), len(OVERLAP_TYPES)), dtype=np.int64)
    for rec in records:
        row = _CHANNEL_INDEX.get(rec.channel)
        if row is None:
            # classify_record only emits pyrimidine channels; anything else is a bug upstream
            raise ValueError(f"Not an SBS96 channel: {rec.channel}")
        stratum = record_stratum(rec, remove_type)
        if stratum is None:
            continue
        counts[row, OVERLAP_TYPES.index(stratum)] += 1
    return counts


def aggregate_spectrum(
    records: Iterable[TrinucleotideRecord],
    *,
    normalize_counts: bool = True,
    exclude_if_type_present: Sequence[str] = (),
    retain_if_type_present: Sequence[str] = (),
    remove_type: Sequence[str] = (),
) -> Tuple[List[SpectrumEntry], Dict[str, int]]:
    """Tabulate the SBS96 spectrum in long form.

    One entry per (channel, overlap type), channels in canonical order. With
    ``normalize_counts`` every value is divided by the total record count over
    all channels and strata, so the whole table sums to 1. ``remove_type``
    support is ignored when the stratum of mutant records is derived (see
    ``record_stratum``).
    """
    _check_categories(remove_type, "remove_type")
    records = list(records)
    kept = filter_records(
        records,
        exclude_if_type_present=exclude_if_type_present,
        retain_if_type_present=retain_if_type_present,
    )
    counts = count_matrix(kept, remove_type)
    total = int(counts.sum())

    values = counts.astype(float)
    if normalize_counts and total > 0:
        values = values / float(total)

    entries = [
        SpectrumEntry(channel=channel, overlap_type=otype, value=float(values[i, j]))
        for i, channel in enumerate(SBS96_CHANNELS)
        for j, otype in enumerate(OVERLAP_TYPES)
    ]

    stats = {
        "spectrum_records_in": len(records),
        "spectrum_records_filtered": len(records) - len(kept),
        "spectrum_records_removed": len(kept) - total,
        "spectrum_records_counted": total,
    }
    for j, otype in enumerate(OVERLAP_TYPES):
        stats[f"spectrum_{otype}"] = int(counts[:, j].sum())

    logger.info("Spectrum: %d records counted over %d channels", total, len(SBS96_CHANNELS))
    return entries, stats


def entries_to_matrix(entries: Iterable[SpectrumEntry]) -> np.ndarray:
    """Inverse of the long form: values as a (96, 3) array."""
    mat = np.zeros((len(SBS96_CHANNELS), len(OVERLAP_TYPES)), dtype=float)
    for e in entries:
        mat[_CHANNEL_INDEX[e.channel], OVERLAP_TYPES.index(e.overlap_type)] = e.value
    return mat
