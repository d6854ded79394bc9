"""Fragment end motifs.

A motif is the ``k`` reference bases at one end of a fragment, read 5'->3'
along the fragment strand. ``s`` motifs sit at the fragment's 5' end and ``e``
motifs at its 3' end; for ``-`` strand fragments those are the reverse
complement of the reference at ``end`` and ``start`` respectively. Fragments
without a strand (``*``) are read on the forward strand.

Counts cover every ACGT motif of length ``k`` (unseen motifs are reported with
``n = 0``); motifs that contain any other base are dropped.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .joiner import dedupe_fragments
from .models import (
    DNA_BASES,
    MUT_CONCORDANT,
    MUT_SINGLE_READ,
    REF_CONCORDANT,
    REF_SINGLE_READ,
    Fragment,
    ResolvedCall,
)
from .trinucleotide import ReferenceAccessor, reverse_complement

logger = logging.getLogger(__name__)

MOTIF_TYPES: Tuple[str, ...] = ("s", "e")

_REF_STATUSES = frozenset({REF_CONCORDANT, REF_SINGLE_READ})
_MUT_STATUSES = frozenset({MUT_CONCORDANT, MUT_SINGLE_READ})


@dataclass(frozen=True)
class MotifCount:
    motif: str
    n: int
    fraction: float


def all_motifs(motif_length: int) -> List[str]:
    """Every ACGT motif of the given length, in lexicographic order."""
    return ["".join(p) for p in itertools.product("ACGT", repeat=motif_length)]


def end_motif(
    fragment: Fragment,
    reference: ReferenceAccessor,
    *,
    motif_type: str = "s",
    motif_length: int = 3,
) -> str:
    """Motif at one end of a fragment; may be shorter than requested at a contig end."""
    if motif_type not in MOTIF_TYPES:
        raise ValueError(f"motif_type must be one of {list(MOTIF_TYPES)}, got {motif_type!r}")
    reverse = fragment.strand == "-"
    at_start = (motif_type == "s") != reverse
    if at_start:
        seq = reference.fetch(fragment.chrom, fragment.start, fragment.start + motif_length - 1)
    else:
        seq = reference.fetch(fragment.chrom, fragment.end - motif_length + 1, fragment.end)
    seq = seq.upper()
    return reverse_complement(seq) if reverse else seq


def count_end_motifs(
    fragments: Iterable[Fragment],
    reference: ReferenceAccessor,
    *,
    motif_type: str = "s",
    motif_length: int = 3,
) -> Tuple[List[MotifCount], Dict[str, int]]:
    """Count end motifs over ``fragments``; returns one row per possible motif."""
    if motif_length < 1:
        raise ValueError("motif_length must be >= 1")

    stats = {
        "motif_fragments": 0,
        "motif_counted": 0,
        "motif_skipped_short": 0,
        "motif_skipped_ambiguous": 0,
        "motif_skipped_missing_contig": 0,
    }
    counter: Counter = Counter()

    for frag in fragments:
        stats["motif_fragments"] += 1
        if frag.width < motif_length:
            stats["motif_skipped_short"] += 1
            continue
        try:
            motif = end_motif(frag, reference, motif_type=motif_type, motif_length=motif_length)
        except KeyError as e:
            stats["motif_skipped_missing_contig"] += 1
            logger.debug("Fragment %s: %s", frag.fragment_id, e)
            continue
        if len(motif) != motif_length:
            stats["motif_skipped_short"] += 1
            continue
        if any(b not in DNA_BASES for b in motif):
            stats["motif_skipped_ambiguous"] += 1
            continue
        counter[motif] += 1

    total = sum(counter.values())
    stats["motif_counted"] = total
    motifs = all_motifs(motif_length)
    missing = sum(1 for m in motifs if m not in counter)
    if stats["motif_skipped_ambiguous"]:
        logger.info("Dropped %d end motif(s) containing non-ACGT bases", stats["motif_skipped_ambiguous"])
    if missing:
        logger.info("%d of %d %s%d motifs not observed; reported as 0", missing, len(motifs), motif_type, motif_length)

    rows = [
        MotifCount(motif=m, n=counter[m], fraction=counter[m] / float(total) if total else 0.0)
        for m in motifs
    ]
    return rows, stats


def split_by_status(
    fragments: Iterable[Fragment],
    calls: Iterable[ResolvedCall],
) -> Tuple[List[Fragment], List[Fragment]]:
    """Reference-supporting and mutant-supporting fragments (a fragment may be in both)."""
    ref_ids = set()
    mut_ids = set()
    for call in calls:
        if call.status in _REF_STATUSES:
            ref_ids.add(call.fragment_id)
        elif call.status in _MUT_STATUSES:
            mut_ids.add(call.fragment_id)
    fragments = list(fragments)
    return (
        [f for f in fragments if f.fragment_id in ref_ids],
        [f for f in fragments if f.fragment_id in mut_ids],
    )


def end_motif_profile(
    fragments: Sequence[Fragment],
    reference: ReferenceAccessor,
    *,
    calls: Optional[Sequence[ResolvedCall]] = None,
    motif_type: str = "s",
    motif_length: int = 3,
    by_status: bool = False,
) -> Tuple[Dict[str, List[MotifCount]], Dict[str, int]]:
    """End motif counts for all fragments, or split into ``ref``/``mut`` groups.

    Parameters
    ----------
    fragments:
        Raw fragments; duplicate identifiers are collapsed first.
    calls:
        Resolved calls, required with ``by_status``.
    by_status:
        Count reference-supporting and mutant-supporting fragments separately.

    Returns
    -------
    profile:
        ``{"all": rows}`` or ``{"ref": rows, "mut": rows}``.
    stats:
        Skip counters, prefixed with the group name when split.
    """
    kept, _ = dedupe_fragments(fragments)
    if not by_status:
        rows, stats = count_end_motifs(kept, reference, motif_type=motif_type, motif_length=motif_length)
        return {"all": rows}, stats

    if calls is None:
        raise ValueError("calls are required to split end motifs by status")
    ref_frags, mut_frags = split_by_status(kept, calls)
    profile: Dict[str, List[MotifCount]] = {}
    stats: Dict[str, int] = {}
    for group, group_frags in (("ref", ref_frags), ("mut", mut_frags)):
        rows, group_stats = count_end_motifs(
            group_frags, reference, motif_type=motif_type, motif_length=motif_length
        )
        profile[group] = rows
        stats.update({f"{group}_{k}": v for k, v in group_stats.items()})
    return profile, stats
