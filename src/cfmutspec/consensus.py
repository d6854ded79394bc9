from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .models import (
    CATEGORIES,
    CO_MUT,
    CO_OTHER,
    DO,
    SO_MUT,
    SO_OTHER,
    ConsensusRecord,
    Locus,
    LocusKey,
    ResolvedCall,
)
from .utils import locus_rng, median_or_none

logger = logging.getLogger(__name__)

# Categories that only compete when neither CO_MUT nor SO_MUT has support.
_LOWER_PRIORITY: Tuple[str, ...] = (DO, SO_OTHER, CO_OTHER)


def support_tally(calls: Iterable[ResolvedCall]) -> Dict[str, int]:
    counts = {c: 0 for c in CATEGORIES}
    for call in calls:
        counts[call.category] += 1
    return counts


def median_length_tally(calls: Iterable[ResolvedCall]) -> Dict[str, Optional[float]]:
    widths: Dict[str, List[int]] = {c: [] for c in CATEGORIES}
    for call in calls:
        widths[call.category].append(call.width)
    return {c: median_or_none(w) for c, w in widths.items()}


def select_category(support: Dict[str, int], rng: random.Random) -> Optional[str]:
    """Pick the support category that represents a locus.

    CO_MUT wins whenever present, then SO_MUT, regardless of how many discordant
    or other-base fragments there are. Otherwise the most supported of DO,
    SO_OTHER and CO_OTHER is taken, with ties broken uniformly at random.
    Returns None when none of these has support (reference-only loci).
    """
    if support.get(CO_MUT, 0) > 0:
        return CO_MUT
    if support.get(SO_MUT, 0) > 0:
        return SO_MUT

    best = max(support.get(c, 0) for c in _LOWER_PRIORITY)
    if best == 0:
        return None
    tied = [c for c in _LOWER_PRIORITY if support.get(c, 0) == best]
    if len(tied) == 1:
        return tied[0]
    return rng.choice(tied)


def disambiguate_bases(bases: Sequence[str], alt: str, rng: random.Random) -> str:
    """Reduce the candidate mismatch bases of a fragment to one base.

    Two candidates: keep the one matching ``alt``, else choose uniformly at random.
    A single candidate is returned unchanged, so applying this to its own output
    is a no-op.
    """
    if len(bases) == 1:
        return bases[0]
    if len(bases) != 2:
        raise ValueError(f"Expected one or two candidate bases, got {list(bases)}")
    if alt in bases:
        return alt
    # TODO: confirm with the assay owners whether a two-way non-ALT discordance should drop the locus instead.
    return rng.choice(sorted(bases))


def build_consensus_record(
    locus: Locus,
    calls: Sequence[ResolvedCall],
    rng: random.Random,
) -> Optional[ConsensusRecord]:
    """Summarize the calls of one locus; None when no fragment qualifies."""
    support = support_tally(calls)
    category = select_category(support, rng)
    if category is None:
        return None

    pool = sorted((c for c in calls if c.category == category), key=lambda c: c.fragment_id)
    chosen = pool[0] if len(pool) == 1 else rng.choice(pool)
    base = disambiguate_bases(chosen.candidate_bases, locus.alt, rng)

    return ConsensusRecord(
        locus=locus,
        support=support,
        median_length=median_length_tally(calls),
        category=category,
        consensus_base=base,
        fragment_id=chosen.fragment_id,
    )


def group_calls_by_locus(calls: Iterable[ResolvedCall]) -> Dict[LocusKey, List[ResolvedCall]]:
    by_locus: Dict[LocusKey, List[ResolvedCall]] = {}
    for call in calls:
        by_locus.setdefault(call.locus.locus_key, []).append(call)
    return by_locus


def build_consensus_table(
    calls: Iterable[ResolvedCall],
    *,
    seed: Optional[int] = 123,
    progress: bool = False,
) -> Tuple[List[ConsensusRecord], Dict[str, int]]:
    """Build one consensus record per supported locus, in (chrom, pos) order.

    Each locus draws from its own RNG derived from ``seed`` and its key, so the
    result does not depend on how loci are ordered or split across workers.
    """
    by_locus = group_calls_by_locus(calls)
    stats = {"loci_with_fragments": len(by_locus), "loci_consensus": 0, "loci_no_support": 0}
    records: List[ConsensusRecord] = []

    keys: Iterable[LocusKey] = sorted(by_locus)
    if progress:
        keys = tqdm(keys, unit="locus", desc="Consensus")

    for key in keys:
        locus_calls = by_locus[key]
        rec = build_consensus_record(locus_calls[0].locus, locus_calls, locus_rng(seed, key))
        if rec is None:
            stats["loci_no_support"] += 1
            continue
        records.append(rec)

    stats["loci_consensus"] = len(records)
    logger.info(
        "Consensus: %d loci with a consensus mismatch, %d reference-only loci dropped",
        stats["loci_consensus"],
        stats["loci_no_support"],
    )
    return records, stats
