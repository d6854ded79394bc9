"""Fragment length summaries.

Two views are provided:

- ``insert_size_profile``: histogram of all fragment widths in a size window, with
  sizes that were never observed reported as zero.
- ``mutant_length_profile``: widths of mutant-supporting fragments against a
  comparison population (reference-supporting or outer fragments), binned to
  5 bp, optionally after down-sampling the comparison set to the mutant count.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import (
    MUT_CONCORDANT,
    MUT_SINGLE_READ,
    OUTER_FRAGMENT,
    REF_CONCORDANT,
    REF_SINGLE_READ,
)

logger = logging.getLogger(__name__)

SIZE_BIN = 5

_MUTANT_STATUSES = frozenset({MUT_CONCORDANT, MUT_SINGLE_READ})
_COMPARISON_STATUSES = {
    "ref": frozenset({REF_CONCORDANT, REF_SINGLE_READ}),
    "outer": frozenset({OUTER_FRAGMENT}),
}


@dataclass(frozen=True)
class InsertSizeBin:
    insert_size: int
    count: int
    prop: float


@dataclass(frozen=True)
class LengthBin:
    mutant: bool
    size_rounded: int
    count: int
    proportion: float


def insert_size_profile(
    widths: Iterable[int],
    *,
    isize_min: int = 1,
    isize_max: int = 1000,
) -> List[InsertSizeBin]:
    if isize_max < isize_min:
        raise ValueError("isize_max must be >= isize_min")
    arr = np.asarray([w for w in widths if isize_min <= w <= isize_max], dtype=np.int64)
    counts = np.bincount(arr - isize_min, minlength=isize_max - isize_min + 1)
    total = int(counts.sum())

    missing = int((counts == 0).sum())
    if missing:
        logger.info("%d insert size(s) in [%d, %d] have no fragments; reported as 0", missing, isize_min, isize_max)

    props = counts / float(total) if total > 0 else np.zeros(len(counts), dtype=float)
    return [
        InsertSizeBin(insert_size=isize_min + i, count=int(c), prop=float(p))
        for i, (c, p) in enumerate(zip(counts, props))
    ]


def round_to_bin(size: int, accuracy: int = SIZE_BIN) -> int:
    return int(round(size / float(accuracy))) * accuracy


def mutant_length_profile(
    status_widths: Iterable[Tuple[str, int]],
    *,
    comparison: str = "ref",
    normalize: bool = False,
    seed: Optional[int] = 123,
) -> List[LengthBin]:
    """Compare widths of mutant fragments with reference or outer fragments.

    Parameters
    ----------
    status_widths:
        ``(locus_status, fragment_width)`` pairs, one per joined row.
    comparison:
        ``"ref"`` (REF:* fragments) or ``"outer"`` (fragments overlapping no locus).
    normalize:
        Down-sample the comparison set to the number of mutant fragments.
    seed:
        Seed for the down-sampling.
    """
    if comparison not in _COMPARISON_STATUSES:
        raise ValueError(f"comparison must be one of {sorted(_COMPARISON_STATUSES)}, got {comparison!r}")
    wanted = _COMPARISON_STATUSES[comparison]

    mutant: List[int] = []
    other: List[int] = []
    for status, width in status_widths:
        if status in _MUTANT_STATUSES:
            mutant.append(int(width))
        elif status in wanted:
            other.append(int(width))

    if normalize:
        if len(other) > len(mutant):
            other = random.Random(seed).sample(other, len(mutant))
        elif len(other) < len(mutant):
            logger.warning(
                "Only %d %s fragments for %d mutant fragments; not down-sampling",
                len(other),
                comparison,
                len(mutant),
            )

    binned: Dict[Tuple[bool, int], int] = {}
    for flag, sizes in ((False, other), (True, mutant)):
        for s in sizes:
            key = (flag, round_to_bin(s))
            binned[key] = binned.get(key, 0) + 1

    total = sum(binned.values())
    return [
        LengthBin(mutant=flag, size_rounded=size, count=n, proportion=n / float(total))
        for (flag, size), n in sorted(binned.items())
    ]


def summarize_lengths(bins: Sequence[LengthBin]) -> Dict[str, Optional[float]]:
    """Weighted median size per group, for the run summary."""
    out: Dict[str, Optional[float]] = {}
    for flag, name in ((True, "mutant"), (False, "comparison")):
        sizes = [b.size_rounded for b in bins if b.mutant is flag]
        weights = [b.count for b in bins if b.mutant is flag]
        if not sizes:
            out[f"{name}_median_size"] = None
            continue
        out[f"{name}_median_size"] = float(np.median(np.repeat(sizes, weights)))
    return out
