from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import AmbiguousBaseError, UnresolvedLocusError
from .models import (
    DNA_BASES,
    MUT_CONCORDANT,
    MUT_DISCORDANT,
    MUT_SINGLE_READ,
    OTHER_CONCORDANT,
    OTHER_SINGLE_READ,
    REF_CONCORDANT,
    REF_PLACEHOLDER,
    REF_SINGLE_READ,
    REF_TOKEN,
    JoinedRow,
    LocusAnnotation,
    ResolvedCall,
)

logger = logging.getLogger(__name__)

_CONCORDANT_STATUS = {"ref": REF_CONCORDANT, "alt": MUT_CONCORDANT, "other": OTHER_CONCORDANT}
_SINGLE_STATUS = {"ref": REF_SINGLE_READ, "alt": MUT_SINGLE_READ, "other": OTHER_SINGLE_READ}


def _label_is_concordant(label: Optional[str]) -> bool:
    return label is not None and label.endswith("concordant")


def expand_mate_bases(annotation: LocusAnnotation) -> Tuple[str, Optional[str]]:
    """Turn the raw base token into (mate1, mate2); mate2 is None for single-read support.

    ``REF`` and single-character tokens carry no mate count of their own, so the
    upstream status label decides whether they stand for one or both mates.
    """
    token = annotation.bases
    concordant = _label_is_concordant(annotation.status_label)
    if token == REF_TOKEN:
        return (REF_PLACEHOLDER, REF_PLACEHOLDER) if concordant else (REF_PLACEHOLDER, None)
    if len(token) == 1:
        return (token, token) if concordant else (token, None)
    if len(token) == 2:
        return token[0], token[1]
    raise AmbiguousBaseError(
        f"Cannot split {token!r} at {annotation.locus_key} into per-mate bases", sequence=token
    )


def _kind(base: str, ref: str, alt: str) -> str:
    if base == ref:
        return "ref"
    if base == alt:
        return "alt"
    return "other"


def resolve_mates(
    mate1: str,
    mate2: Optional[str],
    ref: str,
    alt: str,
) -> Tuple[str, Tuple[str, ...]]:
    """Classify one fragment at one locus from its per-mate bases.

    The ``R`` placeholder means "not the alternate, assume reference" and is
    replaced by ``ref``. Returns ``(status, resolved_bases)``.
    """
    bases = [ref if b == REF_PLACEHOLDER else b for b in (mate1, mate2) if b is not None]
    for b in bases:
        if b not in DNA_BASES:
            raise AmbiguousBaseError(f"Observed base {b!r} is not A/C/G/T", sequence="".join(bases))

    if len(bases) == 1:
        return _SINGLE_STATUS[_kind(bases[0], ref, alt)], (bases[0],)
    if bases[0] == bases[1]:
        return _CONCORDANT_STATUS[_kind(bases[0], ref, alt)], (bases[0], bases[1])
    return MUT_DISCORDANT, (bases[0], bases[1])


def candidate_bases(resolved: Iterable[str], ref: str) -> Tuple[str, ...]:
    """Distinct non-reference bases, in mate order."""
    out: List[str] = []
    for b in resolved:
        if b != ref and b not in out:
            out.append(b)
    return tuple(out)


def resolve_row(row: JoinedRow) -> ResolvedCall:
    """Resolve the status of one joined (fragment, locus) row."""
    assert row.annotation is not None
    if row.locus is None:
        raise UnresolvedLocusError(row.annotation.locus_key, row.fragment_id)

    locus = row.locus
    mate1, mate2 = expand_mate_bases(row.annotation)
    status, resolved = resolve_mates(mate1, mate2, locus.ref, locus.alt)
    return ResolvedCall(
        fragment_id=row.fragment_id,
        width=row.width,
        locus=locus,
        status=status,
        mate_bases=resolved,
        candidate_bases=candidate_bases(resolved, locus.ref),
    )


def resolve_statuses(rows: Iterable[JoinedRow]) -> Tuple[List[ResolvedCall], Dict[str, int]]:
    """Resolve every annotated row; unresolvable rows are counted and skipped."""
    stats: Dict[str, int] = {
        "annotations_resolved": 0,
        "annotations_unresolved": 0,
        "annotations_invalid_base": 0,
        "status_relabelled": 0,
    }
    calls: List[ResolvedCall] = []

    for row in rows:
        if row.is_outer:
            continue
        try:
            call = resolve_row(row)
        except UnresolvedLocusError as e:
            stats["annotations_unresolved"] += 1
            logger.debug("%s", e)
            continue
        except AmbiguousBaseError as e:
            stats["annotations_invalid_base"] += 1
            logger.debug("Fragment %s: %s", row.fragment_id, e)
            continue

        label = row.annotation.status_label if row.annotation is not None else None
        if label is not None and label != call.status:
            stats["status_relabelled"] += 1
            logger.debug(
                "Fragment %s at %s: upstream status %s resolved as %s",
                call.fragment_id,
                call.locus.locus_key,
                label,
                call.status,
            )
        stats["annotations_resolved"] += 1
        calls.append(call)

    if stats["annotations_unresolved"]:
        logger.warning(
            "Skipped %d annotation(s) with no matching locus", stats["annotations_unresolved"]
        )
    if stats["annotations_invalid_base"]:
        logger.warning(
            "Skipped %d annotation(s) with non-ACGT observed bases", stats["annotations_invalid_base"]
        )
    return calls, stats
