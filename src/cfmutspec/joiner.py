from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Tuple

from .fragments import logical_fragment_id
from .models import Fragment, JoinedRow, Locus, LocusKey

logger = logging.getLogger(__name__)


def dedupe_fragments(fragments: Iterable[Fragment]) -> Tuple[List[Fragment], int]:
    """Collapse ``readX``/``readX.1``/... to one fragment; the first one seen wins."""
    seen: Dict[str, Fragment] = {}
    dropped = 0
    for frag in fragments:
        fid = logical_fragment_id(frag.fragment_id)
        if fid in seen:
            dropped += 1
            logger.debug("Dropping duplicate fragment %s (logical id %s)", frag.fragment_id, fid)
            continue
        seen[fid] = Fragment(
            fragment_id=fid,
            chrom=frag.chrom,
            start=frag.start,
            end=frag.end,
            strand=frag.strand,
            annotations=frag.annotations,
        )
    return list(seen.values()), dropped


def join_fragments_to_loci(
    fragments: Iterable[Fragment],
    locus_table: Mapping[LocusKey, Locus],
) -> Tuple[List[JoinedRow], Dict[str, int]]:
    """Attach each fragment annotation to its locus.

    Every kept fragment yields one row per annotation; fragments without any
    annotation yield a single outer row so the total population is preserved.
    Annotations whose locus is not in ``locus_table`` keep ``locus=None``.
    """
    fragments = list(fragments)
    kept, dropped = dedupe_fragments(fragments)

    stats: Dict[str, int] = {
        "fragments_total": len(fragments),
        "fragments_kept": len(kept),
        "fragments_duplicate": dropped,
        "fragments_outer": 0,
        "annotations_total": 0,
        "annotations_matched": 0,
        "annotations_unmatched": 0,
    }

    rows: List[JoinedRow] = []
    for frag in kept:
        if not frag.annotations:
            stats["fragments_outer"] += 1
            rows.append(JoinedRow(fragment_id=frag.fragment_id, width=frag.width, annotation=None, locus=None))
            continue
        for ann in frag.annotations:
            stats["annotations_total"] += 1
            locus = locus_table.get(ann.locus_key)
            if locus is None:
                stats["annotations_unmatched"] += 1
            else:
                stats["annotations_matched"] += 1
            rows.append(JoinedRow(fragment_id=frag.fragment_id, width=frag.width, annotation=ann, locus=locus))

    if dropped:
        logger.info("Collapsed %d duplicate fragment identifiers", dropped)
    if stats["annotations_unmatched"]:
        logger.warning(
            "%d fragment annotation(s) reference loci absent from the locus table",
            stats["annotations_unmatched"],
        )
    return rows, stats
