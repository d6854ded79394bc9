from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InputFormatError
from .models import OUTER_FRAGMENT, Fragment, LocusAnnotation, LocusKey
from .utils import iter_tsv_rows

logger = logging.getLogger(__name__)

_FRAGMENT_COLUMNS = ("fragment_id", "chrom", "start", "end")
_EMPTY_VALUES = {"", "NA", "na", "None", ".", OUTER_FRAGMENT}
_ANNOTATION_SEP = ";"
_DUP_SUFFIX = re.compile(r"\.\d+$")


def logical_fragment_id(fragment_id: str) -> str:
    """Strip the ``.N`` suffix added upstream when read-pair names collide (``readX.1`` -> ``readX``)."""
    return _DUP_SUFFIX.sub("", fragment_id)


def parse_locus_info(locus_info: str, status_label: Optional[str] = None) -> LocusAnnotation:
    """Parse one ``chrom:pos:BASES`` annotation; extra trailing fields are ignored."""
    parts = locus_info.strip().split(":")
    if len(parts) < 3:
        raise ValueError(f"locus_info must look like chrom:pos:BASES, got {locus_info!r}")
    chrom, pos_s, bases = parts[0], parts[1], parts[2]
    try:
        pos = int(pos_s)
    except ValueError:
        raise ValueError(f"locus_info position is not an integer: {locus_info!r}")
    bases = bases.strip().upper()
    if not bases:
        raise ValueError(f"locus_info has no observed bases: {locus_info!r}")
    label = status_label.strip() if status_label else None
    if label in _EMPTY_VALUES:
        label = None
    return LocusAnnotation(locus_key=LocusKey(chrom, pos), bases=bases, status_label=label)


def parse_annotations(locus_info: str, locus_status: str = "") -> Tuple[LocusAnnotation, ...]:
    """Parse the ``;``-separated annotation columns of one fragment row."""
    info = (locus_info or "").strip()
    if info in _EMPTY_VALUES:
        return ()
    infos = [x for x in info.split(_ANNOTATION_SEP) if x.strip()]
    status = (locus_status or "").strip()
    statuses: List[Optional[str]] = [s for s in status.split(_ANNOTATION_SEP)] if status else []
    if statuses and len(statuses) != len(infos):
        raise ValueError(
            f"{len(infos)} locus_info entries but {len(statuses)} locus_status entries"
        )
    if not statuses:
        statuses = [None] * len(infos)
    return tuple(parse_locus_info(i, s) for i, s in zip(infos, statuses))


def load_fragments(
    path: str | Path,
    *,
    chromosomes: Optional[Iterable[str]] = None,
) -> Tuple[List[Fragment], Dict[str, int]]:
    """Load the fragment store from TSV(.gz).

    Columns: fragment_id, chrom, start, end (1-based inclusive), and optionally strand,
    locus_info and locus_status. Fragments are returned in file order; duplicate
    identifiers are resolved later by the joiner. With ``chromosomes``, rows on
    other contigs are skipped.
    """
    path_s = str(path)
    keep = set(chromosomes) if chromosomes is not None else None
    fragments: List[Fragment] = []
    stats = {"fragment_rows": 0, "fragment_annotations": 0, "fragment_rows_skipped_chrom": 0}

    for lineno, row in iter_tsv_rows(path_s):
        missing = [c for c in _FRAGMENT_COLUMNS if c not in row]
        if missing:
            raise InputFormatError(f"missing column(s): {', '.join(missing)}", path=path_s, line=lineno)
        if keep is not None and row["chrom"].strip() not in keep:
            stats["fragment_rows_skipped_chrom"] += 1
            continue
        try:
            start = int(row["start"])
            end = int(row["end"])
        except ValueError:
            raise InputFormatError("start/end must be integers", path=path_s, line=lineno)
        if end < start:
            raise InputFormatError(f"end ({end}) < start ({start})", path=path_s, line=lineno)
        try:
            annotations = parse_annotations(row.get("locus_info", ""), row.get("locus_status", ""))
        except ValueError as e:
            raise InputFormatError(str(e), path=path_s, line=lineno)

        fragments.append(
            Fragment(
                fragment_id=row["fragment_id"].strip(),
                chrom=row["chrom"].strip(),
                start=start,
                end=end,
                strand=(row.get("strand") or "*").strip() or "*",
                annotations=annotations,
            )
        )
        stats["fragment_rows"] += 1
        stats["fragment_annotations"] += len(annotations)

    logger.info(
        "Loaded %d fragments (%d locus annotations) from %s",
        stats["fragment_rows"],
        stats["fragment_annotations"],
        path_s,
    )
    return fragments, stats
