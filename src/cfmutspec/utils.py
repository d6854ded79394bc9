from __future__ import annotations

import gzip
import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def iter_tsv_rows(path: str | Path) -> Iterator[Tuple[int, Dict[str, str]]]:
    """Yield (line_number, row) for a headed TSV; blank and ``#`` lines are skipped."""
    with open_textmaybe_gzip(path, "rt") as fh:
        header: Optional[List[str]] = None
        for lineno, line in enumerate(fh, start=1):
            line = line.rstrip("\n").rstrip("\r")
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split("\t")
            if header is None:
                header = [h.strip() for h in fields]
                continue
            # tolerate missing trailing columns
            fields += [""] * (len(header) - len(fields))
            yield lineno, dict(zip(header, fields))


def write_tsv(path: str | Path, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> int:
    n = 0
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write("\t".join(columns) + "\n")
        for row in rows:
            fh.write("\t".join(_fmt(v) for v in row) + "\n")
            n += 1
    return n


def _fmt(v: Any) -> str:
    if v is None:
        return "NA"
    if isinstance(v, float):
        if v != v:  # NaN
            return "NA"
        return f"{v:.6g}"
    return str(v)


def locus_rng(seed: Optional[int], key: object) -> random.Random:
    """RNG for one locus, independent of the order in which loci are visited.

    With ``seed=None`` the generator is seeded from system entropy.
    """
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{key}")


def median_or_none(values: Sequence[float]) -> Optional[float]:
    if len(values) == 0:
        return None
    return float(np.median(np.asarray(values, dtype=float)))
