from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .models import (
    MUT_CONCORDANT,
    MUT_DISCORDANT,
    MUT_SINGLE_READ,
    OTHER_CONCORDANT,
    REF_CONCORDANT,
    REF_SINGLE_READ,
    REF_TOKEN,
)
from .utils import ensure_outdir, write_json, write_tsv

_TRANSITION = {"A": "G", "G": "A", "C": "T", "T": "C"}
_TRANSVERSION = {"A": "C", "C": "A", "G": "T", "T": "G"}

_FRAGMENT_COLUMNS = ["fragment_id", "chrom", "start", "end", "strand", "locus_info", "locus_status"]


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _fragment(
    rng: random.Random,
    name: str,
    contig: str,
    pos: int,
    bases: str = "",
    status: str = "",
) -> List[object]:
    width = rng.randint(120, 200)
    start = max(1, pos - rng.randint(10, width - 10))
    info = f"{contig}:{pos}:{bases}" if bases else "NA"
    return [name, contig, start, start + width - 1, rng.choice("+-"), info, status or "NA"]


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, locus VCF and fragment table for quick demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - loci.vcf.gz (+ .tbi)
    - fragments.tsv

    Loci are laid out so that every consensus category shows up once: concordant
    and single-read mutant support, a discordant pair, other-base support, a
    reference-only locus, a duplicated fragment id and a few outer fragments.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)

    contig = "chr1"
    ref_seq = "".join(rng.choice("ACGT") for _ in range(2000))
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, contig, ref_seq)
    pysam.faidx(str(ref_fa))

    positions = [250, 500, 750, 1000, 1250, 1500]  # 1-based
    loci: List[Tuple[int, str, str]] = []
    for pos in positions:
        ref_base = ref_seq[pos - 1]
        loci.append((pos, ref_base, _TRANSITION[ref_base]))

    rows: List[List[object]] = []
    n = 0

    def add(pos: int, bases: str = "", status: str = "", name: str = "") -> None:
        nonlocal n
        n += 1
        rows.append(_fragment(rng, name or f"frag{n:03d}", contig, pos, bases, status))

    # concordant mutant support plus one reference read
    p, ref, alt = loci[0]
    for _ in range(3):
        add(p, alt + alt, MUT_CONCORDANT)
    add(p, ref, REF_SINGLE_READ)

    # single-read mutant support only
    p, ref, alt = loci[1]
    add(p, alt, MUT_SINGLE_READ)
    add(p, REF_TOKEN, REF_CONCORDANT)

    # one mate carries ALT, the other a third base
    p, ref, alt = loci[2]
    other = _TRANSVERSION[ref]
    add(p, alt + other, MUT_DISCORDANT)
    add(p, alt + "R", MUT_DISCORDANT)

    # concordant non-ALT, non-REF base
    p, ref, alt = loci[3]
    other = _TRANSVERSION[ref]
    add(p, other, OTHER_CONCORDANT)

    # reference only: no consensus call expected
    p, ref, alt = loci[4]
    add(p, REF_TOKEN, REF_CONCORDANT)
    add(p, ref + ref, REF_CONCORDANT)

    # same fragment reported twice under a collision suffix
    p, ref, alt = loci[5]
    add(p, alt + alt, MUT_CONCORDANT, name="readX")
    add(p, alt + alt, MUT_CONCORDANT, name="readX.1")

    # fragments that overlap no locus
    for pos in (100, 900, 1800):
        add(pos)

    # annotation at a coordinate missing from the locus table
    add(1750, "AA", MUT_CONCORDANT)

    fragments_tsv = outdir_p / "fragments.tsv"
    write_tsv(fragments_tsv, _FRAGMENT_COLUMNS, rows)

    vcf_path = outdir_p / "loci.vcf"
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add(contig, length=len(ref_seq))

    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for pos, ref_base, alt_base in loci:
            rec = vcf.new_record(
                contig=contig,
                start=pos - 1,
                stop=pos,
                alleles=(ref_base, alt_base),
                id=f"{contig}:{pos}:{ref_base}:{alt_base}",
                qual=60,
                filter="PASS",
            )
            vcf.write(rec)

    vcf_gz = outdir_p / "loci.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary = {
        "ref_fa": str(ref_fa),
        "loci_vcf": str(vcf_gz),
        "fragments_tsv": str(fragments_tsv),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
