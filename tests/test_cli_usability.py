import json
import subprocess
import sys
from pathlib import Path

from cfmutspec.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "cfmutspec"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def _call_args(toy: dict, outdir: Path) -> list[str]:
    return [
        "call",
        "--fragments",
        toy["fragments_tsv"],
        "--loci",
        toy["loci_vcf"],
        "--ref",
        toy["ref_fa"],
        "--outdir",
        str(outdir),
    ]


def _read_tsv(path: Path) -> list[dict]:
    lines = path.read_text(encoding="utf-8").splitlines()
    header = lines[0].split("\t")
    return [dict(zip(header, line.split("\t"))) for line in lines[1:]]


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "cfmutspec call" in cp.stdout
    assert "cfmutspec make-toy-data" in cp.stdout


def test_call_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "call"
    cp = _run_cli(_call_args(toy, outdir) + ["--dry-run"])
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_make_toy_data_and_call(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0
    toy = json.loads(cp.stdout)

    outdir = tmp_path / "out"
    cp = _run_cli(_call_args(toy, outdir))
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "report.html").exists()
    assert (outdir / "plots" / "sbs96.png").exists()
    assert (outdir / "logs" / "call.log").exists()

    consensus = _read_tsv(outdir / "consensus.tsv")
    categories = sorted(r["consensus_category"] for r in consensus)
    # the reference-only locus has no row
    assert categories == ["CO_MUT", "CO_MUT", "CO_OTHER", "DO", "SO_MUT"]
    assert all(r["consensus_mismatch"].count(":") == 3 for r in consensus)
    dup_locus = next(r for r in consensus if r["target_mutation"].startswith("chr1:1500:"))
    assert dup_locus["locus_id"] == dup_locus["target_mutation"]
    assert dup_locus["consensus_fragment_id"] == "readX"
    assert all(r["consensus_fragment_id"] for r in consensus)

    spectrum = _read_tsv(outdir / "spectrum.tsv")
    assert len(spectrum) == 96 * 3
    assert abs(sum(float(r["value"]) for r in spectrum) - 1.0) < 1e-4

    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["counts"]["fragments_duplicate"] == 1
    assert summary["counts"]["annotations_unmatched"] == 1
    assert summary["counts"]["spectrum_records_counted"] == 5

    motifs = _read_tsv(outdir / "end_motifs.tsv")
    assert len(motifs) == 64
    assert list(motifs[0]) == ["motif", "n", "fraction"]
    # 17 fragment rows, one duplicate id
    assert sum(int(r["n"]) for r in motifs) == summary["end_motifs"]["stats"]["motif_counted"]
    assert summary["end_motifs"]["stats"]["motif_fragments"] == 16


def test_call_is_reproducible_with_seed(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    out1, out2 = tmp_path / "a", tmp_path / "b"
    assert _run_cli(_call_args(toy, out1) + ["--seed", "7", "--no-normalize"]).returncode == 0
    assert _run_cli(_call_args(toy, out2) + ["--seed", "7", "--no-normalize"]).returncode == 0
    assert (out1 / "consensus.tsv").read_text() == (out2 / "consensus.tsv").read_text()
    assert (out1 / "spectrum.tsv").read_text() == (out2 / "spectrum.tsv").read_text()


def test_resume_skips_existing_run(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    outdir.mkdir()
    (outdir / "summary.json").write_text("{}", encoding="utf-8")
    cp = _run_cli(_call_args(toy, outdir) + ["--resume"])
    assert cp.returncode == 0
    assert not (outdir / "spectrum.tsv").exists()


def test_contig_mismatch_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    loci = tmp_path / "loci.tsv"
    loci.write_text("chrom\tpos\tref\talt\nchrZ\t250\tA\tG\n", encoding="utf-8")

    cp = _run_cli(
        [
            "call",
            "--fragments",
            toy["fragments_tsv"],
            "--loci",
            str(loci),
            "--ref",
            toy["ref_fa"],
            "--outdir",
            str(tmp_path / "out"),
        ]
    )
    assert cp.returncode != 0
    assert "Contig mismatch" in cp.stderr


def test_unknown_support_type_is_rejected(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(_call_args(toy, tmp_path / "out") + ["--exclude-type", "MUT"])
    assert cp.returncode != 0
    assert "invalid choice" in cp.stderr


def test_seed_none_is_accepted(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    cp = _run_cli(_call_args(toy, outdir) + ["--seed", "none"])
    assert cp.returncode == 0, cp.stderr
    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["deterministic_seed"] is None

    cp = _run_cli(_call_args(toy, tmp_path / "bad") + ["--seed", "abc"])
    assert cp.returncode != 0
    assert "Seed must be an integer or 'none'" in cp.stderr


def test_chromosomes_restrict_loci_and_fragments(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    cp = _run_cli(_call_args(toy, outdir) + ["--chromosomes", "chr2"])
    assert cp.returncode == 0, cp.stderr
    assert _read_tsv(outdir / "consensus.tsv") == []
    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["chromosomes"] == ["chr2"]
    assert summary["locus_stats"]["loci_kept"] == 0
    assert summary["fragment_stats"]["fragment_rows"] == 0
    assert summary["fragment_stats"]["fragment_rows_skipped_chrom"] == 17


def test_remove_type_and_motif_split(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    cp = _run_cli(
        _call_args(toy, outdir)
        + ["--no-normalize", "--remove-type", "CO_MUT", "--motif-type", "e", "--motif-length", "2", "--motif-by-status"]
    )
    assert cp.returncode == 0, cp.stderr

    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["remove_type"] == ["CO_MUT"]
    # both CO_MUT loci have no single-read support left to fall back on
    assert summary["counts"]["spectrum_records_removed"] == 2
    assert summary["counts"]["spectrum_CO_MUT"] == 1
    assert summary["counts"]["spectrum_SO_MUT"] == 1

    trinucs = _read_tsv(outdir / "trinucleotides.tsv")
    assert sorted(r["overlap_type"] for r in trinucs).count("removed") == 2

    motifs = _read_tsv(outdir / "end_motifs.tsv")
    assert len(motifs) == 16
    assert list(motifs[0]) == ["motif", "n_ref", "fraction_ref", "n_mut", "fraction_mut"]
    assert summary["end_motifs"]["motif_type"] == "e"
