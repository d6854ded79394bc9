import random

import pytest

from cfmutspec.consensus import (
    build_consensus_record,
    build_consensus_table,
    disambiguate_bases,
    select_category,
    support_tally,
)
from cfmutspec.errors import AmbiguousBaseError, UnresolvedLocusError
from cfmutspec.models import (
    CATEGORIES,
    MUT_CONCORDANT,
    MUT_DISCORDANT,
    MUT_SINGLE_READ,
    OTHER_CONCORDANT,
    OTHER_SINGLE_READ,
    REF_CONCORDANT,
    REF_SINGLE_READ,
    JoinedRow,
    Locus,
    LocusAnnotation,
    LocusKey,
    ResolvedCall,
)
from cfmutspec.status import expand_mate_bases, resolve_mates, resolve_row, resolve_statuses


LOCUS = Locus(chrom="chr1", pos=1000000, ref="C", alt="T")


def make_call(fid: str, status: str, bases=("T", "T"), width: int = 167, locus: Locus = LOCUS) -> ResolvedCall:
    candidates = tuple(dict.fromkeys(b for b in bases if b != locus.ref))
    return ResolvedCall(
        fragment_id=fid,
        width=width,
        locus=locus,
        status=status,
        mate_bases=tuple(bases),
        candidate_bases=candidates,
    )


def make_row(fid: str, bases: str, label=None, locus=LOCUS) -> JoinedRow:
    ann = LocusAnnotation(locus_key=LocusKey("chr1", 1000000), bases=bases, status_label=label)
    return JoinedRow(fragment_id=fid, width=150, annotation=ann, locus=locus)


def test_resolve_mates_statuses():
    assert resolve_mates("T", "T", "C", "T")[0] == MUT_CONCORDANT
    assert resolve_mates("T", None, "C", "T")[0] == MUT_SINGLE_READ
    assert resolve_mates("C", "C", "C", "T")[0] == REF_CONCORDANT
    assert resolve_mates("C", None, "C", "T")[0] == REF_SINGLE_READ
    assert resolve_mates("G", "G", "C", "T")[0] == OTHER_CONCORDANT
    assert resolve_mates("A", None, "C", "T")[0] == OTHER_SINGLE_READ
    assert resolve_mates("T", "G", "C", "T")[0] == MUT_DISCORDANT


def test_placeholder_is_replaced_by_reference_base():
    status, bases = resolve_mates("T", "R", "C", "T")
    assert status == MUT_DISCORDANT
    assert bases == ("T", "C")
    assert "R" not in bases


def test_non_acgt_base_is_rejected():
    with pytest.raises(AmbiguousBaseError):
        resolve_mates("N", "T", "C", "T")


def test_expand_mate_bases_uses_status_label():
    ann = LocusAnnotation(LocusKey("chr1", 1), "T", MUT_CONCORDANT)
    assert expand_mate_bases(ann) == ("T", "T")
    ann = LocusAnnotation(LocusKey("chr1", 1), "T", MUT_SINGLE_READ)
    assert expand_mate_bases(ann) == ("T", None)
    ann = LocusAnnotation(LocusKey("chr1", 1), "REF", REF_CONCORDANT)
    assert expand_mate_bases(ann) == ("R", "R")
    ann = LocusAnnotation(LocusKey("chr1", 1), "TR", None)
    assert expand_mate_bases(ann) == ("T", "R")


def test_resolve_row_without_locus_raises():
    row = make_row("f1", "TT", locus=None)
    with pytest.raises(UnresolvedLocusError):
        resolve_row(row)


def test_resolve_statuses_skips_bad_rows():
    rows = [
        make_row("f1", "TT"),
        make_row("f2", "TT", locus=None),
        make_row("f3", "NT"),
        JoinedRow(fragment_id="outer", width=180, annotation=None, locus=None),
    ]
    calls, stats = resolve_statuses(rows)
    assert [c.fragment_id for c in calls] == ["f1"]
    assert stats["annotations_resolved"] == 1
    assert stats["annotations_unresolved"] == 1
    assert stats["annotations_invalid_base"] == 1


def test_scenario_three_concordant_one_single_ref():
    calls = [make_call(f"f{i}", MUT_CONCORDANT) for i in range(3)]
    calls.append(make_call("f3", REF_SINGLE_READ, bases=("C",)))

    rec = build_consensus_record(LOCUS, calls, random.Random(1))
    assert rec is not None
    assert rec.category == "CO_MUT"
    assert rec.support == {"CO_MUT": 3, "SO_MUT": 0, "CO_REF": 0, "SO_REF": 1, "DO": 0, "SO_OTHER": 0, "CO_OTHER": 0}
    assert rec.consensus_mismatch == "chr1:1000000:T:MUT"


def test_priority_ignores_lower_category_counts():
    rng = random.Random(0)
    support = {c: 0 for c in CATEGORIES}
    support.update({"CO_MUT": 1, "DO": 50, "SO_OTHER": 40, "CO_OTHER": 30})
    assert select_category(support, rng) == "CO_MUT"

    support["CO_MUT"] = 0
    support["SO_MUT"] = 1
    assert select_category(support, rng) == "SO_MUT"

    support["SO_MUT"] = 0
    assert select_category(support, rng) == "DO"


def test_lower_priority_tie_is_random_but_seeded():
    support = {c: 0 for c in CATEGORIES}
    support.update({"DO": 2, "CO_OTHER": 2})
    picks = {select_category(support, random.Random(s)) for s in range(50)}
    assert picks == {"DO", "CO_OTHER"}
    assert select_category(support, random.Random(5)) == select_category(support, random.Random(5))


def test_reference_only_locus_has_no_consensus():
    calls = [make_call("f1", REF_CONCORDANT, bases=("C", "C")), make_call("f2", REF_SINGLE_READ, bases=("C",))]
    assert build_consensus_record(LOCUS, calls, random.Random(0)) is None


def test_disambiguation_prefers_alt_and_is_idempotent():
    rng = random.Random(0)
    assert disambiguate_bases(("G", "T"), "T", rng) == "T"
    once = disambiguate_bases(("G", "A"), "T", rng)
    assert once in ("G", "A")
    assert disambiguate_bases((once,), "T", rng) == once


def test_discordant_consensus_keeps_alt():
    calls = [make_call("f1", MUT_DISCORDANT, bases=("T", "G")), make_call("f2", MUT_DISCORDANT, bases=("G", "T"))]
    rec = build_consensus_record(LOCUS, calls, random.Random(3))
    assert rec is not None
    assert rec.category == "DO"
    assert rec.consensus_mismatch == "chr1:1000000:T:discordant"


def test_support_tally_sums_to_fragment_count():
    calls = [
        make_call("a", MUT_CONCORDANT),
        make_call("b", MUT_SINGLE_READ, bases=("T",)),
        make_call("c", REF_CONCORDANT, bases=("C", "C")),
        make_call("d", OTHER_SINGLE_READ, bases=("A",)),
    ]
    tally = support_tally(calls)
    assert all(isinstance(v, int) and v >= 0 for v in tally.values())
    assert sum(tally.values()) == len(calls)


def test_consensus_table_is_reproducible_and_order_independent():
    other = Locus(chrom="chr2", pos=500, ref="A", alt="G")
    calls = [make_call(f"f{i}", MUT_CONCORDANT) for i in range(5)]
    calls += [make_call(f"g{i}", MUT_SINGLE_READ, bases=("G",), locus=other) for i in range(4)]

    recs1, stats = build_consensus_table(calls, seed=123)
    recs2, _ = build_consensus_table(list(reversed(calls)), seed=123)
    assert [r.fragment_id for r in recs1] == [r.fragment_id for r in recs2]
    assert [r.locus.chrom for r in recs1] == ["chr1", "chr2"]
    assert stats["loci_consensus"] == 2
    assert stats["loci_no_support"] == 0
