import pytest

from cfmutspec.lengths import insert_size_profile, mutant_length_profile, round_to_bin, summarize_lengths


def test_insert_size_profile_fills_missing_sizes():
    bins = insert_size_profile([100, 100, 102, 5000], isize_min=100, isize_max=104)
    assert [b.insert_size for b in bins] == [100, 101, 102, 103, 104]
    assert [b.count for b in bins] == [2, 0, 1, 0, 0]
    assert sum(b.prop for b in bins) == pytest.approx(1.0)


def test_round_to_bin():
    assert round_to_bin(167) == 165
    assert round_to_bin(168) == 170


def test_mutant_profile_against_reference():
    pairs = [
        ("MUT:concordant", 141),
        ("MUT:single_read", 143),
        ("REF:concordant", 166),
        ("REF:single_read", 168),
        ("outer_fragment", 300),
        ("MUT:discordant", 150),
    ]
    bins = mutant_length_profile(pairs, comparison="ref")
    assert {(b.mutant, b.size_rounded, b.count) for b in bins} == {
        (True, 140, 1),
        (True, 145, 1),
        (False, 165, 1),
        (False, 170, 1),
    }
    assert sum(b.proportion for b in bins) == pytest.approx(1.0)
    summary = summarize_lengths(bins)
    assert summary["mutant_median_size"] == pytest.approx(142.5)


def test_outer_comparison_is_down_sampled_reproducibly():
    pairs = [("MUT:concordant", 140)] + [("outer_fragment", 160 + i) for i in range(20)]
    a = mutant_length_profile(pairs, comparison="outer", normalize=True, seed=1)
    b = mutant_length_profile(pairs, comparison="outer", normalize=True, seed=1)
    assert a == b
    assert sum(x.count for x in a if not x.mutant) == 1


def test_unknown_comparison():
    with pytest.raises(ValueError):
        mutant_length_profile([], comparison="tumor")
