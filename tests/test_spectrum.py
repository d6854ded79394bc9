import math

import numpy as np
import pytest

from cfmutspec.models import CATEGORIES, ConsensusRecord, Locus, TrinucleotideRecord
from cfmutspec.spectrum import (
    OVERLAP_TYPES,
    SBS96_CHANNELS,
    aggregate_spectrum,
    count_matrix,
    entries_to_matrix,
    record_stratum,
)


def trinuc(channel: str, category: str, **support: int) -> TrinucleotideRecord:
    tally = {c: 0 for c in CATEGORIES}
    tally[category] = 1
    tally.update(support)
    rec = ConsensusRecord(
        locus=Locus("chr1", 100, channel[2], channel[4]),
        support=tally,
        median_length={},
        category=category,
        consensus_base=channel[4],
    )
    return TrinucleotideRecord(
        consensus=rec,
        ref_tri=channel[0] + channel[2] + channel[-1],
        ref_base=channel[2],
        mut_base=channel[4],
        channel=channel,
    )


def test_channel_order():
    assert len(SBS96_CHANNELS) == 96
    assert len(set(SBS96_CHANNELS)) == 96
    assert SBS96_CHANNELS[0] == "A[C>A]A"
    assert SBS96_CHANNELS[1] == "A[C>A]C"
    assert SBS96_CHANNELS[4] == "C[C>A]A"
    assert SBS96_CHANNELS[16] == "A[C>G]A"
    assert SBS96_CHANNELS[-1] == "T[T>G]T"


def test_long_form_layout():
    entries, _ = aggregate_spectrum([], normalize_counts=False)
    assert len(entries) == 96 * 3
    assert [e.overlap_type for e in entries[:3]] == list(OVERLAP_TYPES)
    assert all(e.value == 0 for e in entries)


def test_raw_counts_sum_to_records():
    records = [
        trinuc("A[C>T]G", "CO_MUT"),
        trinuc("A[C>T]G", "CO_MUT"),
        trinuc("T[T>A]C", "SO_MUT"),
        trinuc("G[C>A]A", "DO"),
    ]
    entries, stats = aggregate_spectrum(records, normalize_counts=False)
    assert sum(e.value for e in entries) == len(records)
    assert stats["spectrum_records_counted"] == 4
    mat = entries_to_matrix(entries)
    row = SBS96_CHANNELS.index("A[C>T]G")
    assert mat[row, OVERLAP_TYPES.index("CO_MUT")] == 2


def test_other_base_is_folded_into_topology_stratum():
    mat = count_matrix([trinuc("A[C>G]A", "CO_OTHER"), trinuc("A[C>G]A", "SO_OTHER")])
    row = SBS96_CHANNELS.index("A[C>G]A")
    assert mat[row].tolist() == [1, 1, 0]


def test_normalized_values_sum_to_one_over_all_strata():
    records = [trinuc("A[C>T]G", "CO_MUT")] * 3 + [trinuc("C[T>C]C", "SO_MUT")]
    entries, _ = aggregate_spectrum(records, normalize_counts=True)
    assert math.isclose(sum(e.value for e in entries), 1.0)
    mat = entries_to_matrix(entries)
    assert np.isclose(mat[:, OVERLAP_TYPES.index("CO_MUT")].sum(), 0.75)


def test_exclude_and_retain_filters():
    records = [
        trinuc("A[C>T]G", "CO_MUT", DO=2),
        trinuc("A[C>T]G", "CO_MUT"),
        trinuc("T[T>A]C", "SO_MUT"),
    ]
    _, stats = aggregate_spectrum(records, normalize_counts=False, exclude_if_type_present=["DO"])
    assert stats["spectrum_records_counted"] == 2
    assert stats["spectrum_records_filtered"] == 1

    _, stats = aggregate_spectrum(records, normalize_counts=False, retain_if_type_present=["CO_MUT"])
    assert stats["spectrum_records_counted"] == 2
    assert stats["spectrum_SO_MUT"] == 0


def test_unknown_filter_type_is_rejected():
    with pytest.raises(ValueError):
        aggregate_spectrum([], exclude_if_type_present=["MUT"])


def test_removed_concordant_support_moves_locus_to_single_read():
    rec = trinuc("A[C>T]G", "CO_MUT", SO_MUT=2)
    assert record_stratum(rec) == "CO_MUT"
    assert record_stratum(rec, ["CO_MUT"]) == "SO_MUT"

    entries, stats = aggregate_spectrum([rec], normalize_counts=False, remove_type=["CO_MUT"])
    mat = entries_to_matrix(entries)
    row = SBS96_CHANNELS.index("A[C>T]G")
    assert mat[row].tolist() == [0, 1, 0]
    assert stats["spectrum_SO_MUT"] == 1


def test_removed_types_drop_loci_left_without_mutant_support():
    records = [
        trinuc("A[C>T]G", "CO_MUT"),
        trinuc("T[T>A]C", "SO_MUT", CO_MUT=1),
        trinuc("G[C>A]A", "DO"),
    ]
    entries, stats = aggregate_spectrum(records, normalize_counts=False, remove_type=["CO_MUT", "SO_MUT"])
    assert stats["spectrum_records_removed"] == 2
    assert stats["spectrum_records_counted"] == 1
    # discordant loci keep their stratum
    assert stats["spectrum_DO"] == 1

    _, stats = aggregate_spectrum(records, normalize_counts=False, remove_type=["SO_MUT"])
    assert stats["spectrum_CO_MUT"] == 2
    assert stats["spectrum_records_removed"] == 0

    with pytest.raises(ValueError):
        aggregate_spectrum(records, remove_type=["MUT"])
