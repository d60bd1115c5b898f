import numpy as np
import pandas as pd
import pytest
import bioframe

from diclust.api.clustering import (
    cluster_pairs,
    cluster_significant,
    cluster_bounds,
    _check_chromosome_pairs,
)
from diclust.lib.errors import InvalidParameterError, CrossChromosomeMergeError


def _random_bin_pairs(make_bin_pairs, n=300, seed=0):
    rng = np.random.default_rng(seed)
    chroms = rng.choice(["chr1", "chr2"], size=n)
    start1 = rng.integers(0, 100, size=n) * 10_000
    start2 = start1 + rng.integers(0, 50, size=n) * 10_000
    rows = [(c, s1, c, s2) for c, s1, s2 in zip(chroms, start1, start2)]
    return make_bin_pairs(rows)


def test_adjacent_and_distant_bin_pairs(make_bin_pairs):
    # gap of 40kb between the first two anchors, of ~4.8Mb to the third
    bin_pairs = make_bin_pairs(
        [
            ("chr1", 100_000, "chr1", 6_000_000),
            ("chr1", 150_000, "chr1", 6_000_000),
            ("chr1", 5_000_000, "chr1", 6_000_000),
        ]
    )
    ids = cluster_pairs(bin_pairs, tol=100_000)
    assert ids.tolist() == [0, 0, 1]
    assert ids.index.equals(bin_pairs.index)


def test_lone_bin_pairs_wider_than_upper(make_bin_pairs):
    # 9kb wide anchors, 10kb apart: too far for tol, too wide for upper
    bin_pairs = make_bin_pairs(
        [("chr1", 0, "chr1", 100_000), ("chr1", 19_000, "chr1", 100_000)],
        binsize=9_000,
    )
    ids = cluster_pairs(bin_pairs, tol=5_000, upper=8_000)
    assert ids.tolist() == [0, 1]


def test_single_linkage_is_transitive(make_bin_pairs):
    # A-B and B-C are 10kb apart, A-C are 30kb apart
    bin_pairs = make_bin_pairs(
        [
            ("chr1", 0, "chr1", 0),
            ("chr1", 20_000, "chr1", 20_000),
            ("chr1", 40_000, "chr1", 40_000),
        ]
    )
    assert cluster_pairs(bin_pairs, tol=10_000).nunique() == 1
    assert cluster_pairs(bin_pairs, tol=9_999).tolist() == [0, 1, 2]


def test_both_anchors_must_be_close(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [("chr1", 0, "chr1", 100_000), ("chr1", 10_000, "chr1", 900_000)]
    )
    assert cluster_pairs(bin_pairs, tol=0).tolist() == [0, 1]


def test_chromosome_pairs_are_never_merged(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [
            ("chr2", 0, "chr2", 0),
            ("chr1", 0, "chr2", 0),
            ("chr1", 0, "chr1", 0),
        ]
    )
    # groups are ordered chr1|chr1, chr1|chr2, chr2|chr2
    assert cluster_pairs(bin_pairs, tol=1_000_000).tolist() == [2, 1, 0]


def test_upper_splits_at_gaps(make_bin_pairs):
    # ten touching bins along anchor1 form a single 100kb-wide component
    bin_pairs = make_bin_pairs(
        [("chr1", i * 10_000, "chr1", 1_000_000) for i in range(10)]
    )
    assert cluster_pairs(bin_pairs, tol=0).nunique() == 1

    ids = cluster_pairs(bin_pairs, tol=0, upper=45_000)
    bounds = cluster_bounds(bin_pairs, ids)
    assert ((bounds["end1"] - bounds["start1"]) <= 45_000).all()
    assert bounds["n_pairs"].sum() == 10
    assert ids.tolist() == [0, 0, 1, 1, 1, 2, 2, 3, 3, 3]

    # the widest gap is preferred over a cut in the middle
    bin_pairs = make_bin_pairs(
        [("chr1", s, "chr1", 1_000_000) for s in [0, 10_000, 20_000, 40_000, 50_000]]
    )
    ids = cluster_pairs(bin_pairs, tol=10_000, upper=40_000)
    assert ids.tolist() == [0, 0, 0, 1, 1]


def test_upper_bound_holds(make_bin_pairs):
    bin_pairs = _random_bin_pairs(make_bin_pairs)
    ids = cluster_pairs(bin_pairs, tol=10_000, upper=60_000)
    bounds = cluster_bounds(bin_pairs, ids)
    assert ((bounds["end1"] - bounds["start1"]) <= 60_000).all()
    assert ((bounds["end2"] - bounds["start2"]) <= 60_000).all()


def test_partition_is_complete_and_pure(make_bin_pairs):
    bin_pairs = _random_bin_pairs(make_bin_pairs)
    ids = cluster_pairs(bin_pairs, tol=10_000, upper=100_000)
    assert ids.notna().all()
    bounds = cluster_bounds(bin_pairs, ids)
    members = [m for ms in bounds["members"] for m in ms]
    assert sorted(members) == list(bin_pairs.index)
    # consecutive ids
    assert sorted(ids.unique()) == list(range(len(bounds)))
    n_chrom_pairs = bin_pairs.groupby(ids.to_numpy(dtype=np.int64))[
        ["chrom1", "chrom2"]
    ].nunique()
    assert (n_chrom_pairs == 1).all().all()


def test_larger_tol_only_merges(make_bin_pairs):
    bin_pairs = _random_bin_pairs(make_bin_pairs, seed=1)
    for tol_small, tol_large in [(0, 10_000), (10_000, 30_000), (0, 100_000)]:
        ids_small = cluster_pairs(bin_pairs, tol=tol_small)
        ids_large = cluster_pairs(bin_pairs, tol=tol_large)
        # every cluster at the smaller tol falls within a single larger cluster
        assert (ids_large.groupby(ids_small).nunique() == 1).all()
        assert ids_large.nunique() <= ids_small.nunique()


def test_clustering_is_deterministic(make_bin_pairs):
    bin_pairs = _random_bin_pairs(make_bin_pairs, seed=2)
    ids1 = cluster_pairs(bin_pairs, tol=10_000, upper=50_000)
    ids2 = cluster_pairs(bin_pairs, tol=10_000, upper=50_000)
    pd.testing.assert_series_equal(ids1, ids2)


def test_clustering_with_process_pool(make_bin_pairs):
    bin_pairs = _random_bin_pairs(make_bin_pairs, seed=3)
    ids_serial = cluster_pairs(bin_pairs, tol=10_000, upper=50_000)
    ids_parallel = cluster_pairs(bin_pairs, tol=10_000, upper=50_000, nproc=2)
    pd.testing.assert_series_equal(ids_serial, ids_parallel)


def test_clustering_within_view_regions(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [("chr1", 490_000, "chr1", 900_000), ("chr1", 500_000, "chr1", 900_000)]
    )
    assert cluster_pairs(bin_pairs, tol=0).tolist() == [0, 0]

    view_df = bioframe.make_viewframe(
        pd.DataFrame(
            [["chr1", 0, 500_000, "chr1p"], ["chr1", 500_000, 1_000_000, "chr1q"]],
            columns=["chrom", "start", "end", "name"],
        )
    )
    assert cluster_pairs(bin_pairs, tol=0, view_df=view_df).tolist() == [0, 1]


def test_empty_input(make_bin_pairs):
    bin_pairs = make_bin_pairs([])
    ids = cluster_pairs(bin_pairs, tol=0)
    assert ids.empty


def test_invalid_geometry(make_bin_pairs):
    bin_pairs = make_bin_pairs([("chr1", 0, "chr1", 0)])
    with pytest.raises(InvalidParameterError):
        cluster_pairs(bin_pairs, tol=-1)
    with pytest.raises(InvalidParameterError):
        cluster_pairs(bin_pairs, tol=0, upper=0)


def test_cross_chromosome_clusters_are_detected(make_bin_pairs):
    bin_pairs = make_bin_pairs([("chr1", 0, "chr1", 0), ("chr2", 0, "chr2", 0)])
    _check_chromosome_pairs(bin_pairs, np.array([0, 1]))
    with pytest.raises(CrossChromosomeMergeError):
        _check_chromosome_pairs(bin_pairs, np.array([0, 0]))


def test_cluster_significant(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [
            ("chr1", 0, "chr1", 0, 0.01, 1.0),
            ("chr1", 10_000, "chr1", 0, 0.01, -1.0),
            ("chr1", 20_000, "chr1", 0, 0.9, 1.0),
        ]
    )
    ids = cluster_significant(bin_pairs, 0.05, tol=0)
    assert ids.iloc[:2].tolist() == [0, 0]
    assert ids.isna().tolist() == [False, False, True]

    # up and down are clustered separately
    ids = cluster_significant(bin_pairs, 0.05, tol=0, signed=True)
    assert ids.iloc[:2].tolist() == [0, 1]
    assert pd.isna(ids.iloc[2])

    # nothing passes the pre-filter
    ids = cluster_significant(bin_pairs, 0.001, tol=0)
    assert ids.isna().all()
    assert len(ids) == 3


def test_cluster_bounds(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [
            ("chr1", 0, "chr1", 100_000),
            ("chr1", 10_000, "chr1", 110_000),
            ("chr2", 0, "chr2", 0),
        ]
    )
    bin_pairs.index = ["a", "b", "c"]
    ids = pd.Series([0, 0, pd.NA], index=bin_pairs.index, dtype="Int64")
    bounds = cluster_bounds(bin_pairs, ids)
    assert len(bounds) == 1
    row = bounds.loc[0]
    assert (row["chrom1"], row["start1"], row["end1"]) == ("chr1", 0, 20_000)
    assert (row["chrom2"], row["start2"], row["end2"]) == ("chr1", 100_000, 120_000)
    assert row["n_pairs"] == 2
    assert row["members"] == ("a", "b")
