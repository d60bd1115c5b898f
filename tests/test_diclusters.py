import pandas as pd
import pytest

import diclust
from diclust.api.diclusters import diclusters, summarize_clusters
from diclust.lib.errors import InvalidParameterError, InconsistentStatisticsError
from diclust.lib.schemas import cluster_table_columns


def test_diclusters(diff_bin_pairs):
    clusters, annotated = diclusters(
        diff_bin_pairs, fdr=0.05, tol=1, upper=1_000_000, pval_threshold=0.01
    )

    assert list(clusters.columns) == cluster_table_columns
    assert len(clusters) == 2
    assert clusters["n_pairs"].tolist() == [5, 3]
    assert clusters["members"].tolist() == [(0, 1, 2, 3, 4), (5, 6, 7)]
    assert clusters["direction"].tolist() == ["up", "down"]
    assert clusters["retained"].all()
    # Simes p-values conditional on passing p < 0.01
    assert clusters["pvalue"].tolist() == pytest.approx([1e-4, 1e-2])
    assert clusters["best_index"].tolist() == [0, 5]
    assert clusters["best_logFC"].tolist() == [2.0, -1.5]

    strong = clusters.iloc[0]
    assert (strong["chrom1"], strong["start1"], strong["end1"]) == ("chr1", 0, 50_000)
    assert (strong["chrom2"], strong["start2"], strong["end2"]) == (
        "chr1",
        500_000,
        510_000,
    )

    # bin pairs are annotated with their clusters
    assert annotated.index.equals(diff_bin_pairs.index)
    assert annotated["cluster"].iloc[:8].tolist() == [0] * 5 + [1] * 3
    assert annotated["cluster"].iloc[8:].isna().all()
    assert annotated["cluster_retained"].tolist() == [True] * 8 + [False] * 20
    assert annotated["cluster_FDR"].iloc[8:].isna().all()
    assert annotated.attrs["member_fdr_interpretable"] is False
    # input is left untouched
    assert "cluster" not in diff_bin_pairs


def test_diclusters_chooses_prefilter(diff_bin_pairs):
    clusters_auto, annotated_auto = diclusters(diff_bin_pairs, fdr=0.05, tol=1)
    clusters_fixed, annotated_fixed = diclusters(
        diff_bin_pairs, fdr=0.05, tol=1, pval_threshold=0.01
    )
    same_columns = ["cluster", "n_pairs", "members", "direction", "retained"]
    pd.testing.assert_frame_equal(clusters_auto[same_columns], clusters_fixed[same_columns])
    pd.testing.assert_series_equal(annotated_auto["cluster"], annotated_fixed["cluster"])
    # raw Simes p-values with a chosen pre-filter
    assert clusters_auto["pvalue"].tolist() == pytest.approx([1e-6, 1e-4])


def test_global_null_retains_nothing(make_bin_pairs):
    # isolated bin pairs with evenly spread p-values, 100 of them pass p < 0.05
    n = 2000
    rows = [
        ("chr1", i * 1_000_000, "chr1", i * 1_000_000 + 100_000, (i + 0.5) / n, 1.0)
        for i in range(n)
    ]
    bin_pairs = make_bin_pairs(rows)
    for weighting in ["size", "none"]:
        clusters, annotated = diclusters(
            bin_pairs, fdr=0.05, tol=1, pval_threshold=0.05, weighting=weighting
        )
        assert len(clusters) == 100
        assert not clusters["retained"].any()
        assert not annotated["cluster_retained"].any()


def test_summarize_clusters(diff_bin_pairs):
    clusters, _ = diclusters(diff_bin_pairs, tol=1, pval_threshold=0.01)
    summary = summarize_clusters(clusters)
    assert summary.to_dict() == {"total": 2, "up": 1, "down": 1, "mixed": 0}

    clusters.loc[1, "retained"] = False
    assert summarize_clusters(clusters)["total"] == 1
    assert summarize_clusters(clusters, retained_only=False)["total"] == 2


def test_signed_clustering(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [
            ("chr1", 0, "chr1", 100_000, 1e-5, 1.0),
            ("chr1", 10_000, "chr1", 100_000, 1e-5, -1.0),
        ]
    )
    clusters, _ = diclusters(bin_pairs, tol=1, pval_threshold=0.01)
    assert clusters["direction"].tolist() == ["mixed"]
    assert summarize_clusters(clusters)["mixed"] == 1

    clusters, _ = diclusters(bin_pairs, tol=1, pval_threshold=0.01, signed=True)
    assert clusters["direction"].tolist() == ["up", "down"]
    assert clusters["n_pairs"].tolist() == [1, 1]


def test_no_candidates(diff_bin_pairs):
    clusters, annotated = diclusters(diff_bin_pairs, tol=1, pval_threshold=1e-9)
    assert clusters.empty
    assert list(clusters.columns) == cluster_table_columns
    assert annotated["cluster"].isna().all()
    assert not annotated["cluster_retained"].any()
    assert summarize_clusters(clusters)["total"] == 0


@pytest.mark.parametrize(
    "params",
    [
        dict(fdr=1.0),
        dict(fdr=0),
        dict(tol=-1),
        dict(upper=0),
        dict(pval_threshold=0),
        dict(weighting="area"),
    ],
)
def test_invalid_parameters(diff_bin_pairs, params):
    with pytest.raises(InvalidParameterError):
        diclusters(diff_bin_pairs, **params)


def test_missing_statistics(diff_bin_pairs):
    bin_pairs = diff_bin_pairs.copy()
    bin_pairs.loc[3, "pvalue"] = float("nan")
    with pytest.raises(InconsistentStatisticsError):
        diclusters(bin_pairs, tol=1, pval_threshold=0.01)

    with pytest.raises(InconsistentStatisticsError):
        diclusters(diff_bin_pairs.drop(columns="logFC"), tol=1, pval_threshold=0.01)


def test_top_level_api(diff_bin_pairs):
    clusters, _ = diclust.diclusters(diff_bin_pairs, tol=1, pval_threshold=0.01)
    assert diclust.summarize_clusters(clusters)["total"] == 2


def test_trans_pairs_in_both_orientations_are_rejected(make_bin_pairs):
    bin_pairs = make_bin_pairs(
        [("chr1", 0, "chr2", 0, 1e-5, 1.0), ("chr2", 0, "chr1", 10_000, 1e-5, 1.0)]
    )
    with pytest.raises(ValueError):
        diclusters(bin_pairs, tol=1, pval_threshold=0.01)
