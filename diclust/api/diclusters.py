"""
Clustering of differential interactions with cluster-level FDR control

The main user-facing API function is:

.. code-block:: python

    diclusters(
        bin_pairs,
        fdr=0.05,
        tol=1,
        upper=1_000_000,
        pval_threshold=None,
        signed=False,
        weighting="size",
        direction_threshold=0.05,
        pval_col="pvalue",
        fc_col="logFC",
        view_df=None,
        nproc=1,
    )

Input is a BEDPE-style table of bin pairs that were tested for
differential interaction upstream, annotated with p-values and
log-fold-changes. The procedure is:

- parameters and statistics are validated once, before anything else.
- bin pairs are pre-filtered on raw p-values: either with the provided
  `pval_threshold`, or with one chosen by `control_cluster_fdr`.
- pre-filtered bin pairs are clustered by `cluster_significant`.
- per cluster, member p-values are combined with Simes' method and the
  best member is picked by `get_best_test`. With a fixed `pval_threshold`,
  Simes' method runs on p-values rescaled by the threshold, i.e.
  conditional on passing the pre-filter.
- clusters are retained by the size-weighted BH procedure at `fdr`.

Two tables are returned: one row per cluster, and the input bin pairs
annotated with their cluster. Cluster-level FDR and retained flags are
copied to members for convenience only; they describe the cluster and
are not interpretable for an individual bin pair.
"""

import logging

import numpy as np
import pandas as pd

from .clustering import cluster_significant, cluster_bounds
from .clusterfdr import (
    combine_tests,
    get_best_test,
    cluster_fdr_control,
    control_cluster_fdr,
)
from ..lib.checks import is_valid_bin_pairs
from ..lib.schemas import ClusterParams, cluster_table_columns


def make_cluster_table(bin_pairs, cluster_ids, params, pval_col="pvalue", fc_col="logFC"):
    """
    Summarize clusters into a table, one row per cluster.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        bedpe-style DataFrame annotated with p-values and log-fold-changes.
    cluster_ids : pandas.Series
        Nullable cluster ids aligned to ``bin_pairs``.
    params : ClusterParams
        Provides `fdr`, `weighting` and `direction_threshold`. A fixed
        `pval_threshold` makes combined p-values conditional on the
        pre-filter.
    pval_col : str
        Name of the column with p-values.
    fc_col : str
        Name of the column with log-fold-changes.

    Returns
    -------
    clusters : pandas.DataFrame
        Table with `cluster_table_columns`.
    """
    if cluster_ids.notna().sum() == 0:
        return pd.DataFrame([], columns=cluster_table_columns)

    bounds = cluster_bounds(bin_pairs, cluster_ids)
    combined = combine_tests(
        cluster_ids,
        bin_pairs[pval_col],
        bin_pairs[fc_col],
        direction_threshold=params.direction_threshold,
        # None when the pre-filter was chosen by control_cluster_fdr
        pval_threshold=params.pval_threshold,
    )
    best = get_best_test(cluster_ids, bin_pairs[pval_col], bin_pairs[fc_col])
    retained, adjusted = cluster_fdr_control(
        combined["pvalue"].to_numpy(),
        bounds["n_pairs"].to_numpy(),
        fdr=params.fdr,
        weighting=params.weighting,
    )

    # accumulate all columns first and build the table once
    columns = {"cluster": bounds.index.to_numpy()}
    for col in ["chrom1", "start1", "end1", "chrom2", "start2", "end2", "n_pairs", "members"]:
        columns[col] = bounds[col].to_numpy()
    for col in ["n_up", "n_down", "pvalue", "direction"]:
        columns[col] = combined[col].to_numpy()
    for col in ["best_index", "best_pvalue", "best_logFC"]:
        columns[col] = best[col].to_numpy()
    columns["FDR"] = adjusted
    columns["retained"] = retained

    return pd.DataFrame(columns, columns=cluster_table_columns)


def annotate_pairs_with_clusters(bin_pairs, cluster_ids, clusters):
    """
    Add cluster, cluster_FDR and cluster_retained columns to bin pairs.

    The returned DataFrame has ``attrs["member_fdr_interpretable"]`` set to
    False, as the copied values are properties of the clusters.
    """
    clustered = cluster_ids.notna().to_numpy()
    ids = cluster_ids[clustered].to_numpy(dtype=np.int64)
    # position of every clustered bin pair's cluster in the table
    rows = pd.Index(clusters["cluster"].to_numpy(dtype=np.int64)).get_indexer(ids)

    cluster_fdr = np.full(len(bin_pairs), np.nan)
    cluster_fdr[clustered] = clusters["FDR"].to_numpy(dtype=float)[rows]
    cluster_retained = np.zeros(len(bin_pairs), dtype=bool)
    cluster_retained[clustered] = clusters["retained"].to_numpy(dtype=bool)[rows]

    annotated = bin_pairs.copy()
    annotated["cluster"] = cluster_ids.astype("Int64")
    annotated["cluster_FDR"] = cluster_fdr
    annotated["cluster_retained"] = cluster_retained
    annotated.attrs["member_fdr_interpretable"] = False
    return annotated


def summarize_clusters(clusters, retained_only=True):
    """
    Count clusters by direction.

    Parameters
    ----------
    clusters : pandas.DataFrame
        Table of clusters, as returned by `diclusters`.
    retained_only : bool
        Count only clusters retained at the target FDR.

    Returns
    -------
    summary : pandas.Series
        Counts of total, up, down and mixed clusters.
    """
    if retained_only:
        clusters = clusters[clusters["retained"].astype(bool)]
    counts = clusters["direction"].value_counts()
    return pd.Series(
        {
            "total": len(clusters),
            "up": int(counts.get("up", 0)),
            "down": int(counts.get("down", 0)),
            "mixed": int(counts.get("mixed", 0)),
        }
    )


def diclusters(
    bin_pairs,
    fdr=0.05,
    tol=1,
    upper=1_000_000,
    pval_threshold=None,
    signed=False,
    weighting="size",
    direction_threshold=0.05,
    pval_col="pvalue",
    fc_col="logFC",
    view_df=None,
    nproc=1,
):
    """
    Cluster significant differential bin pairs and control the FDR across
    clusters.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        BEDPE-style table of tested bin pairs with p-values and
        log-fold-changes. The index identifies bin pairs.
    fdr : float
        Target false discovery rate across clusters.
    tol : int
        Maximum gap in basepairs between anchors of adjacent bin pairs.
    upper : int or None
        Maximum span of a cluster along either anchor, no limit if None.
    pval_threshold : float or None
        Pre-filter on raw p-values. When None, it is chosen to keep the
        estimated cluster-level FDR at `fdr`.
    signed : bool
        Cluster bin pairs changing up and down separately.
    weighting : str
        'size' for size-weighted BH across clusters, 'none' for plain BH.
    direction_threshold : float
        Within-cluster adjusted p-value to count members as up or down.
    pval_col : str
        Name of the column with p-values.
    fc_col : str
        Name of the column with log-fold-changes.
    view_df : viewframe or None
        Cluster within pairs of view regions instead of chromosome pairs.
        Also used to check the order of anchors of trans bin pairs.
    nproc : int
        Number of processes to use for clustering.

    Returns
    -------
    clusters : pandas.DataFrame
        One row per cluster: bounding box, members, Simes p-value (for
        sorting only), best member statistics, direction, FDR and
        retained flag.
    annotated_pairs : pandas.DataFrame
        ``bin_pairs`` with cluster, cluster_FDR and cluster_retained columns.
    """
    params = ClusterParams(
        tol=tol,
        upper=upper,
        pval_threshold=pval_threshold,
        fdr=fdr,
        signed=signed,
        weighting=weighting,
        direction_threshold=direction_threshold,
    )
    _ = is_valid_bin_pairs(
        bin_pairs, pval_col=pval_col, fc_col=fc_col, view_df=view_df, raise_errors=True
    )

    pval_threshold = params.pval_threshold
    if pval_threshold is None:
        logging.info("choosing p-value pre-filter to control the cluster-level FDR ...")
        pval_threshold = control_cluster_fdr(
            bin_pairs,
            params.fdr,
            params.tol,
            upper=params.upper,
            signed=params.signed,
            pval_col=pval_col,
            fc_col=fc_col,
            view_df=view_df,
            nproc=nproc,
        )

    cluster_ids = cluster_significant(
        bin_pairs,
        pval_threshold,
        params.tol,
        upper=params.upper,
        signed=params.signed,
        pval_col=pval_col,
        fc_col=fc_col,
        view_df=view_df,
        nproc=nproc,
    )
    clusters = make_cluster_table(
        bin_pairs, cluster_ids, params, pval_col=pval_col, fc_col=fc_col
    )
    annotated_pairs = annotate_pairs_with_clusters(bin_pairs, cluster_ids, clusters)

    summary = summarize_clusters(clusters)
    logging.info(
        f"{summary['total']} clusters retained: {summary['up']} up, "
        f"{summary['down']} down, {summary['mixed']} mixed"
    )
    return clusters, annotated_pairs
