"""
Collection of functions related to cluster-level FDR control

Applying BH-FDR to p-values of individual bin pairs and grouping the
significant ones into clusters afterwards does not control the FDR
across clusters: clusters vary in size, and membership itself is decided
by significance. Clusters are therefore treated as the units of discovery:

- p-values of the members of each cluster are combined with Simes' method,
  which holds under positive dependence of adjacent bin pairs. The combined
  p-value ranks clusters by the strength of evidence, it is not a
  significance measure on its own.
- a size-weighted Benjamini-Hochberg step-up procedure is applied to the
  combined p-values: with weights w = n / mean(n) that average to 1,
  clusters are retained when p / w passes the usual BH threshold. With
  equal cluster sizes (or ``weighting="none"``) this is plain BH.
- when clustered bin pairs were selected with a fixed pre-filter
  ``p < t``, Simes' method is applied to ``p / t`` instead. Given the
  selection, these are uniform under the null and do not depend on which
  neighbours were selected, so neither the combined p-values nor the size
  weights carry over the selection.
- effect size and direction are reported for the best member of each
  cluster, as a cluster-wide fold change is ill-defined when members
  disagree in direction.
- when a pre-filter is not given, one is chosen with `control_cluster_fdr`
  so that the cluster-level FDR estimated from the per-test FDR threshold
  (`cluster_fdr`) stays at the target.
"""

import logging

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

from .clustering import cluster_significant
from ..lib.errors import InvalidParameterError, InconsistentStatisticsError
from ..lib.schemas import WEIGHTING_SCHEMES


def _check_fdr(fdr, name="fdr"):
    if not 0 < fdr < 1:
        raise InvalidParameterError(f"{name} must be within (0, 1), got {fdr}")


def _bh_adjust(pvalues):
    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.size == 0:
        return pvalues
    return multipletests(pvalues, method="fdr_bh")[1]


def _grouped_statistics(cluster_ids, pvalues, logfc):
    """
    Members of every cluster as (cluster, index, pvalue, logFC) arrays,
    dropping bin pairs without a cluster. Members keep their input order.
    """
    clustered = cluster_ids.notna().to_numpy()
    ids = cluster_ids[clustered].to_numpy(dtype=np.int64)
    p = np.asarray(pvalues, dtype=float)[clustered]
    fc = np.asarray(logfc, dtype=float)[clustered]
    index = cluster_ids.index[clustered]

    valid = ~(np.isnan(p) | np.isnan(fc))
    empty_clusters = np.setdiff1d(np.unique(ids), ids[valid])
    if empty_clusters.size:
        raise InconsistentStatisticsError(
            f"clusters {empty_clusters.tolist()} have no members with valid statistics"
        )
    if not valid.all():
        raise InconsistentStatisticsError(
            f"{(~valid).sum()} clustered bin pairs are missing p-values or logFC"
        )

    # sort once by cluster, stable to keep input order within clusters
    order = np.argsort(ids, kind="stable")
    clusters, first = np.unique(ids[order], return_index=True)
    for cluster, members in zip(clusters, np.split(order, first[1:])):
        yield cluster, index[members], p[members], fc[members]


def simes(pvalues):
    """
    Combine p-values with Simes' method.

    Parameters
    ----------
    pvalues : array-like
        p-values of the tests to combine.

    Returns
    -------
    pvalue : float
        min(n * p_(k) / k) over ascending p-values p_(k), capped at 1.
    """
    p = np.sort(np.asarray(pvalues, dtype=float))
    if p.size == 0 or np.isnan(p).any():
        raise InconsistentStatisticsError("Simes' method needs at least one valid p-value")
    return float(min(1.0, np.min(p * p.size / np.arange(1, p.size + 1))))


def combine_tests(cluster_ids, pvalues, logfc, direction_threshold=0.05, pval_threshold=None):
    """
    Combine statistics of bin pairs within every cluster.

    Parameters
    ----------
    cluster_ids : pandas.Series
        Nullable cluster ids of bin pairs, unclustered bin pairs are ignored.
    pvalues : array-like
        p-values of bin pairs, aligned to ``cluster_ids``.
    logfc : array-like
        log-fold-changes of bin pairs, aligned to ``cluster_ids``.
    direction_threshold : float
        Members with within-cluster BH-adjusted p-values at or below it
        are counted as changing up or down.
    pval_threshold : float or None
        Pre-filter that members had to pass to be clustered. When given,
        Simes' method is applied to ``p / pval_threshold``, which is
        uniform under the null given ``p < pval_threshold``.

    Returns
    -------
    combined : pandas.DataFrame
        Indexed by cluster id, with columns n_tests, n_up, n_down,
        pvalue (Simes), direction ('up', 'down' or 'mixed'),
        rep_index and rep_logFC of the member that attains the Simes
        minimum.
    """
    if pval_threshold is not None and not 0 < pval_threshold <= 1:
        raise InvalidParameterError(
            f"pval_threshold must be within (0, 1], got {pval_threshold}"
        )
    records = {
        "n_tests": [],
        "n_up": [],
        "n_down": [],
        "pvalue": [],
        "direction": [],
        "rep_index": [],
        "rep_logFC": [],
    }
    clusters = []
    for cluster, index, p, fc in _grouped_statistics(cluster_ids, pvalues, logfc):
        order = np.argsort(p, kind="stable")
        p_cond = p if pval_threshold is None else np.minimum(p / pval_threshold, 1.0)
        simes_terms = p_cond[order] * p.size / np.arange(1, p.size + 1)
        rep = order[np.argmin(simes_terms)]

        changed = _bh_adjust(p) <= direction_threshold
        n_up = int((changed & (fc > 0)).sum())
        n_down = int((changed & (fc < 0)).sum())
        if n_up and n_down:
            direction = "mixed"
        elif n_up or n_down:
            direction = "up" if n_up else "down"
        else:
            direction = "up" if fc[rep] > 0 else "down"

        clusters.append(cluster)
        records["n_tests"].append(p.size)
        records["n_up"].append(n_up)
        records["n_down"].append(n_down)
        records["pvalue"].append(min(1.0, simes_terms.min()))
        records["direction"].append(direction)
        records["rep_index"].append(index[rep])
        records["rep_logFC"].append(fc[rep])

    return pd.DataFrame(records, index=pd.Index(clusters, name="cluster", dtype=np.int64))


def get_best_test(cluster_ids, pvalues, logfc):
    """
    Pick the member with the lowest p-value in every cluster.

    The p-value of the best test is Holm-adjusted within its cluster,
    i.e. multiplied by the cluster size. Ties go to the bin pair that
    comes first in the input.

    Returns
    -------
    best : pandas.DataFrame
        Indexed by cluster id, with columns best_index, best_pvalue,
        best_logFC, best_direction.
    """
    records = {"best_index": [], "best_pvalue": [], "best_logFC": [], "best_direction": []}
    clusters = []
    for cluster, index, p, fc in _grouped_statistics(cluster_ids, pvalues, logfc):
        best = int(np.argmin(p))
        clusters.append(cluster)
        records["best_index"].append(index[best])
        records["best_pvalue"].append(min(1.0, p[best] * p.size))
        records["best_logFC"].append(fc[best])
        records["best_direction"].append("up" if fc[best] > 0 else "down")
    return pd.DataFrame(records, index=pd.Index(clusters, name="cluster", dtype=np.int64))


def weighted_bh(pvalues, weights=None):
    """
    Adjust p-values with the weighted Benjamini-Hochberg step-up procedure.

    Parameters
    ----------
    pvalues : array-like
        p-values to adjust.
    weights : array-like or None
        Positive weights, rescaled to average to 1. Plain BH if None.

    Returns
    -------
    adjusted : np.ndarray
        Adjusted p-values, capped at 1.
    """
    p = np.asarray(pvalues, dtype=float)
    if p.size == 0:
        return p
    if weights is not None:
        w = np.asarray(weights, dtype=float)
        if w.shape != p.shape:
            raise InvalidParameterError("weights must match pvalues in length")
        if not (w > 0).all():
            raise InvalidParameterError("weights must be positive")
        p = np.minimum(p / (w / w.mean()), 1.0)
    return np.minimum(_bh_adjust(p), 1.0)


def cluster_fdr_control(combined_pvalues, sizes, fdr=0.05, weighting="size"):
    """
    Decide which clusters to retain at a target cluster-level FDR.

    Parameters
    ----------
    combined_pvalues : array-like
        Combined p-value of every cluster.
    sizes : array-like
        Number of bin pairs in every cluster.
    fdr : float
        Target false discovery rate across clusters, within (0, 1).
    weighting : str
        'size' weighs clusters by their size, 'none' applies plain BH.

    Returns
    -------
    retained : np.ndarray of bool
        Clusters declared significant.
    adjusted : np.ndarray
        Cluster-level adjusted p-values (FDR).
    """
    _check_fdr(fdr)
    if weighting not in WEIGHTING_SCHEMES:
        raise InvalidParameterError(
            f"Incorrect weighting: {weighting}, only {WEIGHTING_SCHEMES} are supported."
        )
    weights = np.asarray(sizes, dtype=float) if weighting == "size" else None
    adjusted = weighted_bh(combined_pvalues, weights)
    retained = adjusted <= fdr
    logging.info(
        f"retained {retained.sum()} out of {adjusted.size} clusters at FDR {fdr}"
    )
    return retained, adjusted


def cluster_fdr(cluster_ids, threshold):
    """
    Estimate the cluster-level FDR from the per-test FDR threshold.

    Given that a fraction `threshold` of the clustered tests are false
    positives, they are assumed to make up the smallest clusters, and the
    estimate is the fraction of clusters they could fully account for.

    Parameters
    ----------
    cluster_ids : pandas.Series
        Nullable cluster ids of bin pairs.
    threshold : float
        BH-adjusted p-value threshold used to select the clustered tests.

    Returns
    -------
    fdr : float
        Estimated false discovery rate across clusters.
    """
    ids = cluster_ids.dropna()
    if ids.empty:
        return 0.0
    sizes = np.sort(ids.value_counts().to_numpy())
    num_fp = threshold * len(ids)
    num_fp_clusters = np.sum(np.cumsum(sizes) <= num_fp)
    return num_fp_clusters / sizes.size


def control_cluster_fdr(
    bin_pairs,
    target,
    tol,
    upper=None,
    signed=False,
    pval_col="pvalue",
    fc_col="logFC",
    view_df=None,
    nproc=1,
    n_thresholds=50,
):
    """
    Choose a p-value pre-filter that controls the cluster-level FDR.

    Candidate per-test thresholds are taken from the BH-adjusted p-values
    (at most `n_thresholds` of them, evenly spaced in rank). Starting from
    the most permissive one, bin pairs passing the threshold are clustered
    and the cluster-level FDR is estimated with `cluster_fdr`; the first
    threshold with an estimate at or below `target` wins.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        bedpe-style DataFrame annotated with p-values and log-fold-changes.
    target : float
        Target cluster-level FDR, within (0, 1).
    tol, upper, signed, pval_col, fc_col, view_df, nproc :
        Passed on to `cluster_significant`.
    n_thresholds : int
        Maximum number of candidate thresholds to evaluate.

    Returns
    -------
    pval_threshold : float
        Cutoff on raw p-values, bin pairs with p-values strictly below it
        pass the pre-filter.
    """
    _check_fdr(target, name="target")
    pvalues = bin_pairs[pval_col].to_numpy(dtype=float)
    if pvalues.size == 0:
        return 0.0
    adjusted = _bh_adjust(pvalues)

    candidates = np.unique(adjusted)
    if candidates.size > n_thresholds:
        ranks = np.linspace(0, candidates.size - 1, n_thresholds).astype(int)
        candidates = np.unique(candidates[ranks])

    for threshold in candidates[::-1]:
        # BH adjustment is monotone in p, so this selects p <= max selected p
        pval_threshold = float(np.nextafter(pvalues[adjusted <= threshold].max(), np.inf))
        cluster_ids = cluster_significant(
            bin_pairs,
            pval_threshold,
            tol,
            upper=upper,
            signed=signed,
            pval_col=pval_col,
            fc_col=fc_col,
            view_df=view_df,
            nproc=nproc,
        )
        estimate = cluster_fdr(cluster_ids, threshold)
        logging.debug(
            f"per-test FDR {threshold:.3g} gives cluster-level FDR {estimate:.3g}"
        )
        if estimate <= target:
            logging.info(
                f"chose p-value pre-filter {pval_threshold:.3g} (per-test FDR {threshold:.3g},"
                f" estimated cluster-level FDR {estimate:.3g})"
            )
            return pval_threshold

    logging.warning(
        f"No pre-filter keeps the cluster-level FDR below {target}, nothing will be clustered"
    )
    return float(pvalues.min())
