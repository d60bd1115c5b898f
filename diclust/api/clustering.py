"""
Collection of functions related to clustering of bin pairs

Bin pairs are treated as rectangles in the 2D space spanned by
their anchors. Two bin pairs are adjacent when the gap between their
anchor1 intervals and the gap between their anchor2 intervals are both
within `tol` basepairs. Clusters are connected components of the
resulting adjacency graph, i.e. single-linkage clustering, thus A next
to B and B next to C places A, B and C in one cluster.

- Bin pairs are split by chromosome pair (or by pairs of view regions)
  first, and every group is clustered independently, optionally in a
  process pool. Bin pairs of different groups never share a cluster.
- Clusters with a bounding box wider than `upper` on either anchor are
  broken apart at the largest internal gap along the widest anchor, and
  connectivity is re-evaluated in every part, until all parts fit.
  A lone bin pair is never split, even if it is wider than `upper`.
- Cluster ids are consecutive integers, assigned in the order of groups
  and, within a group, of the leftmost anchor1 and anchor2 starts.
"""

from functools import partial
import multiprocess as mp
import logging

import numpy as np
import pandas as pd
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from ..lib.common import assign_pair_groups, interval_gap
from ..lib.errors import InvalidParameterError, CrossChromosomeMergeError

cluster_id_name = "cluster"


def _check_geometry(tol, upper):
    if tol is None or tol < 0:
        raise InvalidParameterError(f"tol must be non-negative, got {tol}")
    if upper is not None and upper <= 0:
        raise InvalidParameterError(f"upper must be positive, got {upper}")


def _link_adjacent(start1, end1, start2, end2, tol):
    """
    Label connected components of adjacent bin pairs.

    Arrays must be sorted by start1. Returns component labels
    numbered in the order of their first member.
    """
    n = len(start1)
    if n == 1:
        return np.zeros(1, dtype=np.int64)

    # running max of end1 is non-decreasing, so everything to the left of
    # 'lo' ends further than tol before start1[j] and can't be adjacent to j
    running_end1 = np.maximum.accumulate(end1)
    lo = np.searchsorted(running_end1, start1 - tol, side="left")

    rows, cols = [], []
    for j in range(1, n):
        i = np.arange(lo[j], j)
        if i.size == 0:
            continue
        near = (interval_gap(start1[i], end1[i], start1[j], end1[j]) <= tol) & (
            interval_gap(start2[i], end2[i], start2[j], end2[j]) <= tol
        )
        rows.append(i[near])
        cols.append(np.full(near.sum(), j))

    rows = np.concatenate(rows) if rows else np.array([], dtype=np.int64)
    cols = np.concatenate(cols) if cols else np.array([], dtype=np.int64)
    graph = coo_matrix((np.ones(rows.size), (rows, cols)), shape=(n, n))
    _, labels = connected_components(graph, directed=False)

    # renumber labels by order of first appearance
    _, first_idx, inverse = np.unique(labels, return_index=True, return_inverse=True)
    rank = np.argsort(np.argsort(first_idx))
    return rank[inverse]


def _components(idx, start1, end1, start2, end2, tol):
    """Split positions 'idx' into lists of adjacent bin pairs."""
    idx = idx[np.lexsort((idx, start2[idx], start1[idx]))]
    labels = _link_adjacent(start1[idx], end1[idx], start2[idx], end2[idx], tol)
    return [idx[labels == lab] for lab in range(labels.max() + 1)]


def _span(idx, start, end):
    return end[idx].max() - start[idx].min()


def _split_at_largest_gap(idx, start, end):
    """
    Split positions 'idx' in two along one axis, between consecutive
    distinct starts where the gap to the furthest end on the left is largest.
    Equally large gaps are resolved by cutting closest to the middle of the
    span. Returns None when all starts are equal.
    """
    order = idx[np.lexsort((idx, end[idx], start[idx]))]
    s = start[order]
    # only cut where starts differ, so the parts don't share a start
    cuttable = s[1:] > s[:-1]
    if not cuttable.any():
        return None
    running_end = np.maximum.accumulate(end[order])
    gaps = s[1:] - running_end[:-1]
    best = cuttable & (gaps == gaps[cuttable].max())
    middle = (s[0] + running_end[-1]) / 2
    k = int(np.argmin(np.where(best, np.abs(s[1:] - middle), np.inf)))
    return order[: k + 1], order[k + 1 :]


def _split_greedy(idx, start1, end1, start2, end2, upper):
    """Chunk positions in sorted order so that every chunk fits 'upper'."""
    order = idx[np.lexsort((idx, start2[idx], start1[idx]))]
    chunks, current = [], [order[0]]
    for pos in order[1:]:
        trial = np.array(current + [pos])
        if _span(trial, start1, end1) > upper or _span(trial, start2, end2) > upper:
            chunks.append(np.array(current))
            current = [pos]
        else:
            current.append(pos)
    chunks.append(np.array(current))
    return chunks


def _enforce_upper(component, start1, end1, start2, end2, tol, upper):
    """
    Break a connected component into parts no wider than 'upper' on
    either anchor, splitting at the largest internal gaps.
    """
    done, todo = [], [component]
    while todo:
        idx = todo.pop()
        if idx.size == 1:
            done.append(idx)
            continue
        span1 = _span(idx, start1, end1)
        span2 = _span(idx, start2, end2)
        if span1 <= upper and span2 <= upper:
            done.append(idx)
            continue

        axes = [(start1, end1), (start2, end2)]
        if span2 > span1:
            axes = axes[::-1]
        parts = None
        for start, end in axes:
            parts = _split_at_largest_gap(idx, start, end)
            if parts is not None:
                break
        if parts is None:
            done.extend(_split_greedy(idx, start1, end1, start2, end2, upper))
            continue

        for part in parts:
            todo.extend(_components(part, start1, end1, start2, end2, tol))
    return done


def _cluster_group(coords, tol, upper):
    """
    Cluster bin pairs of one group.

    Parameters
    ----------
    coords : tuple of np.ndarray
        start1, end1, start2, end2 of bin pairs in the group.
    tol : int
        maximum gap between adjacent anchors.
    upper : int or None
        maximum span of a cluster on either anchor.

    Returns
    -------
    labels : np.ndarray
        cluster label of every bin pair, numbered within the group.
    """
    start1, end1, start2, end2 = coords
    n = len(start1)
    clusters = _components(np.arange(n), start1, end1, start2, end2, tol)
    if upper is not None:
        clusters = [
            part
            for comp in clusters
            for part in _enforce_upper(comp, start1, end1, start2, end2, tol, upper)
        ]

    # deterministic numbering: leftmost anchor1, then anchor2, then position
    clusters = sorted(
        clusters, key=lambda c: (start1[c].min(), start2[c].min(), c.min())
    )
    labels = np.empty(n, dtype=np.int64)
    for label, members in enumerate(clusters):
        labels[members] = label
    return labels


def _check_chromosome_pairs(bin_pairs, labels):
    n_chrom_pairs = bin_pairs.groupby(labels)[
        ["chrom1", "chrom2"]
    ].nunique()
    if (n_chrom_pairs > 1).to_numpy().any():
        raise CrossChromosomeMergeError(
            "clusters spanning multiple chromosome pairs were produced"
        )


def cluster_pairs(bin_pairs, tol, upper=None, view_df=None, nproc=1):
    """
    Partition bin pairs into clusters of adjacent bin pairs.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        bedpe-style DataFrame with columns chrom1, start1, end1,
        chrom2, start2, end2. Every row gets clustered.
    tol : int
        Maximum gap in basepairs between anchor intervals of two bin pairs,
        on both anchors, for them to be adjacent.
    upper : int or None
        Maximum span of a cluster along either anchor. Oversized clusters
        are split at the largest internal gap. No limit if None.
    view_df : viewframe or None
        Cluster within pairs of view regions (e.g. chromosome arms) instead
        of chromosome pairs.
    nproc : int
        Number of processes to cluster groups of bin pairs in parallel.

    Returns
    -------
    cluster_ids : pandas.Series
        Cluster id of every bin pair, aligned to ``bin_pairs``.
    """
    _check_geometry(tol, upper)
    if bin_pairs.empty:
        return pd.Series([], index=bin_pairs.index, dtype="Int64", name=cluster_id_name)

    groups = assign_pair_groups(bin_pairs, view_df)
    codes = groups.cat.codes.to_numpy()
    used_codes = np.unique(codes)

    start1 = bin_pairs["start1"].to_numpy(dtype=np.int64)
    end1 = bin_pairs["end1"].to_numpy(dtype=np.int64)
    start2 = bin_pairs["start2"].to_numpy(dtype=np.int64)
    end2 = bin_pairs["end2"].to_numpy(dtype=np.int64)
    positions = [np.flatnonzero(codes == code) for code in used_codes]
    jobs = [(start1[p], end1[p], start2[p], end2[p]) for p in positions]

    job = partial(_cluster_group, tol=tol, upper=upper)

    if nproc > 1:
        logging.info(f"creating a Pool of {nproc} workers to tackle {len(jobs)} groups")
        with mp.Pool(nproc) as pool:
            group_labels = pool.map(job, jobs)
    else:
        logging.debug("fallback to serial implementation.")
        group_labels = list(map(job, jobs))

    labels = np.empty(len(bin_pairs), dtype=np.int64)
    offset = 0
    for pos, lab in zip(positions, group_labels):
        labels[pos] = lab + offset
        offset += lab.max() + 1

    cluster_ids = pd.Series(labels, index=bin_pairs.index, dtype="Int64", name=cluster_id_name)
    _check_chromosome_pairs(bin_pairs, labels)

    sizes = np.bincount(labels)
    logging.info(
        f"detected {sizes.size} clusters of {sizes.mean():.2f}+/-{sizes.std():.2f} size"
    )
    return cluster_ids


def cluster_significant(
    bin_pairs,
    pval_threshold,
    tol,
    upper=None,
    signed=False,
    pval_col="pvalue",
    fc_col="logFC",
    view_df=None,
    nproc=1,
):
    """
    Cluster bin pairs that pass a p-value pre-filter.

    Bin pairs with p-values below `pval_threshold` are candidates and get
    clustered with `cluster_pairs`, all other bin pairs are left without
    a cluster.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        bedpe-style DataFrame annotated with p-values and log-fold-changes.
    pval_threshold : float
        Bin pairs with p-values strictly below it are clustered.
    tol : int
        Maximum gap between anchors of adjacent bin pairs.
    upper : int or None
        Maximum span of a cluster along either anchor.
    signed : bool
        Cluster bin pairs with positive and negative log-fold-changes
        separately, so that clusters never mix directions.
    pval_col : str
        Name of the column with p-values.
    fc_col : str
        Name of the column with log-fold-changes.
    view_df : viewframe or None
        See `cluster_pairs`.
    nproc : int
        See `cluster_pairs`.

    Returns
    -------
    cluster_ids : pandas.Series
        Nullable integer cluster ids aligned to ``bin_pairs``, missing for
        bin pairs that did not pass the pre-filter.
    """
    _check_geometry(tol, upper)
    cluster_ids = pd.Series(pd.NA, index=bin_pairs.index, dtype="Int64", name=cluster_id_name)

    candidates = (bin_pairs[pval_col] < pval_threshold).to_numpy()
    logging.info(
        f"{candidates.sum()} out of {len(bin_pairs)} bin pairs pass p-value < {pval_threshold:.3g}"
    )
    if not candidates.any():
        logging.warning("No bin pairs pass the pre-filter, there is nothing to cluster")
        return cluster_ids

    if signed:
        is_up = (bin_pairs[fc_col] > 0).to_numpy()
        selections = [candidates & is_up, candidates & ~is_up]
    else:
        selections = [candidates]

    offset = 0
    for selected in selections:
        if not selected.any():
            continue
        ids = cluster_pairs(
            bin_pairs.loc[selected], tol, upper=upper, view_df=view_df, nproc=nproc
        )
        cluster_ids.loc[ids.index] = ids.to_numpy(dtype=np.int64) + offset
        offset += int(ids.max()) + 1

    return cluster_ids


def cluster_bounds(bin_pairs, cluster_ids):
    """
    Bounding box and members of every cluster.

    Parameters
    ----------
    bin_pairs : pandas.DataFrame
        bedpe-style DataFrame.
    cluster_ids : pandas.Series
        Cluster ids aligned to ``bin_pairs``, missing for unclustered pairs.

    Returns
    -------
    bounds : pandas.DataFrame
        Indexed by cluster id, with columns chrom1, start1, end1,
        chrom2, start2, end2, n_pairs, and members - a tuple of
        bin pair indices in the order of ``bin_pairs``.
    """
    clustered = cluster_ids.notna().to_numpy()
    pairs = bin_pairs.loc[clustered]
    ids = cluster_ids[clustered].astype(np.int64).rename(cluster_id_name)

    grouped = pairs.groupby(ids)
    bounds = grouped.agg(
        chrom1=("chrom1", "first"),
        start1=("start1", "min"),
        end1=("end1", "max"),
        chrom2=("chrom2", "first"),
        start2=("start2", "min"),
        end2=("end2", "max"),
        n_pairs=("start1", "size"),
    )
    members = pd.Series(pairs.index, index=pairs.index).groupby(ids).agg(list)
    bounds["members"] = members.map(tuple)
    return bounds
