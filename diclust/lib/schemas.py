# schemas of datastructures commonly used in diclust
# including description DataFrame dtypes/columns definitions
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidParameterError

bedpe_dtypes = {
    "chrom1": "string",
    "start1": "Int64",
    "end1": "Int64",
    "chrom2": "string",
    "start2": "Int64",
    "end2": "Int64",
}

# statistics computed upstream, e.g. by a quasi-likelihood F-test
stats_dtypes = {
    "pvalue": "float",
    "logFC": "float",
}

# columns of the per-cluster table, in reporting order
cluster_table_columns = [
    "cluster",
    "chrom1",
    "start1",
    "end1",
    "chrom2",
    "start2",
    "end2",
    "n_pairs",
    "members",
    "n_up",
    "n_down",
    "pvalue",
    "direction",
    "best_index",
    "best_pvalue",
    "best_logFC",
    "FDR",
    "retained",
]

WEIGHTING_SCHEMES = ["size", "none"]


@dataclass(frozen=True)
class ClusterParams:
    """
    Parameters of clustering and cluster-level FDR control, validated once.

    Attributes
    ----------
    tol : int
        Maximum gap (bp) between anchors of adjacent bin pairs, on both axes.
    upper : int or None
        Maximum span (bp) of a cluster along either anchor. No limit if None.
    pval_threshold : float or None
        Pre-filter on raw p-values. Chosen to control the cluster-level
        FDR when None.
    fdr : float
        Target cluster-level false discovery rate.
    signed : bool
        Cluster bin pairs with positive and negative logFC separately.
    weighting : str
        'size' for size-weighted BH across clusters, 'none' for plain BH.
    direction_threshold : float
        Within-cluster BH-adjusted p-value at which a member counts
        towards the up/down tallies of its cluster.
    """

    tol: int = 1
    upper: Optional[int] = 1_000_000
    pval_threshold: Optional[float] = None
    fdr: float = 0.05
    signed: bool = False
    weighting: str = "size"
    direction_threshold: float = 0.05

    def __post_init__(self):
        if self.tol is None or self.tol < 0:
            raise InvalidParameterError(f"tol must be non-negative, got {self.tol}")
        if self.upper is not None and self.upper <= 0:
            raise InvalidParameterError(f"upper must be positive, got {self.upper}")
        if not 0 < self.fdr < 1:
            raise InvalidParameterError(f"fdr must be within (0, 1), got {self.fdr}")
        if self.pval_threshold is not None and not 0 < self.pval_threshold <= 1:
            raise InvalidParameterError(
                f"pval_threshold must be within (0, 1], got {self.pval_threshold}"
            )
        if self.weighting not in WEIGHTING_SCHEMES:
            raise InvalidParameterError(
                f"Incorrect weighting: {self.weighting}, only {WEIGHTING_SCHEMES} are supported."
            )
        if not 0 < self.direction_threshold <= 1:
            raise InvalidParameterError(
                f"direction_threshold must be within (0, 1], got {self.direction_threshold}"
            )
