# -*- coding: utf-8 -*-
"""
diclust
~~~~~~~

Clusters of differential chromatin interactions, with the false
discovery rate controlled across clusters.

:author: diclust developers
:license: MIT

"""
__version__ = "0.1.0"

from . import lib

from .lib import (
    read_bin_pairs_from_file,
    read_viewframe_from_file,
    InvalidParameterError,
    InconsistentStatisticsError,
    CrossChromosomeMergeError,
    ClusterParams,
)

from .api.clustering import cluster_pairs, cluster_significant, cluster_bounds
from .api.clusterfdr import (
    simes,
    combine_tests,
    get_best_test,
    weighted_bh,
    cluster_fdr_control,
    cluster_fdr,
    control_cluster_fdr,
)
from .api.diclusters import diclusters, summarize_clusters
