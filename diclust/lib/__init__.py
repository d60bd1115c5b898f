from .checks import is_valid_bin_pairs, is_compatible_viewframe
from .common import assign_view_paired, assign_pair_groups, interval_gap
from .errors import (
    InvalidParameterError,
    InconsistentStatisticsError,
    CrossChromosomeMergeError,
)
from .io import read_bin_pairs_from_file, read_viewframe_from_file
from .schemas import ClusterParams
