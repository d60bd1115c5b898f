class InvalidParameterError(ValueError):
    """A clustering or FDR-control parameter is out of its valid range."""


class InconsistentStatisticsError(ValueError):
    """A bin pair lacks a statistic required for combining p-values."""


class CrossChromosomeMergeError(AssertionError):
    """
    A cluster spans more than one chromosome pair.

    Never produced by the adjacency rule itself, so seeing it means a bug
    in clustering rather than bad input.
    """
