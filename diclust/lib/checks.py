from copy import copy

import numpy as np
import pandas as pd
import bioframe

from . import schemas
from .errors import InconsistentStatisticsError


def _chrom_positions(view_df):
    """Position of every chromosome in a view, by its first region."""
    chroms = pd.unique(view_df["chrom"])
    return pd.Series(np.arange(len(chroms)), index=chroms)


def is_compatible_viewframe(view_df, bin_pairs, raise_errors=False):
    """
    Check if view_df is a viewframe and if every anchor of
    bin_pairs falls on a chromosome covered by the view.

    Parameters
    ----------
    view_df :  DataFrame
        view_df DataFrame to be validated
    bin_pairs : DataFrame
        BEDPE-like table of bin pairs
    raise_errors : bool
        raise expection instead of returning False

    Returns
    -------
    is_compatible_viewframe : bool
        True when view_df is compatible, False otherwise
    """
    try:
        try:
            _ = bioframe.core.checks.is_viewframe(view_df, raise_errors=True)
        except Exception as e:
            raise ValueError("view_df is not a valid viewframe.") from e

        pair_chroms = set(bin_pairs["chrom1"]).union(bin_pairs["chrom2"])
        missing_chroms = pair_chroms - set(view_df["chrom"])
        if missing_chroms:
            raise ValueError(
                f"chromosomes {sorted(missing_chroms)} of bin pairs are not in the view"
            )
        return True
    except Exception as e:
        if raise_errors:
            raise e
        else:
            return False


def _check_statistics(bin_pairs, pval_col, fc_col):
    missing_columns = {pval_col, fc_col} - set(bin_pairs.columns)
    if missing_columns:
        raise InconsistentStatisticsError(
            f"bin pairs are missing statistics columns {sorted(missing_columns)}"
        )
    try:
        pvalues = bin_pairs[pval_col].astype(float)
        logfc = bin_pairs[fc_col].astype(float)
    except (TypeError, ValueError) as e:
        raise InconsistentStatisticsError(
            f"columns {pval_col}, {fc_col} cannot be cast to float"
        ) from e
    if pvalues.isna().any():
        raise InconsistentStatisticsError(
            f"{pvalues.isna().sum()} bin pairs have no value in {pval_col}"
        )
    if logfc.isna().any():
        raise InconsistentStatisticsError(
            f"{logfc.isna().sum()} bin pairs have no value in {fc_col}"
        )
    if ((pvalues < 0) | (pvalues > 1)).any():
        raise InconsistentStatisticsError(f"values in {pval_col} must be within [0, 1]")


def is_valid_bin_pairs(
    bin_pairs,
    pval_col="pvalue",
    fc_col="logFC",
    view_df=None,
    raise_errors=False,
):
    """
    Check if bin_pairs looks like a table of tested bin pairs, i.e.:
     - has BEDPE columns that can be cast to the schema dtypes
     - has no missing coordinates and no intervals with end < start
     - anchor1 does not come after anchor2
     - has a unique index, used as bin pair identifiers
     - every bin pair has a p-value within [0, 1] and a logFC

    Parameters
    ----------
    bin_pairs :  DataFrame
        table of bin pairs to be validated
    pval_col : str
        Name of the column with p-values.
    fc_col : str
        Name of the column with log-fold-changes.
    view_df : None or viewframe
        When provided, chromosome order of the view is used to check the
        order of anchors in inter-chromosomal bin pairs, otherwise
        chromosome names are compared lexically.
    raise_errors : bool
        raise expection instead of returning False

    Returns
    -------
    is_valid_bin_pairs : bool
        True when bin_pairs passes the checks, False otherwise
    """
    bedpe_dtypes = copy(schemas.bedpe_dtypes)  # mutable copy
    bedpe_columns = list(bedpe_dtypes)

    try:
        if not isinstance(bin_pairs, pd.DataFrame):
            raise ValueError(
                f"bin_pairs must be DataFrame, it is {type(bin_pairs)} instead"
            )
        if not set(bedpe_columns).issubset(bin_pairs.columns):
            missing_columns = set(bedpe_columns) - set(bin_pairs.columns)
            raise ValueError(
                "bin_pairs does not match the BEDPE schema:\n"
                f"columns {missing_columns} are missing"
            )
        try:
            bedpe = bin_pairs[bedpe_columns].astype(bedpe_dtypes)
        except Exception as e:
            raise ValueError(
                "bin_pairs does not match the BEDPE schema:\n"
                f"columns {bedpe_columns} cannot be cast to required data types."
            ) from e

        if bedpe.isna().any().any():
            raise ValueError(f"There are missing values in columns {bedpe_columns}")
        if not bin_pairs.index.is_unique:
            raise ValueError("bin_pairs index is used to identify bin pairs, it must be unique")
        if ((bedpe["end1"] < bedpe["start1"]) | (bedpe["end2"] < bedpe["start2"])).any():
            raise ValueError("bin pairs with end < start are not allowed")
        if ((bedpe["start1"] < 0) | (bedpe["start2"] < 0)).any():
            raise ValueError("bin pairs with negative coordinates are not allowed")

        # anchors of intra-chromosomal bin pairs must be ordered by start
        cis = bedpe["chrom1"] == bedpe["chrom2"]
        if (bedpe.loc[cis, "start1"] > bedpe.loc[cis, "start2"]).any():
            raise ValueError("anchor1 must not start after anchor2 for cis bin pairs")

        # chromosomes of trans bin pairs follow the view, or names otherwise
        if view_df is not None:
            _ = is_compatible_viewframe(view_df, bedpe, raise_errors=True)
            chrom_pos = _chrom_positions(view_df)
            pos1 = bedpe["chrom1"].map(chrom_pos).astype(int)
            pos2 = bedpe["chrom2"].map(chrom_pos).astype(int)
            if (pos1 > pos2).any():
                raise ValueError(
                    "anchor1 must not come after anchor2 in the chromosome order of the view"
                )
        elif (bedpe["chrom1"] > bedpe["chrom2"]).any():
            raise ValueError(
                "chrom1 must not come after chrom2 in lexical order when no view is given"
            )

        _check_statistics(bin_pairs, pval_col, fc_col)
        return True

    except Exception as e:
        if raise_errors:
            raise e
        else:
            return False
