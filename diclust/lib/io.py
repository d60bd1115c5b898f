from copy import copy

import pandas as pd
import bioframe

from . import schemas
from .checks import is_valid_bin_pairs, is_compatible_viewframe
from .errors import InconsistentStatisticsError


def read_bin_pairs_from_file(
    fname,
    pval_col="pvalue",
    fc_col="logFC",
    verify_view=None,
    raise_errors=True,
):
    """
    Read a table of tested bin pairs from a file.

    The file must be tab-separated with a header and have BEDPE columns
    chrom1, start1, end1, chrom2, start2, end2, along with
    the columns holding p-values and log-fold-changes of the
    differential test. Any other columns are kept as is.

    Parameters
    ----------
    fname : str
        Path to a tsv file with bin pairs
    pval_col : str
        Name of the column with p-values.
    fc_col : str
        Name of the column with log-fold-changes.
    verify_view : None or viewframe
        Viewframe to verify chromosome order of anchors against.
        Skipped if None.
    raise_errors : bool
        raise expection instead of returning invalid tables

    Returns
    -------
    bin_pairs : pd.DataFrame
        DataFrame with the bin pairs
    """
    pairs_dtypes = copy(schemas.bedpe_dtypes)  # mutable copy
    pairs_dtypes[pval_col] = "float"
    pairs_dtypes[fc_col] = "float"

    try:
        bin_pairs = pd.read_table(fname, dtype=pairs_dtypes)
        _ = is_valid_bin_pairs(
            bin_pairs,
            pval_col=pval_col,
            fc_col=fc_col,
            view_df=verify_view,
            raise_errors=raise_errors,
        )
    except InconsistentStatisticsError:
        raise
    except ValueError as e:
        raise ValueError(
            "Input bin pairs file does not match the schema\n"
            "Bin pairs must be tab-separated file with a header"
        ) from e

    return bin_pairs


def read_viewframe_from_file(
    view_fname,
    verify_bin_pairs=None,
):
    """
    Read a BED file with regions that conforms
    a definition of a viewframe (non-overlaping, unique names, etc).

    Parameters
    ----------
    view_fname : str
        Path to a BED file with regions.
    verify_bin_pairs : pd.DataFrame | None
        bin pairs whose chromosomes must all be covered by the view.
        No checks are done when None.

    Returns
    -------
    view_df : pd.DataFrame
        DataFrame with the viewframe
    """

    # read BED file assuming bed4/3 formats (with names-columns and without):
    try:
        view_df = bioframe.read_table(view_fname, schema="bed4", index_col=False)
    except Exception as err_bed4:
        try:
            view_df = bioframe.read_table(view_fname, schema="bed3", index_col=False)
        except Exception:
            raise ValueError(
                f"{view_fname} is not a BED file with 3 or 4 columns"
            ) from err_bed4

    # Convert view dataframe to viewframe:
    try:
        view_df = bioframe.make_viewframe(view_df)
    except ValueError as e:
        raise ValueError(
            "View table is incorrect, please, comply with the format. "
        ) from e

    if verify_bin_pairs is not None:
        try:
            _ = is_compatible_viewframe(view_df, verify_bin_pairs, raise_errors=True)
        except Exception as e:
            raise ValueError("view_df is not compatible with the bin pairs") from e

    return view_df
