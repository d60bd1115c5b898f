import numpy as np
import pandas as pd

import bioframe


def assign_view_paired(
    bin_pairs,
    view_df,
    cols_paired=["chrom1", "start1", "end1", "chrom2", "start2", "end2"],
    cols_view=["chrom", "start", "end"],
    pairs_view_cols=["region1", "region2"],
    view_name_col="name",
):
    """Assign region names from the view to each anchor of the bin pairs

    Assigns a regular 1D view independently to each side of a bedpe-style dataframe.
    Will add two columns with region names (`pairs_view_cols`). Index of
    `bin_pairs` is preserved, anchors outside of the view get missing values.

    Parameters
    ----------
    bin_pairs : pd.DataFrame
        bedpe-style dataframe
    view_df : pandas.DataFrame
        ViewFrame specifying region start and ends for assignment. Attempts to
        convert dictionary and pd.Series formats to viewFrames.
    cols_paired : list of str
        The names of columns containing the chromosome, start and end of the
        genomic intervals. The default values are `"chrom1", "start1", "end1", "chrom2",
        "start2", "end2"`.
    cols_view : list of str
        The names of columns containing the chromosome, start and end of the
        genomic intervals in the view. The default values are `"chrom", "start", "end"`.
    pairs_view_cols : list of str
        Names of the columns where to save the assigned region names
    view_name_col : str
        Column of ``view_df`` with region names. Default "name".
    """
    index = bin_pairs.index
    features = bin_pairs[cols_paired].reset_index(drop=True)
    view_df = bioframe.make_viewframe(
        view_df, view_name_col=view_name_col, cols=cols_view
    )

    for cols, view_col in zip(
        (cols_paired[:3], cols_paired[3:]), pairs_view_cols
    ):
        assigned = bioframe.assign_view(
            features,
            view_df,
            drop_unassigned=False,
            df_view_col=view_col,
            view_name_col=view_name_col,
            cols=cols,
            cols_view=cols_view,
        )
        # assign_view may reorder rows, so align back by position
        features[view_col] = assigned[view_col].reindex(features.index).to_numpy()

    result = bin_pairs.copy()
    for view_col in pairs_view_cols:
        result[view_col] = features[view_col].to_numpy()
    result.index = index
    return result


def assign_pair_groups(bin_pairs, view_df=None):
    """
    Label every bin pair with the pair of genomic regions it belongs to.

    Bin pairs in different groups can never be clustered together. Without
    a view, groups are chromosome pairs sorted by chromosome names. With a
    view, groups are pairs of view regions sorted in the order of the view.

    Parameters
    ----------
    bin_pairs : pd.DataFrame
        bedpe-style dataframe
    view_df : None or viewframe
        Regions to group bin pairs by, e.g. chromosome arms.

    Returns
    -------
    groups : pd.Series
        Categorical series aligned to ``bin_pairs`` with ordered
        categories of the form "name1|name2".
    """
    if view_df is None:
        name1 = bin_pairs["chrom1"].astype(str)
        name2 = bin_pairs["chrom2"].astype(str)
        order = sorted(set(zip(name1, name2)))
    else:
        view_df = bioframe.make_viewframe(view_df)
        annotated = assign_view_paired(bin_pairs, view_df)
        unassigned = annotated[["region1", "region2"]].isna().any(axis=1)
        if unassigned.any():
            raise ValueError(
                f"{unassigned.sum()} bin pairs have anchors outside of the view"
            )
        name1 = annotated["region1"].astype(str)
        name2 = annotated["region2"].astype(str)
        region_pos = {name: i for i, name in enumerate(view_df["name"])}
        order = sorted(
            set(zip(name1, name2)), key=lambda r: (region_pos[r[0]], region_pos[r[1]])
        )

    categories = [f"{r1}|{r2}" for r1, r2 in order]
    groups = pd.Categorical(name1 + "|" + name2, categories=categories, ordered=True)
    return pd.Series(groups, index=bin_pairs.index, name="group")


def interval_gap(start_a, end_a, start_b, end_b):
    """
    Distance between half-open intervals [start_a, end_a) and
    [start_b, end_b), 0 for touching or overlapping intervals.
    """
    return np.maximum(0, np.maximum(start_a, start_b) - np.minimum(end_a, end_b))
