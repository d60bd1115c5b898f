from functools import partial
import logging

import click
from . import cli
from .. import api

from ..lib.io import read_bin_pairs_from_file, read_viewframe_from_file
from ..lib.schemas import WEIGHTING_SCHEMES

from .util import validate_csv, format_members

logging.basicConfig(level=logging.INFO)


@cli.command()
@click.argument(
    "binpairs_path",
    metavar="BINPAIRS_PATH",
    type=str,
    nargs=1,
    callback=partial(validate_csv, default_column="pvalue"),
)
@click.option(
    "--fc-col",
    help="Name of the column with log-fold-changes of the differential test.",
    type=str,
    default="logFC",
    show_default=True,
)
@click.option(
    "--view",
    help="Path to a BED file with the definition of viewframe (regions),"
    " e.g. chromosome arms. Bin pairs are clustered within pairs of these"
    " regions independently. Clustering is done within chromosome pairs"
    " when not provided.",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    show_default=True,
)
@click.option(
    "--tol",
    help="Maximum gap in basepairs between anchors of two bin pairs,"
    " on both sides, for them to be clustered together.",
    type=int,
    default=1,
    show_default=True,
)
@click.option(
    "--upper",
    help="Maximum span of a cluster in basepairs along either anchor."
    " Larger clusters are split at their largest internal gaps.",
    type=int,
    default=1_000_000,
    show_default=True,
)
@click.option(
    "--pval-threshold",
    help="Cluster only bin pairs with p-values below this threshold."
    " When not provided, the threshold is chosen to control the"
    " estimated cluster-level FDR.",
    type=float,
    default=None,
)
@click.option(
    "--fdr",
    help="False discovery rate (FDR) to control across clusters.",
    type=float,
    default=0.05,
    show_default=True,
)
@click.option(
    "--signed",
    help="Cluster bin pairs with positive and negative log-fold-changes separately.",
    is_flag=True,
    default=False,
)
@click.option(
    "--weighting",
    help="Weighting of clusters in the BH procedure: by cluster size or none.",
    type=click.Choice(WEIGHTING_SCHEMES),
    default="size",
    show_default=True,
)
@click.option(
    "-p",
    "--nproc",
    help="Number of processes to split the work between."
    " [default: 1, i.e. no process pool]",
    default=1,
    type=int,
)
@click.option(
    "-o",
    "--output",
    help="Specify output file name to store clusters in a BEDPE-like format",
    type=str,
    required=True,
)
@click.option(
    "--pairs-output",
    help="Specify output file name to store bin pairs annotated with clusters.",
    type=str,
    default=None,
)
def clusters(
    binpairs_path,
    fc_col,
    view,
    tol,
    upper,
    pval_threshold,
    fdr,
    signed,
    weighting,
    nproc,
    output,
    pairs_output,
):
    """
    Cluster significant differential bin pairs and control the FDR across clusters.

    BINPAIRS_PATH : The path to a tab-separated file with bin pairs, including
    a header, with BEDPE columns 'chrom1', 'start1', 'end1', 'chrom2', 'start2',
    'end2', and the p-values and log-fold-changes of a differential test.
    Use the '::' syntax to specify the name of the p-value column.

    """
    binpairs_path, pval_col = binpairs_path

    view_df = None
    if view is not None:
        view_df = read_viewframe_from_file(view)

    bin_pairs = read_bin_pairs_from_file(
        binpairs_path,
        pval_col=pval_col,
        fc_col=fc_col,
        verify_view=view_df,
    )

    clusters_df, annotated_pairs = api.diclusters.diclusters(
        bin_pairs,
        fdr=fdr,
        tol=tol,
        upper=upper,
        pval_threshold=pval_threshold,
        signed=signed,
        weighting=weighting,
        pval_col=pval_col,
        fc_col=fc_col,
        view_df=view_df,
        nproc=nproc,
    )

    format_members(clusters_df).to_csv(
        output, sep="\t", header=True, index=False, na_rep="nan"
    )
    if pairs_output:
        annotated_pairs.to_csv(
            pairs_output, sep="\t", header=True, index=False, na_rep="nan"
        )

    summary = api.diclusters.summarize_clusters(clusters_df)
    click.echo("\t".join(f"{k}={v}" for k, v in summary.items()))
