import pandas as pd
import pytest


def _make_bin_pairs(rows, binsize=10_000):
    """
    bedpe-style DataFrame from (chrom1, start1, chrom2, start2[, pvalue[, logFC]])
    rows, all anchors being `binsize` wide.
    """
    defaults = (0.5, 0.0)  # pvalue, logFC
    rows = [tuple(r) + defaults[len(r) - 4 :] for r in rows]
    df = pd.DataFrame(
        rows, columns=["chrom1", "start1", "chrom2", "start2", "pvalue", "logFC"]
    )
    df["end1"] = df["start1"] + binsize
    df["end2"] = df["start2"] + binsize
    return df[["chrom1", "start1", "end1", "chrom2", "start2", "end2", "pvalue", "logFC"]]


@pytest.fixture
def make_bin_pairs():
    return _make_bin_pairs


@pytest.fixture
def diff_bin_pairs():
    """
    Five adjacent bin pairs going up (p=1e-6), three adjacent bin pairs
    going down (p=1e-4) and twenty isolated bin pairs with p >= 0.09.
    """
    rows = []
    for i in range(5):
        rows.append(("chr1", i * 10_000, "chr1", 500_000, 1e-6, 2.0))
    for i in range(3):
        rows.append(("chr1", 30_000_000 + i * 10_000, "chr1", 30_500_000, 1e-4, -1.5))
    for i in range(1, 21):
        start = i * 1_000_000
        rows.append(("chr1", start, "chr1", start + 100_000, 0.05 + 0.04 * i, 0.1))
    return _make_bin_pairs(rows)
