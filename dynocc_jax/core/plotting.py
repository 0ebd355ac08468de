"""
Plots of occupied-site counts over time.
"""

from pathlib import Path
from typing import Optional, Union

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from ..utils.logging import get_logger


logger = get_logger(__name__)

SERIES_COLORS = {
    "True": "#1b9e77",
    "Observed": "#d95f02",
    "Expected": "#7570b3",
}


def plot_occupancy_comparison(
    table: pd.DataFrame,
    path: Optional[Union[str, Path]] = None,
    title: str = "Occupied sites per year",
):
    """
    Line plot of occupied sites per year for each series.

    Series with a standard error get 1.96 SE error bars.

    Args:
        table: Output of ``occupancy_comparison_table``
        path: Save the figure as PNG here when given

    Returns:
        matplotlib Figure
    """
    fig, ax = plt.subplots(figsize=(8, 5))

    for series, group in table.groupby("series", observed=True, sort=False):
        group = group.sort_values("year")
        color = SERIES_COLORS.get(str(series))
        ax.plot(group["year"], group["value"], marker="o", label=str(series), color=color)
        if group["se"].notna().any():
            ax.errorbar(
                group["year"],
                group["value"],
                yerr=1.96 * group["se"],
                fmt="none",
                capsize=3,
                color=color,
            )

    ax.set_xlabel("Year")
    ax.set_ylabel("Occupied sites")
    ax.set_title(title)
    ax.set_xticks(sorted(table["year"].unique()))
    ax.legend(title=None)
    fig.tight_layout()

    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=150, bbox_inches="tight")
        logger.info(f"Saved occupancy plot to {path}")

    return fig
