"""
Diagnostic plots for drift correction: model search, cluster drift and CV.
"""

from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from qc_drift_correction.assessment import coefficient_of_variation, mean_cv
from qc_drift_correction.drift.clustering import ClusteringResult
from qc_drift_correction.drift.modeling import DriftCalculation


def plot_bic(
    clustering: ClusteringResult,
    *,
    title: Optional[str] = None,
    figsize: tuple[float, float] = (8, 5),
    ax: Optional[plt.Axes] = None,
) -> plt.Figure:
    """
    BIC against number of clusters, one line per covariance shape.

    The selected model is marked. Candidates that did not converge are gaps.

    Args:
        clustering: Result of cluster_features.
        title: Optional plot title.
        figsize: Figure size in inches.
        ax: Optional axes to draw on.

    Returns:
        matplotlib Figure.
    """
    bic = clustering.bic
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    palette = sns.color_palette("muted", n_colors=len(bic.columns))
    for color, shape in zip(palette, bic.columns):
        ax.plot(bic.index, bic[shape], marker="o", ms=4, color=color, label=shape)

    best = bic.loc[clustering.n_components, clustering.model_shape]
    ax.scatter(
        [clustering.n_components],
        [best],
        s=120,
        facecolors="none",
        edgecolors="crimson",
        linewidths=2,
        zorder=3,
        label=f"Selected: {clustering.model_shape}, G={clustering.n_components}",
    )
    ax.set_xlabel("Number of Clusters")
    ax.set_ylabel("BIC")
    ax.set_title(title or "Mixture Model Selection", fontweight="bold", pad=12)
    ax.legend(loc="best", fontsize=8)
    sns.despine(ax=ax)
    fig.tight_layout()
    return fig


def plot_cluster_drift(
    drift: DriftCalculation,
    cluster: int,
    *,
    figsize: tuple[float, float] = (8, 7),
) -> plt.Figure:
    """
    Raw cluster features with the fitted drift curve, above the corrected features.

    Both panels share the y-range of the raw data so the flattening is
    directly visible.

    Args:
        drift: Result of calculate_drift.
        cluster: Cluster id to plot.
        figsize: Figure size in inches.

    Returns:
        matplotlib Figure with two stacked axes.
    """
    if cluster not in drift.curves:
        raise ValueError(f"Unknown cluster {cluster}. Available: {sorted(drift.curves)}")

    qc = drift.qc
    members = drift.cluster_features[cluster]
    curve = drift.curves[cluster]
    raw = qc.features[members]
    corrected = raw.mul(curve.factors_at(qc.injections), axis=0)

    fig, (ax_raw, ax_corr) = plt.subplots(2, 1, figsize=figsize, sharex=True)
    ylim = (float(np.min(raw.to_numpy())), float(np.max(raw.to_numpy())))

    ax_raw.plot(qc.injections, raw.to_numpy(), color="grey", linewidth=0.8, alpha=0.7)
    ax_raw.plot(curve.injections, curve.predicted, color="crimson", linewidth=2, label=curve.method)
    ax_raw.set_ylim(*ylim)
    ax_raw.set_ylabel("Scaled Intensity")
    ax_raw.set_title(
        f"Cluster {cluster}; n={len(members)}; Raw; Mean CV={mean_cv(raw):.3f}",
        fontweight="bold",
        pad=10,
    )
    ax_raw.legend(loc="best")

    ax_corr.plot(qc.injections, corrected.to_numpy(), color="grey", linewidth=0.8, alpha=0.7)
    ax_corr.set_ylim(*ylim)
    ax_corr.set_xlabel("Injection Number")
    ax_corr.set_ylabel("Scaled Intensity")
    ax_corr.set_title(f"Corrected; Mean CV={mean_cv(corrected):.3f}", fontweight="bold", pad=10)

    sns.despine(fig=fig)
    fig.tight_layout()
    return fig


def plot_cv_histogram(
    before: pd.DataFrame,
    after: pd.DataFrame,
    *,
    labels: tuple[str, str] = ("Clean", "Corrected"),
    title: Optional[str] = None,
    bins: int = 30,
    figsize: tuple[float, float] = (8, 5),
    ax: Optional[plt.Axes] = None,
) -> plt.Figure:
    """
    Overlaid histograms of feature CV for two stages of the pipeline.

    Args:
        before: Feature matrix of the earlier stage.
        after: Feature matrix of the later stage.
        labels: Legend labels for (before, after).
        title: Optional plot title.
        bins: Number of histogram bins.
        figsize: Figure size in inches.
        ax: Optional axes to draw on.

    Returns:
        matplotlib Figure.
    """
    cvs = pd.concat(
        [
            pd.DataFrame({"cv": coefficient_of_variation(before).to_numpy(), "stage": labels[0]}),
            pd.DataFrame({"cv": coefficient_of_variation(after).to_numpy(), "stage": labels[1]}),
        ],
        ignore_index=True,
    ).dropna(subset=["cv"])
    if cvs.empty:
        raise ValueError("No finite CV values to plot.")

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    sns.histplot(
        data=cvs,
        x="cv",
        hue="stage",
        bins=bins,
        element="step",
        palette=["black", "steelblue"],
        ax=ax,
    )
    ax.set_xlabel("CV (Feature)")
    ax.set_ylabel("Count")
    ax.set_title(title or "Feature CV Distribution", fontweight="bold", pad=12)
    sns.despine(ax=ax)
    fig.tight_layout()
    return fig
