import matplotlib.pyplot as plt
import pandas as pd
import pytest

from qc_drift_correction import (
    calculate_drift,
    cluster_features,
    plot_bic,
    plot_cluster_drift,
    plot_cv_histogram,
)


@pytest.fixture
def two_pattern_drift(two_pattern_qc):
    clustering = cluster_features(
        two_pattern_qc, model_shapes=("spherical", "diag"), n_clusters=(1, 2, 3)
    )
    return calculate_drift(clustering)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_plot_bic(two_pattern_drift):
    fig = plot_bic(two_pattern_drift.clustering, title="Model search")
    ax = fig.axes[0]
    assert ax.get_title() == "Model search"
    assert ax.get_xlabel() == "Number of Clusters"
    # one line per shape
    assert len(ax.get_lines()) == 2


def test_plot_cluster_drift(two_pattern_drift):
    fig = plot_cluster_drift(two_pattern_drift, 1)
    ax_raw, ax_corr = fig.axes
    n = len(two_pattern_drift.cluster_features[1])
    assert ax_raw.get_title().startswith(f"Cluster 1; n={n};")
    assert ax_raw.get_ylim() == ax_corr.get_ylim()


def test_plot_cluster_drift_unknown_cluster(two_pattern_drift):
    with pytest.raises(ValueError):
        plot_cluster_drift(two_pattern_drift, 9)


def test_plot_cv_histogram():
    before = pd.DataFrame({"a": [1.0, 1.2, 0.8], "b": [1.0, 1.5, 0.5]})
    after = pd.DataFrame({"a": [1.0, 1.05, 0.95], "b": [1.0, 1.1, 0.9]})
    fig = plot_cv_histogram(before, after, labels=("Raw", "Corrected"), bins=5)
    ax = fig.axes[0]
    assert ax.get_xlabel() == "CV (Feature)"
    assert ax.get_title() == "Feature CV Distribution"


def test_plot_cv_histogram_without_finite_cv():
    centred = pd.DataFrame({"a": [-1.0, 0.0, 1.0]})
    with pytest.raises(ValueError):
        plot_cv_histogram(centred, centred)
