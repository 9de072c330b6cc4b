"""
Shared constants for QC drift correction.
"""

# Covariance structures accepted by sklearn.mixture.GaussianMixture, in the
# order they are enumerated during model search.
MODEL_SHAPES = ("full", "tied", "diag", "spherical")
DEFAULT_N_CLUSTERS = tuple(range(1, 41, 3))

SMOOTH_METHODS = ("spline", "loess")
DEFAULT_SMOOTH_METHOD = "spline"
DEFAULT_SMOOTHING = 0.2

# Up to this many distinct QC injections the drift is modelled by a quadratic.
POLY_FALLBACK_MAX_INJECTIONS = 3
POLY_FALLBACK_DEGREE = 2

DEFAULT_CV_LIMIT = 0.2
# CV thresholds reported in the per-cluster ratio table
CV_RATIO_THRESHOLDS = (0.15, 0.2)

OUT_OF_RANGE_POLICIES = ("raise", "clamp")

DEFAULT_QC_ID = "QC"

# ActionRecord columns, before and after feature filtering
ACTION_COLUMNS = ["n_before", "action", "cv_raw", "cv_corr"]
FINAL_ACTION_COLUMNS = ["n_before", "n_after", "action", "cv_raw", "cv_corr", "cv_after"]
