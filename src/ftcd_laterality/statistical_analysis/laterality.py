from typing import Dict, Tuple

import numpy as np
import pandas as pd
from scipy.stats import sem

LEFT, BILATERAL, RIGHT = 1, 0, -1


def summarize_laterality(epoch_table: pd.DataFrame) -> Dict[str, float]:
    """
    Subject-level lateralization index from per-epoch values.

    Only included epochs with a finite ``li`` contribute. The standard error
    is the sample standard deviation over sqrt(n); it is nan for n < 2.

    Parameters
    ----------
    epoch_table : pd.DataFrame
        Output of ``epoch_laterality`` (columns ``li`` and ``included``).

    Returns
    -------
    dict
        ``li_mean``, ``li_se``, ``n_epochs`` and the odd/even split-half
        means ``li_odd`` and ``li_even``.
    """
    valid = epoch_table[epoch_table["included"]]["li"].dropna()
    n = int(valid.size)

    odd = valid[np.asarray(valid.index) % 2 == 1]
    even = valid[np.asarray(valid.index) % 2 == 0]

    return {
        "li_mean": float(valid.mean()) if n else np.nan,
        "li_se": float(sem(valid, ddof=1)) if n > 1 else np.nan,
        "n_epochs": n,
        "li_odd": float(odd.mean()) if odd.size else np.nan,
        "li_even": float(even.mean()) if even.size else np.nan,
    }


def confidence_interval(
    estimate: float, se: float, z: float = 1.96
) -> Tuple[float, float]:
    """Symmetric normal interval ``estimate -/+ z * se``."""
    return estimate - z * se, estimate + z * se


def classify(estimate: float, se: float, z: float = 1.96) -> float:
    """
    Three-way lateralization label from a point estimate and its SE.

    Returns 1 (left) when the interval lies above zero, -1 (right) when it
    lies below zero, 0 (bilateral) otherwise, and nan if either input is
    missing.
    """
    if estimate is None or se is None or pd.isna(estimate) or pd.isna(se):
        return np.nan
    lower, upper = confidence_interval(estimate, se, z)
    if lower > 0:
        return LEFT
    if upper < 0:
        return RIGHT
    return BILATERAL
