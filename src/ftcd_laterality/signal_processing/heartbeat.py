"""Heartbeat peak detection and cycle-wise integration."""

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.signal import argrelmax

from ftcd_laterality.pipeline.errors import InsufficientHeartbeatsError

logger = logging.getLogger(__name__)


def find_heartbeat_peaks(
    x: Sequence[float],
    half_window: int = 5,
    min_distance: float = 12.0,
) -> np.ndarray:
    """
    Detect heartbeat peaks as strict local maxima.

    A sample is a peak if it is strictly greater than each of the
    ``half_window`` samples on either side. Only positions with a full
    window on both sides are considered. A peak closer than
    ``min_distance`` samples to the previously detected peak is dropped.

    Parameters
    ----------
    x : sequence of float
        Reference channel (normalized flow velocity).
    half_window : int
        Neighbours on each side the peak must exceed.
    min_distance : float
        Minimum spacing in samples, usually ``60 / hr_max * rate``.

    Returns
    -------
    np.ndarray
        Sorted peak positions.
    """
    x = np.asarray(x, dtype=float)
    n = x.size
    peaks = argrelmax(x, order=half_window)[0]
    peaks = peaks[(peaks >= half_window) & (peaks <= n - half_window - 1)]

    if peaks.size > 1:
        peaks = peaks[np.r_[True, np.diff(peaks) >= min_distance]]
    return peaks


def integrate_heartbeats(
    df: pd.DataFrame,
    peaks: np.ndarray,
    columns: Sequence[str],
    suffix: str = "_int",
) -> pd.DataFrame:
    """
    Replace each heartbeat cycle by its mean, per channel.

    Samples in ``[peaks[i], peaks[i + 1])`` receive that interval's mean.
    Samples before the first peak take the first interval's mean and
    samples from the last peak onward take the last interval's mean.

    Parameters
    ----------
    df : pd.DataFrame
        Recording, rows in sample order.
    peaks : np.ndarray
        Peak positions (row positions in ``df``).
    columns : sequence of str
        Columns to integrate; results go to ``<column><suffix>``.

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with integrated columns added.

    Raises
    ------
    InsufficientHeartbeatsError
        If fewer than two peaks are available.
    """
    peaks = np.asarray(peaks, dtype=int)
    if peaks.size < 2:
        raise InsufficientHeartbeatsError(
            f"Need at least two heartbeat peaks to integrate, found {peaks.size}"
        )

    positions = np.arange(len(df))
    cycle = np.searchsorted(peaks, positions, side="right") - 1
    inside = (cycle >= 0) & (cycle <= peaks.size - 2)
    fill_cycle = np.clip(cycle, 0, peaks.size - 2)

    out = df.copy()
    for column in columns:
        values = out[column].to_numpy(dtype=float)
        means = (
            pd.Series(values[inside])
            .groupby(cycle[inside])
            .mean()
            .reindex(np.arange(peaks.size - 1))
        )
        out[f"{column}{suffix}"] = means.to_numpy()[fill_cycle]

    logger.info("Integrated %d heartbeat cycles", peaks.size - 1)
    return out
