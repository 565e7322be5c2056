"""Trial-onset detection in the digital marker channel."""

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ftcd_laterality.pipeline.errors import (MalformedInputError,
                                             NoMarkersFoundError)

logger = logging.getLogger(__name__)


def detect_markers(marker: pd.Series, threshold_sd: float = 4.0) -> np.ndarray:
    """
    Locate trial onsets as sharp rises of the (smoothed) marker channel.

    An onset is a sample whose increase over the previous sample exceeds
    ``mean(marker) + threshold_sd * std(marker)``. Runs of consecutive
    supra-threshold rises belong to the same pulse and yield one onset.

    Parameters
    ----------
    marker : pd.Series
        Marker channel after smoothing and decimation.
    threshold_sd : float
        Number of standard deviations above the mean.

    Returns
    -------
    np.ndarray
        Increasing onset sample positions.

    Raises
    ------
    NoMarkersFoundError
        If no sample crosses the threshold.
    """
    values = pd.Series(marker, dtype=float).reset_index(drop=True)
    threshold = values.mean() + threshold_sd * values.std()
    rises = np.flatnonzero(np.diff(values.to_numpy()) > threshold) + 1

    if rises.size:
        rises = rises[np.r_[True, np.diff(rises) > 1]]
    if rises.size == 0:
        raise NoMarkersFoundError(
            f"No marker onsets above threshold {threshold:.4g}"
        )
    logger.debug("Marker threshold %.4g, %d onsets", threshold, rises.size)
    return rises


def pad_leading(
    frame: pd.DataFrame,
    onsets: np.ndarray,
    min_lead: int,
    output_rate: float,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Guarantee at least ``min_lead`` samples before the first onset.

    When the first onset sits before ``min_lead`` the leading segment of the
    recording is copied (and repeated if the recording is shorter than the
    required pad) in front of it. The ``sample`` and ``time`` columns are
    renumbered, and every onset shifted by the pad length.
    """
    first = int(onsets[0])
    if first >= min_lead:
        return frame, onsets

    pad = min_lead + 1 - first
    lead = frame.iloc[np.arange(pad) % len(frame)]
    padded = pd.concat([lead, frame], ignore_index=True)

    t0 = float(frame["time"].iloc[0]) - pad / output_rate
    padded["sample"] = np.arange(len(padded))
    padded["time"] = t0 + np.arange(len(padded)) / output_rate

    logger.warning(
        "First marker at sample %d; prepended %d samples of lead-in", first, pad
    )
    return padded, onsets + pad


def check_marker_spacing(onsets: np.ndarray, min_gap: float) -> None:
    """Raise MalformedInputError unless onsets increase by at least min_gap."""
    gaps = np.diff(onsets)
    if np.any(gaps <= 0):
        raise MalformedInputError("Marker onsets are not strictly increasing")
    if np.any(gaps < min_gap):
        bad = int(np.argmax(gaps < min_gap))
        raise MalformedInputError(
            f"Markers {bad + 1} and {bad + 2} are {gaps[bad]} samples apart, "
            f"below the minimum inter-trial gap of {min_gap:g}"
        )


def match_trial_count(onsets: np.ndarray, n_trials: Optional[int]) -> np.ndarray:
    """Trim surplus onsets to the expected trial count."""
    if n_trials is None or pd.isna(n_trials):
        return onsets
    n_trials = int(n_trials)
    if onsets.size > n_trials:
        logger.warning(
            "Found %d markers, expected %d; keeping the first %d",
            onsets.size, n_trials, n_trials,
        )
        return onsets[:n_trials]
    if onsets.size < n_trials:
        logger.warning("Found %d markers, expected %d", onsets.size, n_trials)
    return onsets
