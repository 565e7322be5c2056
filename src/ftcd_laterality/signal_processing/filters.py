# src/ftcd_laterality/signal_processing/filters.py

import logging

import numpy as np
import pandas as pd

from ftcd_laterality.data_extraction.constants import RAW_COLUMNS
from ftcd_laterality.pipeline.errors import MalformedInputError

logger = logging.getLogger(__name__)


def smooth_marker(marker: pd.Series, window: int) -> pd.Series:
    """
    Spread narrow event pulses with a centred moving average.

    Args:
        marker: Raw marker channel.
        window: Moving-average width in samples (should be at least the
            decimation factor so no pulse falls between retained samples).

    Returns:
        Smoothed marker series, same index as the input.
    """
    return marker.rolling(window=window, center=True, min_periods=1).mean()


def resample(
    raw: pd.DataFrame,
    sampling_rate: float,
    output_rate: float,
    smoothing_window: int,
) -> pd.DataFrame:
    """
    Decimate a raw two-channel recording to ``output_rate``.

    Only the marker channel is smoothed before decimation; the blood-flow
    channels are subsampled as they are. The time column is rebuilt as an
    exact arithmetic sequence starting at the first raw timestamp.

    Args:
        raw: DataFrame with columns ``time, left, right, marker``.
        sampling_rate: Acquisition rate in Hz.
        output_rate: Target rate in Hz.
        smoothing_window: Marker moving-average width in raw samples.

    Returns:
        DataFrame with ``sample, time, left, right, marker`` and
        ``floor(len(raw) / factor)`` rows.
    """
    missing = [c for c in RAW_COLUMNS if c not in raw.columns]
    if missing:
        raise MalformedInputError(f"Missing required columns: {missing}")

    factor = int(round(sampling_rate / output_rate))
    if factor < 1:
        raise MalformedInputError(
            f"Sampling rate {sampling_rate} Hz is below the output rate {output_rate} Hz"
        )
    if len(raw) < factor:
        raise MalformedInputError(
            f"{len(raw)} samples is fewer than the decimation window of {factor}"
        )

    raw = raw.reset_index(drop=True)
    n_out = len(raw) // factor
    keep = np.arange(n_out) * factor

    smoothed = smooth_marker(raw["marker"].astype(float), smoothing_window)

    out = pd.DataFrame(
        {
            "sample": np.arange(n_out),
            "time": float(raw["time"].iloc[0]) + np.arange(n_out) / output_rate,
            "left": raw["left"].to_numpy(dtype=float)[keep],
            "right": raw["right"].to_numpy(dtype=float)[keep],
            "marker": smoothed.to_numpy()[keep],
        }
    )
    logger.debug("Resampled %d -> %d samples (factor %d)", len(raw), n_out, factor)
    return out
