import logging
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from ftcd_laterality.data_extraction.constants import CHANNELS

logger = logging.getLogger(__name__)


def detect_outliers_quantile(
    values: pd.Series, lower: float = 0.0001, upper: float = 0.9999
) -> pd.Series:
    """
    Flag extreme samples using quantile bounds.

    Args:
        values: One raw channel.
        lower: Lower quantile; samples strictly below it are flagged.
        upper: Upper quantile; samples strictly above it are flagged.

    Returns:
        Boolean Series: True if the sample is an outlier.
    """
    q_low = values.quantile(lower)
    q_high = values.quantile(upper)
    return (values < q_low) | (values > q_high)


def normalize_channels(
    df: pd.DataFrame,
    quantiles: Tuple[float, float] = (0.0001, 0.9999),
    channels: Sequence[str] = CHANNELS,
) -> pd.DataFrame:
    """
    Rescale each channel so its clean-sample mean becomes 100.

    Outliers are detected per channel on the raw values and excluded from
    the mean only. After scaling, their positions are overwritten with the
    channel's unscaled clean mean.

    Parameters
    ----------
    df : pd.DataFrame
        Resampled recording with one column per channel.
    quantiles : tuple of float
        Lower and upper outlier quantiles.
    channels : sequence of str
        Channels to normalize; output columns are ``<channel>_norm``.

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with the normalized columns added.
    """
    out = df.copy()
    for channel in channels:
        raw = out[channel].astype(float)
        outliers = detect_outliers_quantile(raw, *quantiles)
        clean_mean = raw[~outliers].mean()

        normalized = raw / clean_mean * 100
        normalized[outliers] = clean_mean
        out[f"{channel}_norm"] = normalized

        logger.debug(
            "%s: clean mean %.4g, %d outliers replaced",
            channel, clean_mean, int(outliers.sum()),
        )
    return out


def mask_dropouts(
    df: pd.DataFrame,
    columns: Sequence[str],
    valid_range: Tuple[float, float] = (60.0, 140.0),
) -> pd.DataFrame:
    """
    Null every column of a row where any of them leaves ``valid_range``.

    A value outside the range on either channel is a sensor dropout, so the
    row is set to missing on all listed columns.
    """
    out = df.copy()
    low, high = valid_range
    block = out[list(columns)]
    bad = ((block < low) | (block > high)).any(axis=1)
    out.loc[bad, list(columns)] = np.nan
    if bad.any():
        logger.info("Masked %d samples outside %s as dropouts", int(bad.sum()), valid_range)
    return out
