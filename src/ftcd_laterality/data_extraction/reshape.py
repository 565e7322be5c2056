from typing import Sequence

import numpy as np
import pandas as pd

from ftcd_laterality.data_extraction.constants import CHANNELS

SHARED_COLUMNS = ["sample", "time", "rel_time", "epoch", "poi"]


def heartbeat_rows(epoched: pd.DataFrame, peaks: np.ndarray) -> pd.DataFrame:
    """
    Reduce the epoched series to one row per heartbeat.

    Args:
        epoched: Baseline-corrected, in-epoch rows with a ``sample`` column.
        peaks: Heartbeat peak sample positions.

    Returns:
        Rows whose sample is a peak; peaks outside every epoch are absent.
    """
    rows = epoched[epoched["sample"].isin(peaks)]
    return rows.dropna(subset=["epoch"]).reset_index(drop=True)


def construct_long_df(
    short_df: pd.DataFrame,
    channels: Sequence[str] = CHANNELS,
    value_suffix: str = "_bc",
) -> pd.DataFrame:
    """
    Stack the channels of a short-form frame as repeated-measures rows.

    Args:
        short_df: One row per heartbeat with ``<channel><value_suffix>`` columns.
        channels: Channel labels; each becomes a ``side`` level.
        value_suffix: Suffix of the value column of each channel.

    Returns:
        Long-format DataFrame with ``len(channels)`` rows per input row,
        ordered heartbeat by heartbeat, and columns
        ``sample, time, rel_time, epoch, poi, side, value``.
    """
    n_rows = len(short_df)
    n_sides = len(channels)

    long_df = pd.DataFrame(
        {
            col: np.repeat(short_df[col].to_numpy(), n_sides)
            for col in SHARED_COLUMNS
        }
    )
    long_df["side"] = np.tile(list(channels), n_rows)
    long_df["value"] = (
        short_df[[f"{c}{value_suffix}" for c in channels]].to_numpy().reshape(-1)
    )
    return long_df


def reshape_to_long(epoched: pd.DataFrame, peaks: np.ndarray) -> pd.DataFrame:
    """Heartbeat-reduce ``epoched`` and return the long-form table."""
    return construct_long_df(heartbeat_rows(epoched, peaks))
