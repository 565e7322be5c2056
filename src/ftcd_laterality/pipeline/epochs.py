import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from ftcd_laterality.data_extraction.constants import CHANNELS
from ftcd_laterality.pipeline.config import TimingSpec

logger = logging.getLogger(__name__)


def build_epochs(
    df: pd.DataFrame,
    onsets: np.ndarray,
    timing: TimingSpec,
    rate: float,
) -> pd.DataFrame:
    """
    Assign samples to trials and keep only in-epoch samples.

    For the marker at position ``k`` the window runs from
    ``k + epoch_start * rate`` to ``k + epoch_end * rate`` inclusive and is
    clipped to the recording. A sample claimed by two windows belongs to the
    nearest marker at or before it; samples that precede every marker whose
    window holds them go to the later marker. Epochs are numbered from 1 in
    marker order.

    Parameters
    ----------
    df : pd.DataFrame
        Integrated recording, one row per sample position.
    onsets : np.ndarray
        Marker positions.
    timing : TimingSpec
        Window offsets for this task.
    rate : float
        Sampling rate of ``df`` in Hz.

    Returns
    -------
    pd.DataFrame
        In-epoch rows with ``epoch``, ``rel_time``, ``stim1`` and ``poi``.
    """
    n = len(df)
    epoch = np.full(n, np.nan)
    rel_time = np.full(n, np.nan)
    owner = np.full(n, -1)

    start_offset = int(round(timing.epoch_start * rate))
    end_offset = int(round(timing.epoch_end * rate))

    for number, onset in enumerate(onsets, start=1):
        positions = np.arange(onset + start_offset, onset + end_offset + 1)
        window_time = timing.epoch_start + np.arange(positions.size) / rate
        inside = (positions >= 0) & (positions < n)
        positions, window_time = positions[inside], window_time[inside]
        current = owner[positions]
        # an earlier marker keeps samples at or after it that precede this one
        claim = (current < 0) | (positions >= onset) | (current > positions)
        epoch[positions[claim]] = number
        rel_time[positions[claim]] = window_time[claim]
        owner[positions[claim]] = onset

    out = df.copy()
    out["epoch"] = epoch
    out["rel_time"] = np.round(rel_time, 6)
    out = out.dropna(subset=["epoch"]).reset_index(drop=True)
    out["epoch"] = out["epoch"].astype(int)

    rel = out["rel_time"]
    out["stim1"] = ((rel >= timing.stim1_start) & (rel <= timing.stim1_end)).astype(int)
    out["poi"] = ((rel >= timing.poi_start) & (rel < timing.poi_end)).astype(int)

    logger.info("Built %d epochs covering %d samples", len(onsets), len(out))
    return out


def epoch_index(epoched: pd.DataFrame) -> pd.DataFrame:
    """Map each epoch to its first and last row position in ``epoched``."""
    positions = pd.Series(np.arange(len(epoched)), index=epoched.index)
    return (
        positions.groupby(epoched["epoch"])
        .agg(["min", "max"])
        .rename(columns={"min": "first", "max": "last"})
    )


def excluded_trials(inclusion_mask: Optional[Dict[int, int]]) -> list:
    """Trials explicitly flagged 0 in the mask; unlisted trials are included."""
    if not inclusion_mask:
        return []
    return sorted(int(t) for t, keep in inclusion_mask.items() if not keep)


def exclude_trials(
    epoched: pd.DataFrame,
    inclusion_mask: Optional[Dict[int, int]],
    columns: Sequence[str],
) -> pd.DataFrame:
    """Null ``columns`` for every epoch the inclusion mask rejects."""
    out = epoched.copy()
    dropped = excluded_trials(inclusion_mask)
    if dropped:
        out.loc[out["epoch"].isin(dropped), list(columns)] = np.nan
        logger.info("Excluded trials %s", dropped)
    return out


def baseline_correct(
    epoched: pd.DataFrame,
    timing: TimingSpec,
    center: float = 100.0,
    channels: Sequence[str] = CHANNELS,
    source_suffix: str = "_int",
    target_suffix: str = "_bc",
) -> pd.DataFrame:
    """
    Subtract the per-epoch baseline mean and recentre at ``center``.

    The baseline mean is taken over rows with ``rel_time`` in
    ``[base_start, base_end)``. Epochs without any valid baseline sample
    get missing corrected values.
    """
    out = epoched.copy()
    rel = out["rel_time"]
    in_base = (rel >= timing.base_start) & (rel < timing.base_end)

    sources = [f"{c}{source_suffix}" for c in channels]
    base = (
        out.loc[in_base]
        .groupby("epoch")[sources]
        .mean()
        .reindex(out["epoch"].unique())
    )

    has_data = out.groupby("epoch")[sources].count().sum(axis=1) > 0
    empty = [e for e in base.index[base.isna().all(axis=1)] if has_data[e]]
    if empty:
        logger.warning("No baseline data for epochs %s", empty)

    aligned = base.reindex(out["epoch"]).to_numpy()
    for i, channel in enumerate(channels):
        out[f"{channel}{target_suffix}"] = (
            out[sources[i]].to_numpy() - aligned[:, i] + center
        )
    return out


def epoch_laterality(
    epoched: pd.DataFrame,
    inclusion_mask: Optional[Dict[int, int]] = None,
    left: str = "left_bc",
    right: str = "right_bc",
) -> pd.DataFrame:
    """
    Per-epoch lateralization index, mean(left - right) over POI rows.

    Returns
    -------
    pd.DataFrame
        Indexed by epoch with ``li``, ``n_poi`` (POI rows with a finite
        difference) and ``included``.
    """
    diff = (epoched[left] - epoched[right]).where(epoched["poi"] == 1)
    grouped = diff.groupby(epoched["epoch"])
    table = pd.DataFrame({"li": grouped.mean(), "n_poi": grouped.count()})
    table.index.name = "epoch"

    dropped = excluded_trials(inclusion_mask)
    table["included"] = ~table.index.isin(dropped)
    return table
