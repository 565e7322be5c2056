import logging
from dataclasses import fields
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import pandas as pd

from ftcd_laterality.data_extraction.constants import RAW_COLUMNS
from ftcd_laterality.pipeline.config import TimingSpec
from ftcd_laterality.pipeline.errors import MalformedInputError

logger = logging.getLogger(__name__)

# Controlling Wildcard Imports
__all__ = [
    "read_raw_samples",
    "read_timings",
    "timing_for_task",
    "read_inclusion_mask",
]

TIMING_FIELDS = [f.name for f in fields(TimingSpec)]


def _flatten(name: str) -> str:
    return str(name).strip().lower().replace("_", "").replace(" ", "")


def read_raw_samples(
    path: Union[str, Path],
    column_map: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Read one recording exported as delimited text.

    The delimiter is sniffed, so tab- and comma-separated exports both work.

    Args:
        path: File to read.
        column_map: Source column name -> one of ``time, left, right, marker``.
            Without it, the first four columns are taken in that order.

    Returns:
        DataFrame with the raw columns as floats.
    """
    df = pd.read_csv(path, sep=None, engine="python")
    if column_map:
        df = df.rename(columns=dict(column_map))
    else:
        if df.shape[1] < len(RAW_COLUMNS):
            raise MalformedInputError(
                f"{path}: expected at least {len(RAW_COLUMNS)} columns, got {df.shape[1]}"
            )
        df = df.iloc[:, : len(RAW_COLUMNS)]
        df.columns = RAW_COLUMNS

    missing = [c for c in RAW_COLUMNS if c not in df.columns]
    if missing:
        raise MalformedInputError(f"{path}: missing columns {missing}")
    logger.debug("Read %d samples from %s", len(df), path)
    return df[RAW_COLUMNS].apply(pd.to_numeric, errors="coerce")


def read_timings(source: Union[str, Path, pd.DataFrame]) -> pd.DataFrame:
    """
    Load the per-task timing table, indexed by task name.

    Column names are matched loosely (``epochStart``, ``epoch_start`` and
    ``EpochStart`` are equivalent).
    """
    table = source.copy() if isinstance(source, pd.DataFrame) else pd.read_csv(source)
    lookup = {_flatten(name): name for name in TIMING_FIELDS + ["task"]}
    table = table.rename(columns=lambda c: lookup.get(_flatten(c), c))
    if "task" not in table.columns:
        raise MalformedInputError("Timing table has no task column")
    return table.set_index("task")


def timing_for_task(table: pd.DataFrame, task: str) -> TimingSpec:
    """Build and validate the TimingSpec of ``task``."""
    if task not in table.index:
        raise MalformedInputError(f"No timings for task '{task}'")
    row = table.loc[task]
    missing = [f for f in TIMING_FIELDS if f != "n_trials" and f not in row.index]
    if missing:
        raise MalformedInputError(f"Timings for '{task}' lack {missing}")

    values = {f: float(row[f]) for f in TIMING_FIELDS if f != "n_trials"}
    n_trials = row.get("n_trials")
    values["n_trials"] = None if n_trials is None or pd.isna(n_trials) else int(n_trials)
    return TimingSpec(**values).validate()


def read_inclusion_mask(
    source: Union[str, Path, pd.DataFrame],
    trial_col: str = "trial",
    include_col: str = "include",
) -> Dict[int, int]:
    """Trial -> 0/1 inclusion flag; trials absent from the table are included."""
    table = source if isinstance(source, pd.DataFrame) else pd.read_csv(source)
    if trial_col not in table.columns or include_col not in table.columns:
        raise MalformedInputError(
            f"Inclusion mask needs '{trial_col}' and '{include_col}' columns"
        )
    table = table.dropna(subset=[trial_col, include_col])
    return {
        int(trial): int(bool(flag))
        for trial, flag in zip(table[trial_col], table[include_col])
    }
