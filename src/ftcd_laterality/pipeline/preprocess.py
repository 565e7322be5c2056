import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ftcd_laterality.data_extraction.constants import CHANNELS, SAMPLING_RATE
from ftcd_laterality.data_extraction.reshape import reshape_to_long
from ftcd_laterality.pipeline.config import PipelineConfig, TimingSpec
from ftcd_laterality.pipeline.epochs import (baseline_correct, build_epochs,
                                             epoch_laterality, exclude_trials)
from ftcd_laterality.pipeline.errors import (InsufficientHeartbeatsError,
                                             LateralityError, ModelFitError)
from ftcd_laterality.signal_processing.artifacts import (mask_dropouts,
                                                         normalize_channels)
from ftcd_laterality.signal_processing.events import (check_marker_spacing,
                                                      detect_markers,
                                                      match_trial_count,
                                                      pad_leading)
from ftcd_laterality.signal_processing.filters import resample
from ftcd_laterality.signal_processing.heartbeat import (find_heartbeat_peaks,
                                                         integrate_heartbeats)
from ftcd_laterality.statistical_analysis.laterality import (
    classify, confidence_interval, summarize_laterality)
from ftcd_laterality.statistical_analysis.laterality_model import \
    fit_laterality_model

logger = logging.getLogger(__name__)

INTEGRATED = [f"{c}_int" for c in CHANNELS]


def preprocess(
    raw: pd.DataFrame,
    timing: TimingSpec,
    inclusion_mask: Optional[Dict[int, int]] = None,
    sampling_rate: float = SAMPLING_RATE,
    config: Optional[PipelineConfig] = None,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Run the signal-conditioning stages on one recording.

    Steps: decimation, marker detection (with lead-in padding), channel
    normalization, heartbeat integration with dropout masking, epoching,
    trial exclusion and baseline correction.

    Parameters
    ----------
    raw : pd.DataFrame
        Raw samples with ``time, left, right, marker``.
    timing : TimingSpec
        Window offsets of the task.
    inclusion_mask : dict, optional
        Trial number -> 0/1; unlisted trials are included.
    sampling_rate : float
        Acquisition rate of ``raw`` in Hz.
    config : PipelineConfig, optional
        Stage parameters; defaults are used when omitted.

    Returns
    -------
    epoched : pd.DataFrame
        In-epoch samples with normalized, integrated (``*_int``) and
        baseline-corrected (``*_bc``) channels.
    peaks : np.ndarray
        Heartbeat peak sample positions.
    """
    epoched, peaks, _ = _condition(raw, timing, inclusion_mask, sampling_rate, config)
    return epoched, peaks


def _condition(
    raw: pd.DataFrame,
    timing: TimingSpec,
    inclusion_mask: Optional[Dict[int, int]],
    sampling_rate: float,
    config: Optional[PipelineConfig],
) -> Tuple[pd.DataFrame, np.ndarray, np.ndarray]:
    config = config or PipelineConfig()
    if config.peak_channel not in CHANNELS:
        raise ValueError(f"Unknown peak channel '{config.peak_channel}'")
    timing.validate()
    rate = config.output_rate

    # 1) decimate, find trial onsets
    df = resample(raw, sampling_rate, rate, config.marker_smoothing_window)
    onsets = detect_markers(df["marker"], config.marker_threshold_sd)
    onsets = match_trial_count(onsets, timing.n_trials)
    df, onsets = pad_leading(df, onsets, config.min_lead_samples, rate)
    check_marker_spacing(onsets, config.min_trial_gap_samples())
    logger.info("Detected %d trial markers", onsets.size)

    # 2) normalize and integrate over heartbeats
    df = normalize_channels(df, config.outlier_quantiles)
    peaks = find_heartbeat_peaks(
        df[f"{config.peak_channel}_norm"],
        half_window=config.peak_half_window,
        min_distance=config.min_peak_distance(),
    )
    logger.info("Kept %d heartbeat peaks", peaks.size)
    df = integrate_heartbeats(df, peaks, [f"{c}_norm" for c in CHANNELS])
    df = df.rename(columns={f"{c}_norm_int": f"{c}_int" for c in CHANNELS})
    df = mask_dropouts(df, INTEGRATED, config.valid_range)

    # 3) epochs and baseline
    epoched = build_epochs(df, onsets, timing, rate)
    epoched = exclude_trials(epoched, inclusion_mask, INTEGRATED)
    epoched = baseline_correct(epoched, timing, center=config.baseline_center)
    return epoched, peaks, onsets


@dataclass
class SummaryRecord:
    """One row of the batch result table."""

    file_id: str
    task: Optional[str] = None
    status: str = "ok"
    error: Optional[str] = None
    n_markers: int = 0
    n_epochs: int = 0
    n_heartbeats: int = 0
    li_mean: float = np.nan
    li_se: float = np.nan
    li_lower: float = np.nan
    li_upper: float = np.nan
    li_label: float = np.nan
    li_odd: float = np.nan
    li_even: float = np.nan
    intercept: float = np.nan
    poi: float = np.nan
    side: float = np.nan
    lateralization: float = np.nan
    lateralization_se: float = np.nan
    p_value: float = np.nan
    r_squared: float = np.nan
    aic: float = np.nan
    bic: float = np.nan
    model_lower: float = np.nan
    model_upper: float = np.nan
    model_label: float = np.nan


def process_file(
    file_id: str,
    raw: pd.DataFrame,
    timing: TimingSpec,
    inclusion_mask: Optional[Dict[int, int]] = None,
    sampling_rate: float = SAMPLING_RATE,
    config: Optional[PipelineConfig] = None,
    task: Optional[str] = None,
) -> SummaryRecord:
    """
    Score one recording: direct epoch-averaged LI plus the model-based LI.

    Errors from the preprocessing stages propagate; ``run_batch`` turns them
    into an unscored record. When only the regression fails, the direct
    estimate is kept, the model fields stay nan and ``status`` is
    ``"model_failed"``.
    """
    config = config or PipelineConfig()
    epoched, peaks, onsets = _condition(raw, timing, inclusion_mask, sampling_rate, config)

    epochs = epoch_laterality(epoched, inclusion_mask)
    direct = summarize_laterality(epochs)
    li_lower, li_upper = confidence_interval(direct["li_mean"], direct["li_se"], config.ci_z)
    long_df = reshape_to_long(epoched, peaks)

    record = SummaryRecord(
        file_id=file_id,
        task=task,
        n_markers=int(onsets.size),
        n_epochs=direct["n_epochs"],
        n_heartbeats=len(long_df) // len(CHANNELS),
        li_mean=direct["li_mean"],
        li_se=direct["li_se"],
        li_lower=li_lower,
        li_upper=li_upper,
        li_label=classify(direct["li_mean"], direct["li_se"], config.ci_z),
        li_odd=direct["li_odd"],
        li_even=direct["li_even"],
    )

    try:
        model = fit_laterality_model(long_df, config)
    except (InsufficientHeartbeatsError, ModelFitError) as e:
        logger.warning("File %s has no model estimate: %s: %s", file_id, type(e).__name__, e)
        record.status = "model_failed"
        record.error = f"{type(e).__name__}: {e}"
        return record

    record.model_lower, record.model_upper = confidence_interval(
        model.lateralization, model.lateralization_se, config.ci_z
    )
    record.model_label = classify(model.lateralization, model.lateralization_se, config.ci_z)
    record.intercept = model.intercept
    record.poi = model.poi
    record.side = model.side
    record.lateralization = model.lateralization
    record.lateralization_se = model.lateralization_se
    record.p_value = model.p_value
    record.r_squared = model.r_squared
    record.aic = model.aic
    record.bic = model.bic
    return record


@dataclass
class FileJob:
    """Everything needed to score one recording."""

    file_id: str
    raw: pd.DataFrame
    timing: TimingSpec
    inclusion_mask: Dict[int, int] = field(default_factory=dict)
    sampling_rate: float = SAMPLING_RATE
    task: Optional[str] = None


def score_job(job: FileJob, config: Optional[PipelineConfig] = None) -> SummaryRecord:
    """Run ``process_file`` for one job, recording file-scoped failures."""
    try:
        return process_file(
            job.file_id,
            job.raw,
            job.timing,
            job.inclusion_mask,
            job.sampling_rate,
            config,
            job.task,
        )
    except LateralityError as e:
        logger.warning("File %s unscored: %s: %s", job.file_id, type(e).__name__, e)
        return SummaryRecord(
            file_id=job.file_id,
            task=job.task,
            status="failed",
            error=f"{type(e).__name__}: {e}",
        )


def run_batch(
    jobs: Iterable[FileJob],
    config: Optional[PipelineConfig] = None,
    n_jobs: int = 1,
) -> pd.DataFrame:
    """
    Score every job and fold the records into one result table.

    Files are independent, so with ``n_jobs > 1`` they are scored in a
    process pool; records are still appended by this single caller, in job
    order.
    """
    config = config or PipelineConfig()
    jobs = list(jobs)
    records: List[SummaryRecord] = []

    if n_jobs > 1:
        with ProcessPoolExecutor(max_workers=n_jobs) as pool:
            for record in pool.map(score_job, jobs, [config] * len(jobs)):
                records.append(record)
    else:
        for job in jobs:
            records.append(score_job(job, config))

    failed = sum(r.status == "failed" for r in records)
    partial = sum(r.status == "model_failed" for r in records)
    logger.info(
        "Scored %d of %d files, %d without a model estimate",
        len(records) - failed, len(records), partial,
    )
    return pd.DataFrame([asdict(r) for r in records])
