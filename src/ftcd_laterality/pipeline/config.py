from dataclasses import dataclass, field
from typing import Optional, Tuple

from ftcd_laterality.data_extraction.constants import (
    BASELINE_CENTER, CI_Z, HEART_RATE_MAX, MARKER_SMOOTHING_WINDOW,
    MARKER_THRESHOLD_SD, MIN_LEAD_SAMPLES, MIN_TRIAL_GAP_S, OUTLIER_QUANTILES,
    OUTPUT_RATE, PEAK_CHANNEL, PEAK_HALF_WINDOW, REL_TIME_SPLINE_DF,
    TIME_SPLINE_DF, VALID_RANGE)
from ftcd_laterality.pipeline.errors import MalformedInputError


@dataclass(frozen=True)
class PipelineConfig:
    """
    Tunable constants shared by every pipeline stage.

    Attributes
    ----------
    output_rate : float
        Rate (Hz) after decimation; the decimation factor is
        ``round(sampling_rate / output_rate)``.
    marker_smoothing_window : int
        Width of the centred moving average applied to the marker channel
        before decimation.
    marker_threshold_sd : float
        Onset threshold, in standard deviations above the marker mean.
    min_lead_samples : int
        Minimum number of samples required before the first onset.
    min_trial_gap_s : float
        Smallest allowed spacing between consecutive onsets, in seconds.
    outlier_quantiles : tuple of float
        Lower/upper quantiles outside which raw samples are masked.
    heart_rate_max : float
        Heart-rate ceiling (bpm) that sets the minimum inter-peak distance.
    peak_half_window : int
        Samples on each side a peak must strictly exceed.
    peak_channel : str
        Channel searched for heartbeat peaks (``"left"`` or ``"right"``).
    valid_range : tuple of float
        Integrated values outside this range are treated as dropouts.
    baseline_center : float
        Level the baseline window is moved to.
    time_spline_df, rel_time_spline_df : int
        Degrees of freedom of the B-spline smooths in the regression.
    ci_z : float
        Multiplier of the standard error for the confidence interval.
    """

    output_rate: float = OUTPUT_RATE
    marker_smoothing_window: int = MARKER_SMOOTHING_WINDOW
    marker_threshold_sd: float = MARKER_THRESHOLD_SD
    min_lead_samples: int = MIN_LEAD_SAMPLES
    min_trial_gap_s: float = MIN_TRIAL_GAP_S
    outlier_quantiles: Tuple[float, float] = OUTLIER_QUANTILES
    heart_rate_max: float = HEART_RATE_MAX
    peak_half_window: int = PEAK_HALF_WINDOW
    peak_channel: str = PEAK_CHANNEL
    valid_range: Tuple[float, float] = VALID_RANGE
    baseline_center: float = BASELINE_CENTER
    time_spline_df: int = TIME_SPLINE_DF
    rel_time_spline_df: int = REL_TIME_SPLINE_DF
    ci_z: float = CI_Z

    def min_peak_distance(self) -> float:
        """Shortest admissible heartbeat period, in output samples."""
        return 60.0 / self.heart_rate_max * self.output_rate

    def min_trial_gap_samples(self) -> float:
        return self.min_trial_gap_s * self.output_rate


@dataclass(frozen=True)
class TimingSpec:
    """Per-task window offsets, in seconds relative to the trial marker."""

    epoch_start: float
    epoch_end: float
    stim1_start: float
    stim1_end: float
    base_start: float
    base_end: float
    poi_start: float
    poi_end: float
    n_trials: Optional[int] = field(default=None)

    def validate(self) -> "TimingSpec":
        """Check the window ordering and return self."""
        ordered = [
            ("epoch_start", self.epoch_start),
            ("base_start", self.base_start),
            ("base_end", self.base_end),
            ("stim1_start", self.stim1_start),
            ("stim1_end", self.stim1_end),
            ("epoch_end", self.epoch_end),
        ]
        for (name_a, a), (name_b, b) in zip(ordered, ordered[1:]):
            if a > b:
                raise MalformedInputError(f"Timing {name_a}={a} exceeds {name_b}={b}")
        if self.base_start >= self.base_end:
            raise MalformedInputError("Baseline window is empty")
        if not (self.epoch_start <= self.poi_start < self.poi_end <= self.epoch_end):
            raise MalformedInputError(
                f"POI window [{self.poi_start}, {self.poi_end}) lies outside the "
                f"epoch [{self.epoch_start}, {self.epoch_end}]"
            )
        return self
