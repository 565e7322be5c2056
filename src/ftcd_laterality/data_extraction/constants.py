"""
Default constants for the fTCD lateralization pipeline.
"""
SAMPLING_RATE = 100
OUTPUT_RATE = 25

RAW_COLUMNS = ["time", "left", "right", "marker"]
CHANNELS = ["left", "right"]

MARKER_SMOOTHING_WINDOW = 5
MARKER_THRESHOLD_SD = 4.0
MIN_LEAD_SAMPLES = 300
MIN_TRIAL_GAP_S = 2.0

OUTLIER_QUANTILES = (0.0001, 0.9999)

HEART_RATE_MAX = 125
PEAK_HALF_WINDOW = 5
PEAK_CHANNEL = "left"
VALID_RANGE = (60.0, 140.0)

BASELINE_CENTER = 100.0

TIME_SPLINE_DF = 10
REL_TIME_SPLINE_DF = 5

CI_Z = 1.96

SIDE_CODES = {"left": -1, "right": 1}
