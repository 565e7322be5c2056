"""Tests for trial-onset detection, lead-in padding and spacing checks."""
import numpy as np
import pandas as pd
import pytest

from ftcd_laterality.pipeline.errors import (MalformedInputError,
                                             NoMarkersFoundError)
from ftcd_laterality.signal_processing.events import (check_marker_spacing,
                                                      detect_markers,
                                                      match_trial_count,
                                                      pad_leading)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def frame():
    """Resampled-looking frame of 250 samples at 25 Hz."""
    n = 250
    return pd.DataFrame({
        'sample': np.arange(n),
        'time': np.arange(n) / 25,
        'left': np.arange(n, dtype=float),
        'right': np.arange(n, dtype=float) * 2,
        'marker': np.zeros(n),
    })


def step_marker(n, starts, width=2, height=1.0):
    marker = np.zeros(n)
    for s in starts:
        marker[s:s + width] = height
    return pd.Series(marker)


# ============================================================================
# detect_markers
# ============================================================================

def test_detects_step_changes_every_m_samples():
    starts = list(range(350, 1000, 100))
    onsets = detect_markers(step_marker(1000, starts))
    np.testing.assert_array_equal(onsets, starts)


def test_multi_sample_rise_yields_one_onset():
    marker = np.zeros(1000)
    for s in (400, 600, 800):
        marker[s] = 0.5
        marker[s + 1:s + 3] = 1.0
    onsets = detect_markers(pd.Series(marker))
    np.testing.assert_array_equal(onsets, [400, 600, 800])


def test_nan_samples_are_ignored_in_threshold():
    marker = step_marker(1000, [400, 700])
    marker[10:20] = np.nan
    np.testing.assert_array_equal(detect_markers(marker), [400, 700])


def test_flat_marker_raises():
    with pytest.raises(NoMarkersFoundError):
        detect_markers(pd.Series(np.zeros(500)))


# ============================================================================
# pad_leading
# ============================================================================

def test_padding_moves_first_onset_past_lead(frame):
    padded, onsets = pad_leading(frame, np.array([37, 112]), min_lead=300, output_rate=25)

    assert onsets[0] == 301
    np.testing.assert_array_equal(onsets, [301, 376])
    assert len(padded) == len(frame) + 264
    np.testing.assert_array_equal(padded['sample'], np.arange(len(padded)))
    np.testing.assert_allclose(np.diff(padded['time']), 0.04)


def test_padding_repeats_short_leading_segment(frame):
    padded, _ = pad_leading(frame, np.array([37]), min_lead=300, output_rate=25)
    # 264 samples of lead-in from a 250-sample recording
    np.testing.assert_array_equal(padded['left'].iloc[:250], frame['left'])
    np.testing.assert_array_equal(padded['left'].iloc[250:264], frame['left'].iloc[:14])
    np.testing.assert_array_equal(padded['left'].iloc[264:], frame['left'])


def test_onsets_keep_their_data_after_padding(frame):
    padded, onsets = pad_leading(frame, np.array([100]), min_lead=300, output_rate=25)
    assert padded['right'].iloc[onsets[0]] == frame['right'].iloc[100]


def test_no_padding_when_lead_is_sufficient(frame):
    padded, onsets = pad_leading(frame, np.array([300]), min_lead=300, output_rate=25)
    assert padded is frame
    np.testing.assert_array_equal(onsets, [300])


def test_detect_then_pad():
    marker = step_marker(600, [100, 300, 500])
    frame = pd.DataFrame({
        'sample': np.arange(600),
        'time': np.arange(600) / 25,
        'marker': marker,
    })
    _, onsets = pad_leading(frame, detect_markers(frame['marker']), 300, 25)
    np.testing.assert_array_equal(onsets, [301, 501, 701])


# ============================================================================
# Spacing and trial count
# ============================================================================

def test_spacing_below_minimum_raises():
    with pytest.raises(MalformedInputError, match='inter-trial gap'):
        check_marker_spacing(np.array([10, 20, 100]), min_gap=50)


def test_non_increasing_onsets_raise():
    with pytest.raises(MalformedInputError, match='increasing'):
        check_marker_spacing(np.array([200, 100]), min_gap=10)


def test_valid_spacing_passes():
    check_marker_spacing(np.array([100, 150, 400]), min_gap=50)
    check_marker_spacing(np.array([100]), min_gap=50)


def test_surplus_markers_are_trimmed():
    np.testing.assert_array_equal(match_trial_count(np.array([1, 2, 3, 4]), 2), [1, 2])


def test_trial_count_is_optional():
    onsets = np.array([1, 2, 3])
    assert match_trial_count(onsets, None) is onsets
    np.testing.assert_array_equal(match_trial_count(onsets, 5), onsets)
