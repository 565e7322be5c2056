"""Shared fixtures: synthetic fTCD recordings."""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add src/ to path so we can import the package without installing it
src_dir = str(Path(__file__).resolve().parent.parent / 'src')
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from ftcd_laterality.pipeline.config import TimingSpec  # noqa: E402


def synthetic_recording(
    n=1000,
    rate=100,
    pulse_starts=(148, 448, 748),
    pulse_width=5,
    pulse_height=5.0,
    heart_hz=1.0,
    base=50.0,
    amplitude=10.0,
    offset=10.0,
    offset_side='left',
    stim_window=(0.2, 2.0),
):
    """
    Two-channel flow recording with cosine heartbeats and marker pulses.

    ``offset`` is added to ``offset_side`` from ``stim_window[0]`` up to
    (excluding) ``stim_window[1]`` seconds after each pulse start.
    """
    t = np.arange(n) / rate
    beat = amplitude * np.cos(2 * np.pi * heart_hz * t)
    left = base + beat
    right = base + beat
    marker = np.zeros(n)

    stim = np.zeros(n)
    for start in pulse_starts:
        marker[start:start + pulse_width] = pulse_height
        lo = start + int(round(stim_window[0] * rate))
        hi = start + int(round(stim_window[1] * rate))
        stim[lo:hi] = offset

    if offset_side == 'left':
        left = left + stim
    else:
        right = right + stim

    return pd.DataFrame({'time': t, 'left': left, 'right': right, 'marker': marker})


@pytest.fixture
def make_recording():
    """Factory for synthetic recordings."""
    return synthetic_recording


@pytest.fixture
def short_timing():
    """Windows for the 10 s, three-trial recording."""
    return TimingSpec(
        epoch_start=-0.8, epoch_end=2.0,
        stim1_start=0.2, stim1_end=2.0,
        base_start=-0.8, base_end=0.0,
        poi_start=0.4, poi_end=1.8,
    )


@pytest.fixture
def long_timing():
    """Windows for the eight-trial recording."""
    return TimingSpec(
        epoch_start=-4.0, epoch_end=12.0,
        stim1_start=2.0, stim1_end=10.0,
        base_start=-4.0, base_end=0.0,
        poi_start=4.0, poi_end=10.0,
        n_trials=8,
    )


@pytest.fixture
def long_recording():
    """142 s recording, eight trials every 16 s, left offset during stimulus."""
    return synthetic_recording(
        n=14200,
        pulse_starts=tuple(1400 + 1600 * i for i in range(8)),
        stim_window=(2.0, 10.0),
    )
