"""End-to-end tests: preprocess, reshape, model and batch scoring."""
import numpy as np
import pandas as pd
import pytest

from ftcd_laterality.data_extraction.reshape import reshape_to_long
from ftcd_laterality.pipeline.config import PipelineConfig
from ftcd_laterality.pipeline.epochs import epoch_laterality
from ftcd_laterality.pipeline.errors import (MalformedInputError,
                                             NoMarkersFoundError)
from ftcd_laterality.pipeline.preprocess import (FileJob, preprocess,
                                                 process_file, run_batch)
from ftcd_laterality.statistical_analysis.laterality import (
    LEFT, RIGHT, classify, summarize_laterality)


# ============================================================================
# Short recording: 1000 samples, 3 trials
# ============================================================================

@pytest.mark.parametrize('side, sign, label', [('left', 1, LEFT), ('right', -1, RIGHT)])
def test_injected_offset_sets_sign_and_label(make_recording, short_timing, side, sign, label):
    raw = make_recording(offset_side=side)
    epoched, _ = preprocess(raw, short_timing, sampling_rate=100)

    summary = summarize_laterality(epoch_laterality(epoched))
    assert summary['n_epochs'] == 3
    assert np.sign(summary['li_mean']) == sign
    assert classify(summary['li_mean'], summary['li_se']) == label


def test_preprocess_output(make_recording, short_timing):
    epoched, peaks = preprocess(make_recording(), short_timing, sampling_rate=100)

    assert sorted(epoched['epoch'].unique()) == [1, 2, 3]
    # 250 decimated samples padded so the first marker sits at 301
    assert epoched.groupby('epoch')['sample'].min().tolist() == [281, 356, 431]
    assert np.all(np.diff(peaks) >= 12)
    for column in ['left_norm', 'right_norm', 'left_int', 'right_int', 'left_bc', 'right_bc']:
        assert column in epoched.columns


def test_baseline_is_centred_after_preprocess(make_recording, short_timing):
    epoched, _ = preprocess(make_recording(), short_timing, sampling_rate=100)
    base = epoched[(epoched['rel_time'] >= -0.8) & (epoched['rel_time'] < 0.0)]
    means = base.groupby('epoch')[['left_bc', 'right_bc']].mean()
    np.testing.assert_allclose(means.to_numpy(), 100.0)


def test_long_form_round_trip(make_recording, short_timing):
    epoched, peaks = preprocess(make_recording(), short_timing, sampling_rate=100)
    long_df = reshape_to_long(epoched, peaks)

    short = epoched[epoched['sample'].isin(peaks)]
    assert len(long_df) == 2 * len(short)
    left = long_df[long_df['side'] == 'left'].reset_index(drop=True)
    right = long_df[long_df['side'] == 'right'].reset_index(drop=True)
    shared = ['time', 'epoch', 'poi']
    pd.testing.assert_frame_equal(left[shared], right[shared])


def test_excluded_trial_drops_out(make_recording, short_timing):
    mask = {1: 0}
    epoched, _ = preprocess(make_recording(), short_timing, mask, sampling_rate=100)

    assert epoched.loc[epoched['epoch'] == 1, 'left_bc'].isna().all()
    summary = summarize_laterality(epoch_laterality(epoched, mask))
    assert summary['n_epochs'] == 2


def test_short_recording_keeps_direct_estimate(make_recording, short_timing):
    record = process_file('short', make_recording(), short_timing, sampling_rate=100)

    assert record.status == 'model_failed'
    assert record.error.startswith('InsufficientHeartbeatsError')
    assert record.n_markers == 3
    assert record.li_mean > 0
    assert record.li_label == LEFT
    assert np.isnan(record.lateralization)
    assert np.isnan(record.model_label)


def test_run_batch_reports_direct_estimate_without_model(make_recording, short_timing):
    results = run_batch([FileJob('short', make_recording(), short_timing)])

    assert results.loc[0, 'status'] == 'model_failed'
    assert results.loc[0, 'li_label'] == LEFT
    assert np.isnan(results.loc[0, 'model_label'])


def test_flat_marker_fails(make_recording, short_timing):
    with pytest.raises(NoMarkersFoundError):
        preprocess(make_recording(pulse_starts=()), short_timing, sampling_rate=100)


def test_crowded_markers_fail(make_recording, short_timing):
    raw = make_recording(pulse_starts=(148, 248, 748))
    with pytest.raises(MalformedInputError, match='inter-trial gap'):
        preprocess(raw, short_timing, sampling_rate=100)


def test_unknown_peak_channel(make_recording, short_timing):
    with pytest.raises(ValueError):
        preprocess(make_recording(), short_timing, config=PipelineConfig(peak_channel='mid'))


# ============================================================================
# Long recording: 8 trials, full scoring
# ============================================================================

def test_process_file_scores_left_lateralization(long_recording, long_timing):
    record = process_file('S01', long_recording, long_timing, sampling_rate=100, task='WordGen')

    assert record.status == 'ok'
    assert record.n_markers == 8
    assert record.n_epochs == 8
    assert record.li_mean > 0
    assert record.li_label == LEFT
    assert record.lateralization > 0
    assert record.model_lower > 0
    assert record.model_label == LEFT
    assert record.n_heartbeats > 100


def test_run_batch_records_failures(make_recording, long_recording, long_timing):
    jobs = [
        FileJob('S01', long_recording, long_timing, task='WordGen'),
        FileJob('S02', make_recording(n=14200, pulse_starts=()), long_timing, task='WordGen'),
    ]
    results = run_batch(jobs)

    assert results['file_id'].tolist() == ['S01', 'S02']
    assert results['status'].tolist() == ['ok', 'failed']
    assert results.loc[1, 'error'].startswith('NoMarkersFoundError')
    assert np.isnan(results.loc[1, 'li_mean'])
    assert results.loc[0, 'model_label'] == LEFT


def test_run_batch_survives_fully_excluded_file(long_recording, long_timing):
    jobs = [
        FileJob('S01', long_recording, long_timing,
                inclusion_mask={trial: 0 for trial in range(1, 9)}),
        FileJob('S02', long_recording, long_timing),
    ]
    results = run_batch(jobs)

    assert results['status'].tolist() == ['model_failed', 'ok']
    assert results.loc[0, 'error'].startswith('InsufficientHeartbeatsError')
    assert results.loc[0, 'n_markers'] == 8
    assert results.loc[0, 'n_epochs'] == 0
    assert np.isnan(results.loc[0, 'li_mean'])
    assert results.loc[1, 'model_label'] == LEFT
