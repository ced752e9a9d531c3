"""Tests for bloomEx.accuracy: matching against the hourly reference and summary statistics."""

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from bloomEx.accuracy import (
    match_blooms, false_detections, accuracy_summary, sampling_coverage, _wilcoxon_p,
)
from bloomEx.detect import BLOOM_COLUMNS


# ── Test Data ────────────────────────────────────────────────────────────────

def bloom(taxon, resolution, bloom_id, start, end, peak=None):
    start, end = pd.Timestamp(start), pd.Timestamp(end)
    return {
        'taxon': taxon, 'resolution': resolution, 'bloom_id': bloom_id, 'year': start.year,
        'start': start, 'end': end, 'duration_days': (end - start) / pd.Timedelta(days=1),
        'peak_date': pd.Timestamp(peak) if peak else start, 'peak_value': 1.0, 'mean_value': 1.0,
        'n_obs': 1, 'threshold': 1.0,
    }


REFERENCE = pd.DataFrame([
    bloom('A', 'hourly', 1, '2021-02-01', '2021-02-05', '2021-02-03'),
    bloom('A', 'hourly', 2, '2021-06-01', '2021-06-03', '2021-06-02'),
], columns=BLOOM_COLUMNS)

CANDIDATE = pd.DataFrame([
    bloom('A', 'daily', 1, '2021-02-02', '2021-02-06', '2021-02-04'),
    bloom('A', 'daily', 2, '2021-08-01', '2021-08-03'),
], columns=BLOOM_COLUMNS)


def daily_dataset(values, start='2021-01-01', taxon='A'):
    times = pd.date_range(start, periods=len(values), freq='D')
    value = xr.DataArray(np.asarray(values, dtype=float)[:, None], dims=['time', 'taxon'],
                         coords={'time': times, 'taxon': [taxon]})
    return xr.Dataset({'value': value}, attrs={'resolution': 'daily'})


# ── Matching ─────────────────────────────────────────────────────────────────

class TestMatchBlooms:
    def test_overlap_matched_with_offsets(self):
        matches = match_blooms(REFERENCE, CANDIDATE)
        first = matches[matches['ref_bloom_id'] == 1].iloc[0]
        assert first['detected']
        assert first['cand_bloom_id'] == 1
        assert first['start_offset_days'] == 1.0
        assert first['peak_offset_days'] == 1.0
        assert first['end_offset_days'] == 1.0
        assert first['duration_diff_days'] == 0.0

    def test_unmatched_reference_is_missed(self):
        matches = match_blooms(REFERENCE, CANDIDATE)
        second = matches[matches['ref_bloom_id'] == 2].iloc[0]
        assert not second['detected']
        assert np.isnan(second['start_offset_days'])
        assert second['miss_reason'] is None

    def test_largest_overlap_wins(self):
        candidate = pd.DataFrame([
            bloom('A', 'daily', 1, '2021-01-28', '2021-02-01'),
            bloom('A', 'daily', 2, '2021-02-02', '2021-02-08'),
        ], columns=BLOOM_COLUMNS)
        matches = match_blooms(REFERENCE.iloc[:1], candidate)
        assert matches.iloc[0]['cand_bloom_id'] == 2

    def test_touching_intervals_match(self):
        candidate = pd.DataFrame([bloom('A', 'daily', 1, '2021-02-05', '2021-02-07')], columns=BLOOM_COLUMNS)
        assert match_blooms(REFERENCE.iloc[:1], candidate).iloc[0]['detected']

    def test_other_taxon_not_matched(self):
        candidate = pd.DataFrame([bloom('B', 'daily', 1, '2021-02-01', '2021-02-05')], columns=BLOOM_COLUMNS)
        ds = daily_dataset(np.ones(200))
        matches = match_blooms(REFERENCE, candidate, datasets={'daily': ds})
        assert not matches['detected'].any()

    def test_miss_reasons(self):
        values = np.ones(200)
        values[150:160] = np.nan   # 2021-05-31 .. 2021-06-09 unsampled
        matches = match_blooms(REFERENCE, CANDIDATE, datasets={'daily': daily_dataset(values)})
        assert matches.set_index('ref_bloom_id').loc[2, 'miss_reason'] == 'not_sampled'

        matches = match_blooms(REFERENCE, CANDIDATE, datasets={'daily': daily_dataset(np.ones(200))})
        assert matches.set_index('ref_bloom_id').loc[2, 'miss_reason'] == 'below_threshold'

    def test_reference_resolution_excluded(self):
        matches = match_blooms(REFERENCE, pd.concat([REFERENCE, CANDIDATE]))
        assert set(matches['resolution']) == {'daily'}


class TestFalseDetections:
    def test_candidate_without_reference(self):
        false = false_detections(REFERENCE, CANDIDATE)
        assert len(false) == 1
        assert false.iloc[0]['start'] == pd.Timestamp('2021-08-01')

    def test_taxa_missing_from_reference_ignored(self):
        candidate = pd.DataFrame([bloom('Z', 'daily', 1, '2021-08-01', '2021-08-03')], columns=BLOOM_COLUMNS)
        assert len(false_detections(REFERENCE, candidate)) == 0


# ── Statistics ───────────────────────────────────────────────────────────────

class TestSummary:
    def test_rates(self):
        matches = match_blooms(REFERENCE, CANDIDATE)
        summary = accuracy_summary(matches, CANDIDATE).iloc[0]
        assert summary['resolution'] == 'daily'
        assert summary['n_reference'] == 2
        assert summary['n_detected'] == 1
        assert summary['n_candidates'] == 2
        assert summary['n_false'] == 1
        assert summary['detection_rate'] == 0.5
        assert summary['precision'] == 0.5
        assert summary['start_bias'] == 1.0
        assert summary['start_mae'] == 1.0
        assert summary['start_rmse'] == 1.0
        assert np.isnan(summary['start_wilcoxon_p'])

    def test_unpaired_overlapping_candidate_counts_as_correct(self):
        reference = pd.DataFrame([bloom('A', 'hourly', 1, '2021-02-01', '2021-02-10')], columns=BLOOM_COLUMNS)
        candidate = pd.DataFrame([
            bloom('A', 'daily', 1, '2021-02-01', '2021-02-03'),
            bloom('A', 'daily', 2, '2021-02-05', '2021-02-09'),
            bloom('A', 'daily', 3, '2021-08-01', '2021-08-03'),
        ], columns=BLOOM_COLUMNS)
        matches = match_blooms(reference, candidate)
        assert matches.iloc[0]['cand_bloom_id'] == 2

        summary = accuracy_summary(matches, candidate).iloc[0]
        assert summary['n_candidates'] == 3
        assert summary['n_false'] == 1
        assert summary['precision'] == pytest.approx(2 / 3)

    def test_candidates_of_unjudged_taxa_ignored(self):
        candidate = pd.concat([CANDIDATE, pd.DataFrame([bloom('Z', 'daily', 1, '2021-08-01', '2021-08-03')],
                                                       columns=BLOOM_COLUMNS)], ignore_index=True)
        summary = accuracy_summary(match_blooms(REFERENCE, CANDIDATE), candidate).iloc[0]
        assert summary['n_candidates'] == 2
        assert summary['precision'] == 0.5

    def test_wilcoxon(self):
        assert np.isnan(_wilcoxon_p([1, 2, 3, 4, 5]))
        assert _wilcoxon_p([0] * 8) == 1.0
        p = _wilcoxon_p([1, 2, 3, 4, 5, 6, 7])
        assert 0 < p < 0.05


class TestCoverage:
    def test_fraction_valid(self):
        ds = daily_dataset([1.0, np.nan, 2.0, 3.0])
        coverage = sampling_coverage(ds).iloc[0]
        assert coverage['resolution'] == 'daily'
        assert coverage['year'] == 2021
        assert coverage['n_cells'] == 4
        assert coverage['n_valid'] == 3
        assert coverage['coverage'] == pytest.approx(0.75)
