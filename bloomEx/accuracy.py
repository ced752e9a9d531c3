"""
bloomEx-Accuracy: How well does each sampling resolution recover the blooms
seen in the hourly IFCB reference?

- match_blooms:      pair reference blooms with overlapping candidate blooms
- false_detections:  candidate blooms with no reference counterpart
- accuracy_summary:  detection rate, precision and timing errors per resolution
- sampling_coverage: fraction of valid grid cells per taxon & year
"""

import numpy as np
import pandas as pd
from scipy import stats

from .config import REFERENCE_RESOLUTION


OFFSET_COLUMNS = ['start_offset_days', 'peak_offset_days', 'end_offset_days']

MIN_WILCOXON_PAIRS = 6


def _days(delta):
    return delta / pd.Timedelta(days=1)


def _overlap(starts, ends, start, end):
    """Overlap (as Timedelta) of each [starts, ends] interval with [start, end]; negative if disjoint."""
    return ends.clip(upper=end) - starts.clip(lower=start)


def _was_sampled(ds, taxon, start, end):
    """True if the candidate series has at least one valid observation within [start, end]."""
    if ds is None:
        return None
    if taxon not in ds.taxon.values:
        return False
    window = ds.value.sel(taxon=taxon, time=slice(start, end))
    return bool(window.notnull().any())


# ============================
# Matching
# ============================

def match_blooms(reference, candidate, datasets=None, resolutions=None):
    """
    Pair each reference bloom with the overlapping candidate bloom of the same taxon.

    When several candidate blooms overlap a reference bloom, the one with the
    largest overlap is kept.

    Parameters
    ----------
    reference : pandas.DataFrame
        Bloom table of the reference resolution (hourly IFCB)
    candidate : pandas.DataFrame
        Bloom table(s) of the resolutions to evaluate
    datasets : dict, optional
        {resolution: detect_blooms output}. Used to tell missed blooms that were
        never sampled apart from those sampled but below threshold.
    resolutions : list of str, optional
        Resolutions to evaluate. Defaults to all in `candidate` and `datasets`.

    Returns
    -------
    pandas.DataFrame
        One row per (reference bloom, resolution) with timing offsets in days
        (candidate minus reference) and a miss_reason for undetected blooms
    """
    datasets = datasets or {}
    if resolutions is None:
        resolutions = sorted(set(candidate['resolution'].unique()) | set(datasets.keys()))
    resolutions = [res for res in resolutions if res != REFERENCE_RESOLUTION]

    rows = []
    for resolution in resolutions:
        cand_res = candidate[candidate['resolution'] == resolution]
        ds = datasets.get(resolution)

        # Only judge taxa the candidate resolution actually observes
        if ds is not None:
            taxa = set(map(str, ds.taxon.values))
        else:
            taxa = set(cand_res['taxon'].unique())

        for _, ref in reference[reference['taxon'].isin(taxa)].iterrows():
            row = {
                'taxon': ref['taxon'],
                'resolution': resolution,
                'year': ref['year'],
                'ref_bloom_id': ref['bloom_id'],
                'ref_start': ref['start'],
                'ref_end': ref['end'],
                'ref_peak_date': ref['peak_date'],
                'cand_bloom_id': pd.NA,
                'cand_start': pd.NaT,
                'cand_end': pd.NaT,
                'cand_peak_date': pd.NaT,
                'detected': False,
                'miss_reason': None,
            }

            same_taxon = cand_res[cand_res['taxon'] == ref['taxon']]
            overlap = _overlap(same_taxon['start'], same_taxon['end'], ref['start'], ref['end'])
            overlapping = same_taxon[overlap >= pd.Timedelta(0)]

            if len(overlapping) > 0:
                best = overlapping.loc[overlap[overlap >= pd.Timedelta(0)].idxmax()]
                row.update({
                    'cand_bloom_id': best['bloom_id'],
                    'cand_start': best['start'],
                    'cand_end': best['end'],
                    'cand_peak_date': best['peak_date'],
                    'detected': True,
                })
            else:
                sampled = _was_sampled(ds, ref['taxon'], ref['start'], ref['end'])
                if sampled is not None:
                    row['miss_reason'] = 'below_threshold' if sampled else 'not_sampled'

            rows.append(row)

    matches = pd.DataFrame(rows, columns=[
        'taxon', 'resolution', 'year', 'ref_bloom_id', 'ref_start', 'ref_end', 'ref_peak_date',
        'cand_bloom_id', 'cand_start', 'cand_end', 'cand_peak_date', 'detected', 'miss_reason',
    ])
    for col in ['ref_start', 'ref_end', 'ref_peak_date', 'cand_start', 'cand_end', 'cand_peak_date']:
        matches[col] = pd.to_datetime(matches[col])
    matches['detected'] = matches['detected'].astype(bool)

    matches['start_offset_days'] = _days(matches['cand_start'] - matches['ref_start'])
    matches['peak_offset_days'] = _days(matches['cand_peak_date'] - matches['ref_peak_date'])
    matches['end_offset_days'] = _days(matches['cand_end'] - matches['ref_end'])
    matches['duration_diff_days'] = (_days(matches['cand_end'] - matches['cand_start'])
                                     - _days(matches['ref_end'] - matches['ref_start']))

    return matches


def false_detections(reference, candidate):
    """
    Candidate blooms that overlap no reference bloom of the same taxon.

    Taxa absent from the reference are not judged.
    """
    candidate = candidate[candidate['resolution'] != REFERENCE_RESOLUTION]
    candidate = candidate[candidate['taxon'].isin(reference['taxon'].unique())]

    is_false = []
    for _, cand in candidate.iterrows():
        ref_taxon = reference[reference['taxon'] == cand['taxon']]
        overlap = _overlap(ref_taxon['start'], ref_taxon['end'], cand['start'], cand['end'])
        is_false.append(not (overlap >= pd.Timedelta(0)).any())

    return candidate[np.array(is_false, dtype=bool)].reset_index(drop=True)


# ============================
# Statistics
# ============================

def _error_stats(offsets, prefix):
    offsets = np.asarray(offsets, dtype=float)
    offsets = offsets[np.isfinite(offsets)]
    if offsets.size == 0:
        return {f'{prefix}_bias': np.nan, f'{prefix}_mae': np.nan, f'{prefix}_rmse': np.nan}
    return {
        f'{prefix}_bias': float(np.mean(offsets)),
        f'{prefix}_mae': float(np.mean(np.abs(offsets))),
        f'{prefix}_rmse': float(np.sqrt(np.mean(offsets ** 2))),
    }


def _wilcoxon_p(offsets):
    """Two-sided Wilcoxon signed-rank p-value that the median offset is zero."""
    offsets = np.asarray(offsets, dtype=float)
    offsets = offsets[np.isfinite(offsets)]
    if offsets.size < MIN_WILCOXON_PAIRS:
        return np.nan
    if np.all(offsets == 0):
        return 1.0
    return float(stats.wilcoxon(offsets).pvalue)


def _judged_candidates(matches, candidates, resolution):
    """Candidate blooms of one resolution whose taxon has reference blooms, and the false ones among them."""
    group = matches[matches['resolution'] == resolution]
    judged = candidates[(candidates['resolution'] == resolution)
                        & candidates['taxon'].isin(group['taxon'].unique())]
    reference = (group.drop_duplicates(['taxon', 'ref_bloom_id'])
                 .rename(columns={'ref_start': 'start', 'ref_end': 'end'}))
    return judged, false_detections(reference, judged)


def accuracy_summary(matches, candidates):
    """
    Per-resolution detection & timing accuracy against the reference.

    Precision counts every candidate bloom that overlaps a reference bloom as
    correct, including those that lost the largest-overlap pairing.

    Parameters
    ----------
    matches : pandas.DataFrame
        Output of match_blooms
    candidates : pandas.DataFrame
        Bloom table(s) of the evaluated resolutions

    Returns
    -------
    pandas.DataFrame
        One row per resolution with counts, detection rate, precision and
        bias / MAE / RMSE of start, peak and end offsets (days)
    """
    rows = []
    for resolution, group in matches.groupby('resolution', sort=True):
        detected = group[group['detected']]
        n_reference = len(group)
        n_detected = len(detected)

        judged, false_dets = _judged_candidates(matches, candidates, resolution)
        n_candidates = len(judged)
        n_false = len(false_dets)

        row = {
            'resolution': resolution,
            'n_reference': n_reference,
            'n_detected': n_detected,
            'n_not_sampled': int((group['miss_reason'] == 'not_sampled').sum()),
            'n_below_threshold': int((group['miss_reason'] == 'below_threshold').sum()),
            'n_candidates': n_candidates,
            'n_false': n_false,
            'detection_rate': n_detected / n_reference if n_reference else np.nan,
            'precision': (n_candidates - n_false) / n_candidates if n_candidates else np.nan,
        }
        for col in OFFSET_COLUMNS:
            row.update(_error_stats(detected[col], col.replace('_offset_days', '')))
        row['start_wilcoxon_p'] = _wilcoxon_p(detected['start_offset_days'])

        rows.append(row)

    return pd.DataFrame(rows)


def sampling_coverage(ds):
    """
    Fraction of grid cells with a valid observation, per taxon and year.

    Parameters
    ----------
    ds : xarray.Dataset
        Output of detect_blooms

    Returns
    -------
    pandas.DataFrame
        Columns taxon, resolution, year, n_cells, n_valid, coverage
    """
    valid = ds.value.notnull().to_dataframe(name='valid').reset_index()
    valid['year'] = pd.DatetimeIndex(valid['time']).year

    coverage = (valid.groupby(['taxon', 'year'])['valid']
                .agg(n_cells='size', n_valid='sum')
                .reset_index())
    coverage['n_valid'] = coverage['n_valid'].astype(int)
    coverage['coverage'] = coverage['n_valid'] / coverage['n_cells']
    coverage.insert(1, 'resolution', ds.attrs.get('resolution', 'unknown'))

    return coverage
