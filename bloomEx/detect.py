"""
bloomEx-Detect: Bloom & peak identification on gridded plankton time series.

Workflow for one sampling resolution:
1. Place the data on the resolution's time grid and smooth (if configured)
2. Flag values above a per-taxon threshold (median x factor)
3. Bridge short data outages enclosed by above-threshold values
4. Label contiguous flagged runs as blooms (peak IDs)
5. Drop blooms shorter than the resolution's bloom-length cutoff

Compatible data format: 2D arrays (time, taxon)
"""

import warnings

import numpy as np
import pandas as pd
import xarray as xr
import scipy.ndimage

from .config import get_resolution
from .resample import to_grid, smooth


BLOOM_COLUMNS = ['taxon', 'resolution', 'bloom_id', 'year', 'start', 'end', 'duration_days',
                 'peak_date', 'peak_value', 'mean_value', 'n_obs', 'threshold']


def _validate(da, dimensions):
    """Ensure a 2D (time, taxon) DataArray, transposing if needed."""
    expected = (dimensions['time'], dimensions['taxon'])
    if da.dims != expected:
        try:
            da = da.transpose(*expected)
        except ValueError:
            raise ValueError(
                f'bloomEx only supports 2D DataArrays with dimensions '
                f'({expected[0]}, {expected[1]}). Found {list(da.dims)}'
            )
    return da


# ============================
# Thresholds
# ============================

def compute_threshold(da, factor=1.05, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Per-taxon bloom threshold: median of all valid values times a factor.

    Parameters
    ----------
    da : xarray.DataArray
        Data with dimensions (time, taxon)
    factor : float, optional
        Multiplier applied to the median (1.05 = median + 5%)
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data

    Returns
    -------
    xarray.DataArray
        Threshold for each taxon
    """
    median = da.median(dim=dimensions['time'], skipna=True)

    empty = median[dimensions['taxon']].values[median.isnull().values]
    if len(empty) > 0:
        warnings.warn(f'No valid data for taxa {list(empty)}. Their threshold is undefined and no blooms will be found.')

    threshold = median * factor
    threshold.name = 'threshold'
    threshold.attrs['threshold_factor'] = factor
    return threshold


def _broadcast_threshold(threshold, da, dimensions):
    """Accept a scalar, a {taxon: value} dict or a DataArray."""
    taxondim = dimensions['taxon']
    if isinstance(threshold, xr.DataArray):
        return threshold.reindex({taxondim: da[taxondim]})
    if isinstance(threshold, dict):
        values = [threshold.get(taxon, np.nan) for taxon in da[taxondim].values]
        return xr.DataArray(values, dims=[taxondim], coords={taxondim: da[taxondim]}, name='threshold')
    return xr.full_like(da.isel({dimensions['time']: 0}, drop=True), float(threshold)).rename('threshold')


# ============================
# Gap Filling & Labelling
# ============================

def fill_time_gaps(flags, valid, max_gap_steps, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Bridge short data outages that sit inside above-threshold runs.

    Performs binary closing (dilation then erosion) along the time dimension,
    but only accepts the closed cells that are outages. Valid values below the
    threshold are never turned into bloom cells.

    Parameters
    ----------
    flags : xarray.DataArray
        Boolean above-threshold flags with dimensions (time, taxon)
    valid : xarray.DataArray
        Boolean mask of cells holding a real observation
    max_gap_steps : int
        Longest run of missing grid cells that may be bridged
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data

    Returns
    -------
    xarray.DataArray
        Boolean flags with short outages filled
    """
    if flags.dtype != bool:
        raise ValueError('The flags DataArray must be binary (boolean type)')
    if valid.dtype != bool:
        raise ValueError('The valid mask must be binary (boolean type)')

    if max_gap_steps <= 0:
        return flags

    flags_t = flags.transpose(dimensions['time'], ...)
    other_axes = flags_t.ndim - 1

    # Temporal structuring element: fills a maximum hole size of max_gap_steps
    kernel_size = max_gap_steps + 1
    time_kernel = np.ones((kernel_size,) + (1,) * other_axes, dtype=bool)

    # Pad in time to avoid edge effects
    padded = np.pad(flags_t.values, [(kernel_size, kernel_size)] + [(0, 0)] * other_axes,
                    mode='constant', constant_values=False)
    closed = scipy.ndimage.binary_closing(padded, structure=time_kernel)

    # Remove padding
    closed = flags_t.copy(data=closed[kernel_size:-kernel_size]).transpose(*flags.dims)

    return flags | (closed & ~valid)


def _label_1d(flags_1d):
    labels, _ = scipy.ndimage.label(flags_1d)
    return labels.astype(np.int32)


def label_blooms(flags, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Label contiguous flagged runs along time, independently for each taxon.

    Returns
    -------
    xarray.DataArray
        Integer bloom IDs starting at 1 per taxon (0 = no bloom)
    """
    ids = xr.apply_ufunc(
        _label_1d, flags,
        input_core_dims=[[dimensions['time']]],
        output_core_dims=[[dimensions['time']]],
        output_dtypes=[np.int32],
        vectorize=True,
    )
    return ids.transpose(*flags.dims).rename('ID_field')


def filter_short_blooms(ids, min_duration, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Remove blooms with (end - start) shorter than min_duration and renumber the rest.

    Parameters
    ----------
    ids : xarray.DataArray
        Integer bloom IDs with dimensions (time, taxon)
    min_duration : str or pandas.Timedelta
        Bloom-length cutoff

    Returns
    -------
    xarray.DataArray
        Sequential bloom IDs (0 = no bloom)
    """
    timedim = dimensions['time']
    min_duration_ns = pd.Timedelta(min_duration).value
    times = ids[timedim].values.astype('datetime64[ns]').astype(np.int64)

    def filter_relabel(ids_1d):
        """Keep blooms at least min_duration long, renumbered from 1."""
        keep = np.zeros_like(ids_1d)
        new_id = 0
        for bloom_id in np.unique(ids_1d[ids_1d > 0]):
            idx = np.flatnonzero(ids_1d == bloom_id)
            if times[idx[-1]] - times[idx[0]] >= min_duration_ns:
                new_id += 1
                keep[idx] = new_id
        return keep

    filtered = xr.apply_ufunc(
        filter_relabel, ids,
        input_core_dims=[[timedim]],
        output_core_dims=[[timedim]],
        output_dtypes=[np.int32],
        vectorize=True,
    )
    return filtered.transpose(*ids.dims).rename('ID_field')


# ============================
# Main Detection Pipeline
# ============================

def detect_blooms(da, resolution, threshold=None, dimensions={'time': 'time', 'taxon': 'taxon'},
                  verbosity=0):
    """
    Complete bloom detection for one sampling resolution.

    Parameters
    ----------
    da : xarray.DataArray
        Observations with dimensions (time, taxon). Irregular sampling is
        averaged onto the resolution's grid.
    resolution : str or ResolutionConfig
        One of 'hourly', 'daily', 'satellite', 'weekly'
    threshold : float, dict or xarray.DataArray, optional
        Fixed threshold(s). Defaults to median x threshold_factor per taxon.
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data
    verbosity : int, optional
        Print a detection summary if > 0

    Returns
    -------
    xarray.Dataset
        Dataset containing:
        - value: gridded observations
        - smoothed: smoothed observations used for detection
        - threshold: per-taxon threshold
        - bloom_flag: boolean bloom mask
        - ID_field: integer bloom IDs (0 = no bloom)
    """
    res = get_resolution(resolution)
    da = _validate(da, dimensions)
    timedim = dimensions['time']

    if da.sizes[timedim] == 0:
        raise ValueError('The input DataArray has no time steps')

    # Step 1: Grid & smooth
    value = to_grid(da.astype(np.float64), res.freq, dimensions=dimensions)
    smoothed = smooth(value, res.smooth_window, freq=res.freq, dimensions=dimensions)

    # Step 2: Threshold
    if threshold is None:
        threshold = compute_threshold(smoothed, res.threshold_factor, dimensions=dimensions)
    else:
        threshold = _broadcast_threshold(threshold, smoothed, dimensions)

    valid = smoothed.notnull()
    above = (smoothed > threshold).fillna(False).astype(bool) & valid

    # Step 3: Bridge short outages
    bloom_flag = fill_time_gaps(above, valid, res.max_gap_steps, dimensions=dimensions)

    # Step 4 & 5: Label runs & drop short blooms
    ids = label_blooms(bloom_flag, dimensions=dimensions)
    ids = filter_short_blooms(ids, res.min_duration, dimensions=dimensions)
    bloom_flag = ids > 0

    n_blooms = int(ids.max(dim=timedim).sum().item())

    ds = xr.Dataset(
        data_vars={
            'value': value,
            'smoothed': smoothed,
            'threshold': threshold,
            'bloom_flag': bloom_flag,
            'ID_field': ids,
        },
        attrs={
            'description': 'Bloom detection',
            **res.as_attrs(),
            'N_blooms': n_blooms,
        },
    )

    if verbosity > 0:
        print(f'Bloom Detection ({res.label}):')
        print(f'   Grid: {res.freq}, time steps: {ds.sizes[timedim]}')
        print(f'   Valid fraction: {float(valid.mean()):.3f}')
        print(f'   Outage cells bridged: {int((bloom_flag & ~valid).sum())}')
        print(f'   Total Blooms Detected: {n_blooms}')
        print('\n')

    return ds


# ============================
# Bloom Properties
# ============================

def bloom_table(ds, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Summarise each detected bloom.

    Parameters
    ----------
    ds : xarray.Dataset
        Output of detect_blooms

    Returns
    -------
    pandas.DataFrame
        One row per bloom with start, end, duration, peak date & value
    """
    timedim, taxondim = dimensions['time'], dimensions['taxon']
    times = pd.DatetimeIndex(ds[timedim].values)
    resolution = ds.attrs.get('resolution', 'unknown')

    rows = []
    for taxon in ds[taxondim].values:
        ids = ds.ID_field.sel({taxondim: taxon}).values
        smoothed = ds.smoothed.sel({taxondim: taxon}).values
        threshold = float(ds.threshold.sel({taxondim: taxon}).item())

        for bloom_id in np.unique(ids[ids > 0]):
            idx = np.flatnonzero(ids == bloom_id)
            values = smoothed[idx]
            start, end = times[idx[0]], times[idx[-1]]
            peak_idx = idx[np.nanargmax(values)]
            rows.append({
                'taxon': str(taxon),
                'resolution': resolution,
                'bloom_id': int(bloom_id),
                'year': start.year,
                'start': start,
                'end': end,
                'duration_days': (end - start) / pd.Timedelta(days=1),
                'peak_date': times[peak_idx],
                'peak_value': float(smoothed[peak_idx]),
                'mean_value': float(np.nanmean(values)),
                'n_obs': int(np.isfinite(values).sum()),
                'threshold': threshold,
            })

    return pd.DataFrame(rows, columns=BLOOM_COLUMNS)


def apply_corrections(blooms, corrections, verbosity=0):
    """
    Apply manual one-off date corrections to detected blooms.

    Each correction row selects a bloom by taxon, resolution and year (plus
    bloom_id when a species-year holds several blooms) and overrides any of
    start, end and peak_date. Corrections for resolutions absent from
    `blooms` are skipped.

    Parameters
    ----------
    blooms : pandas.DataFrame
        Output of bloom_table (may mix resolutions)
    corrections : pandas.DataFrame
        Columns taxon, resolution, year, and optionally bloom_id, start, end, peak_date

    Returns
    -------
    pandas.DataFrame
        Corrected bloom table with a boolean 'corrected' column
    """
    blooms = blooms.copy()
    blooms['corrected'] = False

    if corrections is None or len(corrections) == 0:
        return blooms

    for col in ['taxon', 'resolution', 'year']:
        if col not in corrections.columns:
            raise ValueError(f"Corrections table is missing the '{col}' column")

    present = set(blooms['resolution'].unique())
    for _, corr in corrections.iterrows():
        if corr['resolution'] not in present:
            continue

        match = ((blooms['taxon'] == corr['taxon'])
                 & (blooms['resolution'] == corr['resolution'])
                 & (blooms['year'] == int(corr['year'])))
        if 'bloom_id' in corrections.columns and not pd.isna(corr['bloom_id']):
            match &= blooms['bloom_id'] == int(corr['bloom_id'])

        n_match = int(match.sum())
        label = f"{corr['taxon']} {corr['resolution']} {int(corr['year'])}"
        if n_match == 0:
            raise ValueError(f'Correction for {label} matches no detected bloom')
        if n_match > 1:
            raise ValueError(f'Correction for {label} matches {n_match} blooms. Specify bloom_id')

        for col in ['start', 'end', 'peak_date']:
            if col in corrections.columns and not pd.isna(corr[col]):
                blooms.loc[match, col] = pd.Timestamp(corr[col])
        blooms.loc[match, 'corrected'] = True

        if verbosity > 0:
            print(f'Applied manual correction: {label}')

    blooms['duration_days'] = (blooms['end'] - blooms['start']) / pd.Timedelta(days=1)
    return blooms
