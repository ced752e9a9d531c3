"""
bloomEx-Resample: Bring each data source onto the regular time grid of its resolution.

- to_grid:    bin averaging onto a regular grid (empty bins become NaN outages)
- subsample:  emulate discrete sampling by keeping one sample per period
- smooth:     centred rolling mean that leaves outages as NaN
"""

import pandas as pd

from .config import freq_to_timedelta


def _check_dims(da, dimensions):
    if dimensions['time'] not in da.dims:
        raise ValueError(f"DataArray must have a '{dimensions['time']}' dimension. Found {list(da.dims)}")


def to_grid(da, freq, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Average irregular observations onto a regular time grid.

    Parameters
    ----------
    da : xarray.DataArray
        Observations with dimensions (time, taxon)
    freq : str
        Grid frequency (e.g. 'h', 'D')
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data

    Returns
    -------
    xarray.DataArray
        Gridded data. Bins without any observation are NaN.
    """
    _check_dims(da, dimensions)
    da = da.sortby(dimensions['time'])
    gridded = da.resample({dimensions['time']: freq}).mean()
    gridded.attrs.update(da.attrs)
    gridded.attrs['freq'] = freq
    return gridded


def subsample(da, freq='D', hour=10, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Keep the single sample closest to a fixed hour in each period.

    This emulates a discrete sampling programme (e.g. one daily or weekly
    bottle sample) from a high-frequency record.

    Parameters
    ----------
    da : xarray.DataArray
        High-frequency observations with dimensions (time, taxon)
    freq : str, optional
        Sampling period (e.g. 'D' for daily, 'W-MON' for weekly)
    hour : float, optional
        Target hour of day within the period
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data

    Returns
    -------
    xarray.DataArray
        One sample per period, stamped at the start of the period
    """
    _check_dims(da, dimensions)
    timedim = dimensions['time']
    da = da.sortby(timedim)

    # Only sample times where at least one taxon was measured
    other_dims = [dim for dim in da.dims if dim != timedim]
    valid = da.notnull().any(dim=other_dims) if other_dims else da.notnull()
    da = da.isel({timedim: valid.values})
    if da.sizes[timedim] == 0:
        raise ValueError('No valid samples to subsample from')

    times = pd.Series(pd.DatetimeIndex(da[timedim].values))
    period_start = times.dt.to_period(freq).dt.start_time
    target = period_start + pd.to_timedelta(hour, unit='h')
    distance = (times - target).abs()

    chosen = distance.groupby(period_start.values).idxmin().to_numpy()
    sampled = da.isel({timedim: chosen})
    sampled = sampled.assign_coords({timedim: period_start.iloc[chosen].values})
    sampled.attrs['subsample_freq'] = freq
    sampled.attrs['subsample_hour'] = hour

    return sampled


def smooth(da, window, freq=None, dimensions={'time': 'time', 'taxon': 'taxon'}):
    """
    Centred rolling mean over a fixed time window.

    Parameters
    ----------
    da : xarray.DataArray
        Gridded data with dimensions (time, taxon)
    window : str or pandas.Timedelta or None
        Length of the rolling window. None returns the data unchanged.
    freq : str, optional
        Grid frequency. Inferred from the time coordinate if not given.
    dimensions : dict, optional
        Mapping of conceptual dimensions to actual dimension names in the data

    Returns
    -------
    xarray.DataArray
        Smoothed data, NaN wherever the input was NaN
    """
    if window is None:
        return da

    _check_dims(da, dimensions)
    timedim = dimensions['time']

    if freq is None:
        freq = da.attrs.get('freq') or pd.infer_freq(pd.DatetimeIndex(da[timedim].values))
    if freq is None:
        raise ValueError('Could not infer the grid frequency. Grid the data with to_grid() first or pass freq')

    step = freq_to_timedelta(freq)
    n_steps = int(pd.Timedelta(window) // step)
    if n_steps < 1:
        raise ValueError(f'Smoothing window {window} is shorter than the grid step {step}')
    n_steps = n_steps + 1 if n_steps % 2 == 0 else n_steps  # odd for a centred window

    smoothed = da.rolling({timedim: n_steps}, center=True, min_periods=1).mean()

    # Outages stay outages
    smoothed = smoothed.where(da.notnull())
    smoothed.attrs.update(da.attrs)
    smoothed.attrs['smooth_window'] = str(pd.Timedelta(window))

    return smoothed
