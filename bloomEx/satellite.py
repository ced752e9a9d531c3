"""
bloomEx-Satellite: OLCI Level-2 ocean colour swaths over Narragansett Bay.

For each swath downloaded from the NASA Ocean Color archive:
- record metadata (mean chlorophyll, % unresolved water pixels, distance of the
  closest pixel to the GSO dock)
- when the dock is covered, extract the dock pixel and the 3x4 block of pixels
  east of it

Swaths are processed in parallel with dask.delayed, and the extracted pixels are
reduced to a daily chlorophyll series for bloom detection.
"""

import logging
import warnings
from pathlib import Path

import numpy as np
import pandas as pd
import xarray as xr
import dask

from .config import (GSO_STATION, STATION_TOLERANCE, OLCI_LAND_FLAGS, NBAY_LINE_OFFSETS,
                     NBAY_PIXEL_OFFSETS, LOCAL_TIMEZONE, TOTAL_TAXON)

logging.getLogger('distributed.scheduler').setLevel(logging.ERROR)


PIXEL_COLUMNS = ['chl', 'lat', 'lon', 'flags', 'land', 'pixel_id', 'swath_id', 'type']


# ============================
# File Inventory
# ============================

def parse_swath_filename(path):
    """
    Extract satellite & acquisition time from an OLCI L2 file name.

    e.g. 'S3A_OLCI_EFRNT.20220101T153005.L2.OC.nc'

    Returns
    -------
    dict
        filepath, filename, satellite, day, time, UTC, EST_EDT
    """
    path = Path(path)
    name = path.name
    parts = name.split('.')
    if len(parts) < 3 or 'T' not in parts[1]:
        raise ValueError(f"Cannot parse acquisition time from swath file name '{name}'")

    day, time = parts[1].split('T', 1)
    utc = pd.to_datetime(day + time[:6], format='%Y%m%d%H%M%S').tz_localize('UTC')

    return {
        'filepath': str(path),
        'filename': name,
        'satellite': name.split('_')[0],
        'day': day,
        'time': time,
        'UTC': utc,
        'EST_EDT': utc.tz_convert(LOCAL_TIMEZONE),
    }


def list_swaths(directory, pattern='*.nc'):
    """
    Build the swath inventory of a directory.

    Swaths are sorted by acquisition time and given a 1-based swath_id. Swaths
    from the same satellite on the same (UTC) day share a sampling_id.
    """
    files = sorted(Path(directory).glob(pattern))
    columns = ['filepath', 'filename', 'satellite', 'day', 'time', 'UTC', 'EST_EDT',
               'swath_id', 'sampling_id']
    if not files:
        return pd.DataFrame(columns=columns)

    inventory = pd.DataFrame([parse_swath_filename(f) for f in files])
    inventory = inventory.sort_values('UTC', kind='stable').reset_index(drop=True)
    inventory['swath_id'] = np.arange(1, len(inventory) + 1)
    inventory['sampling_id'] = inventory.groupby(['satellite', 'day']).ngroup() + 1

    return inventory[columns]


# ============================
# Single Swath Processing
# ============================

def read_swath(path):
    """
    Read chlorophyll, flags and geolocation from an OLCI L2 file.

    Returns
    -------
    xarray.Dataset
        Variables chl, flags, lat, lon on dimensions (line, pixel)
    """
    with xr.open_dataset(path, group='geophysical_data') as geo, \
         xr.open_dataset(path, group='navigation_data') as nav:
        chl = geo['chlor_a']
        line_dim, pixel_dim = chl.dims
        rename = {line_dim: 'line', pixel_dim: 'pixel'}

        flags = geo['l2_flags'].fillna(0).astype(np.int64)
        swath = xr.Dataset({
            'chl': chl.astype(np.float64).rename(rename),
            'flags': flags.rename(rename),
            'lat': nav['latitude'].astype(np.float64).rename(rename),
            'lon': nav['longitude'].astype(np.float64).rename(rename),
        }).load()

    return swath.reset_coords(drop=True)


def process_swath(path, swath_id=None, station=GSO_STATION, tolerance=STATION_TOLERANCE, verbosity=0):
    """
    Summarise one swath and extract the station pixels.

    Parameters
    ----------
    path : str or Path
        OLCI L2 NetCDF file
    swath_id : int, optional
        Identifier carried into the outputs
    station : dict, optional
        {'lat': ..., 'lon': ...} of the target station
    tolerance : float, optional
        Maximum distance (degrees) between the station and its closest pixel
    verbosity : int, optional
        Print progress if > 0

    Returns
    -------
    metadata : dict
        swath_id, avg_chl, p_unresolved, closest, GSO, matching
    selected : pandas.DataFrame or None
        Station pixel (type 'GSO') and block pixels (type 'NBay'), or None if
        the station is not covered
    """
    if verbosity > 0:
        print(f'Processing: {path}')

    swath = read_swath(path)
    chl = swath.chl.values
    lat = swath.lat.values
    lon = swath.lon.values
    flags = swath.flags.values
    n_lines, n_pixels = chl.shape

    land = np.isin(flags, OLCI_LAND_FLAGS)
    water = ~land

    metadata = {'swath_id': swath_id}
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        metadata['avg_chl'] = float(np.nanmean(chl))
    n_water = int(water.sum())
    metadata['p_unresolved'] = (float(np.isnan(chl[water]).sum()) / n_water * 100) if n_water else np.nan

    # Closest pixel to the station
    dist = np.sqrt((station['lat'] - lat) ** 2 + (station['lon'] - lon) ** 2)
    if not np.isfinite(dist).any():
        metadata.update({'closest': np.nan, 'GSO': False, 'matching': None})
        return metadata, None

    line_i, pixel_j = np.unravel_index(np.nanargmin(dist), dist.shape)
    metadata['closest'] = float(dist[line_i, pixel_j])

    if metadata['closest'] > tolerance:
        if verbosity > 0:
            print('GSO Dock is not included in this swath.')
        metadata.update({'GSO': False, 'matching': None})
        return metadata, None

    metadata['GSO'] = True

    # Block of pixels east of the station
    lines = [line_i + d for d in NBAY_LINE_OFFSETS]
    pixels = [pixel_j + d for d in NBAY_PIXEL_OFFSETS]
    if min(lines) < 0 or max(lines) >= n_lines or min(pixels) < 0 or max(pixels) >= n_pixels:
        if verbosity > 0:
            print('Station pixel block extends past the swath edge.')
        metadata['matching'] = 'wrong'
        return metadata, None

    metadata['matching'] = 'correct'

    block = [(li, pj) for pj in pixels for li in lines]
    indices = [(line_i, pixel_j)] + block
    types = ['GSO'] + ['NBay'] * len(block)

    selected = pd.DataFrame({
        'chl': [chl[li, pj] for li, pj in indices],
        'lat': [lat[li, pj] for li, pj in indices],
        'lon': [lon[li, pj] for li, pj in indices],
        'flags': [flags[li, pj] for li, pj in indices],
        'land': [land[li, pj] for li, pj in indices],
        'pixel_id': [li * n_pixels + pj + 1 for li, pj in indices],
        'swath_id': swath_id,
        'type': types,
    }, columns=PIXEL_COLUMNS)

    return metadata, selected.sort_values('pixel_id').reset_index(drop=True)


# ============================
# Batch Processing
# ============================

def process_swaths(directory, pattern='*.nc', station=GSO_STATION, tolerance=STATION_TOLERANCE,
                   scheduler='threads', verbosity=0):
    """
    Process every swath in a directory.

    Parameters
    ----------
    directory : str or Path
        Directory holding the OLCI L2 NetCDF files
    pattern : str, optional
        Glob pattern for swath files
    station : dict, optional
        {'lat': ..., 'lon': ...} of the target station
    tolerance : float, optional
        Maximum distance (degrees) between the station and its closest pixel
    scheduler : str, optional
        Dask scheduler used to run the swaths ('threads', 'processes', 'synchronous')
    verbosity : int, optional
        Print progress if > 0

    Returns
    -------
    metadata : pandas.DataFrame
        One row per swath (inventory columns plus swath statistics)
    selected : pandas.DataFrame
        Extracted station & block pixels for all swaths covering the station
    """
    inventory = list_swaths(directory, pattern)
    if inventory.empty:
        warnings.warn(f'No swath files matching {pattern} found in {directory}')
        return inventory, pd.DataFrame(columns=PIXEL_COLUMNS)

    delayed_tasks = [
        dask.delayed(process_swath)(row.filepath, swath_id=row.swath_id, station=station,
                                    tolerance=tolerance, verbosity=verbosity)
        for row in inventory.itertuples()
    ]
    results = dask.compute(*delayed_tasks, scheduler=scheduler)

    stats = pd.DataFrame([meta for meta, _ in results])
    metadata = inventory.merge(stats, on='swath_id', how='left')

    selected = [sel for _, sel in results if sel is not None]
    if selected:
        selected = pd.concat(selected, ignore_index=True)
    else:
        selected = pd.DataFrame(columns=PIXEL_COLUMNS)

    if verbosity > 0:
        print(f'Swaths processed: {len(metadata)}')
        print(f'   Covering the station: {int(metadata["GSO"].sum())}')
        print(f'   Pixels extracted: {len(selected)}')

    return metadata, selected


def satellite_series(selected, metadata, pixel_type='NBay'):
    """
    Reduce extracted pixels to one chlorophyll value per local sampling day.

    The median of all valid (non-land, finite) pixels of the chosen type is
    taken across the swaths of each sampling (same satellite & day).

    Parameters
    ----------
    selected : pandas.DataFrame
        Extracted pixels from process_swaths
    metadata : pandas.DataFrame
        Swath metadata from process_swaths
    pixel_type : str, optional
        'NBay' for the 3x4 block or 'GSO' for the station pixel

    Returns
    -------
    pandas.DataFrame
        Long table (datetime, taxon, biovolume) where taxon is 'total' and the
        value column holds chlorophyll a (mg m-3)
    """
    if pixel_type not in ('GSO', 'NBay'):
        raise ValueError("pixel_type must be either 'GSO' or 'NBay'")

    pixels = selected[(selected['type'] == pixel_type) & ~selected['land'].astype(bool)]
    pixels = pixels[np.isfinite(pixels['chl'].astype(float))]
    if pixels.empty:
        warnings.warn(f'No valid {pixel_type} pixels to build a satellite series from')
        return pd.DataFrame(columns=['datetime', 'taxon', 'biovolume'])

    pixels = pixels.merge(metadata[['swath_id', 'sampling_id', 'EST_EDT']], on='swath_id', how='left')

    daily = (pixels.groupby('sampling_id')
             .agg(chl=('chl', 'median'), local_time=('EST_EDT', 'min'))
             .reset_index())
    daily['datetime'] = pd.to_datetime(daily['local_time']).dt.tz_localize(None).dt.normalize()

    series = pd.DataFrame({
        'datetime': daily['datetime'],
        'taxon': TOTAL_TAXON,
        'biovolume': daily['chl'].astype(float),
    })
    return series.sort_values('datetime').reset_index(drop=True)
