"""Shared pytest fixtures: synthetic IFCB records, OLCI swaths and an IFCB database."""

import matplotlib

matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest
import xarray as xr
from sqlalchemy import create_engine, text

from bloomEx.config import OLCI_LAND_FLAGS


# ── Synthetic IFCB record ────────────────────────────────────────────────────

HOURLY_START = '2021-01-01 00:00'
HOURLY_END = '2021-03-31 23:00'

# Known bloom windows [start, end) in the synthetic record
SKELETONEMA_BLOOM = ('2021-02-01', '2021-02-06')
DINOPHYSIS_BLOOM = ('2021-03-01', '2021-03-04')


def make_hourly_records():
    times = pd.date_range(HOURLY_START, HOURLY_END, freq='h')

    skeletonema = np.ones(len(times))
    skeletonema[(times >= SKELETONEMA_BLOOM[0]) & (times < SKELETONEMA_BLOOM[1])] = 10.0

    dinophysis = np.full(len(times), 2.0)
    dinophysis[(times >= DINOPHYSIS_BLOOM[0]) & (times < DINOPHYSIS_BLOOM[1])] = 8.0

    return pd.concat([
        pd.DataFrame({'datetime': times, 'taxon': 'Skeletonema', 'biovolume': skeletonema}),
        pd.DataFrame({'datetime': times, 'taxon': 'Dinophysis', 'biovolume': dinophysis}),
    ], ignore_index=True)


@pytest.fixture
def hourly_records():
    return make_hourly_records()


@pytest.fixture
def hourly_da(hourly_records):
    from bloomEx.io import to_dataarray
    return to_dataarray(hourly_records)


@pytest.fixture
def ifcb_csv(tmp_path, hourly_records):
    path = tmp_path / 'ifcb.csv'
    hourly_records.to_csv(path, index=False)
    return path


@pytest.fixture
def nbpts_csv(tmp_path, hourly_da):
    from bloomEx.io import from_dataarray
    from bloomEx.resample import subsample
    weekly = from_dataarray(subsample(hourly_da, freq='W-MON', hour=10))
    path = tmp_path / 'nbpts.csv'
    weekly.to_csv(path, index=False)
    return path


# ── Synthetic IFCB database ──────────────────────────────────────────────────

@pytest.fixture
def ifcb_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'ifcb.db'}")
    with engine.begin() as conn:
        conn.execute(text('CREATE TABLE samples (id INTEGER PRIMARY KEY, sample_time TEXT, ml_analyzed REAL)'))
        conn.execute(text('CREATE TABLE classes (id INTEGER PRIMARY KEY, name TEXT)'))
        conn.execute(text('CREATE TABLE rois (id INTEGER PRIMARY KEY, sample_id INTEGER, '
                          'class_id INTEGER, biovolume REAL)'))
        conn.execute(text("INSERT INTO samples VALUES "
                          "(1, '2021-01-01 10:00:00', 5.0), "
                          "(2, '2021-01-01 11:00:00', 2.0), "
                          "(3, '2021-01-01 12:00:00', 0.0), "
                          "(4, '2021-01-03 10:00:00', 5.0)"))
        conn.execute(text("INSERT INTO classes VALUES (1, 'Skeletonema'), (2, 'Dinophysis')"))
        conn.execute(text("INSERT INTO rois (sample_id, class_id, biovolume) VALUES "
                          "(1, 1, 10.0), (1, 1, 20.0), (1, 2, 5.0), "
                          "(2, 1, 4.0), "
                          "(3, 1, 100.0), "
                          "(4, 2, 50.0)"))
    return engine


# ── Synthetic OLCI swaths ────────────────────────────────────────────────────

N_LINES, N_PIXELS = 10, 12


def write_swath(path, lat0, lon0, land=(), missing=()):
    """OLCI-like L2 file with geophysical_data & navigation_data groups on a 0.01 deg grid."""
    line = np.arange(N_LINES)[:, None]
    pixel = np.arange(N_PIXELS)[None, :]
    dims = ('number_of_lines', 'pixels_per_line')

    chl = (line + pixel / 10.0) * np.ones((N_LINES, N_PIXELS))
    for idx in missing:
        chl[idx] = np.nan
    flags = np.zeros((N_LINES, N_PIXELS), dtype=np.int32)
    for idx in land:
        flags[idx] = OLCI_LAND_FLAGS[0]

    geo = xr.Dataset({'chlor_a': (dims, chl.astype(np.float32)), 'l2_flags': (dims, flags)})
    nav = xr.Dataset({
        'latitude': (dims, (lat0 + 0.01 * line) * np.ones((N_LINES, N_PIXELS))),
        'longitude': (dims, (lon0 + 0.01 * pixel) * np.ones((N_LINES, N_PIXELS))),
    })
    geo.to_netcdf(path, group='geophysical_data', mode='w', engine='netcdf4')
    nav.to_netcdf(path, group='navigation_data', mode='a', engine='netcdf4')
    return path


@pytest.fixture
def swath_dir(tmp_path):
    """
    Three swaths:
    - S3A 2021-06-15: covers the GSO dock (closest pixel line 4, pixel 3), full block
    - S3B 2021-06-15: far from the dock
    - S3A 2021-06-16: dock at pixel 10, so the block runs off the swath edge
    """
    directory = tmp_path / 'olci'
    directory.mkdir()
    write_swath(directory / 'S3A_OLCI_EFRNT.20210615T150000.L2.OC.nc', 41.45, -71.45,
                land=[(5, 7), (0, 0)], missing=[(0, 1)])
    write_swath(directory / 'S3B_OLCI_EFRNT.20210615T143000.L2.OC.nc', 40.0, -70.0)
    write_swath(directory / 'S3A_OLCI_EFRNT.20210616T153000.L2.OC.nc', 41.45, -71.52)
    return directory
