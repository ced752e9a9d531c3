"""
bloomEx-IO: Readers & writers for the plankton records.

All sources are normalised to one long table with columns
(datetime, taxon, biovolume), which converts to a (time, taxon)
xarray.DataArray for the detection stage.
"""

from pathlib import Path

import numpy as np
import pandas as pd
import xarray as xr
from sqlalchemy import DateTime, bindparam, create_engine, text
from sqlalchemy.engine import Engine

from .config import TOTAL_TAXON


RECORD_COLUMNS = ['datetime', 'taxon', 'biovolume']

# Biovolume per mL for each sample & class on the IFCB classification database
IFCB_QUERY = """
SELECT s.sample_time AS datetime,
       c.name AS taxon,
       SUM(r.biovolume) / s.ml_analyzed AS biovolume
FROM rois r
JOIN samples s ON r.sample_id = s.id
JOIN classes c ON r.class_id = c.id
WHERE s.sample_time >= :start
  AND s.sample_time < :end
  AND s.ml_analyzed > 0{taxon_filter}
GROUP BY s.id, s.sample_time, s.ml_analyzed, c.name
ORDER BY s.sample_time
"""

TAXON_FILTER = "\n  AND c.name IN :taxa"


# ============================
# Readers
# ============================

def _normalise_records(df, columns=None):
    """Rename, coerce and sort a table into the (datetime, taxon, biovolume) layout."""
    if columns:
        df = df.rename(columns=columns)

    missing = [col for col in RECORD_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f'Records are missing required columns {missing}. Found {list(df.columns)}')

    df = df[RECORD_COLUMNS].copy()
    df['datetime'] = pd.to_datetime(df['datetime'])
    df['taxon'] = df['taxon'].astype(str)
    df['biovolume'] = pd.to_numeric(df['biovolume'], errors='coerce')

    return df.sort_values(['datetime', 'taxon']).reset_index(drop=True)


def read_ifcb_csv(path, columns=None):
    """
    Read IFCB biovolume records exported to CSV.

    Parameters
    ----------
    path : str or Path
        CSV file with one row per sample & taxon
    columns : dict, optional
        Mapping from the file's column names to 'datetime', 'taxon', 'biovolume'

    Returns
    -------
    pandas.DataFrame
        Long table sorted by time and taxon
    """
    return _normalise_records(pd.read_csv(path), columns)


def query_ifcb_database(url_or_engine, start, end, taxa=None, query=None):
    """
    Query per-sample, per-class biovolume from the IFCB classification database.

    Parameters
    ----------
    url_or_engine : str or sqlalchemy.engine.Engine
        Database URL (e.g. 'mysql+pymysql://user:pw@host/ifcb') or an existing engine
    start, end : str or datetime
        Half-open time window [start, end)
    taxa : list of str, optional
        Restrict to these class names
    query : str, optional
        Override the SQL. Must expose datetime, taxon, biovolume and accept
        :start, :end (and :taxa when taxa is given)

    Returns
    -------
    pandas.DataFrame
        Long table sorted by time and taxon
    """
    engine = url_or_engine if isinstance(url_or_engine, Engine) else create_engine(url_or_engine)

    if query is None:
        query = IFCB_QUERY.format(taxon_filter=TAXON_FILTER if taxa else '')

    binds = [bindparam('start', type_=DateTime), bindparam('end', type_=DateTime)]
    params = {'start': pd.Timestamp(start).to_pydatetime(), 'end': pd.Timestamp(end).to_pydatetime()}
    if taxa:
        binds.append(bindparam('taxa', expanding=True))
        params['taxa'] = list(taxa)
    stmt = text(query).bindparams(*binds)

    with engine.connect() as conn:
        df = pd.read_sql_query(stmt, conn, params=params)

    return _normalise_records(df)


def read_nbpts_csv(path, columns=None):
    """
    Read weekly NBPTS microscopy records.

    Sampling dates are normalised to midnight so they fall on the daily grid.
    """
    df = _normalise_records(pd.read_csv(path), columns)
    df['datetime'] = df['datetime'].dt.normalize()
    return df


def read_corrections_csv(path):
    """
    Read the table of manual bloom date corrections.

    Expected columns: taxon, resolution, year, and any of bloom_id, start,
    end, peak_date. Empty cells leave the detected value untouched.
    """
    df = pd.read_csv(path)
    for col in ['start', 'end', 'peak_date']:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col])
    if 'bloom_id' in df.columns:
        df['bloom_id'] = df['bloom_id'].astype('Int64')
    df['year'] = df['year'].astype(int)
    return df


# ============================
# Writers
# ============================

def write_table(df, path, **kwargs):
    """Write a table to CSV, creating the parent directory if needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, **kwargs)
    return path


# ============================
# Table <-> DataArray
# ============================

def add_total(records):
    """Append a whole-community 'total' taxon summing biovolume at each timestamp."""
    records = records[records['taxon'] != TOTAL_TAXON]
    total = (records.groupby('datetime', as_index=False)['biovolume']
             .sum(min_count=1)
             .assign(taxon=TOTAL_TAXON))
    return _normalise_records(pd.concat([records, total], ignore_index=True))


def to_dataarray(records, name='biovolume'):
    """
    Pivot a long table into a (time, taxon) DataArray.

    Duplicate (datetime, taxon) rows are averaged.
    """
    if records.empty:
        raise ValueError('Cannot build a DataArray from an empty record table')

    wide = records.pivot_table(index='datetime', columns='taxon', values='biovolume',
                               aggfunc='mean', dropna=False, observed=True)
    wide = wide.sort_index()

    return xr.DataArray(
        wide.to_numpy(dtype=np.float64),
        dims=['time', 'taxon'],
        coords={'time': wide.index.values, 'taxon': wide.columns.astype(str).values},
        name=name,
    )


def from_dataarray(da):
    """Flatten a (time, taxon) DataArray back to a long table, dropping missing values."""
    name = da.name or 'biovolume'
    df = da.to_dataframe(name=name).reset_index()
    df = df.rename(columns={'time': 'datetime', name: 'biovolume'})
    df = df.dropna(subset=['biovolume'])
    return df[RECORD_COLUMNS].reset_index(drop=True)
