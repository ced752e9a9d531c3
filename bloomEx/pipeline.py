"""
bloomEx-Pipeline: End-to-end comparison of bloom detection across sampling resolutions.

1. Load IFCB (CSV or database), NBPTS microscopy and OLCI swaths
2. Build the hourly, daily, weekly and satellite series
3. Detect blooms per resolution and apply manual corrections
4. Score each resolution against the hourly IFCB reference
5. Write tables & TIFF figures
"""

import re
from pathlib import Path

import pandas as pd

from .config import RESOLUTIONS, REFERENCE_RESOLUTION, TOTAL_TAXON
from . import io
from .resample import subsample
from .detect import detect_blooms, bloom_table, apply_corrections, BLOOM_COLUMNS
from .accuracy import match_blooms, false_detections, accuracy_summary, sampling_coverage
from .satellite import process_swaths, satellite_series
from .plotX import PlotConfig, plot_resolutions, plot_accuracy, plot_satellite_pixels, save_tiff


SATELLITE_METADATA_FILE = 'raw_gsoOptics_OLCI_metadata.csv'
SATELLITE_PIXELS_FILE = 'raw_gsoOptics_OLCI_chla_3x4_subset.csv'


def _filter_taxa(records, taxa):
    if not taxa:
        return records
    return records[records['taxon'].isin(list(taxa) + [TOTAL_TAXON])]


def _safe_name(name):
    return re.sub(r'[^\w\-]+', '_', str(name)).strip('_')


def load_ifcb(ifcb_csv=None, ifcb_db=None, start=None, end=None, verbosity=0):
    """
    Load every IFCB class from exactly one source.

    Taxa are not filtered here: the 'total' series must sum the whole
    community before build_series narrows the taxa.

    Parameters
    ----------
    ifcb_csv : str or Path, optional
        IFCB records exported to CSV
    ifcb_db : str or sqlalchemy.engine.Engine, optional
        IFCB classification database (exclusive with ifcb_csv)
    start, end : str, optional
        Query window for ifcb_db
    verbosity : int, optional
        Print progress if > 0

    Returns
    -------
    pandas.DataFrame
        Long IFCB table (datetime, taxon, biovolume)
    """
    if (ifcb_csv is None) == (ifcb_db is None):
        raise ValueError('Provide exactly one IFCB source: ifcb_csv or ifcb_db')
    if ifcb_db is not None and (start is None or end is None):
        raise ValueError('start and end are required when querying the IFCB database')

    if ifcb_csv is not None:
        ifcb = io.read_ifcb_csv(ifcb_csv)
    else:
        ifcb = io.query_ifcb_database(ifcb_db, start, end)
    if verbosity > 0:
        print(f'IFCB records loaded: {len(ifcb)}')
    return ifcb


def build_series(ifcb_records, nbpts_records=None, satellite_records=None, taxa=None, daily_hour=10):
    """
    Assemble the (time, taxon) series for every available resolution.

    The daily series emulates one discrete sample per day by taking the hourly
    IFCB sample closest to `daily_hour`.

    Parameters
    ----------
    ifcb_records : pandas.DataFrame
        Long IFCB table (datetime, taxon, biovolume)
    nbpts_records : pandas.DataFrame, optional
        Long NBPTS microscopy table
    satellite_records : pandas.DataFrame, optional
        Output of satellite_series
    taxa : list of str, optional
        Restrict to these taxa (the 'total' series is always kept)
    daily_hour : float, optional
        Target hour of the emulated daily sample

    Returns
    -------
    dict
        {resolution: xarray.DataArray}
    """
    ifcb_records = _filter_taxa(io.add_total(ifcb_records), taxa)
    hourly = io.to_dataarray(ifcb_records)

    series = {
        'hourly': hourly,
        'daily': subsample(hourly, freq='D', hour=daily_hour),
    }

    if nbpts_records is not None and len(nbpts_records) > 0:
        series['weekly'] = io.to_dataarray(_filter_taxa(io.add_total(nbpts_records), taxa))

    if satellite_records is not None and len(satellite_records) > 0:
        series['satellite'] = io.to_dataarray(satellite_records, name='chlor_a')

    return series


def run_analysis(ifcb_csv=None, ifcb_db=None, start=None, end=None, nbpts_csv=None, satellite_dir=None,
                 corrections_csv=None, taxa=None, out_dir='bloomEx_output', figures=True,
                 map_features=True, daily_hour=10, pixel_type='NBay', scheduler='threads', verbosity=0):
    """
    Run the complete analysis and write all outputs.

    Parameters
    ----------
    ifcb_csv : str or Path, optional
        IFCB records exported to CSV
    ifcb_db : str, optional
        SQLAlchemy URL of the IFCB classification database (exclusive with ifcb_csv)
    start, end : str, optional
        Query window for ifcb_db
    nbpts_csv : str or Path, optional
        Weekly NBPTS microscopy records
    satellite_dir : str or Path, optional
        Directory of OLCI L2 swath files
    corrections_csv : str or Path, optional
        Manual bloom date corrections
    taxa : list of str, optional
        Restrict to these taxa
    out_dir : str or Path, optional
        Output directory for tables (and figures/ subdirectory)
    figures : bool, optional
        Write TIFF figures
    map_features : bool, optional
        Draw coastlines on the satellite pixel map
    daily_hour : float, optional
        Target hour of the emulated daily sample
    pixel_type : str, optional
        Satellite pixels used for the series ('NBay' or 'GSO')
    scheduler : str, optional
        Dask scheduler for swath processing
    verbosity : int, optional
        Print progress if > 0

    Returns
    -------
    dict
        datasets, blooms, matches, false_detections, summary, coverage,
        satellite_metadata, satellite_pixels, files
    """
    # ============================
    # Load
    # ============================

    ifcb = load_ifcb(ifcb_csv, ifcb_db, start, end, verbosity=verbosity)

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    files = {}

    nbpts = io.read_nbpts_csv(nbpts_csv) if nbpts_csv is not None else None

    sat_metadata, sat_pixels, sat_records = None, None, None
    if satellite_dir is not None:
        sat_metadata, sat_pixels = process_swaths(satellite_dir, scheduler=scheduler, verbosity=verbosity)
        files['satellite_metadata'] = io.write_table(sat_metadata, out_dir / SATELLITE_METADATA_FILE)
        files['satellite_pixels'] = io.write_table(sat_pixels, out_dir / SATELLITE_PIXELS_FILE)
        if len(sat_pixels) > 0:
            sat_records = satellite_series(sat_pixels, sat_metadata, pixel_type=pixel_type)

    series = build_series(ifcb, nbpts, sat_records, taxa=taxa, daily_hour=daily_hour)

    # ============================
    # Detect
    # ============================

    datasets = {}
    tables = []
    for resolution in RESOLUTIONS:
        if resolution not in series:
            continue
        datasets[resolution] = detect_blooms(series[resolution], resolution, verbosity=verbosity)
        table = bloom_table(datasets[resolution])
        if not table.empty:
            tables.append(table)

    blooms = pd.concat(tables, ignore_index=True) if tables else pd.DataFrame(columns=BLOOM_COLUMNS)
    if corrections_csv is not None:
        blooms = apply_corrections(blooms, io.read_corrections_csv(corrections_csv), verbosity=verbosity)
    files['blooms'] = io.write_table(blooms, out_dir / 'blooms.csv')

    # ============================
    # Accuracy
    # ============================

    reference = blooms[blooms['resolution'] == REFERENCE_RESOLUTION]
    candidate = blooms[blooms['resolution'] != REFERENCE_RESOLUTION]
    candidate_datasets = {res: ds for res, ds in datasets.items() if res != REFERENCE_RESOLUTION}

    matches = match_blooms(reference, candidate, datasets=candidate_datasets)
    false_dets = false_detections(reference, candidate)
    summary = accuracy_summary(matches, candidate)
    coverage = pd.concat([sampling_coverage(ds) for ds in datasets.values()], ignore_index=True)

    files['matches'] = io.write_table(matches, out_dir / 'matches.csv')
    files['false_detections'] = io.write_table(false_dets, out_dir / 'false_detections.csv')
    files['summary'] = io.write_table(summary, out_dir / 'accuracy_summary.csv')
    files['coverage'] = io.write_table(coverage, out_dir / 'coverage.csv')

    if verbosity > 0 and not summary.empty:
        print('Accuracy Summary:')
        for _, row in summary.iterrows():
            print(f"   {row['resolution']}: detected {row['n_detected']}/{row['n_reference']}, "
                  f"false {row['n_false']}")

    # ============================
    # Figures
    # ============================

    if figures:
        files.update(_write_figures(datasets, matches, summary, sat_pixels, out_dir / 'figures',
                                    map_features=map_features, verbosity=verbosity))

    return {
        'datasets': datasets,
        'blooms': blooms,
        'matches': matches,
        'false_detections': false_dets,
        'summary': summary,
        'coverage': coverage,
        'satellite_metadata': sat_metadata,
        'satellite_pixels': sat_pixels,
        'files': files,
    }


def _write_figures(datasets, matches, summary, sat_pixels, fig_dir, map_features=True, verbosity=0):
    written = {}
    for taxon in datasets[REFERENCE_RESOLUTION].taxon.values:
        fig, _ = plot_resolutions(datasets, str(taxon), config=PlotConfig(var_units='Biovolume'))
        written[f'figure_{taxon}'] = save_tiff(fig, fig_dir / f'blooms_{_safe_name(taxon)}.tif')

    if not summary.empty:
        fig, _ = plot_accuracy(matches, summary)
        written['figure_accuracy'] = save_tiff(fig, fig_dir / 'accuracy.tif')

    if sat_pixels is not None and len(sat_pixels) > 0:
        fig, _ = plot_satellite_pixels(sat_pixels, add_features=map_features)
        written['figure_satellite_pixels'] = save_tiff(fig, fig_dir / 'satellite_pixels.tif')

    if verbosity > 0:
        print(f'Figures written: {len(written)} to {fig_dir}')

    return written
