"""
bloomEx: Phytoplankton Bloom Detection across Sampling Resolutions
==================================================================

A Python package for detecting phytoplankton blooms in Narragansett Bay from
hourly IFCB imaging, emulated daily sampling, OLCI satellite chlorophyll and
weekly NBPTS microscopy, and for scoring each resolution against the hourly
record.

Core Functionality
-----------------
- detect_blooms: Threshold, gap filling & bloom labelling for one resolution
- bloom_table: Start, end, duration & peak of each bloom
- match_blooms / accuracy_summary: Detection & timing accuracy vs the hourly reference
- process_swaths: Extract station pixels from OLCI L2 swaths
- run_analysis: The complete pipeline, from raw records to tables & TIFF figures

Example
-------
>>> import bloomEx
>>> records = bloomEx.read_ifcb_csv('ifcb_biovolume.csv')
>>> hourly = bloomEx.to_dataarray(bloomEx.add_total(records))
>>> blooms_ds = bloomEx.detect_blooms(hourly, 'hourly', verbosity=1)
>>> blooms = bloomEx.bloom_table(blooms_ds)
>>> fig, ax = blooms_ds.plotX.timeseries('total')
"""

# Import core functionality
from .config import (
    ResolutionConfig,
    RESOLUTIONS,
    get_resolution,
)

from .io import (
    read_ifcb_csv,
    query_ifcb_database,
    read_nbpts_csv,
    read_corrections_csv,
    write_table,
    add_total,
    to_dataarray,
    from_dataarray,
)

from .resample import (
    to_grid,
    subsample,
    smooth,
)

from .detect import (
    compute_threshold,
    fill_time_gaps,
    label_blooms,
    filter_short_blooms,
    detect_blooms,
    bloom_table,
    apply_corrections,
)

from .accuracy import (
    match_blooms,
    false_detections,
    accuracy_summary,
    sampling_coverage,
)

from .satellite import (
    list_swaths,
    process_swath,
    process_swaths,
    satellite_series,
)

from .pipeline import run_analysis

# Import plotting utilities
from .plotX import (
    PlotConfig,
    save_tiff,
    plot_resolutions,
    plot_accuracy,
    plot_satellite_pixels,
)

# Convenience variables
__all__ = [
    # Configuration
    'ResolutionConfig',
    'RESOLUTIONS',
    'get_resolution',

    # Input / output
    'read_ifcb_csv',
    'query_ifcb_database',
    'read_nbpts_csv',
    'read_corrections_csv',
    'write_table',
    'add_total',
    'to_dataarray',
    'from_dataarray',

    # Resampling
    'to_grid',
    'subsample',
    'smooth',

    # Detection
    'compute_threshold',
    'fill_time_gaps',
    'label_blooms',
    'filter_short_blooms',
    'detect_blooms',
    'bloom_table',
    'apply_corrections',

    # Accuracy
    'match_blooms',
    'false_detections',
    'accuracy_summary',
    'sampling_coverage',

    # Satellite
    'list_swaths',
    'process_swath',
    'process_swaths',
    'satellite_series',

    # Pipeline
    'run_analysis',

    # Visualization
    'PlotConfig',
    'save_tiff',
    'plot_resolutions',
    'plot_accuracy',
    'plot_satellite_pixels',
]

# Version information
from importlib.metadata import version, PackageNotFoundError
try:
    __version__ = version("bloomEx")
except PackageNotFoundError:
    # Package is not installed
    try:
        from setuptools_scm import get_version
        __version__ = get_version(root="..", relative_to=__file__)
    except (ImportError, LookupError):
        __version__ = "unknown"
