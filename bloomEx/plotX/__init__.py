from .base import PlotterBase, PlotConfig, save_tiff
from .timeseries import TimeseriesPlotter, plot_resolutions
from .summary import plot_accuracy
from .maps import plot_satellite_pixels
import xarray as xr


def register_plotter(xarray_obj):
    """
    Build the plotter for a bloom detection Dataset.
    This function is called automatically by xarray's accessor system.

    Returns:
        TimeseriesPlotter instance for the Dataset
    """
    missing = [var for var in ['value', 'smoothed', 'threshold', 'ID_field'] if var not in xarray_obj]
    if missing:
        raise ValueError(f'plotX expects the output of detect_blooms. Missing variables {missing}')
    return TimeseriesPlotter(xarray_obj)


# Register the accessor
xr.register_dataset_accessor('plotX')(register_plotter)
