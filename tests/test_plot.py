"""Tests for bloomEx.plotX: bloom panels, accuracy figure, pixel map and TIFF export."""

import matplotlib.pyplot as plt
import pytest
import xarray as xr
from PIL import Image

import bloomEx  # noqa: F401  (registers the plotX accessor)
from bloomEx.accuracy import match_blooms, accuracy_summary
from bloomEx.detect import detect_blooms, bloom_table
from bloomEx.plotX import PlotConfig, save_tiff, plot_resolutions, plot_accuracy, plot_satellite_pixels
from bloomEx.resample import subsample
from bloomEx.satellite import process_swaths


@pytest.fixture
def datasets(hourly_da):
    return {
        'hourly': detect_blooms(hourly_da, 'hourly'),
        'daily': detect_blooms(subsample(hourly_da, freq='D', hour=10), 'daily'),
    }


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


class TestPlotConfig:
    def test_defaults(self):
        config = PlotConfig()
        assert set(config.colors) == {'hourly', 'daily', 'satellite', 'weekly'}
        assert config.dimensions == {'time': 'time', 'taxon': 'taxon'}


class TestTimeseries:
    def test_accessor(self, datasets):
        fig, ax = datasets['hourly'].plotX.timeseries('Skeletonema')
        assert ax.get_title() == 'Skeletonema (hourly)'
        labels = [line.get_label() for line in ax.get_lines()]
        assert 'observed' in labels
        assert 'smoothed' in labels
        assert 'threshold' in labels

    def test_unsmoothed_series_has_no_smoothed_line(self, datasets):
        _, ax = datasets['daily'].plotX.timeseries('Skeletonema', PlotConfig(show_threshold=False))
        labels = [line.get_label() for line in ax.get_lines()]
        assert 'smoothed' not in labels
        assert 'threshold' not in labels

    def test_year_selection(self, datasets):
        _, ax = datasets['hourly'].plotX.timeseries('Dinophysis', year=2021)
        assert len(ax.get_lines()) > 0

    def test_unknown_taxon(self, datasets):
        with pytest.raises(ValueError, match='not found'):
            datasets['hourly'].plotX.timeseries('Alexandrium')

    def test_accessor_requires_detection_output(self):
        ds = xr.Dataset({'value': xr.DataArray([1.0], dims=['time'])})
        with pytest.raises(ValueError, match='detect_blooms'):
            ds.plotX.timeseries('A')

    def test_resolution_panels(self, datasets):
        fig, axes = plot_resolutions(datasets, 'Skeletonema', year=2021)
        assert len(axes) == 2
        assert axes[0].get_title() == 'IFCB hourly'

    def test_resolution_panels_missing_taxon(self, datasets):
        with pytest.raises(ValueError, match='not present'):
            plot_resolutions(datasets, 'Alexandrium')


class TestSummaryFigures:
    def test_accuracy(self, datasets):
        blooms = {res: bloom_table(ds) for res, ds in datasets.items()}
        matches = match_blooms(blooms['hourly'], blooms['daily'], datasets={'daily': datasets['daily']})
        summary = accuracy_summary(matches, blooms['daily'])
        fig, (ax_rate, ax_off) = plot_accuracy(matches, summary)
        assert ax_rate.get_ylabel() == 'Detection rate'

    def test_satellite_map(self, swath_dir):
        _, selected = process_swaths(swath_dir, scheduler='synchronous')
        fig, ax = plot_satellite_pixels(selected, add_features=False)
        assert ax.get_title() == 'OLCI pixels'

    def test_satellite_map_empty(self):
        import pandas as pd
        with pytest.raises(ValueError, match='No satellite pixels'):
            plot_satellite_pixels(pd.DataFrame(columns=['chl', 'lat', 'lon', 'type']))


class TestSaveTiff:
    def test_lzw_tiff(self, tmp_path, datasets):
        fig, _ = datasets['hourly'].plotX.timeseries('Skeletonema')
        path = save_tiff(fig, tmp_path / 'figs' / 'skeletonema.tif', dpi=72)
        assert path.exists()
        with Image.open(path) as image:
            assert image.format == 'TIFF'
            assert image.info['compression'] == 'tiff_lzw'

    def test_wrong_extension(self, tmp_path):
        fig = plt.figure()
        with pytest.raises(ValueError, match='.tif'):
            save_tiff(fig, tmp_path / 'figure.png')
