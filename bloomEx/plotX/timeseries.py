import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.dates as mdates

from .base import PlotterBase, PlotConfig
from ..config import get_resolution


class TimeseriesPlotter(PlotterBase):
    """Bloom detection plots for the output of detect_blooms."""

    def _select(self, taxon, year, dimensions):
        timedim, taxondim = dimensions['time'], dimensions['taxon']
        if taxon not in self.ds[taxondim].values:
            raise ValueError(f"Taxon '{taxon}' not found. Available: {list(self.ds[taxondim].values)}")
        sel = self.ds.sel({taxondim: taxon})
        if year is not None:
            sel = sel.sel({timedim: str(year)})
        return sel

    def timeseries(self, taxon, config=None, ax=None, year=None):
        """
        Plot one taxon: observations, smoothed series, threshold, bloom spans & peaks.

        Parameters
        ----------
        taxon : str
        config : PlotConfig, optional
        ax : matplotlib.axes.Axes, optional
            Draw into existing axes
        year : int, optional
            Restrict to a single year

        Returns
        -------
        fig, ax
        """
        config = config or PlotConfig()
        self.setup_plot_params()
        timedim = config.dimensions['time']

        sel = self._select(taxon, year, config.dimensions)
        fig, ax = self._setup_axes(ax, config.figsize)
        color = self.color_for(config)

        times = pd.DatetimeIndex(sel[timedim].values)
        value = sel.value.values
        smoothed = sel.smoothed.values
        ids = sel.ID_field.values

        ax.plot(times, value, '.', ms=2, color=color, alpha=0.5, label='observed')
        if self.ds.attrs.get('smooth_window', 'None') != 'None':
            ax.plot(times, smoothed, '-', lw=1, color=color, label='smoothed')

        if config.show_threshold:
            ax.axhline(float(sel.threshold), ls='--', lw=0.8, color='grey', label='threshold')

        # Half a grid step either side so single-cell blooms remain visible
        half_step = pd.Timedelta(0)
        if 'resolution' in self.ds.attrs:
            half_step = get_resolution(self.ds.attrs['resolution']).step / 2

        for bloom_id in np.unique(ids[ids > 0]):
            idx = np.flatnonzero(ids == bloom_id)
            ax.axvspan(times[idx[0]] - half_step, times[idx[-1]] + half_step,
                       color=color, alpha=config.shade_alpha, lw=0)
            peak = idx[np.nanargmax(smoothed[idx])]
            ax.plot(times[peak], smoothed[peak], 'v', ms=5, color=color)

        ax.xaxis.set_major_formatter(mdates.DateFormatter(config.date_format))
        if config.var_units:
            ax.set_ylabel(config.var_units)
        ax.set_title(config.title if config.title else f'{taxon} ({self.ds.attrs.get("resolution", "")})',
                     size=11)

        return fig, ax


def plot_resolutions(datasets, taxon, year=None, config=None):
    """
    Stacked panels comparing bloom detection for one taxon across resolutions.

    Parameters
    ----------
    datasets : dict
        {resolution: detect_blooms output}
    taxon : str
    year : int, optional
    config : PlotConfig, optional

    Returns
    -------
    fig, axes
    """
    config = config or PlotConfig()
    panels = [(res, ds) for res, ds in datasets.items() if taxon in ds[config.dimensions['taxon']].values]
    if not panels:
        raise ValueError(f"Taxon '{taxon}' is not present in any of the datasets")

    width, height = config.figsize
    fig, axes = plt.subplots(len(panels), 1, figsize=(width, height * len(panels)),
                             sharex=True, squeeze=False)
    axes = axes[:, 0]

    for ax, (res, ds) in zip(axes, panels):
        panel_config = PlotConfig(
            title=get_resolution(res).label, var_units=config.var_units, figsize=config.figsize,
            colors=config.colors, shade_alpha=config.shade_alpha, date_format=config.date_format,
            show_threshold=config.show_threshold, dimensions=config.dimensions,
        )
        TimeseriesPlotter(ds).timeseries(taxon, panel_config, ax=ax, year=year)

    title = config.title or (f'{taxon} {year}' if year is not None else taxon)
    fig.suptitle(title, size=12)
    fig.tight_layout()

    return fig, axes
