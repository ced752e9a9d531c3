import numpy as np
import matplotlib.pyplot as plt
import cartopy.crs as ccrs
import cartopy.feature as cfeature

from .base import PlotConfig
from ..config import GSO_STATION


def plot_satellite_pixels(selected, station=GSO_STATION, config=None, add_features=True, ax=None,
                          margin=0.03):
    """
    Map of the extracted station (GSO) and block (NBay) pixels, coloured by chlorophyll.

    Parameters
    ----------
    selected : pandas.DataFrame
        Extracted pixels from process_swaths
    station : dict, optional
        {'lat': ..., 'lon': ...} marked on the map
    config : PlotConfig, optional
    add_features : bool, optional
        Draw land & coastline (requires Natural Earth data)
    ax : cartopy GeoAxes, optional
    margin : float, optional
        Padding (degrees) around the pixels

    Returns
    -------
    fig, ax
    """
    config = config or PlotConfig(figsize=(5, 5), var_units='Chl a (mg m$^{-3}$)')
    if len(selected) == 0:
        raise ValueError('No satellite pixels to plot')

    plt.rc('text', usetex=False)
    plt.rc('font', family='serif')

    if ax is None:
        fig = plt.figure(figsize=config.figsize)
        ax = plt.axes(projection=ccrs.PlateCarree())
    else:
        fig = ax.get_figure()

    chl = selected['chl'].astype(float)
    vmin, vmax = (np.nanpercentile(chl, [2, 98]) if np.isfinite(chl).any() else (0, 1))

    im = None
    for pixel_type, marker, size in [('NBay', 's', 40), ('GSO', '*', 120)]:
        pixels = selected[selected['type'] == pixel_type]
        if pixels.empty:
            continue
        im = ax.scatter(pixels['lon'], pixels['lat'], c=pixels['chl'].astype(float), s=size, marker=marker,
                        cmap='viridis', vmin=vmin, vmax=vmax, edgecolors='k', linewidths=0.3,
                        transform=ccrs.PlateCarree(), zorder=5, label=pixel_type)

    ax.plot(station['lon'], station['lat'], 'rx', ms=8, transform=ccrs.PlateCarree(), zorder=6)

    lon = np.append(selected['lon'].astype(float).values, station['lon'])
    lat = np.append(selected['lat'].astype(float).values, station['lat'])
    ax.set_extent([np.nanmin(lon) - margin, np.nanmax(lon) + margin,
                   np.nanmin(lat) - margin, np.nanmax(lat) + margin], crs=ccrs.PlateCarree())

    if add_features:
        ax.add_feature(cfeature.LAND.with_scale('10m'), facecolor='darkgrey', zorder=2)
        ax.add_feature(cfeature.COASTLINE.with_scale('10m'), linewidth=0.5, zorder=3)
    ax.gridlines(crs=ccrs.PlateCarree(), draw_labels=False,
                 linewidth=1, color='gray', alpha=0.5, linestyle='--', zorder=4)

    if im is not None:
        cb = plt.colorbar(im, shrink=0.6, ax=ax)
        if config.var_units:
            cb.ax.set_ylabel(config.var_units, fontsize=10)
        cb.ax.tick_params(labelsize=10)

    ax.legend(loc='lower right', fontsize=8)
    ax.set_title(config.title or 'OLCI pixels', size=12)

    return fig, ax
