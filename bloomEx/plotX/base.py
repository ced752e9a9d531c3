import io
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Dict, Tuple

import matplotlib.pyplot as plt
from PIL import Image


@dataclass
class PlotConfig:
    """Configuration class for plot parameters"""
    title: Optional[str] = None
    var_units: str = ''
    figsize: Tuple[float, float] = (8, 3)
    colors: Dict[str, str] = None
    shade_alpha: float = 0.3
    date_format: str = '%b %Y'
    show_threshold: bool = True
    dimensions: Dict[str, str] = None

    def __post_init__(self):
        if self.colors is None:
            self.colors = {
                'hourly': 'black',
                'daily': 'tab:blue',
                'satellite': 'tab:green',
                'weekly': 'tab:red',
            }
        if self.dimensions is None:
            self.dimensions = {'time': 'time', 'taxon': 'taxon'}


class PlotterBase:
    def __init__(self, xarray_obj):
        self.ds = xarray_obj

    def _setup_axes(self, ax=None, figsize=(8, 3)):
        """Create or use existing axes"""
        if ax is None:
            fig, ax = plt.subplots(figsize=figsize)
        else:
            fig = ax.get_figure()
        return fig, ax

    def setup_plot_params(self):
        """Set up common plotting parameters"""
        plt.rc('text', usetex=False)
        plt.rc('font', family='serif')

    def color_for(self, config: PlotConfig):
        return config.colors.get(self.ds.attrs.get('resolution'), 'black')


def save_tiff(fig, path, dpi=300, close=True):
    """
    Save a figure as an LZW-compressed TIFF.

    Matplotlib renders to an in-memory PNG, which Pillow re-encodes so that the
    TIFF carries LZW compression and the requested resolution tag.

    Parameters
    ----------
    fig : matplotlib.figure.Figure
    path : str or Path
        Output file, '.tif' or '.tiff'
    dpi : int, optional
        Rendering resolution
    close : bool, optional
        Close the figure afterwards

    Returns
    -------
    pathlib.Path
    """
    path = Path(path)
    if path.suffix.lower() not in ('.tif', '.tiff'):
        raise ValueError(f'TIFF output path must end in .tif or .tiff. Got {path.name}')
    path.parent.mkdir(parents=True, exist_ok=True)

    buffer = io.BytesIO()
    fig.savefig(buffer, format='png', dpi=dpi, bbox_inches='tight')
    if close:
        plt.close(fig)
    buffer.seek(0)

    with Image.open(buffer) as image:
        image.convert('RGB').save(str(path), format='TIFF', compression='tiff_lzw', dpi=(dpi, dpi))

    return path
