"""
bloomEx-Config: Fixed constants for the bloom detection analysis.

Each sampling resolution carries its own gap-filling window, bloom-length
cutoff and smoothing window. These are the values used for the paper and are
not meant to be tuned per dataset.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import pandas as pd
from pandas.tseries.frequencies import to_offset


# ============================
# Sampling Resolutions
# ============================

def freq_to_timedelta(freq):
    """
    Length of one period of a grid frequency such as 'h', 'D' or '6h'.

    Measured by stepping forwards from a Monday, since calendar offsets
    ('D' in recent pandas, 'W-MON') do not convert to a Timedelta directly.
    """
    origin = pd.Timestamp('2000-01-03')
    return (origin + to_offset(freq)) - origin


@dataclass(frozen=True)
class ResolutionConfig:
    """Detection parameters for a single sampling resolution"""
    name: str
    label: str
    freq: str
    max_gap: pd.Timedelta
    min_duration: pd.Timedelta
    smooth_window: Optional[pd.Timedelta] = None
    threshold_factor: float = 1.05

    @property
    def step(self):
        """Grid spacing as a Timedelta."""
        return freq_to_timedelta(self.freq)

    @property
    def max_gap_steps(self):
        """Longest run of missing grid cells that may be bridged."""
        # max_gap spans bracketing observations, so the hole is one step shorter
        return max(int(self.max_gap // self.step) - 1, 0)

    def as_attrs(self):
        return {
            'resolution': self.name,
            'freq': self.freq,
            'max_gap': str(self.max_gap),
            'min_duration': str(self.min_duration),
            'smooth_window': str(self.smooth_window) if self.smooth_window is not None else 'None',
            'threshold_factor': self.threshold_factor,
        }


RESOLUTIONS: Dict[str, ResolutionConfig] = {
    'hourly': ResolutionConfig(
        name='hourly', label='IFCB hourly', freq='h',
        max_gap=pd.Timedelta(hours=12),
        min_duration=pd.Timedelta(hours=24),
        smooth_window=pd.Timedelta(hours=24),
    ),
    'daily': ResolutionConfig(
        name='daily', label='IFCB daily', freq='D',
        max_gap=pd.Timedelta(hours=73),
        min_duration=pd.Timedelta(days=2),
    ),
    'satellite': ResolutionConfig(
        name='satellite', label='OLCI chlorophyll', freq='D',
        max_gap=pd.Timedelta(hours=73),
        min_duration=pd.Timedelta(days=2),
    ),
    'weekly': ResolutionConfig(
        name='weekly', label='NBPTS microscopy', freq='D',
        max_gap=pd.Timedelta(days=9),
        min_duration=pd.Timedelta(0),
    ),
}

REFERENCE_RESOLUTION = 'hourly'


def get_resolution(resolution):
    """
    Look up the detection parameters for a resolution.

    Parameters
    ----------
    resolution : str or ResolutionConfig
        Resolution name (e.g. 'hourly') or an existing config

    Returns
    -------
    ResolutionConfig
    """
    if isinstance(resolution, ResolutionConfig):
        return resolution
    if resolution not in RESOLUTIONS:
        raise ValueError(f"Unknown resolution '{resolution}'. Must be one of {list(RESOLUTIONS.keys())}.")
    return RESOLUTIONS[resolution]


# ============================
# Site & Satellite Constants
# ============================

# Graduate School of Oceanography dock, Narragansett Bay
GSO_STATION = {'lat': 41.492235, 'lon': -71.418863}

# Maximum distance (degrees) for the closest pixel to count as covering the station
STATION_TOLERANCE = 0.005

# OLCI l2_flags values that mark land pixels
OLCI_LAND_FLAGS = (1073741826, 1073742082, 1073742338)

# Block of pixels east of the station pixel: lines -1..+1, pixels +1..+4
NBAY_LINE_OFFSETS = (-1, 0, 1)
NBAY_PIXEL_OFFSETS = (1, 2, 3, 4)

LOCAL_TIMEZONE = 'America/New_York'

# Taxon label for whole-community series (summed IFCB biovolume, satellite chlorophyll)
TOTAL_TAXON = 'total'
