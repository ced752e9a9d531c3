import numpy as np
import matplotlib.pyplot as plt

from .base import PlotConfig
from ..config import RESOLUTIONS


OFFSETS = [('start_offset_days', 'start'), ('peak_offset_days', 'peak'), ('end_offset_days', 'end')]


def plot_accuracy(matches, summary, config=None):
    """
    Two-panel accuracy figure: detection rate per resolution and the spread of
    start / peak / end timing offsets relative to the hourly reference.

    Parameters
    ----------
    matches : pandas.DataFrame
        Output of match_blooms
    summary : pandas.DataFrame
        Output of accuracy_summary
    config : PlotConfig, optional

    Returns
    -------
    fig, axes
    """
    config = config or PlotConfig(figsize=(10, 4))
    if summary.empty:
        raise ValueError('Accuracy summary is empty. Nothing to plot')

    plt.rc('text', usetex=False)
    plt.rc('font', family='serif')

    resolutions = list(summary['resolution'])
    colors = [config.colors.get(res, 'grey') for res in resolutions]
    labels = [RESOLUTIONS[res].label if res in RESOLUTIONS else res for res in resolutions]

    fig, (ax_rate, ax_off) = plt.subplots(1, 2, figsize=config.figsize)

    # Detection rate
    x = np.arange(len(resolutions))
    ax_rate.bar(x, summary['detection_rate'].fillna(0).values, color=colors)
    for xi, (n_det, n_ref) in enumerate(zip(summary['n_detected'], summary['n_reference'])):
        ax_rate.text(xi, 1.02, f'{n_det}/{n_ref}', ha='center', va='bottom', fontsize=8)
    ax_rate.set_xticks(x)
    ax_rate.set_xticklabels(labels, rotation=20, ha='right')
    ax_rate.set_ylim(0, 1.15)
    ax_rate.set_ylabel('Detection rate')

    # Timing offsets, grouped by resolution
    width = 0.25
    for k, (col, _) in enumerate(OFFSETS):
        for xi, res in enumerate(resolutions):
            offsets = matches.loc[(matches['resolution'] == res) & matches['detected'], col]
            offsets = offsets.astype(float).values
            offsets = offsets[np.isfinite(offsets)]
            if offsets.size == 0:
                continue
            box = ax_off.boxplot(offsets, positions=[xi + (k - 1) * width], widths=width * 0.8,
                                 patch_artist=True, showfliers=True)
            for patch in box['boxes']:
                patch.set_facecolor(colors[xi])
                patch.set_alpha(0.4 + 0.25 * k)
    ax_off.axhline(0, color='grey', lw=0.8, ls='--')
    ax_off.set_xticks(x)
    ax_off.set_xticklabels(labels, rotation=20, ha='right')
    ax_off.set_xlim(-0.6, len(resolutions) - 0.4)
    ax_off.set_ylabel('Offset from hourly (days)')
    ax_off.set_title('start / peak / end', size=10)

    if config.title:
        fig.suptitle(config.title, size=12)
    fig.tight_layout()

    return fig, (ax_rate, ax_off)
