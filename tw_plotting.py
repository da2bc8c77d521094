from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from tw_windows import WindowSummary


POWER_COLOR = "C0"
HR_COLOR = "tab:red"
GAIN_COLOR = "tab:green"
QDH_COLOR = "0.25"
PLOT_STYLE = "ggplot"


def plot_windows(
    summaries: Sequence[WindowSummary],
    png_path: str,
    title: Optional[str] = None,
) -> bool:
    """Bar chart of per-window power and heart rate, gain and QDH on a twin axis.

    Returns False (and writes nothing) when there is nothing to plot.
    """
    if not summaries:
        logging.warning("No windows to plot; skipping %s", png_path)
        return False

    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for plotting. Install with: pip install matplotlib") from exc

    idx = np.arange(len(summaries), dtype=np.float64)
    power = np.asarray([s.avg_power_w for s in summaries], dtype=np.float64)
    heartrate = np.asarray([s.avg_heartrate_bpm for s in summaries], dtype=np.float64)
    gain = np.asarray([s.elevation_gain_m for s in summaries], dtype=np.float64)
    qdh = np.asarray([s.qdh for s in summaries], dtype=np.float64)
    width = 0.4

    with plt.style.context(PLOT_STYLE):
        fig, ax = plt.subplots(figsize=(12, 7))
        ax.bar(idx - width / 2, power, width=width, color=POWER_COLOR, label="Avg power (W)")
        ax.bar(idx + width / 2, heartrate, width=width, color=HR_COLOR, alpha=0.7, label="Avg HR (bpm)")
        ax.set_xlabel("Window")
        ax.set_ylabel("Power (W) / Heart rate (bpm)")
        ax.set_xticks(idx)
        ax.set_xticklabels([str(s.index + 1) for s in summaries])

        ax2 = ax.twinx()
        ax2.plot(idx, gain, marker="o", linewidth=1.6, color=GAIN_COLOR, label="Gain (m)")
        ax2.plot(idx, qdh, marker="s", linestyle="--", linewidth=1.4, color=QDH_COLOR, label="QDH")
        ax2.set_ylabel("Gain (m) / QDH")
        ax2.grid(False)

        handles, labels = ax.get_legend_handles_labels()
        handles2, labels2 = ax2.get_legend_handles_labels()
        ax.legend(handles + handles2, labels + labels2, loc="upper left", fontsize=9)
        if title:
            ax.set_title(title)

        fig.tight_layout()
        fig.savefig(png_path, dpi=120)
    plt.close(fig)
    logging.info("Wrote plot: %s", png_path)
    return True
