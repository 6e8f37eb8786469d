from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from .result import ReplayResult


def plot_dashboard(
    result: ReplayResult,
    save_path: Path | str | None = None,
    show: bool = True,
) -> None:
    t0 = result.times[0] if len(result.times) else 0.0
    t = result.times - t0
    tracked = ~result.lost

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    fig.suptitle("CouchVision Odometry Replay", fontsize=14, fontweight="bold")

    ax = axes[0, 0]
    sc = ax.scatter(
        result.positions[tracked, 0], result.positions[tracked, 1],
        c=t[tracked], cmap="viridis", s=2, label="Odometry",
    )
    for rt in result.reset_times:
        idx = int(np.searchsorted(result.times, rt))
        prev = result.positions[:idx][tracked[:idx]]
        if len(prev):
            ax.scatter(prev[-1, 0], prev[-1, 1], c="red", s=40, marker="x", zorder=5)
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.set_title("2D Path (x = auto reset)")
    ax.legend(loc="upper left")
    ax.set_aspect("equal")
    plt.colorbar(sc, ax=ax, label="Time (s)")

    ax = axes[0, 1]
    ax.plot(t, result.inliers, linewidth=0.8, label="Inliers")
    ax.scatter(t[result.lost], np.zeros(int(result.lost.sum())), c="red", s=10, marker="|", label="Lost")
    for rt in result.reset_times:
        ax.axvline(rt - t0, color="red", linewidth=0.5, linestyle="--")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Inliers")
    ax.set_title("Tracking Quality")
    ax.legend()

    ax = axes[1, 0]
    sigma = np.sqrt(np.clip(result.variances[tracked], 0, None))
    ax.plot(t[tracked], sigma, linewidth=0.8)
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Std dev (m)")
    ax.set_title("Odometry Uncertainty (1σ)")
    if len(sigma) and np.any(sigma > 0):
        ax.set_yscale("log")

    ax = axes[1, 1]
    ax.plot(t, result.processing_times * 1000.0, linewidth=0.8)
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Update time (ms)")
    ax.set_title("Engine Update Time")

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150)

    if show:
        plt.show()
    else:
        plt.close(fig)
