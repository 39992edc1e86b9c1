"""
Two-dimensional projections of flowpipes.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from setreach.sets.zonotope import as_zonotope


def plot_set(S, dims: Sequence[int] = (0, 1), ax=None, **kwargs):
    """Fill the projection of a set onto ``dims``; returns the patch."""
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib is required for plotting")

    if ax is None:
        ax = plt.gca()
    vertices = as_zonotope(S).project(list(dims)).polygon()
    kwargs.setdefault("alpha", 0.4)
    patch = ax.fill(vertices[0, :], vertices[1, :], **kwargs)
    return patch[0]


def plot_flowpipe(
    flowpipe,
    dims: Sequence[int] = (0, 1),
    ax=None,
    trajectories: Optional[List] = None,
    color: str = "tab:cyan",
    state_names: Optional[List[str]] = None,
):
    """
    Plot time-interval sets of a flowpipe and optional simulated trajectories.

    Parameters:
        flowpipe     : Flowpipe to draw
        dims         : pair of state indices to project onto
        ax           : matplotlib Axes object to draw on (default: new figure)
        trajectories : list of Trajectory drawn on top of the sets
        color        : face color of the sets
        state_names  : axis labels
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib is required for plotting")

    if ax is None:
        _, ax = plt.subplots(figsize=(7, 5))
    dims = list(dims)

    for i, S in enumerate(flowpipe.time_interval):
        plot_set(S, dims, ax, color=color, edgecolor="none", label="Reachable set" if i == 0 else None)
    plot_set(flowpipe.initial_set, dims, ax, color="0.3", alpha=0.6, label="Initial set")

    for i, tr in enumerate(trajectories or []):
        x = np.asarray(tr.x)
        ax.plot(x[:, dims[0]], x[:, dims[1]], "k-", linewidth=0.8, label="Simulation" if i == 0 else None)

    names = state_names or [f"x{dims[0]}", f"x{dims[1]}"]
    ax.set_xlabel(names[0])
    ax.set_ylabel(names[1])
    ax.grid(True, linestyle=":")

    # Avoid duplicate legends
    handles, labels = ax.get_legend_handles_labels()
    if labels:
        ax.legend(handles, labels, loc="best")
    return ax
