# src/smlm_viewer/utils.py
"""
Utility functions for smlm_viewer.

Data summaries for viewer input and snapshot export of the current view.
"""

from typing import Any, Dict

import numpy as np
import matplotlib.pyplot as plt

from .core import CompositeInput, as_viewer_input, compute_colorrange


def get_data_info(data: Any) -> Dict[str, Any]:
    """
    Summarize viewer input.

    Parameters
    ----------
    data : ndarray or sequence of ndarray
        A single array or 2-3 channel arrays, as accepted by ``open_viewer``.

    Returns
    -------
    dict
        Dictionary containing:
        - mode: "single" or "composite"
        - shape: Data shape as tuple
        - dimensions: Number of dimensions
        - dtype: Element type (per channel for composite input)
        - channels: Number of channels
        - ranges: Finite (min, max) per channel, sampled for large arrays
        - nbytes: Total bytes referenced

    Raises
    ------
    InvalidArgumentError
        If ``data`` is not valid viewer input.
    """
    source = as_viewer_input(data)
    arrays = source.arrays
    return {
        "mode": "composite" if isinstance(source, CompositeInput) else "single",
        "shape": tuple(source.shape),
        "dimensions": source.ndim,
        "dtype": [str(a.dtype) for a in arrays] if len(arrays) > 1 else str(arrays[0].dtype),
        "channels": source.channel_count,
        "ranges": [compute_colorrange(a) for a in arrays],
        "nbytes": int(sum(a.nbytes for a in arrays)),
    }


def print_data_info(data: Any) -> None:
    info = get_data_info(data)
    print(f"Mode: {info['mode']}")
    print(f"Shape: {info['shape']} ({info['dimensions']}D)")
    print(f"Data type: {info['dtype']}")
    for i, (lo, hi) in enumerate(info["ranges"], start=1):
        label = f"Channel {i} range" if info["channels"] > 1 else "Value range"
        print(f"{label}: [{lo:.6g}, {hi:.6g}]")
    print(f"Size: {info['nbytes'] / 1e6:.2f} MB")


def save_view_as_image(viewer, filename: str, **kwargs) -> None:
    """
    Save the current slice of ``viewer`` as an image file.

    Single-channel viewers are written through their colormap and current
    colorrange; composite viewers write the blended RGB image. The whole
    slice is saved regardless of zoom.

    Parameters
    ----------
    viewer : Viewer or CompositeViewer
    filename : str
        Output filename; the format follows the extension.
    **kwargs
        Additional keyword arguments passed to ``matplotlib.pyplot.imsave``
    """
    image = np.clip(viewer.display_image(), 0.0, 1.0)
    plt.imsave(filename, image, **kwargs)
    print(f"Saved current view to {filename}")
