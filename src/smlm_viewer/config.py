# src/smlm_viewer/config.py
"""
Viewer options and their validation.

All checks run before any viewer state exists; failures raise
``InvalidArgumentError`` naming the violated constraint.
"""

from __future__ import annotations
import operator
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import matplotlib
from matplotlib.colors import to_rgb

from .constants import (
    CHANNEL_COLOR_PRESETS,
    DEFAULT_CHANNEL_COLORS,
    MPL_COLORMAP_NAMES,
    RGBColor,
)
from .errors import InvalidArgumentError

CONFIG_DIR_ENV = "SMLM_VIEWER_CONFIG_DIR"


def config_dir() -> Path:
    """Directory for persisted settings (``$SMLM_VIEWER_CONFIG_DIR`` or ``~/.smlm_viewer``)."""
    env = os.environ.get(CONFIG_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".smlm_viewer"


# ------------------------------ Validators ------------------------------------


def validate_ndim(shape: Tuple[int, ...]) -> None:
    if len(shape) < 2:
        raise InvalidArgumentError(f"Data must have at least 2 dimensions; got {len(shape)}D.")


def validate_display_dims(dims, ndim: int) -> Tuple[int, int]:
    try:
        row_dim, col_dim = (operator.index(d) for d in dims)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"display_dims must be a pair of integers; got {dims!r}.") from None
    if not (1 <= row_dim <= ndim and 1 <= col_dim <= ndim):
        raise InvalidArgumentError(f"display_dims {(row_dim, col_dim)} out of range [1, {ndim}].")
    if row_dim == col_dim:
        raise InvalidArgumentError(f"display_dims must be different; got {(row_dim, col_dim)}.")
    return (row_dim, col_dim)


def validate_names(names: Optional[Sequence[str]], expected: int, label: str) -> Optional[Tuple[str, ...]]:
    if names is None:
        return None
    names = tuple(str(n) for n in names)
    if len(names) != expected:
        raise InvalidArgumentError(f"{label} has {len(names)} entries; expected {expected}.")
    return names


def validate_clip(clip) -> Tuple[float, float]:
    try:
        lo, hi = (float(c) for c in clip)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"percentile_clip must be a (lo, hi) pair; got {clip!r}.") from None
    if not 0.0 <= lo < hi <= 1.0:
        raise InvalidArgumentError(f"percentile_clip must satisfy 0 <= lo < hi <= 1; got {(lo, hi)}.")
    return (lo, hi)


def validate_figure_size(size) -> Tuple[int, int]:
    try:
        w, h = (int(s) for s in size)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"max_figure_size must be (width, height); got {size!r}.") from None
    if w <= 0 or h <= 0:
        raise InvalidArgumentError(f"max_figure_size must be positive; got {(w, h)}.")
    return (w, h)


def mpl_colormap_name(name: str) -> str:
    return MPL_COLORMAP_NAMES.get(name, name)


def validate_colormap(name) -> str:
    if not isinstance(name, str) or mpl_colormap_name(name) not in matplotlib.colormaps:
        raise InvalidArgumentError(f"Unknown colormap {name!r}.")
    return name


def resolve_channel_colors(colors, n_channels: int) -> Tuple[RGBColor, ...]:
    """
    Channel colors as RGB triples in [0, 1].

    ``None`` gives cyan/magenta/yellow; a preset name ("cmy", "rgb", "mgc")
    picks that preset; otherwise one matplotlib color spec per channel.
    """
    if colors is None:
        return DEFAULT_CHANNEL_COLORS[:n_channels]
    if isinstance(colors, str):
        if colors not in CHANNEL_COLOR_PRESETS:
            raise InvalidArgumentError(
                f"Unknown color preset {colors!r}; choose from {sorted(CHANNEL_COLOR_PRESETS)}."
            )
        return CHANNEL_COLOR_PRESETS[colors][:n_channels]
    colors = list(colors)
    if len(colors) != n_channels:
        raise InvalidArgumentError(f"channel_colors has {len(colors)} entries; expected {n_channels}.")
    try:
        return tuple(tuple(float(c) for c in to_rgb(color)) for color in colors)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid channel color: {e}") from None


# ------------------------------ Options ---------------------------------------


@dataclass
class ViewerOptions:
    """Options for the single-channel viewer."""

    display_dims: Tuple[int, int] = (1, 2)
    dim_names: Optional[Sequence[str]] = None
    percentile_clip: Tuple[float, float] = (0.0, 1.0)
    colormap: str = "grays"
    max_figure_size: Tuple[int, int] = (800, 700)
    auto_show: bool = True
    title: str = ""

    def validate(self, shape: Tuple[int, ...]) -> "ViewerOptions":
        validate_ndim(shape)
        self.display_dims = validate_display_dims(self.display_dims, len(shape))
        self.dim_names = validate_names(self.dim_names, len(shape), "dim_names")
        self.percentile_clip = validate_clip(self.percentile_clip)
        self.colormap = validate_colormap(self.colormap)
        self.max_figure_size = validate_figure_size(self.max_figure_size)
        return self


@dataclass
class CompositeOptions:
    """Options for the multi-channel composite viewer."""

    channel_colors: Union[None, str, Sequence] = None
    channel_names: Optional[Sequence[str]] = None
    display_dims: Tuple[int, int] = (1, 2)
    dim_names: Optional[Sequence[str]] = None
    percentile_clip: Tuple[float, float] = (0.001, 0.999)
    max_figure_size: Tuple[int, int] = (800, 700)
    auto_show: bool = True
    title: str = ""

    def validate(self, shape: Tuple[int, ...], n_channels: int) -> "CompositeOptions":
        validate_ndim(shape)
        self.display_dims = validate_display_dims(self.display_dims, len(shape))
        self.dim_names = validate_names(self.dim_names, len(shape), "dim_names")
        self.channel_names = validate_names(self.channel_names, n_channels, "channel_names")
        self.channel_colors = resolve_channel_colors(self.channel_colors, n_channels)
        self.percentile_clip = validate_clip(self.percentile_clip)
        self.max_figure_size = validate_figure_size(self.max_figure_size)
        return self
