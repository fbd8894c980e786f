# src/smlm_viewer/core.py
"""
UI-agnostic core shared by the single-channel and composite viewers.

- Colorrange estimation (sampled, no full copy) + per-clip global cache
- Slice extraction from N-D arrays into renderer-oriented 2D buffers
- Intensity transforms, normalization and additive channel blending
- Viewer input variant: SingleInput | CompositeInput
- Status bar / label formatting

Display buffers use the renderer's image convention: axis 0 is x (column),
axis 1 is y (row counted from the bottom), i.e.

    out[x - 1, y - 1] == array[..., row = nrows - y + 1, col = x, ...]

so row 1 of the data is drawn at the top of the image.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from .constants import (
    MAX_CHANNELS,
    MAX_SAMPLES,
    MIN_CHANNELS,
    SLIDER_ROW_HEIGHT,
    STATUS_HEIGHT,
)
from .errors import InvalidArgumentError

ColorRange = Tuple[float, float]
FULL_RANGE: ColorRange = (0.0, 1.0)


class Transform(str, Enum):
    LINEAR = "linear"
    LOG = "log"

    def __str__(self) -> str:
        return self.value


class StretchMode(str, Enum):
    """Source of the colorrange statistics: whole dataset or current slice."""

    GLOBAL = "global"
    PER_SLICE = "slice"

    def __str__(self) -> str:
        return self.value


STRETCH_MODES: Tuple[StretchMode, ...] = (StretchMode.GLOBAL, StretchMode.PER_SLICE)


class Mapping(NamedTuple):
    name: str
    clip: Tuple[float, float]
    transform: Transform


def build_mappings(clip: Tuple[float, float]) -> Tuple[Mapping, ...]:
    """Mapping cycle for a viewer; the first two use the viewer's own clip."""
    clip = (float(clip[0]), float(clip[1]))
    return (
        Mapping("linear", clip, Transform.LINEAR),
        Mapping("log", clip, Transform.LOG),
        Mapping("p1_99", (0.01, 0.99), Transform.LINEAR),
        Mapping("p5_95", (0.05, 0.95), Transform.LINEAR),
    )


# ------------------------------ Colorrange ------------------------------------


def _valid_range(lo: float, hi: float) -> ColorRange:
    lo, hi = float(lo), float(hi)
    if lo >= hi:
        hi = lo + 1.0
    return lo, hi


def compute_colorrange(
    data: np.ndarray,
    clip: Tuple[float, float] = FULL_RANGE,
    max_samples: int = MAX_SAMPLES,
) -> ColorRange:
    """
    Estimate a display range from the finite values of ``data``.

    Arrays with at most ``max_samples`` elements are scanned in place. Larger
    arrays are sampled with the deterministic stride ``count // max_samples``
    (every stride-th element through the end of the array, so between
    ``max_samples`` and ``2 * max_samples`` values).

    A clip of (0, 1) gives the finite (min, max); any other clip gives the
    linearly interpolated quantiles. All-non-finite input yields (0, 1) and a
    degenerate range is widened to (lo, lo + 1).
    """
    arr = np.real(np.asarray(data))
    count = arr.size
    if count == 0:
        return FULL_RANGE
    q_lo, q_hi = float(clip[0]), float(clip[1])
    full = (q_lo, q_hi) == FULL_RANGE
    inexact = np.issubdtype(arr.dtype, np.inexact)

    if count <= max_samples:
        if inexact:
            finite = np.isfinite(arr)
            if not finite.any():
                return FULL_RANGE
            if full:
                lo = np.min(arr, where=finite, initial=np.inf)
                hi = np.max(arr, where=finite, initial=-np.inf)
            else:
                lo, hi = np.quantile(arr[finite], (q_lo, q_hi))
        elif full:
            lo, hi = arr.min(), arr.max()
        else:
            lo, hi = np.quantile(arr.astype(np.float64).ravel(), (q_lo, q_hi))
        return _valid_range(lo, hi)

    stride = max(1, count // max_samples)
    samples = arr.flat[stride - 1 :: stride]
    if inexact:
        samples = samples[np.isfinite(samples)]
    if samples.size == 0:
        return FULL_RANGE
    if full:
        lo, hi = samples.min(), samples.max()
    else:
        lo, hi = np.quantile(samples.astype(np.float64), (q_lo, q_hi))
    return _valid_range(lo, hi)


class GlobalRanges:
    """Whole-array colorranges, computed once per clip and then cached."""

    def __init__(self, array: np.ndarray, max_samples: int = MAX_SAMPLES):
        self._array = array
        self._max_samples = max_samples
        self._cache: Dict[Tuple[float, float], ColorRange] = {}

    def get(self, clip: Tuple[float, float]) -> ColorRange:
        key = (float(clip[0]), float(clip[1]))
        if key not in self._cache:
            self._cache[key] = compute_colorrange(self._array, key, self._max_samples)
        return self._cache[key]

    @property
    def minimum(self) -> float:
        return self.get(FULL_RANGE)[0]


# ------------------------------ Slicing ---------------------------------------


def _slice_key(
    ndim: int, display_dims: Tuple[int, int], slice_indices: Sequence[int]
) -> Tuple[Union[int, slice], ...]:
    return tuple(
        slice(None) if d in display_dims else int(slice_indices[d - 1]) - 1
        for d in range(1, ndim + 1)
    )


def prepare_slice(
    array: np.ndarray, display_dims: Tuple[int, int], slice_indices: Sequence[int]
) -> np.ndarray:
    """
    Extract the 2D slice shown for ``display_dims`` = (row_dim, col_dim).

    Non-display dimensions are fixed at their (1-based) slice index. The
    result has shape (size(col_dim), size(row_dim)) in the renderer image
    convention described in the module docstring.
    """
    block = np.real(array[_slice_key(array.ndim, display_dims, slice_indices)])
    if display_dims[0] > display_dims[1]:
        block = block.T
    # Flip rows so row 1 is on top, then x = column, y = row from bottom
    return np.array(block[::-1, :].T, order="C")


def pixel_index(
    display_dims: Tuple[int, int], slice_indices: Sequence[int], row: int, col: int
) -> Tuple[int, ...]:
    """0-based N-D index of data element (row, col) in the current slice."""
    row_dim, col_dim = display_dims
    index = []
    for d in range(1, len(slice_indices) + 1):
        if d == row_dim:
            index.append(row - 1)
        elif d == col_dim:
            index.append(col - 1)
        else:
            index.append(int(slice_indices[d - 1]) - 1)
    return tuple(index)


# ------------------------------ Intensity -------------------------------------


def slice_minimum(buffer: np.ndarray) -> float:
    return compute_colorrange(buffer, FULL_RANGE)[0]


def log_origin(raw: np.ndarray, stretch: StretchMode, ranges: GlobalRanges) -> float:
    """Value mapped to log10(1) = 0: global minimum or current-slice minimum."""
    if stretch is StretchMode.GLOBAL:
        return ranges.minimum
    return slice_minimum(raw)


def apply_transform(buffer: np.ndarray, transform: Transform, origin: float = 0.0) -> np.ndarray:
    if transform is Transform.LOG:
        return np.log10(np.maximum(buffer - origin + 1.0, 1.0))
    return buffer


def transform_range(crange: ColorRange, transform: Transform, origin: float = 0.0) -> ColorRange:
    """Map a linear colorrange through ``transform`` using the same origin as the data."""
    lo, hi = crange
    if transform is Transform.LOG:
        lo = math.log10(max(lo - origin + 1.0, 1.0))
        hi = math.log10(max(hi - origin + 1.0, 1.0))
    return _valid_range(lo, hi)


def display_range(
    raw: np.ndarray,
    mapping: Mapping,
    stretch: StretchMode,
    ranges: GlobalRanges,
    origin: Optional[float] = None,
) -> ColorRange:
    """
    Colorrange for an untransformed slice under ``mapping``/``stretch``.

    Global stretch reuses the cached whole-array range and only transforms
    it, so the array is never rescanned per frame.
    """
    if stretch is StretchMode.GLOBAL:
        base = ranges.get(mapping.clip)
    else:
        base = compute_colorrange(raw, mapping.clip)
    if mapping.transform is Transform.LINEAR:
        return base
    if origin is None:
        origin = log_origin(raw, stretch, ranges)
    return transform_range(base, mapping.transform, origin)


def normalize(buffer: np.ndarray, crange: ColorRange) -> np.ndarray:
    lo, hi = crange
    out = np.clip((buffer - lo) / (hi - lo), 0.0, 1.0)
    return np.nan_to_num(out, nan=0.0, copy=False)


def blend_channels(
    buffers: Sequence[Optional[np.ndarray]],
    ranges: Sequence[Optional[ColorRange]],
    colors: Sequence[Tuple[float, float, float]],
    shape: Tuple[int, int],
) -> np.ndarray:
    """
    Additively blend normalized channel buffers into an RGB image.

    ``None`` buffers (hidden channels) are skipped. Output shape is
    ``shape + (3,)`` with every component clamped to [0, 1].
    """
    rgb = np.zeros(tuple(shape) + (3,), dtype=np.float64)
    for buffer, crange, color in zip(buffers, ranges, colors):
        if buffer is None:
            continue
        rgb += normalize(buffer, crange)[..., np.newaxis] * np.asarray(color, dtype=np.float64)
    np.clip(rgb, 0.0, 1.0, out=rgb)
    return rgb


# ------------------------------ Cursor ----------------------------------------


@dataclass(frozen=True)
class CursorState:
    row: int = 1
    col: int = 1
    in_bounds: bool = False
    values: Tuple[float, ...] = ()


def cursor_from_pointer(
    source: "ViewerInput",
    display_dims: Tuple[int, int],
    slice_indices: Sequence[int],
    pointer: Optional[Tuple[float, float]],
    previous: CursorState,
) -> CursorState:
    """
    Convert a renderer-space pointer (x, y) to the data element under it.

    Outside [1, nrows] x [1, ncols] the previous position is kept and the
    state is marked out of bounds.
    """
    if pointer is None:
        return replace(previous, in_bounds=False)
    x, y = pointer
    if x is None or y is None or not (math.isfinite(x) and math.isfinite(y)):
        return replace(previous, in_bounds=False)
    nrows = source.shape[display_dims[0] - 1]
    ncols = source.shape[display_dims[1] - 1]
    col = int(round(x))
    row = nrows - int(round(y)) + 1
    if not (1 <= row <= nrows and 1 <= col <= ncols):
        return replace(previous, in_bounds=False)
    values = source.element_at(pixel_index(display_dims, slice_indices, row, col))
    return CursorState(row, col, True, values)


# ------------------------------ Input variant ---------------------------------


def _is_numeric(arr: np.ndarray) -> bool:
    return np.issubdtype(arr.dtype, np.number) or arr.dtype == np.bool_


@dataclass(frozen=True, eq=False)
class SingleInput:
    """One N-D array shown through a colormap."""

    array: np.ndarray

    @property
    def arrays(self) -> Tuple[np.ndarray, ...]:
        return (self.array,)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.array.shape

    @property
    def ndim(self) -> int:
        return self.array.ndim

    @property
    def channel_count(self) -> int:
        return 1

    def sample_count(self) -> int:
        return self.array.size

    def element_at(self, index: Tuple[int, ...]) -> Tuple[float, ...]:
        return (float(np.real(self.array[index])),)

    def extract_slice(
        self, display_dims: Tuple[int, int], slice_indices: Sequence[int]
    ) -> Tuple[np.ndarray, ...]:
        return (prepare_slice(self.array, display_dims, slice_indices),)


@dataclass(frozen=True, eq=False)
class CompositeInput:
    """2-3 equal-shape arrays blended as colored channels."""

    channels: Tuple[np.ndarray, ...]

    @property
    def arrays(self) -> Tuple[np.ndarray, ...]:
        return self.channels

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.channels[0].shape

    @property
    def ndim(self) -> int:
        return self.channels[0].ndim

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    def sample_count(self) -> int:
        return self.channels[0].size

    def element_at(self, index: Tuple[int, ...]) -> Tuple[float, ...]:
        return tuple(float(np.real(ch[index])) for ch in self.channels)

    def extract_slice(
        self, display_dims: Tuple[int, int], slice_indices: Sequence[int]
    ) -> Tuple[np.ndarray, ...]:
        return tuple(prepare_slice(ch, display_dims, slice_indices) for ch in self.channels)


ViewerInput = Union[SingleInput, CompositeInput]


def _check_array(arr: np.ndarray, label: str) -> None:
    if not _is_numeric(arr):
        raise InvalidArgumentError(f"{label} must be numeric; got dtype {arr.dtype}.")
    if arr.ndim < 2:
        raise InvalidArgumentError(f"{label} must have at least 2 dimensions; got {arr.ndim}D.")
    if 0 in arr.shape:
        raise InvalidArgumentError(f"{label} has an empty dimension: shape {arr.shape}.")


def as_viewer_input(data) -> ViewerInput:
    """
    Classify viewer input: a tuple/list is a channel set, anything else one array.

    Arrays are referenced, not copied. Raises InvalidArgumentError before
    anything else is built.
    """
    if isinstance(data, (tuple, list)):
        n = len(data)
        if not MIN_CHANNELS <= n <= MAX_CHANNELS:
            raise InvalidArgumentError(
                f"Composite display needs {MIN_CHANNELS}-{MAX_CHANNELS} channels; got {n}."
            )
        channels = tuple(np.asarray(ch) for ch in data)
        ref = channels[0].shape
        for i, ch in enumerate(channels, start=1):
            if ch.shape != ref:
                raise InvalidArgumentError(f"Channel {i} shape mismatch: {ch.shape} vs {ref}.")
            _check_array(ch, f"Channel {i}")
        return CompositeInput(channels)

    arr = np.asarray(data)
    _check_array(arr, "Data")
    return SingleInput(arr)


# ------------------------------ Formatting ------------------------------------


def format_value(val: float) -> str:
    if math.isnan(val):
        return "NaN"
    if val == 0:
        return "0"
    if abs(val) < 1e-3 or abs(val) >= 1e5:
        return f"{val:.3e}"
    if val == round(val):
        return str(int(round(val)))
    return f"{val:.3f}"


def format_zoom(zoom: float) -> str:
    if zoom >= 1:
        return f"{int(zoom)}x"
    return f"1/{int(round(1 / zoom))}x"


def format_dim_label(dim: int, dim_names: Optional[Sequence[str]] = None) -> str:
    if dim_names is not None and dim <= len(dim_names):
        return f"{dim_names[dim - 1]}:"
    return f"dim {dim}:"


def _slider_summary(
    slider_dims: Sequence[int], slice_indices: Sequence[int], shape: Tuple[int, ...]
) -> str:
    parts = [f"{d}:{slice_indices[d - 1]}/{shape[d - 1]}" for d in slider_dims]
    return " | " + " ".join(parts) if parts else ""


def single_status_text(
    cursor: CursorState,
    display_dims: Tuple[int, int],
    pending_dim: Optional[int],
    slider_dims: Sequence[int],
    slice_indices: Sequence[int],
    shape: Tuple[int, ...],
    zoom: float,
    colormap: str,
    mapping: Mapping,
    stretch: StretchMode,
    dtype: np.dtype,
) -> str:
    if cursor.in_bounds:
        pos = f"({cursor.row}, {cursor.col}) = {format_value(cursor.values[0])}"
    else:
        pos = "---"
    if pending_dim is not None:
        dims = f"({pending_dim},?)"
    else:
        dims = f"({display_dims[0]},{display_dims[1]})"
    sliders = _slider_summary(slider_dims, slice_indices, shape)
    size = "×".join(str(s) for s in shape)
    return (
        f"{pos} | {dims}{sliders} | {format_zoom(zoom)} | {colormap} | "
        f"{mapping.name} | {stretch.value} | {size} {dtype}"
    )


def composite_status_text(
    cursor: CursorState,
    visible: Sequence[bool],
    slider_dims: Sequence[int],
    slice_indices: Sequence[int],
    shape: Tuple[int, ...],
    zoom: float,
    mapping: Mapping,
    stretch: StretchMode,
    channel_names: Optional[Sequence[str]] = None,
) -> str:
    if cursor.in_bounds:
        if channel_names:
            vals = ", ".join(f"{n}={format_value(v)}" for n, v in zip(channel_names, cursor.values))
        else:
            vals = ", ".join(format_value(v) for v in cursor.values)
        pos = f"({cursor.row},{cursor.col}) = [{vals}]"
    else:
        pos = "---"
    vis = "".join(str(i) if shown else "-" for i, shown in enumerate(visible, start=1))
    sliders = _slider_summary(slider_dims, slice_indices, shape)
    size = "x".join(str(s) for s in shape)
    return (
        f"{pos} | ch:{vis}{sliders} | {format_zoom(zoom)} | "
        f"{mapping.name} | {stretch.value} | {size}"
    )


def calculate_figure_size(
    nrows: int, ncols: int, max_size: Tuple[int, int], n_sliders: int
) -> Tuple[int, int]:
    """Figure size in pixels that fits the image aspect plus status/slider rows."""
    ui_height = STATUS_HEIGHT + SLIDER_ROW_HEIGHT * max(0, n_sliders)
    aspect = ncols / nrows
    max_w, max_h = max_size
    if aspect > max_w / max_h:
        fig_w = max_w
        fig_h = round(max_w / aspect) + ui_height
    else:
        fig_h = max_h
        fig_w = round((max_h - ui_height) * aspect)
    return max(1, int(fig_w)), max(1, int(fig_h))
