# src/smlm_viewer/navigation.py
"""
Zoom and pan over the displayed slice.

The view state is a zoom index into ``ZOOM_LEVELS`` and a view center in data
coordinates ``(row, col)``, row 1 being the top row. Whenever the visible
window is smaller than the image along an axis, the center is clamped so the
window stays inside ``[0.5, size + 0.5]``; otherwise it sits at the image
midpoint on that axis.
"""

from __future__ import annotations
import math
import operator
from typing import Callable, NamedTuple, Optional, Sequence, Tuple

from .constants import DEFAULT_ZOOM_IDX, ZOOM_LEVELS
from .errors import InvalidArgumentError
from .reactive import Cell, Effect, StateGraph

Center = Tuple[float, float]
Sizes = Callable[[], Tuple[int, int]]


class ViewLimits(NamedTuple):
    """Axis limits in renderer coordinates (x = column, y = row from bottom)."""

    xlim: Tuple[float, float]
    ylim: Tuple[float, float]


def _clamp_axis(c: float, n: int, zoom: float) -> float:
    visible = n / zoom
    if visible < n:
        half = visible / 2
        return min(max(c, 0.5 + half), n + 0.5 - half)
    return (n + 1) / 2


def clamp_center(center: Sequence[float], zoom: float, nrows: int, ncols: int) -> Center:
    row, col = center
    return (_clamp_axis(float(row), nrows, zoom), _clamp_axis(float(col), ncols, zoom))


def image_center(nrows: int, ncols: int) -> Center:
    return ((nrows + 1) / 2, (ncols + 1) / 2)


def view_limits(center: Sequence[float], zoom: float, nrows: int, ncols: int) -> ViewLimits:
    """Visible window around ``center`` at ``zoom``."""
    row, col = center
    half_rows = nrows / zoom / 2
    half_cols = ncols / zoom / 2
    y = nrows + 1 - row
    return ViewLimits((col - half_cols, col + half_cols), (y - half_rows, y + half_rows))


def validate_zoom_idx(value) -> int:
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Zoom index must be an integer; got {value!r}.")
    try:
        idx = operator.index(value)
    except TypeError:
        raise InvalidArgumentError(f"Zoom index must be an integer; got {value!r}.") from None
    if not 0 <= idx < len(ZOOM_LEVELS):
        raise InvalidArgumentError(
            f"Zoom index must be in [0, {len(ZOOM_LEVELS) - 1}]; got {idx}."
        )
    return idx


class ViewNavigator:
    """
    Zoom/pan operations over a zoom-index cell and a view-center cell.

    Parameters
    ----------
    zoom_cell, center_cell : Cell
        Graph cells holding the zoom index and the (row, col) center.
    sizes : callable
        Returns the current ``(nrows, ncols)`` of the displayed slice.
    """

    def __init__(self, zoom_cell: Cell, center_cell: Cell, sizes: Sizes):
        self.zoom_cell = zoom_cell
        self.center_cell = center_cell
        self.sizes = sizes

    @classmethod
    def create(cls, graph: StateGraph, sizes: Sizes) -> "ViewNavigator":
        """Build the zoom and center cells (center validator clamps) and the navigator."""
        zoom_cell = graph.cell(DEFAULT_ZOOM_IDX, name="view_zoom_idx", validator=validate_zoom_idx)

        def validate_center(value) -> Center:
            try:
                row, col = value
                row, col = float(row), float(col)
            except (TypeError, ValueError):
                raise InvalidArgumentError(
                    f"View center must be a (row, col) pair; got {value!r}."
                ) from None
            if not (math.isfinite(row) and math.isfinite(col)):
                raise InvalidArgumentError(f"View center must be finite; got {value!r}.")
            nrows, ncols = sizes()
            return clamp_center((row, col), ZOOM_LEVELS[zoom_cell.value], nrows, ncols)

        center_cell = graph.cell(image_center(*sizes()), name="view_center", validator=validate_center)
        return cls(zoom_cell, center_cell, sizes)

    @property
    def graph(self) -> StateGraph:
        return self.zoom_cell.graph

    @property
    def zoom(self) -> float:
        return ZOOM_LEVELS[self.zoom_cell.value]

    def zoom_in(self) -> bool:
        idx = self.zoom_cell.value
        if idx >= len(ZOOM_LEVELS) - 1:
            return False
        return self.zoom_cell.set(idx + 1)

    def zoom_out(self) -> bool:
        idx = self.zoom_cell.value
        if idx <= 0:
            return False
        return self.zoom_cell.set(idx - 1)

    def reset(self) -> None:
        with self.graph.batch():
            self.zoom_cell.set(DEFAULT_ZOOM_IDX)
            self.center_cell.set(image_center(*self.sizes()))

    def pan(self, dcol: float, drow: float) -> bool:
        """Move by a quarter of the smaller visible extent per unit step, then clamp."""
        nrows, ncols = self.sizes()
        zoom = self.zoom
        step = min(nrows / zoom, ncols / zoom) / 4
        row, col = self.center_cell.value
        return self.center_cell.set((row + drow * step, col + dcol * step))

    def clamp(self, center: Optional[Sequence[float]] = None) -> Center:
        nrows, ncols = self.sizes()
        if center is None:
            center = self.center_cell.value
        return clamp_center(center, self.zoom, nrows, ncols)

    def limits(self) -> ViewLimits:
        nrows, ncols = self.sizes()
        return view_limits(self.center_cell.value, self.zoom, nrows, ncols)

    def install_reactions(self, display_dims: Cell) -> Tuple[Effect, Effect]:
        """
        Reset the view when the display dims change, re-clamp when zoom changes.

        Must be called before any node that reads the zoom or center cells is
        created, since both reactions write them.
        """
        graph = self.graph
        last_dims = [display_dims.value]

        def reset_on_dims():
            if display_dims.value != last_dims[0]:
                last_dims[0] = display_dims.value
                self.reset()

        def reclamp_on_zoom():
            self.center_cell.set(self.center_cell.value)

        return (
            graph.effect(reset_on_dims, [display_dims], name="view_reset_on_dims"),
            graph.effect(reclamp_on_zoom, [self.zoom_cell], name="view_reclamp_on_zoom"),
        )
