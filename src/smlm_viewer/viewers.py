# src/smlm_viewer/viewers.py
"""
Interactive N-D array viewers built on the reactive state graph.

- BaseViewer: cells shared by both modes (display dims, slice indices,
  mapping, stretch, zoom/pan, pointer) and the renderer publishing effects
- Viewer: single array through a colormap
- CompositeViewer: 2-3 channels blended additively into RGB
- open_viewer: validated entry point

State cells are public and may be written directly; writes go through the
same validation and propagation as keyboard, mouse and slider input.
"""

from __future__ import annotations
import operator
import warnings
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import matplotlib
from matplotlib.colors import Normalize

from .config import (
    CompositeOptions,
    ViewerOptions,
    mpl_colormap_name,
    validate_colormap,
    validate_display_dims,
)
from .constants import COLORMAPS, SLIDER_ROW_HEIGHT, STATUS_HEIGHT, ZOOM_LEVELS
from .core import (
    STRETCH_MODES,
    CompositeInput,
    CursorState,
    GlobalRanges,
    Mapping,
    StretchMode,
    Transform,
    ViewerInput,
    apply_transform,
    as_viewer_input,
    blend_channels,
    build_mappings,
    calculate_figure_size,
    composite_status_text,
    cursor_from_pointer,
    display_range,
    format_dim_label,
    log_origin,
    prepare_slice,
    single_status_text,
)
from .dispatch import InputDispatcher
from .display import DisplayContext
from .errors import InvalidArgumentError
from .keybindings import KeybindingRegistry
from .navigation import ViewNavigator
from .reactive import StateGraph
from .renderers import Renderer, SliderSpec


def _validate_range(value) -> Tuple[float, float]:
    try:
        lo, hi = (float(v) for v in value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Color range must be a (low, high) pair; got {value!r}.") from None
    if not (np.isfinite(lo) and np.isfinite(hi) and lo < hi):
        raise InvalidArgumentError(f"Color range must be finite with low < high; got {(lo, hi)}.")
    return (lo, hi)


def _validate_channel_range(value, visible: bool) -> Optional[Tuple[float, float]]:
    """A hidden channel may carry ``None``; a visible one needs a valid range."""
    if value is None and not visible:
        return None
    return _validate_range(value)


def _validate_bool(value) -> bool:
    if not isinstance(value, (bool, np.bool_)):
        raise InvalidArgumentError(f"Expected a boolean; got {value!r}.")
    return bool(value)


class BaseViewer:
    """State graph and renderer wiring shared by the single and composite viewers."""

    is_composite = False

    def __init__(
        self,
        source: ViewerInput,
        options: Union[ViewerOptions, CompositeOptions],
        renderer: Optional[Renderer] = None,
        keybindings: Optional[KeybindingRegistry] = None,
    ):
        self.source = source
        self.options = options
        self.title = options.title
        self.shape: Tuple[int, ...] = tuple(source.shape)
        self.ndim = source.ndim
        self.dim_names = options.dim_names
        self.mappings: Tuple[Mapping, ...] = build_mappings(options.percentile_clip)

        # Whole-array ranges for the viewer's own clip are paid for up front
        self.global_ranges = tuple(GlobalRanges(a) for a in source.arrays)
        for ranges in self.global_ranges:
            ranges.get(options.percentile_clip)

        self.graph = g = StateGraph()

        # ---- State cells ----
        self.display_dims = g.cell(
            options.display_dims,
            name="display_dims",
            validator=lambda v: validate_display_dims(v, self.ndim),
        )
        self.slice_indices = tuple(
            g.cell(1, name=f"slice_index[{d}]", validator=self._index_validator(d))
            for d in range(1, self.ndim + 1)
        )
        self.mapping = g.cell(self.mappings[0], name="mapping", validator=self._validate_mapping)
        self.stretch = g.cell(StretchMode.GLOBAL, name="stretch", validator=self._validate_stretch)
        self.pending_dim_key = g.cell(None, name="pending_dim_key")
        self.pointer = g.cell(None, name="pointer")
        self._init_mode_cells()

        self.navigator = ViewNavigator.create(g, self._display_size)
        self.view_zoom_idx = self.navigator.zoom_cell
        self.view_center = self.navigator.center_cell
        # Reactions write zoom/center, so they precede every reader of them
        self.navigator.install_reactions(self.display_dims)

        # ---- Derived values ----
        self.slider_dims = g.derived(
            lambda: tuple(d for d in range(1, self.ndim + 1) if d not in self.display_dims.value),
            [self.display_dims],
            name="slider_dims",
        )
        self.extent = g.derived(self._compute_extent, [self.display_dims], name="extent")
        self.view_limits = g.derived(
            self.navigator.limits,
            [self.view_zoom_idx, self.view_center, self.display_dims],
            name="view_limits",
        )
        self._build_image_nodes()
        self._last_cursor = CursorState()
        self.cursor = g.derived(
            self._compute_cursor,
            lambda: [self.pointer, self.display_dims, self.slider_dims] + self._slider_cells(),
            name="cursor",
        )
        self.status_text = g.derived(self._compute_status, self._status_inputs, name="status_text")

        # ---- Input + output ----
        self.dispatcher = InputDispatcher(self, keybindings)
        self.renderer = renderer
        if renderer is not None:
            self._bind_renderer(renderer)

    # ---- Construction helpers ----

    def _init_mode_cells(self) -> None:
        pass

    def _build_image_nodes(self) -> None:
        raise NotImplementedError

    def _image_node(self):
        raise NotImplementedError

    def _index_validator(self, dim: int):
        size = self.shape[dim - 1]

        def validate(value) -> int:
            if isinstance(value, (bool, np.bool_)):
                raise InvalidArgumentError(f"Slice index for dim {dim} must be an integer; got {value!r}.")
            try:
                idx = operator.index(value)
            except TypeError:
                raise InvalidArgumentError(
                    f"Slice index for dim {dim} must be an integer; got {value!r}."
                ) from None
            if not 1 <= idx <= size:
                raise InvalidArgumentError(f"Slice index for dim {dim} must be in [1, {size}]; got {idx}.")
            return idx

        return validate

    def _validate_mapping(self, value) -> Mapping:
        if isinstance(value, str):
            for m in self.mappings:
                if m.name == value:
                    return m
        elif value in self.mappings:
            return self.mappings[self.mappings.index(value)]
        raise InvalidArgumentError(
            f"Unknown mapping {value!r}; choose from {[m.name for m in self.mappings]}."
        )

    @staticmethod
    def _validate_stretch(value) -> StretchMode:
        try:
            return StretchMode(value)
        except ValueError:
            raise InvalidArgumentError(
                f"Unknown stretch mode {value!r}; choose from {[s.value for s in STRETCH_MODES]}."
            ) from None

    def _display_size(self) -> Tuple[int, int]:
        row_dim, col_dim = self.display_dims.value
        return self.shape[row_dim - 1], self.shape[col_dim - 1]

    def _compute_extent(self) -> Tuple[float, float, float, float]:
        nrows, ncols = self._display_size()
        return (0.5, ncols + 0.5, 0.5, nrows + 0.5)

    def _slider_cells(self) -> List[Any]:
        return [self.slice_indices[d - 1] for d in self.slider_dims.value]

    def _indices(self) -> Tuple[int, ...]:
        return tuple(c.value for c in self.slice_indices)

    def _compute_cursor(self) -> CursorState:
        self._last_cursor = cursor_from_pointer(
            self.source, self.display_dims.value, self._indices(), self.pointer.value, self._last_cursor
        )
        return self._last_cursor

    def _compute_status(self) -> str:
        raise NotImplementedError

    def _status_inputs(self) -> List[Any]:
        raise NotImplementedError

    # ---- Renderer publishing ----

    def _publish(self, method, *args) -> None:
        try:
            method(*args)
        except Exception as e:
            warnings.warn(f"Renderer update failed: {e}", RuntimeWarning)

    def _slider_specs(self) -> List[SliderSpec]:
        return [
            SliderSpec(format_dim_label(d, self.dim_names), self.shape[d - 1], self.slice_indices[d - 1].value)
            for d in self.slider_dims.value
        ]

    def figure_size(self) -> Tuple[int, int]:
        nrows, ncols = self._display_size()
        return calculate_figure_size(nrows, ncols, self.options.max_figure_size, len(self.slider_dims.value))

    def _bind_renderer(self, renderer: Renderer) -> None:
        g = self.graph
        renderer.bind(self)

        def publish_layout():
            ui_height = STATUS_HEIGHT + SLIDER_ROW_HEIGHT * len(self.slider_dims.value)
            self._publish(renderer.resize, self.figure_size(), ui_height)
            self._publish(renderer.configure_sliders, self._slider_specs())

        def publish_slider_values():
            for pos, d in enumerate(self.slider_dims.value):
                self._publish(renderer.set_slider_value, pos, self.slice_indices[d - 1].value)

        g.effect(publish_layout, [self.slider_dims, self.display_dims], name="publish_layout")
        g.effect(
            publish_slider_values,
            lambda: [self.slider_dims] + self._slider_cells(),
            name="publish_slider_values",
        )
        self._bind_image_publishers(renderer)
        g.effect(
            lambda: self._publish(renderer.set_view_limits, self.view_limits.value),
            [self.view_limits],
            name="publish_view_limits",
        )
        g.effect(
            lambda: self._publish(renderer.set_status, self.status_text.value),
            [self.status_text],
            name="publish_status",
        )
        g.on_flush.append(lambda: self._publish(renderer.flush))
        self._publish(renderer.flush)

    def _bind_image_publishers(self, renderer: Renderer) -> None:
        image = self._image_node()
        self.graph.effect(
            # One call carries extent and buffer together
            lambda: self._publish(renderer.set_image, image.value, self.extent.value),
            [self.extent, image],
            name="publish_image",
        )

    # ---- Public API ----

    @property
    def data(self):
        return self.source.arrays[0] if not self.is_composite else self.source.arrays

    @property
    def cursor_pos(self) -> Tuple[int, int]:
        c = self.cursor.value
        return (c.row, c.col)

    @property
    def in_bounds(self) -> bool:
        return self.cursor.value.in_bounds

    @property
    def pixel_values(self) -> Tuple[float, ...]:
        return self.cursor.value.values

    @property
    def pixel_value(self) -> Optional[float]:
        values = self.cursor.value.values
        return values[0] if values else None

    @property
    def zoom(self) -> float:
        return ZOOM_LEVELS[self.view_zoom_idx.value]

    def set_display_dims(self, dims) -> bool:
        return self.display_dims.set(dims)

    def set_slice_index(self, dim: int, value: int) -> bool:
        if not 1 <= dim <= self.ndim:
            raise InvalidArgumentError(f"Dimension {dim} out of range [1, {self.ndim}].")
        return self.slice_indices[dim - 1].set(value)

    def step_slice(self, delta: int) -> bool:
        """Move the first slider dimension by ``delta``, stopping at its ends."""
        dims = self.slider_dims.value
        if not dims:
            return False
        cell = self.slice_indices[dims[0] - 1]
        new = cell.value + delta
        if not 1 <= new <= self.shape[dims[0] - 1]:
            return False
        return cell.set(new)

    def zoom_in(self) -> bool:
        return self.navigator.zoom_in()

    def zoom_out(self) -> bool:
        return self.navigator.zoom_out()

    def reset_view(self) -> None:
        self.navigator.reset()

    def pan(self, dcol: float, drow: float) -> bool:
        return self.navigator.pan(dcol, drow)

    def cycle_colormap(self) -> None:
        """No colormap in this mode."""

    def cycle_mapping(self) -> bool:
        i = self.mappings.index(self.mapping.value)
        return self.mapping.set(self.mappings[(i + 1) % len(self.mappings)])

    def cycle_stretch(self) -> bool:
        i = STRETCH_MODES.index(self.stretch.value)
        return self.stretch.set(STRETCH_MODES[(i + 1) % len(STRETCH_MODES)])

    def show(self, block: Optional[bool] = None) -> None:
        if self.renderer is None:
            warnings.warn("Viewer has no renderer; nothing to show.", RuntimeWarning)
            return
        try:
            self.renderer.show(block)
        except Exception as e:
            warnings.warn(f"Could not display viewer: {e}", RuntimeWarning)

    def save_current_view(self, filename: str) -> None:
        from .utils import save_view_as_image

        save_view_as_image(self, filename)

    def close(self) -> None:
        if self.renderer is not None:
            self.renderer.close()


class Viewer(BaseViewer):
    """
    Single-channel viewer.

    Observable cells: ``display_dims``, ``slice_indices``, ``colormap``,
    ``mapping``, ``stretch``, ``view_zoom_idx``, ``view_center``; derived:
    ``raw_slice``, ``slice_buffer``, ``colorrange`` (overridable until the
    next recompute), ``cursor``, ``view_limits``, ``status_text``.
    """

    def _init_mode_cells(self) -> None:
        self.colormap = self.graph.cell(self.options.colormap, name="colormap", validator=validate_colormap)

    def _build_image_nodes(self) -> None:
        g = self.graph
        array = self.source.array
        ranges = self.global_ranges[0]

        self.raw_slice = g.derived(
            lambda: prepare_slice(array, self.display_dims.value, self._indices()),
            lambda: [self.display_dims, self.slider_dims] + self._slider_cells(),
            name="raw_slice",
        )

        def slice_buffer():
            raw = self.raw_slice.value
            mapping = self.mapping.value
            if mapping.transform is Transform.LINEAR:
                return raw
            return apply_transform(raw, mapping.transform, log_origin(raw, self.stretch.value, ranges))

        self.slice_buffer = g.derived(
            slice_buffer,
            lambda: [self.raw_slice, self.mapping]
            + ([self.stretch] if self.mapping.value.transform is Transform.LOG else []),
            name="slice_buffer",
        )

        def colorrange_inputs():
            inputs = [self.mapping, self.stretch]
            if self.stretch.value is StretchMode.PER_SLICE:
                inputs.append(self.raw_slice)
            return inputs

        self.colorrange = g.derived(
            lambda: display_range(self.raw_slice.value, self.mapping.value, self.stretch.value, ranges),
            colorrange_inputs,
            name="colorrange",
            validator=_validate_range,
        )

    def _image_node(self):
        return self.slice_buffer

    def _bind_image_publishers(self, renderer: Renderer) -> None:
        g = self.graph
        g.effect(
            lambda: self._publish(renderer.set_colormap, mpl_colormap_name(self.colormap.value)),
            [self.colormap],
            name="publish_colormap",
        )
        g.effect(
            lambda: self._publish(renderer.set_colorrange, self.colorrange.value),
            [self.colorrange],
            name="publish_colorrange",
        )
        super()._bind_image_publishers(renderer)

    def _status_inputs(self) -> List[Any]:
        return [
            self.cursor,
            self.display_dims,
            self.pending_dim_key,
            self.slider_dims,
            self.view_zoom_idx,
            self.colormap,
            self.mapping,
            self.stretch,
        ] + self._slider_cells()

    def _compute_status(self) -> str:
        return single_status_text(
            self.cursor.value,
            self.display_dims.value,
            self.pending_dim_key.value,
            self.slider_dims.value,
            self._indices(),
            self.shape,
            self.zoom,
            self.colormap.value,
            self.mapping.value,
            self.stretch.value,
            self.source.array.dtype,
        )

    def cycle_colormap(self) -> bool:
        current = self.colormap.value
        i = COLORMAPS.index(current) + 1 if current in COLORMAPS else 0
        return self.colormap.set(COLORMAPS[i % len(COLORMAPS)])

    def display_image(self) -> np.ndarray:
        """Current slice as RGBA through the colormap and colorrange (rows top to bottom)."""
        lo, hi = self.colorrange.value
        cmap = matplotlib.colormaps[mpl_colormap_name(self.colormap.value)]
        return cmap(Normalize(lo, hi, clip=True)(self.slice_buffer.value.T[::-1]))


class CompositeViewer(BaseViewer):
    """
    Multi-channel composite viewer.

    Channel visibility lives in ``channel_visible`` (one cell per channel).
    Hidden channels are skipped entirely: their slice and range nodes hold
    None and do not extract or scan. ``rgb`` is the blended image with shape
    (ncols, nrows, 3).
    """

    is_composite = True

    @property
    def channel_count(self) -> int:
        return self.source.channel_count

    @property
    def channel_colors(self):
        return self.options.channel_colors

    @property
    def channel_names(self):
        return self.options.channel_names

    def _init_mode_cells(self) -> None:
        self.channel_visible = tuple(
            self.graph.cell(True, name=f"channel_visible[{c}]", validator=_validate_bool)
            for c in range(1, self.channel_count + 1)
        )

    def _build_image_nodes(self) -> None:
        g = self.graph
        self.channel_slices = []
        self.channel_buffers = []
        self.channel_range_nodes = []
        for c, (array, visible, ranges) in enumerate(
            zip(self.source.channels, self.channel_visible, self.global_ranges), start=1
        ):
            raw = g.derived(
                lambda array=array, visible=visible: (
                    prepare_slice(array, self.display_dims.value, self._indices()) if visible.value else None
                ),
                lambda visible=visible: [visible]
                + ([self.display_dims, self.slider_dims] + self._slider_cells() if visible.value else []),
                name=f"channel_slice[{c}]",
            )

            def buffer(raw=raw, ranges=ranges):
                data = raw.value
                if data is None:
                    return None
                mapping = self.mapping.value
                if mapping.transform is Transform.LINEAR:
                    return data
                return apply_transform(data, mapping.transform, log_origin(data, self.stretch.value, ranges))

            def buffer_inputs(raw=raw, visible=visible):
                if not visible.value:
                    return [raw]
                inputs = [raw, self.mapping]
                if self.mapping.value.transform is Transform.LOG:
                    inputs.append(self.stretch)
                return inputs

            buf = g.derived(buffer, buffer_inputs, name=f"channel_buffer[{c}]")

            def crange(raw=raw, visible=visible, ranges=ranges):
                if not visible.value:
                    return None
                return display_range(raw.value, self.mapping.value, self.stretch.value, ranges)

            def crange_inputs(raw=raw, visible=visible):
                if not visible.value:
                    return [visible]
                inputs = [visible, self.mapping, self.stretch]
                if self.stretch.value is StretchMode.PER_SLICE:
                    inputs.append(raw)
                return inputs

            rng = g.derived(
                crange,
                crange_inputs,
                name=f"channel_range[{c}]",
                validator=lambda value, visible=visible: _validate_channel_range(value, visible.value),
            )
            self.channel_slices.append(raw)
            self.channel_buffers.append(buf)
            self.channel_range_nodes.append(rng)

        self.channel_ranges = g.derived(
            lambda: tuple(r.value for r in self.channel_range_nodes),
            list(self.channel_range_nodes),
            name="channel_ranges",
            validator=self._validate_channel_ranges,
        )

        def rgb():
            nrows, ncols = self._display_size()
            return blend_channels(
                [b.value for b in self.channel_buffers],
                self.channel_ranges.value,
                self.channel_colors,
                (ncols, nrows),
            )

        self.rgb = g.derived(
            rgb, [self.display_dims] + self.channel_buffers + [self.channel_ranges], name="rgb"
        )

    def _validate_channel_ranges(self, value):
        try:
            entries = tuple(value)
        except TypeError:
            raise InvalidArgumentError(f"Channel ranges must be a sequence; got {value!r}.") from None
        if len(entries) != self.channel_count:
            raise InvalidArgumentError(
                f"Expected {self.channel_count} channel ranges; got {len(entries)}."
            )
        return tuple(
            _validate_channel_range(entry, visible.value)
            for entry, visible in zip(entries, self.channel_visible)
        )

    def _image_node(self):
        return self.rgb

    def _status_inputs(self) -> List[Any]:
        return [
            self.cursor,
            self.slider_dims,
            self.view_zoom_idx,
            self.mapping,
            self.stretch,
            *self.channel_visible,
        ] + self._slider_cells()

    def _compute_status(self) -> str:
        return composite_status_text(
            self.cursor.value,
            [v.value for v in self.channel_visible],
            self.slider_dims.value,
            self._indices(),
            self.shape,
            self.zoom,
            self.mapping.value,
            self.stretch.value,
            self.channel_names,
        )

    def toggle_channel(self, channel: int) -> bool:
        if not 1 <= channel <= self.channel_count:
            raise InvalidArgumentError(f"Channel {channel} out of range [1, {self.channel_count}].")
        cell = self.channel_visible[channel - 1]
        return cell.set(not cell.value)

    def display_image(self) -> np.ndarray:
        """Current composite as RGB (rows top to bottom)."""
        return self.rgb.value.transpose(1, 0, 2)[::-1]


def open_viewer(
    data,
    *,
    display_dims: Tuple[int, int] = (1, 2),
    dim_names: Optional[Sequence[str]] = None,
    percentile_clip: Optional[Tuple[float, float]] = None,
    colormap: str = "grays",
    channel_colors=None,
    channel_names: Optional[Sequence[str]] = None,
    max_figure_size: Tuple[int, int] = (800, 700),
    auto_show: bool = True,
    title: str = "",
    renderer: Union[str, None, Renderer] = "default",
    context: Optional[DisplayContext] = None,
    keybindings: Optional[KeybindingRegistry] = None,
) -> Union[Viewer, CompositeViewer]:
    """
    Open a viewer on one N-D array or on a tuple/list of 2-3 channel arrays.

    Parameters
    ----------
    data : ndarray or sequence of ndarray
        A single array (N >= 2) gives a ``Viewer``; 2-3 equal-shape arrays
        give a ``CompositeViewer``. Arrays are referenced, not copied.
    display_dims : (int, int)
        1-based (row_dim, col_dim).
    dim_names : sequence of str, optional
        Slider labels, one per dimension.
    percentile_clip : (float, float), optional
        Clip for the default mappings; (0, 1) single, (0.001, 0.999) composite.
    colormap : str
        Single-channel colormap ("grays", "inferno", ... or any matplotlib name).
    channel_colors : preset name or sequence of colors, optional
        Composite colors; cyan/magenta/yellow by default.
    channel_names : sequence of str, optional
        Composite channel names for the status readout.
    max_figure_size : (int, int)
        Maximum figure size in pixels.
    auto_show : bool
        Show the viewer immediately. Display failures only warn.
    renderer : "matplotlib", "notebook", None or Renderer
        Defaults to the context's renderer; None builds a headless viewer.
    context : DisplayContext, optional
        Backend configuration to reuse across viewers.
    keybindings : KeybindingRegistry, optional
        Defaults to the persisted user registry.

    Raises
    ------
    InvalidArgumentError
        For any invalid configuration, before any state is created.
    """
    source = as_viewer_input(data)
    if isinstance(source, CompositeInput):
        options = CompositeOptions(
            channel_colors=channel_colors,
            channel_names=channel_names,
            display_dims=display_dims,
            dim_names=dim_names,
            percentile_clip=(0.001, 0.999) if percentile_clip is None else percentile_clip,
            max_figure_size=max_figure_size,
            auto_show=auto_show,
            title=title,
        ).validate(source.shape, source.channel_count)
        viewer_cls = CompositeViewer
    else:
        options = ViewerOptions(
            display_dims=display_dims,
            dim_names=dim_names,
            percentile_clip=(0.0, 1.0) if percentile_clip is None else percentile_clip,
            colormap=colormap,
            max_figure_size=max_figure_size,
            auto_show=auto_show,
            title=title,
        ).validate(source.shape)
        viewer_cls = Viewer

    context = context if context is not None else DisplayContext()
    viewer = viewer_cls(source, options, context.create_renderer(renderer), keybindings)
    if options.auto_show and viewer.renderer is not None:
        viewer.show()
    return viewer
