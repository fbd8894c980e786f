# src/smlm_viewer/renderers.py
"""
Renderers: the toolkit side of a viewer.

- Renderer (abstract interface the viewers publish to)
- MatplotlibRenderer (desktop figure, matplotlib.widgets.Slider)
- NotebookRenderer (ipywidgets controls around a matplotlib figure)

Images arrive in the viewer's buffer convention, shape (ncols, nrows[, 3])
with y counted from the bottom, and are drawn with ``origin="lower"`` over
the extent ``(0.5, ncols + 0.5, 0.5, nrows + 0.5)``.
"""

from __future__ import annotations
import contextlib
import warnings
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.widgets import Slider

from .keybindings import DEFAULT_KEYBINDINGS

Extent = Tuple[float, float, float, float]


class SliderSpec(NamedTuple):
    label: str
    size: int
    value: int


class Renderer:
    """Interface between a viewer's state graph and a display toolkit."""

    viewer = None

    def bind(self, viewer) -> None:
        """Attach to ``viewer`` and build the figure/widgets."""
        self.viewer = viewer

    def set_image(self, buffer: np.ndarray, extent: Extent) -> None:
        raise NotImplementedError

    def set_colorrange(self, crange: Tuple[float, float]) -> None:
        raise NotImplementedError

    def set_colormap(self, name: str) -> None:
        raise NotImplementedError

    def set_view_limits(self, limits) -> None:
        raise NotImplementedError

    def set_status(self, text: str) -> None:
        raise NotImplementedError

    def configure_sliders(self, specs: Sequence[SliderSpec]) -> None:
        raise NotImplementedError

    def set_slider_value(self, position: int, value: int) -> None:
        raise NotImplementedError

    def resize(self, size: Tuple[int, int], ui_height: int) -> None:
        """Fit the figure to ``size`` pixels, ``ui_height`` of which hold status + sliders."""

    def flush(self) -> None:
        """Draw pending changes; called once per event."""

    def show(self, block: Optional[bool] = None) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class _FigureRenderer(Renderer):
    """Image axes handling shared by the matplotlib-based renderers."""

    def __init__(self):
        self.fig = None
        self.ax = None
        self.im = None
        self._cmap = "gray"
        self._clim: Optional[Tuple[float, float]] = None

    def _setup_axes(self, rect=(0.0, 0.0, 1.0, 1.0)) -> None:
        self.ax = self.fig.add_axes(rect)
        self.ax.set_axis_off()

    def set_image(self, buffer: np.ndarray, extent: Extent) -> None:
        data = buffer.T if buffer.ndim == 2 else buffer.transpose(1, 0, 2)
        if self.im is None:
            kwargs = {}
            if buffer.ndim == 2:
                kwargs = dict(cmap=self._cmap)
                if self._clim is not None:
                    kwargs.update(vmin=self._clim[0], vmax=self._clim[1])
            self.im = self.ax.imshow(
                data, origin="lower", extent=extent, interpolation="nearest", **kwargs
            )
        else:
            # Extent first so the new buffer never meets stale coordinates
            self.im.set_extent(extent)
            self.im.set_data(data)

    def set_colorrange(self, crange: Tuple[float, float]) -> None:
        self._clim = (float(crange[0]), float(crange[1]))
        if self.im is not None:
            self.im.set_clim(*self._clim)

    def set_colormap(self, name: str) -> None:
        self._cmap = name
        if self.im is not None:
            self.im.set_cmap(name)

    def set_view_limits(self, limits) -> None:
        self.ax.set_xlim(*limits.xlim)
        self.ax.set_ylim(*limits.ylim)


class MatplotlibRenderer(_FigureRenderer):
    """
    Desktop renderer on a pyplot figure.

    Keyboard and motion events are connected with ``mpl_connect``; matplotlib's
    default keymap is disconnected so it does not compete for the viewer keys.
    """

    def __init__(self):
        super().__init__()
        self.status = None
        self.sliders: List[Slider] = []
        self._ui_height = 0
        self._cids: List[int] = []

    def bind(self, viewer) -> None:
        super().bind(viewer)
        self.fig = plt.figure()
        if viewer.title:
            with contextlib.suppress(AttributeError):
                self.fig.canvas.manager.set_window_title(viewer.title)
        with contextlib.suppress(AttributeError, TypeError):
            self.fig.canvas.mpl_disconnect(self.fig.canvas.manager.key_press_handler_id)
        self._setup_axes()
        self.status = self.fig.text(0.01, 0.0, "", fontsize=9, family="monospace", va="center")
        canvas = self.fig.canvas
        self._cids = [
            canvas.mpl_connect("key_press_event", self._on_key),
            canvas.mpl_connect("motion_notify_event", self._on_motion),
            canvas.mpl_connect("axes_leave_event", self._on_leave),
        ]

    # ---- Events ----

    def _on_key(self, event):
        self.viewer.dispatcher.on_key(event.key)

    def _on_motion(self, event):
        if event.inaxes is self.ax:
            self.viewer.dispatcher.on_mouse_move(event.xdata, event.ydata)
        else:
            self.viewer.dispatcher.on_mouse_move(None, None)

    def _on_leave(self, event):
        if event.inaxes is self.ax:
            self.viewer.dispatcher.on_mouse_move(None, None)

    # ---- Layout ----

    def _pixels(self) -> Tuple[float, float]:
        w, h = self.fig.get_size_inches()
        return w * self.fig.dpi, h * self.fig.dpi

    def _layout(self) -> None:
        _, h = self._pixels()
        bottom = min(self._ui_height / h, 0.9)
        self.ax.set_position([0.0, bottom, 1.0, 1.0 - bottom])
        # Status row sits directly under the image, sliders below it
        self.status.set_y(bottom - 15 / h)
        n = len(self.sliders)
        for i, sl in enumerate(self.sliders):
            y = (n - 1 - i) * 25 + 4
            sl.ax.set_position([0.15, y / h, 0.7, 17 / h])

    def resize(self, size: Tuple[int, int], ui_height: int) -> None:
        w, h = size
        self._ui_height = ui_height
        self.fig.set_size_inches(w / self.fig.dpi, h / self.fig.dpi, forward=True)
        self._layout()

    def _clear_sliders(self):
        for s in self.sliders:
            if hasattr(s, "ax"):
                s.ax.remove()
        self.sliders = []

    def configure_sliders(self, specs: Sequence[SliderSpec]) -> None:
        self._clear_sliders()
        for i, spec in enumerate(specs):
            ax_s = self.fig.add_axes([0.15, 0.0, 0.7, 0.03])
            # A length-1 dim still gets a (fixed) slider; keep its limits distinct
            sl = Slider(
                ax_s,
                spec.label,
                1,
                max(spec.size, 1.5),
                valinit=spec.value,
                valstep=1,
                valfmt="%d",
            )

            def _cb(val, pos=i):
                self.viewer.dispatcher.on_slider(pos, val)

            sl.on_changed(_cb)
            self.sliders.append(sl)
        self._layout()

    def set_slider_value(self, position: int, value: int) -> None:
        if position < len(self.sliders):
            sl = self.sliders[position]
            if int(round(sl.val)) != value:
                sl.set_val(value)

    def set_status(self, text: str) -> None:
        self.status.set_text(text)

    def flush(self) -> None:
        self.fig.canvas.draw_idle()

    def show(self, block: Optional[bool] = None) -> None:
        plt.figure(self.fig.number)
        if block is None:
            plt.show()
        else:
            plt.show(block=block)

    def close(self) -> None:
        for cid in self._cids:
            self.fig.canvas.mpl_disconnect(cid)
        plt.close(self.fig)


class NotebookRenderer(_FigureRenderer):
    """ipywidgets renderer: sliders, action buttons and a status label above the figure."""

    def __init__(self, width: int = 800, height: int = 700):
        super().__init__()
        self.width = width
        self.height = height
        try:
            import ipywidgets as widgets
            from IPython.display import display

            self.widgets_available = True
            self._widgets = widgets
            self._display = display
        except ImportError:
            self.widgets_available = False
            warnings.warn(
                "ipywidgets not available. Install with: pip install ipywidgets",
                RuntimeWarning,
            )

        self.sliders: List[Any] = []
        self.buttons: List[Any] = []
        self.status = None
        self.output = None
        self.container = None

    def bind(self, viewer) -> None:
        super().bind(viewer)
        # Detached from pyplot so inline backends do not draw it a second time
        self.fig = plt.figure(figsize=(self.width / 100, self.height / 100))
        plt.close(self.fig)
        self._setup_axes()
        if not self.widgets_available:
            return
        w = self._widgets
        self.status = w.Label(value="")
        self.output = w.Output()
        for action in DEFAULT_KEYBINDINGS:
            if action == "colormap_cycle" and viewer.is_composite:
                continue
            b = w.Button(description=action.replace("_", " "))
            b.on_click(lambda _b, name=action: self.viewer.dispatcher.run_action(name))
            self.buttons.append(b)
        if viewer.is_composite:
            for c in range(1, viewer.channel_count + 1):
                b = w.Button(description=f"channel {c}")
                b.on_click(lambda _b, key=str(c): self.viewer.dispatcher.on_key(key))
                self.buttons.append(b)
        self.container = w.VBox()
        self._rebuild_layout()

    def _rebuild_layout(self):
        if self.container is None:
            return
        w = self._widgets
        self.container.children = [
            w.HBox(self.buttons, layout=w.Layout(flex_flow="row wrap")),
            *self.sliders,
            self.status,
            self.output,
        ]

    def configure_sliders(self, specs: Sequence[SliderSpec]) -> None:
        if not self.widgets_available:
            return
        w = self._widgets
        self.sliders = []
        for i, spec in enumerate(specs):
            s = w.IntSlider(
                value=spec.value,
                min=1,
                max=spec.size,
                step=1,
                description=spec.label,
                continuous_update=False,
            )

            def _cb(change, pos=i):
                self.viewer.dispatcher.on_slider(pos, change.new)

            s.observe(_cb, names="value")
            self.sliders.append(s)
        self._rebuild_layout()

    def set_slider_value(self, position: int, value: int) -> None:
        if position < len(self.sliders) and self.sliders[position].value != value:
            self.sliders[position].value = value

    def set_status(self, text: str) -> None:
        if self.status is not None:
            self.status.value = text

    def resize(self, size: Tuple[int, int], ui_height: int) -> None:
        w, h = size
        self.fig.set_size_inches(w / self.fig.dpi, max(h - ui_height, 1) / self.fig.dpi)

    def flush(self) -> None:
        if self.output is None:
            return
        with self.output:
            self.output.clear_output(wait=True)
            self._display(self.fig)

    def show(self, block: Optional[bool] = None) -> None:
        if not self.widgets_available:
            print("ipywidgets not available. Use MatplotlibRenderer for an interactive view.")
            return
        self._display(self.container)
        self.flush()
