# src/smlm_viewer/dispatch.py
"""
Input dispatch: key presses, pointer motion and slider ticks -> state writes.

Each handler runs as one graph batch. Failures are reported as
``RuntimeWarning`` and never escape into the GUI event loop.
"""

from __future__ import annotations
import time
import warnings
from typing import Callable, Dict, Optional, Tuple

from .constants import DIM_KEY_TIMEOUT
from .errors import InvalidArgumentError
from .keybindings import DEFAULT_KEYBINDINGS, KeybindingRegistry, default_registry

# matplotlib key names -> keybinding key names
KEY_ALIASES: Dict[str, str] = {
    " ": "space",
    "-": "minus",
    "=": "equal",
    "[": "left_bracket",
    "]": "right_bracket",
    "return": "enter",
    "esc": "escape",
}


def normalize_key(key) -> Optional[str]:
    if key is None:
        return None
    key = str(key)
    if key in KEY_ALIASES:
        return KEY_ALIASES[key]
    return key.lower()


def key_to_digit(key: Optional[str]) -> Optional[int]:
    if key is not None and len(key) == 1 and key.isdigit():
        return int(key)
    return None


class DimKeySequence:
    """
    Two-digit display-dim selection.

    Idle -> first digit -> (second, different digit within ``timeout``) ->
    commit (first, second). An expired sequence or a repeated digit restarts
    at the new digit. The timeout is checked when the next digit arrives.
    """

    def __init__(self, timeout: float = DIM_KEY_TIMEOUT):
        self.timeout = timeout
        self.first: Optional[int] = None
        self.started = 0.0

    @property
    def pending(self) -> Optional[int]:
        return self.first

    def feed(self, digit: int, now: float) -> Optional[Tuple[int, int]]:
        if self.first is not None and now - self.started < self.timeout and digit != self.first:
            dims = (self.first, digit)
            self.cancel()
            return dims
        self.first = digit
        self.started = now
        return None

    def cancel(self) -> None:
        self.first = None


class InputDispatcher:
    """
    Route raw input events to a viewer.

    Parameters
    ----------
    viewer : Viewer or CompositeViewer
    keybindings : KeybindingRegistry, optional
        Defaults to the user's persisted registry. Bindings are read once;
        call ``reload_bindings`` after changing them.
    clock : callable
        Monotonic time source for the dim-key timeout.
    """

    def __init__(
        self,
        viewer,
        keybindings: Optional[KeybindingRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.viewer = viewer
        self.keybindings = keybindings if keybindings is not None else default_registry()
        self.clock = clock
        self.dim_keys = DimKeySequence()
        self._key_to_action: Dict[str, str] = {}
        self.reload_bindings()

    def reload_bindings(self) -> None:
        bindings = self.keybindings.get_bindings()
        self._key_to_action = {}
        # First action in priority order wins when two share a key
        for action in DEFAULT_KEYBINDINGS:
            self._key_to_action.setdefault(bindings[action], action)

    def _actions(self) -> Dict[str, Callable[[], object]]:
        v = self.viewer
        return {
            "reset": v.reset_view,
            "zoom_in": v.zoom_in,
            "zoom_out": v.zoom_out,
            "pan_up": lambda: v.pan(0, -1),
            "pan_down": lambda: v.pan(0, 1),
            "pan_left": lambda: v.pan(-1, 0),
            "pan_right": lambda: v.pan(1, 0),
            "slice_prev": lambda: v.step_slice(-1),
            "slice_next": lambda: v.step_slice(1),
            "colormap_cycle": v.cycle_colormap,
            "mapping_cycle": v.cycle_mapping,
            "stretch_cycle": v.cycle_stretch,
        }

    # ---- Handlers ----

    def on_key(self, key, now: Optional[float] = None) -> None:
        try:
            with self.viewer.graph.batch():
                self._handle_key(normalize_key(key), self.clock() if now is None else now)
        except Exception as e:
            # The batch rolled back; drop any half-entered dim pair with it
            self.dim_keys.cancel()
            self.viewer.pending_dim_key.set(None)
            warnings.warn(f"Keyboard event error: {e}", RuntimeWarning)

    def _handle_key(self, key: Optional[str], now: float) -> None:
        if key is None:
            return
        digit = key_to_digit(key)
        v = self.viewer
        if v.is_composite:
            if digit is not None and 1 <= digit <= v.channel_count:
                v.toggle_channel(digit)
                return
        else:
            if digit is not None and 1 <= digit <= v.ndim:
                dims = self.dim_keys.feed(digit, now)
                if dims is not None:
                    v.set_display_dims(dims)
                v.pending_dim_key.set(self.dim_keys.pending)
                return
            self.dim_keys.cancel()
            v.pending_dim_key.set(None)

        action = self._key_to_action.get(key)
        if action is not None:
            self._actions()[action]()

    def run_action(self, name) -> None:
        """Execute a named action as one event (used by buttons and scripts)."""
        name = getattr(name, "value", name)
        actions = self._actions()
        if name not in actions:
            raise InvalidArgumentError(f"Unknown action '{name}'. Valid actions: {', '.join(sorted(actions))}")
        try:
            with self.viewer.graph.batch():
                actions[name]()
        except Exception as e:
            warnings.warn(f"Action '{name}' failed: {e}", RuntimeWarning)

    def on_mouse_move(self, x: Optional[float], y: Optional[float]) -> None:
        """Pointer at renderer coordinates (x, y); None when off the image axes."""
        pointer = None if x is None or y is None else (float(x), float(y))
        try:
            with self.viewer.graph.batch():
                self.viewer.pointer.set(pointer)
        except Exception as e:
            warnings.warn(f"Pointer lookup failed: {e}", RuntimeWarning)
            try:
                self.viewer.pointer.set(None)
            except Exception as e2:
                warnings.warn(f"Could not clear pointer: {e2}", RuntimeWarning)

    def on_slider(self, position: int, value) -> None:
        """Slider ``position`` (0-based, in slider order) moved to ``value``."""
        try:
            with self.viewer.graph.batch():
                dims = self.viewer.slider_dims.value
                if position >= len(dims):
                    return
                dim = dims[position]
                cell = self.viewer.slice_indices[dim - 1]
                value = min(max(int(round(float(value))), 1), self.viewer.shape[dim - 1])
                if cell.value != value:
                    cell.set(value)
        except Exception as e:
            warnings.warn(f"Slider update failed: {e}", RuntimeWarning)
