# src/smlm_viewer/constants.py
"""
Fixed tables shared by the viewers.

Zoom levels, the colormap cycle, channel colors and the sampling cap for
colorrange estimation live here so that the core, the dispatcher and the
renderers agree on them.
"""

from typing import Dict, Tuple

RGBColor = Tuple[float, float, float]

ZOOM_LEVELS: Tuple[float, ...] = (0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 16.0)
DEFAULT_ZOOM_IDX = 2  # 1x
DIM_KEY_TIMEOUT = 0.5  # seconds between the two digits of a dim selection

MAX_SAMPLES = 1_000_000

COLORMAPS: Tuple[str, ...] = ("grays", "inferno", "viridis", "turbo", "plasma", "twilight")

# Cycle names that matplotlib spells differently
MPL_COLORMAP_NAMES: Dict[str, str] = {"grays": "gray"}

DEFAULT_CHANNEL_COLORS: Tuple[RGBColor, RGBColor, RGBColor] = (
    (0.0, 1.0, 1.0),  # cyan
    (1.0, 0.0, 1.0),  # magenta
    (1.0, 1.0, 0.0),  # yellow
)

CHANNEL_COLOR_PRESETS: Dict[str, Tuple[RGBColor, RGBColor, RGBColor]] = {
    "cmy": DEFAULT_CHANNEL_COLORS,
    "rgb": ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)),
    "mgc": ((1.0, 0.0, 1.0), (0.0, 1.0, 0.0), (0.0, 1.0, 1.0)),
}

MIN_CHANNELS = 2
MAX_CHANNELS = 3

# Status bar + one row per slider, in pixels
STATUS_HEIGHT = 30
SLIDER_ROW_HEIGHT = 25
