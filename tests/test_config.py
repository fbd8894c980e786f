# tests/test_config.py
"""Tests for option validation, settings location and shared tables."""

import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

import numpy as np
import matplotlib

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from smlm_viewer.config import (
    CompositeOptions,
    ViewerOptions,
    config_dir,
    mpl_colormap_name,
    resolve_channel_colors,
    validate_clip,
    validate_display_dims,
    validate_figure_size,
    validate_names,
)
from smlm_viewer.constants import (
    CHANNEL_COLOR_PRESETS,
    COLORMAPS,
    DEFAULT_ZOOM_IDX,
    MAX_CHANNELS,
    ZOOM_LEVELS,
)
from smlm_viewer.errors import InvalidArgumentError


class TestConstants(unittest.TestCase):
    """Sanity checks for the fixed tables."""

    def test_zoom_levels(self):
        self.assertEqual(list(ZOOM_LEVELS), sorted(ZOOM_LEVELS))
        self.assertEqual(ZOOM_LEVELS[DEFAULT_ZOOM_IDX], 1.0)
        self.assertEqual((ZOOM_LEVELS[0], ZOOM_LEVELS[-1]), (0.25, 16.0))

    def test_colormaps_exist_in_matplotlib(self):
        self.assertEqual(COLORMAPS[0], "grays")
        for name in COLORMAPS:
            self.assertIn(mpl_colormap_name(name), matplotlib.colormaps)

    def test_presets_cover_max_channels(self):
        for colors in CHANNEL_COLOR_PRESETS.values():
            self.assertEqual(len(colors), MAX_CHANNELS)
            for color in colors:
                self.assertTrue(all(0.0 <= c <= 1.0 for c in color))


class TestConfigDir(unittest.TestCase):
    """Test cases for the settings directory."""

    def test_env_override(self):
        with patch.dict(os.environ, {"SMLM_VIEWER_CONFIG_DIR": "/tmp/viewer-settings"}):
            self.assertEqual(config_dir(), Path("/tmp/viewer-settings"))

    def test_home_default(self):
        with patch.dict(os.environ, {"SMLM_VIEWER_CONFIG_DIR": ""}):
            self.assertEqual(config_dir(), Path.home() / ".smlm_viewer")


class TestValidators(unittest.TestCase):
    """Test cases for the individual option checks."""

    def test_display_dims(self):
        self.assertEqual(validate_display_dims([3, 1], 3), (3, 1))
        self.assertEqual(validate_display_dims((np.int64(2), 1), 3), (2, 1))
        for bad in [(1, 1), (0, 2), (1, 4), (1,), "ab", None, (1.7, 2), ("1", "2")]:
            with self.assertRaises(InvalidArgumentError, msg=repr(bad)):
                validate_display_dims(bad, 3)

    def test_names(self):
        self.assertIsNone(validate_names(None, 3, "dim_names"))
        self.assertEqual(validate_names(["z", "y"], 2, "dim_names"), ("z", "y"))
        with self.assertRaises(InvalidArgumentError):
            validate_names(["z"], 2, "dim_names")

    def test_clip(self):
        self.assertEqual(validate_clip((0, 1)), (0.0, 1.0))
        for bad in [(0.5, 0.5), (-0.1, 0.5), (0.2, 1.1), (0.9, 0.1), "x"]:
            with self.assertRaises(InvalidArgumentError, msg=repr(bad)):
                validate_clip(bad)

    def test_figure_size(self):
        self.assertEqual(validate_figure_size((640.0, 480)), (640, 480))
        with self.assertRaises(InvalidArgumentError):
            validate_figure_size((640, -1))
        with self.assertRaises(InvalidArgumentError):
            validate_figure_size(640)

    def test_channel_colors(self):
        self.assertEqual(len(resolve_channel_colors(None, 2)), 2)
        self.assertEqual(resolve_channel_colors("mgc", 3)[1], (0.0, 1.0, 0.0))
        self.assertEqual(resolve_channel_colors(["#ff0000", "b"], 2), ((1.0, 0.0, 0.0), (0.0, 0.0, 1.0)))


class TestOptions(unittest.TestCase):
    """Test cases for the option dataclasses."""

    def test_viewer_options_normalize(self):
        opts = ViewerOptions(display_dims=[2, 1], percentile_clip=[0, 1]).validate((4, 5))
        self.assertEqual(opts.display_dims, (2, 1))
        self.assertEqual(opts.percentile_clip, (0.0, 1.0))
        self.assertEqual(opts.colormap, "grays")

    def test_composite_defaults(self):
        opts = CompositeOptions().validate((4, 5), 2)
        self.assertEqual(opts.percentile_clip, (0.001, 0.999))
        self.assertEqual(opts.channel_colors, ((0.0, 1.0, 1.0), (1.0, 0.0, 1.0)))

    def test_composite_names_checked_against_channels(self):
        with self.assertRaises(InvalidArgumentError):
            CompositeOptions(channel_names=("a", "b", "c")).validate((4, 5), 2)


if __name__ == '__main__':
    unittest.main()
