# tests/test_composite.py
"""Tests for the multi-channel composite viewer."""

import os
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from smlm_viewer import DisplayContext, open_viewer
from smlm_viewer import core
from smlm_viewer.errors import InvalidArgumentError
from smlm_viewer.keybindings import KeybindingRegistry
from smlm_viewer.viewers import CompositeViewer


def _headless(data, **kwargs):
    kwargs.setdefault("keybindings", KeybindingRegistry())
    return open_viewer(data, renderer=None, auto_show=False, **kwargs)


class TestCompositeBlend(unittest.TestCase):
    """Two 2x2 channels with one bright pixel each."""

    def setUp(self):
        self.a = np.array([[1.0, 0.0], [0.0, 0.0]])
        self.b = np.array([[1.0, 1.0], [0.0, 0.0]])
        # Full clip so each channel maps 0 -> 0 and 1 -> 1
        self.viewer = _headless((self.a, self.b), percentile_clip=(0.0, 1.0))

    def _pixel(self, row, col):
        # rgb is (ncols, nrows, 3) with y from the bottom
        return self.viewer.rgb.value[col - 1, 2 - row]

    def test_defaults(self):
        v = self.viewer
        self.assertIsInstance(v, CompositeViewer)
        self.assertEqual(v.channel_count, 2)
        self.assertEqual(v.channel_colors, ((0.0, 1.0, 1.0), (1.0, 0.0, 1.0)))
        self.assertEqual(v.rgb.value.shape, (2, 2, 3))
        self.assertIs(v.data[0], self.a)
        self.assertIs(v.data[1], self.b)

    def test_additive_blend(self):
        # cyan + magenta saturates to white
        np.testing.assert_allclose(self._pixel(1, 1), [1.0, 1.0, 1.0])
        np.testing.assert_allclose(self._pixel(1, 2), [1.0, 0.0, 1.0])
        np.testing.assert_allclose(self._pixel(2, 1), [0.0, 0.0, 0.0])
        self.assertLessEqual(self.viewer.rgb.value.max(), 1.0)

    def test_toggle_channel(self):
        v = self.viewer
        v.toggle_channel(2)
        self.assertFalse(v.channel_visible[1].value)
        np.testing.assert_allclose(self._pixel(1, 1), [0.0, 1.0, 1.0])
        np.testing.assert_allclose(self._pixel(1, 2), [0.0, 0.0, 0.0])
        self.assertIsNone(v.channel_buffers[1].value)
        self.assertIsNone(v.channel_ranges.value[1])
        v.toggle_channel(2)
        np.testing.assert_allclose(self._pixel(1, 1), [1.0, 1.0, 1.0])

    def test_all_hidden_is_black(self):
        v = self.viewer
        with v.graph.batch():
            v.toggle_channel(1)
            v.toggle_channel(2)
        self.assertEqual(v.rgb.value.max(), 0.0)

    def test_toggle_out_of_range(self):
        with self.assertRaises(InvalidArgumentError):
            self.viewer.toggle_channel(3)
        with self.assertRaises(InvalidArgumentError):
            self.viewer.channel_visible[0].set("yes")

    def test_hover_reads_every_channel(self):
        v = self.viewer
        v.dispatcher.on_mouse_move(2, 2)
        self.assertEqual(v.cursor_pos, (1, 2))
        self.assertEqual(v.pixel_values, (0.0, 1.0))

    def test_status_text(self):
        v = self.viewer
        self.assertEqual(v.status_text.value, "--- | ch:12 | 1x | linear | global | 2x2")
        v.toggle_channel(1)
        self.assertIn("ch:-2", v.status_text.value)
        v.toggle_channel(1)
        v.dispatcher.on_mouse_move(1, 2)
        self.assertTrue(v.status_text.value.startswith("(1,1) = [1, 1] | ch:12"))

    def test_channel_names_in_status(self):
        v = _headless((self.a, self.b), channel_names=("dna", "actin"))
        v.dispatcher.on_mouse_move(1, 2)
        self.assertTrue(v.status_text.value.startswith("(1,1) = [dna=1, actin=1]"))

    def test_display_image(self):
        image = self.viewer.display_image()
        self.assertEqual(image.shape, (2, 2, 3))
        np.testing.assert_allclose(image[0, 0], [1.0, 1.0, 1.0])


class TestCompositeStacks(unittest.TestCase):
    """Three 3D channels."""

    def setUp(self):
        self.channels = tuple(
            np.arange(60, dtype=np.float64).reshape(3, 4, 5) * (c + 1) for c in range(3)
        )
        self.viewer = _headless(self.channels)
        self.viewer.graph.reset_counts()

    def test_hidden_channel_is_not_recomputed(self):
        v = self.viewer
        v.toggle_channel(3)
        v.graph.reset_counts()
        v.set_slice_index(3, 2)
        counts = v.graph.recompute_counts
        self.assertEqual(counts[v.channel_slices[0]], 1)
        self.assertEqual(counts[v.channel_slices[2]], 0)
        self.assertEqual(counts[v.channel_buffers[2]], 0)
        self.assertEqual(counts[v.channel_range_nodes[2]], 0)
        self.assertEqual(counts[v.rgb], 1)

    def test_equal_write_recomputes_nothing(self):
        v = self.viewer
        self.assertFalse(v.set_slice_index(3, 1))
        self.assertFalse(v.set_display_dims((1, 2)))
        self.assertFalse(v.mapping.set("linear"))
        self.assertFalse(v.stretch.set("global"))
        for visible in v.channel_visible:
            self.assertFalse(visible.set(True))
        self.assertEqual(sum(v.graph.recompute_counts.values()), 0)

    def test_hidden_channel_does_not_extract(self):
        v = self.viewer
        v.toggle_channel(2)
        with patch("smlm_viewer.viewers.prepare_slice", wraps=core.prepare_slice) as mock_prepare:
            v.set_slice_index(3, 3)
        self.assertEqual(mock_prepare.call_count, 2)

    def test_reshown_channel_catches_up(self):
        v = self.viewer
        v.toggle_channel(1)
        v.set_slice_index(3, 4)
        v.toggle_channel(1)
        expected = core.prepare_slice(self.channels[0], (1, 2), (1, 1, 4))
        np.testing.assert_array_equal(v.channel_slices[0].value, expected)

    def test_log_global_uses_cached_range(self):
        a = np.arange(16.0).reshape(4, 4)
        v = _headless((a, a), percentile_clip=(0.0, 1.0))
        with patch("smlm_viewer.core.compute_colorrange", wraps=core.compute_colorrange) as mock_range:
            v.mapping.set("log")
        mock_range.assert_not_called()
        for lo, hi in v.channel_ranges.value:
            self.assertAlmostEqual(lo, 0.0)
            self.assertAlmostEqual(hi, np.log10(16))

    def test_dims_change(self):
        v = self.viewer
        v.set_display_dims((3, 2))
        self.assertEqual(v.rgb.value.shape, (4, 5, 3))
        self.assertEqual(v.slider_dims.value, (1,))


class TestCompositeValidation(unittest.TestCase):
    """Invalid composite input."""

    def test_channel_count(self):
        a = np.zeros((2, 2))
        for data in [(a,), [a, a, a, a], ()]:
            with self.assertRaises(InvalidArgumentError):
                _headless(data)

    def test_count_checked_before_colors(self):
        a = np.zeros((2, 2))
        with self.assertRaises(InvalidArgumentError) as ctx:
            _headless((a, a, a, a), channel_colors=["red"] * 4)
        self.assertIn("channels", str(ctx.exception))

    def test_shape_mismatch(self):
        with self.assertRaises(InvalidArgumentError):
            _headless((np.zeros((2, 2)), np.zeros((2, 3))))

    def test_colors_and_names(self):
        a = np.zeros((2, 2))
        with self.assertRaises(InvalidArgumentError):
            _headless((a, a), channel_colors=["red"])
        with self.assertRaises(InvalidArgumentError):
            _headless((a, a), channel_colors=["red", "not-a-color"])
        with self.assertRaises(InvalidArgumentError):
            _headless((a, a), channel_colors="xyz")
        with self.assertRaises(InvalidArgumentError):
            _headless((a, a), channel_names=("one",))

    def test_channel_range_writes(self):
        a = np.arange(4.0).reshape(2, 2)
        v = _headless((a, a), percentile_clip=(0.0, 1.0))
        before = v.channel_ranges.value
        for bad in [
            ((5.0, 1.0), (0.0, 1.0)),
            ((0.0, 1.0),),
            ((0.0, 1.0), (0.0, 1.0), (0.0, 1.0)),
            ((0.0, 1.0), None),
            ((0.0, np.nan), (0.0, 1.0)),
            None,
        ]:
            with self.assertRaises(InvalidArgumentError, msg=repr(bad)):
                v.channel_ranges.set(bad)
        self.assertEqual(v.channel_ranges.value, before)
        with self.assertRaises(InvalidArgumentError):
            v.channel_range_nodes[0].set((2.0, 2.0))

        self.assertTrue(v.channel_ranges.set([(0, 6), (0.0, 3.0)]))
        self.assertEqual(v.channel_ranges.value, ((0.0, 6.0), (0.0, 3.0)))
        # Brightest pixel (row 2, col 2): half of channel 1, all of channel 2
        np.testing.assert_allclose(v.rgb.value[1, 0], (1.0, 0.5, 1.0))
        np.testing.assert_allclose(v.display_image()[1, 1], (1.0, 0.5, 1.0))

        v.toggle_channel(2)
        self.assertTrue(v.channel_ranges.set(((0.0, 6.0), None)))
        self.assertIsNone(v.channel_ranges.value[1])

    def test_color_presets_and_specs(self):
        a = np.zeros((2, 2))
        v = _headless((a, a, a), channel_colors="rgb")
        self.assertEqual(v.channel_colors, ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)))
        v = _headless((a, a), channel_colors=["red", (0, 0, 1)])
        self.assertEqual(v.channel_colors, ((1.0, 0.0, 0.0), (0.0, 0.0, 1.0)))


class TestCompositeRenderer(unittest.TestCase):
    """Composite viewer on the desktop renderer."""

    def tearDown(self):
        plt.close("all")

    def test_rgb_drawn(self):
        a = np.arange(12.0).reshape(3, 4)
        v = open_viewer(
            (a, a[::-1]),
            renderer="matplotlib",
            auto_show=False,
            context=DisplayContext(backend="Agg"),
            keybindings=KeybindingRegistry(),
        )
        self.assertEqual(v.renderer.im.get_array().shape, (3, 4, 3))
        self.assertEqual(v.renderer.sliders, [])
        v.renderer._on_key(SimpleNamespace(key="1"))
        self.assertFalse(v.channel_visible[0].value)


if __name__ == '__main__':
    unittest.main()
