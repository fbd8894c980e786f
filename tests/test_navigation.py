# tests/test_navigation.py
"""Tests for zoom/pan state and view clamping."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from smlm_viewer.constants import DEFAULT_ZOOM_IDX, ZOOM_LEVELS
from smlm_viewer.errors import InvalidArgumentError
from smlm_viewer.navigation import ViewNavigator, clamp_center, view_limits
from smlm_viewer.reactive import StateGraph


class TestPureHelpers(unittest.TestCase):
    """Test cases for clamp_center and view_limits."""

    def test_clamp_when_zoomed_in(self):
        # 10 px at 16x -> 0.625 visible, half 0.3125
        self.assertEqual(clamp_center((0.0, 20.0), 16.0, 10, 10), (0.8125, 10.1875))
        self.assertEqual(clamp_center((4.0, 6.0), 16.0, 10, 10), (4.0, 6.0))

    def test_midpoint_when_fully_visible(self):
        self.assertEqual(clamp_center((2.0, 9.0), 1.0, 10, 20), (5.5, 10.5))
        self.assertEqual(clamp_center((2.0, 9.0), 0.25, 10, 20), (5.5, 10.5))

    def test_axes_clamp_independently(self):
        # 10 x 40 at 2x: rows visible 5 < 10, cols visible 20 < 40
        row, col = clamp_center((1.0, 100.0), 2.0, 10, 40)
        self.assertEqual((row, col), (3.0, 30.5))

    def test_full_view_limits(self):
        limits = view_limits((5.5, 8.0), 1.0, 10, 15)
        self.assertEqual(limits.xlim, (0.5, 15.5))
        self.assertEqual(limits.ylim, (0.5, 10.5))

    def test_limits_flip_rows(self):
        limits = view_limits((2.0, 3.0), 2.0, 10, 10)
        self.assertEqual(limits.xlim, (0.5, 5.5))
        # row 2 from the top is y = 9 from the bottom
        self.assertEqual(limits.ylim, (6.5, 11.5))


class TestViewNavigator(unittest.TestCase):
    """Test cases for ViewNavigator on a graph."""

    def setUp(self):
        self.sizes = (10, 10)
        self.g = StateGraph()
        self.dims = self.g.cell((1, 2), name="display_dims")
        self.nav = ViewNavigator.create(self.g, lambda: self.sizes)
        self.nav.install_reactions(self.dims)

    def _assert_inside(self):
        nrows, ncols = self.sizes
        limits = self.nav.limits()
        self.assertGreaterEqual(limits.xlim[0], 0.5 - 1e-9)
        self.assertLessEqual(limits.xlim[1], ncols + 0.5 + 1e-9)
        self.assertGreaterEqual(limits.ylim[0], 0.5 - 1e-9)
        self.assertLessEqual(limits.ylim[1], nrows + 0.5 + 1e-9)

    def test_initial_state(self):
        self.assertEqual(self.nav.zoom_cell.value, DEFAULT_ZOOM_IDX)
        self.assertEqual(self.nav.zoom, 1.0)
        self.assertEqual(self.nav.center_cell.value, (5.5, 5.5))

    def test_zoom_bounds(self):
        while self.nav.zoom_in():
            pass
        self.assertEqual(self.nav.zoom_cell.value, len(ZOOM_LEVELS) - 1)
        self.assertFalse(self.nav.zoom_in())
        while self.nav.zoom_out():
            pass
        self.assertEqual(self.nav.zoom_cell.value, 0)
        self.assertFalse(self.nav.zoom_out())

    def test_pan_stays_inside_at_max_zoom(self):
        while self.nav.zoom_in():
            pass
        for dcol, drow in [(1, 0)] * 50 + [(0, 1)] * 50 + [(-1, 0)] * 80 + [(0, -1)] * 80 + [(1, 1)] * 7:
            self.nav.pan(dcol, drow)
            self._assert_inside()

    def test_pan_step_is_quarter_window(self):
        self.nav.zoom_in()  # 2x: 5 px visible, step 1.25
        self.assertTrue(self.nav.pan(1, 0))
        self.assertEqual(self.nav.center_cell.value, (5.5, 6.75))
        self.nav.pan(0, -1)
        self.assertEqual(self.nav.center_cell.value, (4.25, 6.75))

    def test_pan_has_no_effect_when_fully_visible(self):
        self.assertFalse(self.nav.pan(1, 1))
        self.assertEqual(self.nav.center_cell.value, (5.5, 5.5))

    def test_zoom_out_recenters(self):
        while self.nav.zoom_in():
            pass
        for _ in range(40):
            self.nav.pan(1, 1)
        self.assertNotEqual(self.nav.center_cell.value, (5.5, 5.5))
        self.nav.zoom_cell.set(DEFAULT_ZOOM_IDX)
        self.assertEqual(self.nav.center_cell.value, (5.5, 5.5))

    def test_programmatic_center_is_clamped(self):
        self.nav.zoom_cell.set(4)  # 4x
        self.nav.center_cell.set((-100, 100))
        self.assertEqual(self.nav.center_cell.value, (1.75, 9.25))
        self._assert_inside()

    def test_reset(self):
        self.nav.zoom_cell.set(5)
        self.nav.pan(1, 1)
        self.nav.reset()
        self.assertEqual(self.nav.zoom_cell.value, DEFAULT_ZOOM_IDX)
        self.assertEqual(self.nav.center_cell.value, (5.5, 5.5))

    def test_display_dim_change_resets_view(self):
        self.nav.zoom_cell.set(5)
        self.nav.pan(1, 0)
        self.sizes = (6, 20)
        self.dims.set((2, 1))
        self.assertEqual(self.nav.zoom_cell.value, DEFAULT_ZOOM_IDX)
        self.assertEqual(self.nav.center_cell.value, (3.5, 10.5))

    def test_invalid_writes(self):
        with self.assertRaises(InvalidArgumentError):
            self.nav.zoom_cell.set(len(ZOOM_LEVELS))
        with self.assertRaises(InvalidArgumentError):
            self.nav.zoom_cell.set(1.5)
        with self.assertRaises(InvalidArgumentError):
            self.nav.center_cell.set("middle")
        with self.assertRaises(InvalidArgumentError):
            self.nav.center_cell.set((float("nan"), 1.0))
        self.assertEqual(self.nav.zoom_cell.value, DEFAULT_ZOOM_IDX)


if __name__ == '__main__':
    unittest.main()
