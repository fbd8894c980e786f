# tests/test_display.py
"""Tests for display configuration and the notebook renderer."""

import os
import sys
import unittest
import warnings
from unittest.mock import MagicMock, patch

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from smlm_viewer import open_viewer
from smlm_viewer.display import DisplayContext
from smlm_viewer.errors import InvalidArgumentError
from smlm_viewer.keybindings import DEFAULT_KEYBINDINGS, KeybindingRegistry
from smlm_viewer.renderers import MatplotlibRenderer, NotebookRenderer, Renderer

try:
    import ipywidgets  # noqa: F401

    WIDGETS_AVAILABLE = True
except ImportError:
    WIDGETS_AVAILABLE = False


class TestDisplayContext(unittest.TestCase):
    """Test cases for DisplayContext."""

    def test_configure_once(self):
        """Backend is selected a single time per context."""
        ctx = DisplayContext(backend="Agg")
        with patch("smlm_viewer.display.matplotlib.use") as mock_use:
            ctx.configure()
            ctx.configure()
            ctx.create_renderer("matplotlib")
        mock_use.assert_called_once_with("Agg")
        self.assertTrue(ctx.configured)

    def test_no_backend_keeps_matplotlib_choice(self):
        with patch("smlm_viewer.display.matplotlib.use") as mock_use:
            DisplayContext().configure()
        mock_use.assert_not_called()

    def test_create_renderer(self):
        ctx = DisplayContext()
        self.assertIsNone(ctx.create_renderer(None))
        custom = MagicMock(spec=Renderer)
        self.assertIs(ctx.create_renderer(custom), custom)
        self.assertIsInstance(ctx.create_renderer("default"), MatplotlibRenderer)
        self.assertIsInstance(ctx.create_renderer("matplotlib"), MatplotlibRenderer)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            self.assertIsInstance(ctx.create_renderer("notebook"), NotebookRenderer)
            notebook_ctx = DisplayContext(renderer="notebook")
            self.assertIsInstance(notebook_ctx.create_renderer(), NotebookRenderer)

    def test_unknown_renderer(self):
        with self.assertRaises(InvalidArgumentError):
            DisplayContext().create_renderer("qt")


class TestNotebookFallback(unittest.TestCase):
    """Notebook renderer without ipywidgets."""

    def tearDown(self):
        plt.close("all")

    def test_missing_widgets_warns_and_prints(self):
        with patch.dict(sys.modules, {"ipywidgets": None}):
            with self.assertWarns(RuntimeWarning):
                renderer = NotebookRenderer()
        self.assertFalse(renderer.widgets_available)
        viewer = open_viewer(
            np.zeros((3, 4)), renderer=renderer, auto_show=False, keybindings=KeybindingRegistry()
        )
        self.assertIsNotNone(renderer.fig)
        with patch("builtins.print") as mock_print:
            viewer.show()
        mock_print.assert_called_once()


@unittest.skipUnless(WIDGETS_AVAILABLE, "ipywidgets not installed")
class TestNotebookRenderer(unittest.TestCase):
    """Notebook renderer with ipywidgets controls."""

    def setUp(self):
        self.data = np.arange(60, dtype=np.float64).reshape(3, 4, 5)
        self.renderer = NotebookRenderer()
        self.renderer._display = MagicMock()
        self.viewer = open_viewer(
            self.data, renderer=self.renderer, auto_show=False, keybindings=KeybindingRegistry()
        )

    def tearDown(self):
        plt.close("all")

    def test_widgets_built(self):
        r = self.renderer
        self.assertEqual(len(r.buttons), len(DEFAULT_KEYBINDINGS))
        self.assertEqual(len(r.sliders), 1)
        self.assertEqual(r.sliders[0].max, 5)
        self.assertEqual(r.status.value, self.viewer.status_text.value)
        self.assertIn(r.output, r.container.children)

    def test_button_runs_action(self):
        zoom_button = next(b for b in self.renderer.buttons if b.description == "zoom in")
        zoom_button.click()
        self.assertEqual(self.viewer.zoom, 2.0)
        self.assertIn("| 2x |", self.renderer.status.value)

    def test_slider_moves_slice(self):
        self.renderer.sliders[0].value = 4
        self.assertEqual(self.viewer.slice_indices[2].value, 4)
        self.viewer.set_slice_index(3, 2)
        self.assertEqual(self.renderer.sliders[0].value, 2)

    def test_dims_change_rebuilds_sliders(self):
        self.viewer.set_display_dims((2, 3))
        self.assertEqual([s.description for s in self.renderer.sliders], ["dim 1:"])
        self.assertIn(self.renderer.sliders[0], self.renderer.container.children)

    def test_show_displays_container(self):
        self.renderer._display.reset_mock()
        self.viewer.show()
        self.renderer._display.assert_any_call(self.renderer.container)

    def test_composite_channel_buttons(self):
        renderer = NotebookRenderer()
        renderer._display = MagicMock()
        a = np.ones((3, 4))
        viewer = open_viewer((a, a), renderer=renderer, auto_show=False, keybindings=KeybindingRegistry())
        descriptions = [b.description for b in renderer.buttons]
        self.assertNotIn("colormap cycle", descriptions)
        self.assertIn("channel 2", descriptions)
        next(b for b in renderer.buttons if b.description == "channel 2").click()
        self.assertFalse(viewer.channel_visible[1].value)


if __name__ == '__main__':
    unittest.main()
