# src/smlm_viewer/display.py
"""Caller-owned display configuration (matplotlib backend + renderer factory)."""

from __future__ import annotations
import logging
from typing import Optional, Union

import matplotlib

from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)


class DisplayContext:
    """
    Selects the matplotlib backend once and creates renderers.

    Reuse one context for several viewers to configure the backend a single
    time; a fresh context configures again.

    Parameters
    ----------
    backend : str, optional
        Backend passed to ``matplotlib.use`` (e.g. "Agg", "QtAgg"). None keeps
        matplotlib's own choice.
    renderer : str
        Default renderer kind: "matplotlib" or "notebook".
    """

    def __init__(self, backend: Optional[str] = None, renderer: str = "matplotlib"):
        self.backend = backend
        self.renderer = renderer
        self.configured = False

    def configure(self) -> None:
        if self.configured:
            return
        if self.backend is not None:
            matplotlib.use(self.backend)
            logger.info("Using matplotlib backend %s", self.backend)
        self.configured = True

    def create_renderer(self, kind: Union[str, None, "Renderer"] = "default"):
        """
        Return a renderer for ``kind``.

        "default" uses this context's renderer; None means headless (no
        renderer); a ``Renderer`` instance is returned unchanged.
        """
        from .renderers import MatplotlibRenderer, NotebookRenderer, Renderer

        if kind is None or isinstance(kind, Renderer):
            return kind
        if kind == "default":
            kind = self.renderer
        self.configure()
        if kind == "matplotlib":
            return MatplotlibRenderer()
        if kind == "notebook":
            return NotebookRenderer()
        raise InvalidArgumentError(f"Unknown renderer {kind!r}; use 'matplotlib', 'notebook' or None.")
