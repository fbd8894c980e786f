# src/smlm_viewer/__init__.py

try:
    from ._version import __version__
except ImportError:
    __version__ = "unknown"

from .core import Mapping, StretchMode, Transform, compute_colorrange, prepare_slice
from .display import DisplayContext
from .errors import InvalidArgumentError, KeybindingError
from .keybindings import (
    JsonFileStore,
    KeybindingRegistry,
    MemoryStore,
    get_keybindings,
    list_actions,
    list_keys,
    reset_keybindings,
    set_keybinding,
)
from .renderers import MatplotlibRenderer, NotebookRenderer, Renderer
from .utils import get_data_info, print_data_info, save_view_as_image
from .viewers import CompositeViewer, Viewer, open_viewer

__all__ = [
    "open_viewer",
    "Viewer",
    "CompositeViewer",
    "DisplayContext",
    "Renderer",
    "MatplotlibRenderer",
    "NotebookRenderer",
    "KeybindingRegistry",
    "MemoryStore",
    "JsonFileStore",
    "get_keybindings",
    "set_keybinding",
    "reset_keybindings",
    "list_keys",
    "list_actions",
    "Mapping",
    "StretchMode",
    "Transform",
    "compute_colorrange",
    "prepare_slice",
    "get_data_info",
    "print_data_info",
    "save_view_as_image",
    "InvalidArgumentError",
    "KeybindingError",
]
