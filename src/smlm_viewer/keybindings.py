# src/smlm_viewer/keybindings.py
"""
Configurable keybindings (action name -> key name).

Overrides are kept in a small key-value store: ``MemoryStore`` for tests and
scripts, ``JsonFileStore`` for settings that persist between sessions. The
module-level helpers act on a default registry backed by
``config_dir() / "keybindings.json"``.

Example
-------
>>> from smlm_viewer import keybindings
>>> keybindings.set_keybinding("zoom_in", "k")
>>> keybindings.get_keybindings()["zoom_in"]
'k'
>>> keybindings.reset_keybindings()
"""

from __future__ import annotations
import json
import logging
import os
import string
import warnings
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import KeybindingError

logger = logging.getLogger(__name__)

DEFAULT_KEYBINDINGS: Dict[str, str] = {
    "zoom_in": "i",
    "zoom_out": "o",
    "reset": "r",
    "pan_up": "e",
    "pan_down": "d",
    "pan_left": "s",
    "pan_right": "f",
    "slice_prev": "j",
    "slice_next": "l",
    "colormap_cycle": "c",
    "mapping_cycle": "m",
    "stretch_cycle": "g",
}

VALID_KEYS = frozenset(
    list(string.ascii_lowercase)
    + list(string.digits)
    + [
        "up", "down", "left", "right",
        "space", "enter", "tab", "escape", "backspace",
        "minus", "equal", "left_bracket", "right_bracket",
    ]
)

KEYBINDINGS_FILENAME = "keybindings.json"


def _name(value) -> str:
    """Accept plain strings or enum-like objects with a string ``value``."""
    value = getattr(value, "value", value)
    if not isinstance(value, str):
        raise KeybindingError(f"Expected a name string; got {value!r}.")
    return value


# ------------------------------ Stores ----------------------------------------


class MemoryStore:
    """In-memory override store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, action: str) -> Optional[str]:
        return self._data.get(action)

    def set(self, action: str, key: str) -> None:
        self._data[action] = key

    def delete(self, action: str) -> None:
        self._data.pop(action, None)


class JsonFileStore:
    """
    Override store persisted as a flat JSON object.

    The file is read on every access so several registries (or processes)
    see each other's changes. A missing file is an empty store; an unreadable
    one is reported with a warning and treated as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            warnings.warn(f"Could not read keybindings from {self.path}: {e}", RuntimeWarning)
            return {}
        if not isinstance(data, dict):
            warnings.warn(f"Ignoring malformed keybindings file {self.path}", RuntimeWarning)
            return {}
        return data

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)
        logger.debug("Wrote %d keybinding override(s) to %s", len(data), self.path)

    def get(self, action: str) -> Optional[str]:
        value = self._load().get(action)
        return value if isinstance(value, str) else None

    def set(self, action: str, key: str) -> None:
        data = self._load()
        data[action] = key
        self._save(data)

    def delete(self, action: str) -> None:
        data = self._load()
        if action in data:
            del data[action]
            self._save(data)


# ------------------------------ Registry --------------------------------------


class KeybindingRegistry:
    """Validated view of the bindings: defaults overlaid with stored overrides."""

    def __init__(self, store=None):
        self.store = store if store is not None else MemoryStore()

    def get_bindings(self) -> Dict[str, str]:
        bindings = {}
        for action, default in DEFAULT_KEYBINDINGS.items():
            key = self.store.get(action)
            if key is None:
                bindings[action] = default
            elif key.lower() in VALID_KEYS:
                bindings[action] = key.lower()
            else:
                warnings.warn(
                    f"Unknown key '{key}' stored for '{action}', using default '{default}'",
                    RuntimeWarning,
                )
                bindings[action] = default
        return bindings

    def set_binding(self, action, key) -> None:
        """
        Bind ``action`` to ``key`` and persist the override.

        Raises
        ------
        KeybindingError
            If the action or the key is unknown; the store is left untouched.
        """
        action = _name(action)
        key = _name(key)
        if action not in DEFAULT_KEYBINDINGS:
            raise KeybindingError(
                f"Unknown action '{action}'. Valid actions: {', '.join(self.list_actions())}"
            )
        if key.lower() not in VALID_KEYS:
            raise KeybindingError(f"Unknown key '{key}'. See list_keys() for valid keys.")
        self.store.set(action, key.lower())
        logger.info("Set %s => %s", action, key.lower())

    def reset_bindings(self) -> None:
        for action in DEFAULT_KEYBINDINGS:
            self.store.delete(action)
        logger.info("Keybindings reset to defaults")

    def list_keys(self) -> List[str]:
        return sorted(VALID_KEYS)

    def list_actions(self) -> List[str]:
        return sorted(DEFAULT_KEYBINDINGS)

    def action_for_key(self, key: str) -> Optional[str]:
        """Action bound to ``key``; the first in action-priority order if several are."""
        bindings = self.get_bindings()
        for action in DEFAULT_KEYBINDINGS:
            if bindings[action] == key:
                return action
        return None


_default_registry: Optional[KeybindingRegistry] = None


def default_registry() -> KeybindingRegistry:
    """Registry backed by the user's keybindings file, created on first use."""
    global _default_registry
    if _default_registry is None:
        from .config import config_dir

        _default_registry = KeybindingRegistry(JsonFileStore(config_dir() / KEYBINDINGS_FILENAME))
    return _default_registry


def get_keybindings() -> Dict[str, str]:
    return default_registry().get_bindings()


def set_keybinding(action, key) -> None:
    default_registry().set_binding(action, key)


def reset_keybindings() -> None:
    default_registry().reset_bindings()


def list_keys() -> List[str]:
    return default_registry().list_keys()


def list_actions() -> List[str]:
    return default_registry().list_actions()
