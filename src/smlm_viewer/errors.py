# src/smlm_viewer/errors.py
"""Exception types raised by smlm_viewer."""


class InvalidArgumentError(ValueError):
    """A configuration value or programmatic state write violates a constraint."""


class KeybindingError(InvalidArgumentError):
    """Unknown keybinding action or key name."""
