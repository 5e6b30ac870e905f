"""
Error and warning taxonomy for the analytics engine.

Structural problems (misaligned panels, bad parameters) raise and abort the
call. Per-unit data problems (one row, one column, one window) only degrade
that unit to an undefined (NaN) result and are reported once per call as a
warning.
"""

import inspect
import os
import warnings


class ShapeError(ValueError):
    """Mismatched dimensions or misaligned timestamps between panels."""


class ConfigurationError(ValueError):
    """Invalid static parameter (window < 1, n_quantiles < 1, unknown method...)."""


class InsufficientDataWarning(UserWarning):
    """A row/column/window lacked enough observations; its result is undefined."""


class DivisionUndefined(InsufficientDataWarning):
    """A denominator was exactly zero; the affected result is undefined."""


def external_stacklevel() -> int:
    """
    Stack level of the first frame outside this package.

    Warnings raised deep inside nested calls are attributed to the caller's
    line rather than to an internal helper (same approach as pandas'
    ``find_stack_level``).
    """
    package_dir = os.path.dirname(os.path.abspath(__file__)) + os.sep
    frame = inspect.currentframe()
    level = 0
    try:
        while frame is not None and os.path.abspath(frame.f_code.co_filename).startswith(package_dir):
            frame = frame.f_back
            level += 1
    finally:
        del frame
    return level


def warn_undefined(n_undefined: int, n_total: int, what: str,
                   category=InsufficientDataWarning):
    """Emit a single aggregate warning when some units came out undefined."""
    if n_undefined <= 0:
        return
    warnings.warn(
        f"{n_undefined}/{n_total} {what} undefined (insufficient data)"
        if category is InsufficientDataWarning
        else f"{n_undefined}/{n_total} {what} undefined (zero denominator)",
        category,
        stacklevel=external_stacklevel(),
    )
