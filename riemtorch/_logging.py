"""Logging helpers for riemtorch."""

import logging

_ROOT = "riemtorch"


def get_logger(name: str = _ROOT) -> logging.Logger:
    """Return a logger in the ``riemtorch`` namespace.

    Idempotent: installs at most one NullHandler, marked by
    ``_riemtorch_handler``, on the package root logger. Records propagate to
    whatever handlers the application configures; output format and level
    are left to it.

    Args:
        name: Logger name. Names outside the ``riemtorch`` namespace are
            placed under it, so ``get_logger("statistics")`` returns
            ``riemtorch.statistics``.

    Returns:
        The logger.
    """
    root = logging.getLogger(_ROOT)
    if not any(getattr(h, "_riemtorch_handler", False) for h in root.handlers):
        handler = logging.NullHandler()
        handler._riemtorch_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
