"""
Process-wide logging for TraceWipe.

Components log through short named loggers (``rules``, ``deletion``,
``buffer``, ``scheduler``, ``pipeline``, ``service`` ...). The CLI calls
:func:`setup_logging` once, with the level and optional log file taken
from :class:`~tracewipe.core.config.Settings` or the command line.
"""

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Turn ``"debug"``/``"WARNING"``/``10`` into a numeric level; unknown names fall back to ``default``."""
    if isinstance(level, int):
        return level
    if not level:
        return default
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(level: Union[int, str, None] = logging.INFO, log_file: Optional[str] = None) -> None:
    """Route every TraceWipe logger to stderr and, optionally, a file.

    Parameters
    ----------
    level: int | str
        Numeric level or level name as stored in ``Settings.log_level``.
    log_file: Optional[str]
        Also append records to this path. Missing parent directories are
        created.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT, handlers=handlers, force=True)
