"""
Logging configuration for the service.

Modules log through named loggers under "pyfacet"; this sets up the one
handler they share.
"""

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
) -> None:
    """
    Configure the "pyfacet" logger hierarchy.

    Calling this more than once replaces the handler instead of stacking
    another one.

    Args:
        level: Logging level, as a number or a name such as "DEBUG".
        format_string: Optional custom format for log records.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("pyfacet")
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    root.addHandler(handler)

    # Quiet the HTTP client unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
