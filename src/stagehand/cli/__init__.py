"""
Stagehand CLI Package

Entrypoints for stagehand-playbook and stagehand-inventory.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(levelname)s %(name)s - %(message)s"


def configure_logging(verbosity: int = 0, level: Optional[str] = None) -> None:
    """
    Route diagnostics to stderr.

    WARNING by default, INFO at -v and DEBUG at -vv. An explicit level
    name wins over the verbosity count.
    """
    if level:
        resolved = getattr(logging, level.upper())
    elif verbosity >= 2:
        resolved = logging.DEBUG
    elif verbosity == 1:
        resolved = logging.INFO
    else:
        resolved = logging.WARNING
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
