"""User-visible notices."""

from __future__ import annotations

import logging
import sys
from typing import Callable, Optional, TextIO

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


class ConsoleNotifier:
    """Print notices to a stream; fire-and-forget."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def __call__(self, message: str) -> None:
        logger.debug("Notice: %s", message)
        print(message, file=self.stream or sys.stdout, flush=True)
