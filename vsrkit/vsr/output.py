"""Observability sink for vsr command output.

The runner echoes every invocation (arguments and elapsed time) and any
stderr text into an OutputChannel. Consumers subscribe to receive lines
as they are emitted; the channel also keeps a bounded history.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Optional

logger = logging.getLogger(__name__)

OutputListener = Callable[[str], None]


class OutputChannel:
    """Subscribable stream of log output from vsr invocations."""

    def __init__(self, history: int = 1000):
        """Initialize an OutputChannel.

        Args:
            history: Number of emitted entries to retain. Zero disables history.
        """
        self._listeners: list[OutputListener] = []
        self._history: deque[str] = deque(maxlen=history or None)
        self._keep_history = history > 0
        self._disposed = False

    @property
    def history(self) -> list[str]:
        """Entries emitted so far, oldest first."""
        return list(self._history)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def subscribe(self, listener: OutputListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        if self._disposed:
            raise RuntimeError("OutputChannel has been disposed")

        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: OutputListener) -> None:
        """Remove a previously registered listener, if present."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def emit(self, output: str) -> None:
        """Deliver output to every listener in registration order."""
        if self._disposed:
            return

        if self._keep_history:
            self._history.append(output)

        for listener in list(self._listeners):
            try:
                listener(output)
            except Exception:
                logger.exception("Output listener failed")

    def dispose(self) -> None:
        """Drop all listeners; later emits are ignored."""
        self._listeners.clear()
        self._disposed = True


def split_output_lines(output: str) -> list[str]:
    """Split emitted output into lines, dropping trailing blank lines."""
    lines = output.replace("\r\n", "\n").split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def forward_to_logger(target: Optional[logging.Logger] = None) -> OutputListener:
    """Create a listener that writes each output line to a logger at INFO."""
    target = target or logging.getLogger("vsrkit.output")

    def listener(output: str) -> None:
        for line in split_output_lines(output):
            target.info(line)

    return listener
