"""Named, non-blocking notification channels."""

from __future__ import annotations

import logging
import queue
import threading

log = logging.getLogger(__name__)

WAKE_GC = "wakeGC"
SIG_WAKE_GC = 0


class SignalExistsError(ValueError):
    """Raised when a signal already has a channel registered."""


class SignalRegistry:
    """Maps signal names to queues and delivers to them without blocking."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: dict[str, queue.Queue] = {}
        self._muted: set[str] = set()

    def register_channel(self, signal: str, channel: queue.Queue) -> None:
        """Register the queue that receives notifications for a signal."""
        with self._lock:
            if signal in self._channels:
                raise SignalExistsError("register a exist signal")
            self._channels[signal] = channel

    def notify_signal(self, signal: str, data: int) -> bool:
        """Deliver data without blocking; return whether it was queued."""
        with self._lock:
            if signal in self._muted:
                log.info("Signal %s muted", signal)
                return False
            channel = self._channels.get(signal)
        if channel is None:
            return False
        try:
            channel.put_nowait(data)
        except queue.Full:
            log.info("Signal [%s %s] processing", signal, data)
            return False
        return True

    def mute_channel(self, signal: str) -> None:
        """Stop sending notifications for a signal."""
        with self._lock:
            self._muted.add(signal)

    def unmute_channel(self, signal: str) -> None:
        """Allow notifications for a signal again."""
        with self._lock:
            self._muted.discard(signal)


_registry = SignalRegistry()


def register_channel(signal: str, channel: queue.Queue) -> None:
    """Register a queue on the process-wide registry."""
    _registry.register_channel(signal, channel)


def notify_signal(signal: str, data: int) -> bool:
    """Notify through the process-wide registry."""
    return _registry.notify_signal(signal, data)


def mute_channel(signal: str) -> None:
    """Mute a signal on the process-wide registry."""
    _registry.mute_channel(signal)


def unmute_channel(signal: str) -> None:
    """Unmute a signal on the process-wide registry."""
    _registry.unmute_channel(signal)