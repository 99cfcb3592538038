import queue

import pytest

from cello import signals
from cello.signals import SIG_WAKE_GC, WAKE_GC, SignalExistsError, SignalRegistry


def test_signal_flow_on_global_registry():
    sig = queue.Queue(maxsize=1)
    signals.register_channel(WAKE_GC, sig)
    try:
        assert signals.notify_signal(WAKE_GC, SIG_WAKE_GC) is True
        assert sig.get_nowait() == SIG_WAKE_GC
        signals.mute_channel(WAKE_GC)
        assert signals.notify_signal(WAKE_GC, SIG_WAKE_GC) is False
        assert sig.empty()
        with pytest.raises(SignalExistsError):
            signals.register_channel(WAKE_GC, queue.Queue())
    finally:
        signals.unmute_channel(WAKE_GC)


def test_register_twice_raises():
    registry = SignalRegistry()
    registry.register_channel("s", queue.Queue())
    with pytest.raises(SignalExistsError, match="register a exist signal"):
        registry.register_channel("s", queue.Queue())


def test_full_channel_does_not_block():
    registry = SignalRegistry()
    ch = queue.Queue(maxsize=1)
    registry.register_channel(WAKE_GC, ch)
    assert registry.notify_signal(WAKE_GC, SIG_WAKE_GC) is True
    assert registry.notify_signal(WAKE_GC, SIG_WAKE_GC) is False
    assert ch.qsize() == 1


def test_unregistered_signal_is_dropped():
    registry = SignalRegistry()
    assert registry.notify_signal("missing", 1) is False


def test_mute_and_unmute():
    registry = SignalRegistry()
    ch = queue.Queue()
    registry.register_channel("s", ch)
    registry.mute_channel("s")
    assert registry.notify_signal("s", 7) is False
    registry.unmute_channel("s")
    assert registry.notify_signal("s", 7) is True
    assert ch.get_nowait() == 7