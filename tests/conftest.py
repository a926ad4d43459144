"""Shared fakes: a scripted serial port and a hand-fired timer."""

from __future__ import annotations

import queue
import time

import pytest

from vex_laser_mcp.transport.serial_session import SerialSession


class FakeSerialPort:
    """Stands in for a ``serial.Serial`` created with ``do_not_open=True``.

    Queue bytes (or an exception to raise) with :meth:`feed`; every
    written chunk lands in :attr:`written`.
    """

    def __init__(self) -> None:
        self._incoming: queue.Queue = queue.Queue()
        self.written: list[bytes] = []
        self.is_open = False
        self.open_error: Exception | None = None
        self.write_error: Exception | None = None
        self.close_error: Exception | None = None
        self.calls: list[str] = []

    def feed(self, item) -> None:
        self._incoming.put(item)

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    @property
    def in_waiting(self) -> int:
        return 0

    def read(self, size: int = 1) -> bytes:
        if not self.is_open:
            raise ValueError("port not open")
        try:
            item = self._incoming.get(timeout=0.01)
        except queue.Empty:
            return b""
        if isinstance(item, Exception):
            raise item
        return item

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(bytes(data))
        return len(data)

    def cancel_read(self) -> None:
        self.calls.append("cancel_read")

    def reset_input_buffer(self) -> None:
        self.calls.append("reset_input_buffer")

    def flush(self) -> None:
        self.calls.append("flush")

    def close(self) -> None:
        self.calls.append("close")
        if self.close_error is not None:
            raise self.close_error
        self.is_open = False

    @property
    def written_text(self) -> list[str]:
        return [chunk.decode("utf-8") for chunk in self.written]


class ManualTimer:
    """``threading.Timer`` look-alike that only runs when fired."""

    def __init__(self, interval, function, args=None, kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.function(*self.args, **self.kwargs)


class ManualTimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None) -> ManualTimer:
        timer = ManualTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.timers):
            timer.fire()


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until ``predicate()`` is truthy or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return bool(predicate())


@pytest.fixture
def fake_port() -> FakeSerialPort:
    return FakeSerialPort()


@pytest.fixture
def port_factory(fake_port):
    """A pyserial-style factory that always hands out ``fake_port``."""

    def factory(url, do_not_open=False):
        factory.urls.append(url)
        return fake_port

    factory.urls = []
    return factory


@pytest.fixture
def session(port_factory) -> SerialSession:
    return SerialSession(port_factory=port_factory, read_timeout=0.01)


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def wait():
    return wait_for
