"""Tests for the polling helper."""

from __future__ import annotations

import threading

import pytest

from bsvpush_core.errors import NetworkError, PollCancelled, PollTimeout
from bsvpush_core.polling import poll_until


class Clock:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _sequence(*values):
    it = iter(values)
    return lambda: next(it)


def test_already_satisfied_does_not_sleep():
    clock = Clock()
    assert poll_until(lambda: "ready", description="x", sleep=clock) == "ready"
    assert clock.sleeps == []


def test_retries_until_truthy():
    clock = Clock()
    result = poll_until(_sequence(None, False, 0, 5), description="x", interval=0.25, sleep=clock)
    assert result == 5
    assert clock.sleeps == [0.25, 0.25, 0.25]


def test_network_errors_are_retried():
    calls = []

    def check():
        calls.append(1)
        if len(calls) < 3:
            raise NetworkError("lookup", "connection reset")
        return True

    assert poll_until(check, description="x", sleep=Clock()) is True
    assert len(calls) == 3


def test_other_errors_propagate():
    def check():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        poll_until(check, description="x", sleep=Clock())


def test_cancelled_before_first_check():
    cancel = threading.Event()
    cancel.set()
    calls = []
    with pytest.raises(PollCancelled, match="funding"):
        poll_until(lambda: calls.append(1), description="funding", sleep=Clock(), cancel=cancel)
    assert calls == []


def test_cancelled_while_waiting():
    """Setting the token during a sleep stops the loop on the next round."""
    cancel = threading.Event()

    def sleep(seconds):
        cancel.set()

    with pytest.raises(PollCancelled):
        poll_until(lambda: False, description="x", sleep=sleep, cancel=cancel)


def test_max_attempts():
    clock = Clock()
    with pytest.raises(PollTimeout) as exc:
        poll_until(lambda: None, description="utxo", sleep=clock, max_attempts=4)
    assert exc.value.attempts == 4
    assert len(clock.sleeps) == 3
