"""Tests for src/publish/polling.py"""

from __future__ import annotations

from unittest.mock import MagicMock

from src.publish.polling import PollPolicy, poll


def _statuses(*values):
    return MagicMock(side_effect=list(values))


class TestPoll:
    def test_stops_on_success(self):
        fetch = _statuses("IN_PROGRESS", "IN_PROGRESS", "FINISHED")
        sleep = MagicMock()

        outcome = poll(fetch, PollPolicy(max_attempts=5, interval=6.0), sleep=sleep)

        assert outcome.succeeded
        assert outcome.attempts == 3
        assert sleep.call_count == 3
        sleep.assert_called_with(6.0)

    def test_stops_on_terminal_failure(self):
        outcome = poll(_statuses("IN_PROGRESS", "ERROR"), PollPolicy(), sleep=MagicMock())
        assert outcome.failed
        assert not outcome.timed_out
        assert outcome.attempts == 2

    def test_exhausting_attempts_is_timeout(self):
        fetch = MagicMock(return_value="IN_PROGRESS")
        outcome = poll(fetch, PollPolicy(max_attempts=3, interval=1.0), sleep=MagicMock())
        assert outcome.timed_out
        assert outcome.attempts == 3
        assert fetch.call_count == 3

    def test_unknown_status_ends_wait_as_timeout(self):
        outcome = poll(_statuses("EXPIRED"), PollPolicy(), sleep=MagicMock())
        assert outcome.timed_out
        assert outcome.status == "EXPIRED"
        assert outcome.attempts == 1

    def test_policy_timeout(self):
        assert PollPolicy(max_attempts=20, interval=6.0).timeout == 120.0
