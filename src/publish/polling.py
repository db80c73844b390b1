"""
Bounded status polling.

A ``PollPolicy`` says how often and how many times to ask a platform for the
status of an asynchronous job, and which statuses end the wait.  ``poll``
runs it with an injectable ``sleep`` so tests (or an async runner) can drive
it without real delays.  The wall-clock bound is ``max_attempts × interval``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    max_attempts: int = 20
    interval: float = 6.0
    pending: frozenset[str] = frozenset({"IN_PROGRESS"})
    succeeded: frozenset[str] = frozenset({"FINISHED"})
    failed: frozenset[str] = frozenset({"ERROR"})

    @property
    def timeout(self) -> float:
        return self.max_attempts * self.interval


@dataclass
class PollOutcome:
    status: Optional[str]
    attempts: int
    policy: PollPolicy

    @property
    def succeeded(self) -> bool:
        return self.status in self.policy.succeeded

    @property
    def failed(self) -> bool:
        return self.status in self.policy.failed

    @property
    def timed_out(self) -> bool:
        return not (self.succeeded or self.failed)


def poll(
    fetch_status: Callable[[], Optional[str]],
    policy: PollPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "job",
) -> PollOutcome:
    """
    Sleep, then fetch the status, until it leaves ``policy.pending`` or the
    attempt budget runs out.

    Any status that is neither pending nor terminal stops the loop; the
    outcome then reports ``timed_out``.
    """
    status: Optional[str] = None
    attempts = 0
    while attempts < policy.max_attempts:
        sleep(policy.interval)
        status = fetch_status()
        attempts += 1
        logger.info("%s status: %s (attempt %d/%d)", label, status, attempts, policy.max_attempts)
        if status not in policy.pending:
            break
    return PollOutcome(status=status, attempts=attempts, policy=policy)
