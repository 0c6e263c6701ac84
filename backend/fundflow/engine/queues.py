"""Pending fetch job queues."""

from __future__ import annotations

from collections import deque
from typing import Deque, Optional

from .records import Job


class JobQueues:
    """A normal and a priority FIFO; ``pop`` always drains priority first."""

    def __init__(self) -> None:
        self.normal: Deque[Job] = deque()
        self.priority: Deque[Job] = deque()

    def push(self, job: Job) -> None:
        self.normal.append(job)

    def requeue(self, job: Job, rate_limited: bool) -> bool:
        """Put a failed job back; returns True when it went to the priority queue."""
        if rate_limited and job.populates_cache:
            self.priority.append(job)
            return True
        self.normal.append(job)
        return False

    def pop(self) -> Optional[Job]:
        if self.priority:
            return self.priority.popleft()
        if self.normal:
            return self.normal.popleft()
        return None

    def is_empty(self) -> bool:
        return not self.normal and not self.priority

    def clear(self) -> None:
        self.normal.clear()
        self.priority.clear()

    def __len__(self) -> int:
        return len(self.normal) + len(self.priority)


__all__ = ["JobQueues"]
