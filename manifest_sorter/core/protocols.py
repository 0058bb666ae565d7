"""Protocol definitions for the run's external boundaries."""
from __future__ import annotations

from abc import abstractmethod
from enum import Enum
from pathlib import Path
from typing import Protocol

from .models import RunEvent


class CollisionDecision(Enum):
    """Answers the collision prompt can give."""
    OVERWRITE = "overwrite"
    SKIP = "skip"
    OVERWRITE_ALL = "overwrite-all"
    SKIP_ALL = "skip-all"
    CANCEL = "cancel"

    @property
    def is_sticky(self) -> bool:
        return self in (CollisionDecision.OVERWRITE_ALL, CollisionDecision.SKIP_ALL)


class ProgressSink(Protocol):
    """Receives progress, error and done snapshots."""

    @abstractmethod
    def __call__(self, event: RunEvent) -> None:
        ...


class CollisionPrompt(Protocol):
    """Synchronous decision for a destination that already exists.

    Called from the coordinator with the dispatch pipeline suspended.
    """

    @abstractmethod
    def __call__(self, destination: Path) -> CollisionDecision:
        ...
