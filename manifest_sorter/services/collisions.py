"""Destination collision handling."""
from __future__ import annotations

import dataclasses
import errno
import logging
import os
from pathlib import Path
from typing import Optional

from ..core.config import CollisionPolicy, RunMode
from ..core.errors import UserCancelledError
from ..core.models import TransferJob
from ..core.protocols import CollisionDecision, CollisionPrompt

logger = logging.getLogger(__name__)


MAX_RENAME_ATTEMPTS = 100_000

# Filesystems that refuse hard links report one of these
_LINK_UNSUPPORTED = {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EMLINK, errno.ENOSYS}


def numbered_name(target: Path, counter: int) -> Path:
    """``photo.jpg`` -> ``photo_<counter>.jpg``."""
    if counter <= 0:
        return target
    return target.with_name(f"{target.stem}_{counter}{target.suffix}")


def reserve_path(target: Path) -> bool:
    """Atomically create an empty ``target``. False if it already exists."""
    try:
        fd = os.open(target, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    os.close(fd)
    return True


def publish(staged: Path, target: Path) -> bool:
    """Give the fully written ``staged`` file the name ``target``.

    Never replaces an existing ``target``: returns False and leaves
    ``staged`` where it is when the name is already taken. A hard link
    claims the name and its content in one step. Filesystems without
    hard links fall back to an exclusive create followed by a rename.
    """
    try:
        os.link(staged, target)
    except FileExistsError:
        return False
    except OSError as e:
        if e.errno not in _LINK_UNSUPPORTED:
            raise
        if not reserve_path(target):
            return False
        os.replace(staged, target)
        return True
    staged.unlink()
    return True


def publish_unique(staged: Path, target: Path) -> Path:
    """Publish ``staged`` under the first free name of ``target``.

    Tries ``name.ext``, ``name_1.ext``, ``name_2.ext``... Two workers racing
    for the same destination always end up with different names.
    """
    for counter in range(MAX_RENAME_ATTEMPTS):
        candidate = numbered_name(target, counter)
        if not candidate.exists() and publish(staged, candidate):
            return candidate
    raise FileExistsError(f"No free name for {target} after {MAX_RENAME_ATTEMPTS} attempts")


class CollisionResolver:
    """Coordinator-side decisions for the ``prompt`` policy.

    Asks the prompt once per colliding destination, remembers
    "overwrite all" / "skip all" answers for the rest of the run.
    """

    def __init__(self, prompt: Optional[CollisionPrompt] = None):
        self._prompt = prompt
        self._sticky: Optional[CollisionDecision] = None
        self.prompts_shown = 0

    @property
    def sticky(self) -> Optional[CollisionDecision]:
        return self._sticky

    def needs_decision(self, job: TransferJob) -> bool:
        return (
            job.mode != RunMode.scan
            and job.collision == CollisionPolicy.prompt
            and job.dest_path is not None
            and job.dest_path.exists()
        )

    def decide(self, destination: Path) -> CollisionDecision:
        if self._sticky is not None:
            return self._sticky
        if self._prompt is None:
            raise RuntimeError("Collision policy 'prompt' requires a prompt callback")
        self.prompts_shown += 1
        decision = self._prompt(destination)
        logger.debug("Collision at %s: %s", destination, decision.value)
        if decision.is_sticky:
            self._sticky = decision
        return decision

    def resolve(self, job: TransferJob) -> Optional[TransferJob]:
        """Job to dispatch, or None if it should be skipped.

        Prompt-policy jobs come back with ``overwrite`` policy so the worker
        never has to ask.

        Raises:
            UserCancelledError: if the user chose to cancel the run.
        """
        if job.mode == RunMode.scan or job.collision != CollisionPolicy.prompt:
            return job
        if not self.needs_decision(job):
            return dataclasses.replace(job, collision=CollisionPolicy.overwrite)

        decision = self.decide(job.dest_path)
        if decision == CollisionDecision.CANCEL:
            raise UserCancelledError(job.dest_path)
        if decision in (CollisionDecision.SKIP, CollisionDecision.SKIP_ALL):
            return None
        return dataclasses.replace(job, collision=CollisionPolicy.overwrite)
