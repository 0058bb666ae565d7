"""Test fixtures for manifest runs.

This module provides helpers that lay out a manifest, source folders
and a destination root on disk, and know which files should end up where.
"""
from __future__ import annotations

import csv
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from PIL import Image

from manifest_sorter.core.config import CollisionPolicy, RunMode, RunOptions, RunRequest
from manifest_sorter.core.models import EventKind, WorkerEvent
from manifest_sorter.core.protocols import CollisionDecision
from manifest_sorter.services.worker import STOP_SENTINEL, run_job


def create_image(path: Path, color: str = "red", size: tuple[int, int] = (32, 32)) -> Path:
    """Write a small JPEG."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", size, color=color)
    img.save(path, "JPEG")
    return path


def write_manifest(
    path: Path,
    rows: list[tuple[str, str]],
    header: tuple[str, str] = ("FolderName", "fileName"),
) -> Path:
    """Write a two-column CSV manifest."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@dataclass
class ManifestLayout:
    """A manifest plus source folders on disk.

    ``folders`` maps a manifest folder name to the image names listed for
    it; ``present`` lists the ``(folder, image)`` pairs that actually exist
    in the source directory. Anything listed but not present is missing.
    """
    root: Path
    folders: dict[str, list[str]]
    present: Optional[set[tuple[str, str]]] = None
    manifest_name: str = "manifest.csv"
    colors: dict[str, str] = field(default_factory=dict)

    @property
    def manifest_path(self) -> Path:
        return self.root / self.manifest_name

    @property
    def destination_root(self) -> Path:
        return self.root / "out"

    def source_dir(self, folder: str) -> Path:
        return self.root / "src" / folder

    def dest_dir(self, folder: str) -> Path:
        return self.destination_root / folder

    def create(self) -> "ManifestLayout":
        rows = []
        for folder, images in self.folders.items():
            self.source_dir(folder).mkdir(parents=True, exist_ok=True)
            for image in images:
                rows.append((folder, image))
                if self.present is None or (folder, image) in self.present:
                    create_image(self.source_dir(folder) / image, self.colors.get(image, "red"))
        write_manifest(self.manifest_path, rows)
        return self

    def mapping(self, folders: Optional[list[str]] = None) -> dict[str, Path]:
        names = folders if folders is not None else list(self.folders)
        return {name: self.source_dir(name) for name in names}

    def request(
        self,
        mode: RunMode = RunMode.copy,
        collision: CollisionPolicy = CollisionPolicy.rename,
        folders: Optional[list[str]] = None,
        **options,
    ) -> RunRequest:
        options.setdefault("max_workers", 2)
        options.setdefault("batch_size", 2)
        return RunRequest(
            manifest_path=self.manifest_path,
            destination_root=None if mode == RunMode.scan else self.destination_root,
            folder_mapping=self.mapping(folders),
            options=RunOptions(mode=mode, collision=collision, **options),
        )


class RecordingSink:
    """Progress sink that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, type_: str) -> list:
        return [event for event in self.events if event.type == type_]

    @property
    def done(self):
        done = self.of_type("done")
        return done[0] if done else None


class ScriptedPrompt:
    """Collision prompt that replays a list of answers and records the paths asked about."""

    def __init__(self, answers: list[CollisionDecision]):
        self._answers = list(answers)
        self.asked: list[Path] = []

    def __call__(self, destination: Path) -> CollisionDecision:
        self.asked.append(destination)
        if not self._answers:
            raise AssertionError(f"Unexpected prompt for {destination}")
        return self._answers.pop(0)


def crashing_worker(worker_id, generation, inbox, events):
    """Worker loop that dies as soon as it reaches a job named ``crash*``.

    Jobs earlier in the same batch are reported first, so the coordinator
    sees a partly settled batch from a process that is already gone.
    """
    while True:
        batch = inbox.get()
        if batch == STOP_SENTINEL:
            break
        for job in batch:
            if job.image_name.startswith("crash"):
                os._exit(3)
            events.send(run_job(job, worker_id, generation))
        events.send(
            WorkerEvent(
                kind=EventKind.BATCH_DONE,
                worker_id=worker_id,
                generation=generation,
                processed=len(batch),
            )
        )
