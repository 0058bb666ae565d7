"""Turns manifest rows into transfer and scan jobs."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from ..core.config import RunMode, RunRequest
from ..core.models import ManifestRow, TransferJob

logger = logging.getLogger(__name__)


RAW_EXTENSIONS = (".cr2", ".nef", ".arw", ".rw2", ".dng", ".raw", ".raf")


class RawSiblingFinder:
    """Finds RAW files that share an image's base name.

    Directory listings are cached per source directory so each directory is
    read once per run. Extensions are matched case-insensitively.
    """

    def __init__(self, extensions: Iterable[str] = RAW_EXTENSIONS):
        self._extensions = tuple(ext.lower() for ext in extensions)
        self._listings: dict[Path, dict[str, str]] = {}

    def _listing(self, directory: Path) -> dict[str, str]:
        listing = self._listings.get(directory)
        if listing is None:
            try:
                with os.scandir(directory) as entries:
                    listing = {entry.name.lower(): entry.name for entry in entries if entry.is_file()}
            except OSError as e:
                logger.debug("Cannot list %s for RAW siblings: %s", directory, e)
                listing = {}
            self._listings[directory] = listing
        return listing

    def find(self, source_dir: Path, image_name: str) -> list[str]:
        """Names (relative to ``source_dir``) of existing RAW siblings."""
        image = Path(image_name)
        listing = self._listing(source_dir / image.parent)
        siblings = []
        for ext in self._extensions:
            candidate = f"{image.stem}{ext}".lower()
            if candidate == image.name.lower():
                continue
            actual = listing.get(candidate)
            if actual is not None:
                siblings.append(str(image.parent / actual) if image.parent != Path(".") else actual)
        return siblings


class JobBuilder:
    """Builds jobs for mapped rows in manifest order."""

    def __init__(
        self,
        request: RunRequest,
        mapped_folders: Iterable[str],
        on_unmapped_row: Optional[Callable[[ManifestRow], None]] = None,
        sibling_finder: Optional[RawSiblingFinder] = None,
    ):
        self._request = request
        self._mapped = set(mapped_folders)
        self._on_unmapped_row = on_unmapped_row
        self._siblings = sibling_finder or RawSiblingFinder()
        self._next_id = 0

    def _make_job(self, row: ManifestRow, image_name: str, raw_sibling: bool = False) -> TransferJob:
        options = self._request.options
        dest_dir = None
        if options.mode != RunMode.scan:
            dest_dir = self._request.dest_dir_for(row.folder_name)
        job = TransferJob(
            job_id=self._next_id,
            folder_name=row.folder_name,
            image_name=image_name,
            source_dir=self._request.folder_mapping[row.folder_name],
            dest_dir=dest_dir,
            mode=options.mode,
            collision=options.collision,
            raw_sibling=raw_sibling,
        )
        self._next_id += 1
        return job

    def jobs_for_row(self, row: ManifestRow) -> list[TransferJob]:
        if row.folder_name not in self._mapped:
            if self._on_unmapped_row:
                self._on_unmapped_row(row)
            return []

        jobs = [self._make_job(row, row.image_name)]
        options = self._request.options
        if options.mode != RunMode.scan and options.include_raw_siblings:
            source_dir = self._request.folder_mapping[row.folder_name]
            for sibling in self._siblings.find(source_dir, row.image_name):
                jobs.append(self._make_job(row, sibling, raw_sibling=True))
        return jobs

    def build(self, rows: Iterable[ManifestRow]) -> Iterator[TransferJob]:
        for row in rows:
            yield from self.jobs_for_row(row)
