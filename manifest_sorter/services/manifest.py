"""Streaming manifest reader."""
from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Iterator, Optional, Sequence

from ..core.errors import ManifestReadError
from ..core.models import ManifestRow, ManifestSummary

logger = logging.getLogger(__name__)


# Normalised header spellings, in order of preference
FOLDER_HEADERS = ("foldername", "folder", "albumname", "album", "directory")
FILE_HEADERS = ("filename", "file", "imagename", "image", "name")

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(name: str) -> str:
    """``Folder_Name`` / ``folderName`` / ``FOLDER NAME`` -> ``foldername``."""
    return _NON_ALNUM.sub("", name.strip().lower())


def find_column(header: Sequence[str], synonyms: Sequence[str]) -> Optional[int]:
    """Index of the header cell matching the most preferred synonym."""
    normalized = [normalize_header(cell) for cell in header]
    for synonym in synonyms:
        if synonym in normalized:
            return normalized.index(synonym)
    return None


def _cell(record: list[str], index: int) -> str:
    if index >= len(record):
        return ""
    return record[index].strip()


class ManifestScanner:
    """Lazily yields ``(folder, image)`` rows from a CSV manifest.

    Every call to :meth:`rows` opens the file again, so the scanner can be
    used for the discovery pass and again for the execution pass without
    holding the manifest in memory.
    """

    def __init__(self, path: Path, encoding: str = "utf-8-sig"):
        self._path = Path(path)
        self._encoding = encoding

    @property
    def path(self) -> Path:
        return self._path

    def rows(self) -> Iterator[ManifestRow]:
        """Yield every row that has both a folder name and a file name."""
        for _, row in self._records():
            if row is not None:
                yield row

    def summarize(self) -> ManifestSummary:
        """Discovery pass: distinct folders and row counts."""
        folders: dict[str, int] = {}
        total_rows = 0
        valid_rows = 0
        for _, row in self._records():
            total_rows += 1
            if row is None:
                continue
            valid_rows += 1
            folders[row.folder_name] = folders.get(row.folder_name, 0) + 1

        logger.debug(
            "Manifest %s: %d rows, %d usable, %d folders",
            self._path, total_rows, valid_rows, len(folders),
        )
        return ManifestSummary(
            folders=tuple(folders),
            folder_counts=folders,
            total_rows=total_rows,
            valid_rows=valid_rows,
        )

    def _records(self) -> Iterator[tuple[list[str], Optional[ManifestRow]]]:
        """Yield each non-empty data record with its parsed row (None if unusable)."""
        try:
            handle = open(self._path, "r", newline="", encoding=self._encoding)
        except OSError as e:
            raise ManifestReadError(self._path, e.strerror or str(e)) from e

        with handle:
            reader = csv.reader(handle, strict=False, skipinitialspace=True)
            try:
                header = self._read_header(reader)
                folder_idx = find_column(header, FOLDER_HEADERS)
                file_idx = find_column(header, FILE_HEADERS)
                if folder_idx is None or file_idx is None:
                    raise ManifestReadError(
                        self._path,
                        f"no folder/file name columns in header {header!r}",
                    )

                for record in reader:
                    if not any(cell.strip() for cell in record):
                        continue
                    folder = _cell(record, folder_idx)
                    image = _cell(record, file_idx)
                    if folder and image:
                        yield record, ManifestRow(folder_name=folder, image_name=image)
                    else:
                        yield record, None
            except csv.Error as e:
                raise ManifestReadError(self._path, f"line {reader.line_num}: {e}") from e
            except UnicodeDecodeError as e:
                raise ManifestReadError(self._path, f"not valid {self._encoding} text: {e}") from e

    def _read_header(self, reader) -> list[str]:
        for record in reader:
            if any(cell.strip() for cell in record):
                return record
        raise ManifestReadError(self._path, "missing header row")


def summarize_manifest(path: Path) -> ManifestSummary:
    """Convenience wrapper for the ``folders`` command."""
    return ManifestScanner(path).summarize()
