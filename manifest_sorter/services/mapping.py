"""Folder mapping validation and destination preparation."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional

from ..core.errors import NoFoldersMappedError

logger = logging.getLogger(__name__)


def resolve_mapped_folders(discovered: Iterable[str], mapping: Mapping[str, Path]) -> list[str]:
    """Folders present in both the manifest and the mapping, in manifest order.

    Raises:
        NoFoldersMappedError: if the intersection is empty.
    """
    discovered = list(discovered)
    mapped = [name for name in discovered if mapping.get(name)]
    if not mapped:
        raise NoFoldersMappedError(discovered)

    unmapped = len(discovered) - len(mapped)
    if unmapped:
        logger.info("%d manifest folders have no source mapped and will be skipped", unmapped)
    unused = sorted(set(mapping) - set(discovered))
    if unused:
        logger.warning("Mapped folders not present in manifest: %s", ", ".join(unused))
    return mapped


def prepare_destinations(destination_root: Path, folders: Iterable[str]) -> list[Path]:
    """Create ``destination_root/<folder>`` for every mapped folder.

    Runs before any job is dispatched; workers never create directories.
    """
    created = []
    for name in folders:
        out_dir = destination_root / name
        out_dir.mkdir(parents=True, exist_ok=True)
        created.append(out_dir)
    logger.debug("Prepared %d destination folders under %s", len(created), destination_root)
    return created


def validate_mapping(
    discovered: Iterable[str],
    mapping: Mapping[str, Path],
    destination_root: Optional[Path] = None,
) -> list[str]:
    """Validate the mapping and, for transfers, create destination folders.

    Pass ``destination_root=None`` for scan runs so nothing is created.
    """
    mapped = resolve_mapped_folders(discovered, mapping)
    if destination_root is not None:
        prepare_destinations(destination_root, mapped)
    return mapped
