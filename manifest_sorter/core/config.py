"""Run configuration models."""
from __future__ import annotations

import json
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class RunMode(str, Enum):
    copy = "copy"
    move = "move"
    scan = "scan"


class CollisionPolicy(str, Enum):
    """What to do when the destination file already exists."""
    rename = "rename"        # photo.jpg -> photo_1.jpg
    overwrite = "overwrite"
    skip = "skip"
    prompt = "prompt"        # ask the user, one file at a time


class DispatchStrategy(Enum):
    PIPELINED = "pipelined"
    SEQUENTIAL = "sequential"


def dispatch_strategy_for(collision: CollisionPolicy) -> DispatchStrategy:
    """Interactive collisions need one job in flight at a time."""
    if collision == CollisionPolicy.prompt:
        return DispatchStrategy.SEQUENTIAL
    return DispatchStrategy.PIPELINED


def default_max_workers() -> int:
    return max(1, (os.cpu_count() or 1) - 1)


class RunOptions(BaseModel):
    """Tunable options for a single run."""
    mode: RunMode = Field(default=RunMode.copy, description="copy, move or scan")
    collision: CollisionPolicy = Field(
        default=CollisionPolicy.rename,
        description="How to handle files that already exist at the destination",
    )
    include_raw_siblings: bool = Field(
        default=False,
        description="Also transfer RAW files sharing the image's base name",
    )
    batch_size: int = Field(default=200, gt=0, description="Jobs per worker batch")
    max_workers: int = Field(
        default_factory=default_max_workers,
        ge=1,
        description="Number of worker processes",
    )
    poll_interval: float = Field(
        default=0.05,
        gt=0,
        description="Seconds to block on the event queue before re-checking workers",
    )

    @property
    def strategy(self) -> DispatchStrategy:
        if self.mode == RunMode.scan:
            return DispatchStrategy.PIPELINED
        return dispatch_strategy_for(self.collision)


class RunRequest(BaseModel):
    """Everything the core needs to execute one run."""
    manifest_path: Path = Field(..., description="CSV manifest with folder and file columns")
    destination_root: Optional[Path] = Field(
        default=None,
        description="Root of the destination tree (required for copy/move)",
    )
    folder_mapping: Dict[str, Path] = Field(
        default_factory=dict,
        description="Manifest folder name -> source directory",
    )
    options: RunOptions = Field(default_factory=RunOptions)

    @field_validator("manifest_path")
    @classmethod
    def expand_manifest(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("destination_root")
    @classmethod
    def expand_destination(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return value.expanduser().resolve()

    @field_validator("folder_mapping")
    @classmethod
    def expand_mapping(cls, value: Dict[str, Path]) -> Dict[str, Path]:
        return {name: Path(path).expanduser().resolve() for name, path in value.items() if name}

    @model_validator(mode="after")
    def require_destination(self) -> "RunRequest":
        if self.options.mode != RunMode.scan and self.destination_root is None:
            raise ValueError("destination_root is required for copy and move runs")
        return self

    @classmethod
    def from_json_file(cls, path: Path) -> "RunRequest":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def dest_dir_for(self, folder_name: str) -> Path:
        if self.destination_root is None:
            raise ValueError("Scan runs have no destination")
        return self.destination_root / folder_name


def parse_mapping_entries(entries: Iterable[str]) -> dict[str, Path]:
    """Parse ``FOLDER=DIR`` strings into a mapping."""
    mapping: dict[str, Path] = {}
    for entry in entries:
        if "=" not in entry:
            raise ValueError(f"Invalid mapping {entry!r}, expected FOLDER=DIR")
        name, path_str = entry.split("=", 1)
        name = name.strip()
        if not name or not path_str.strip():
            raise ValueError(f"Invalid mapping {entry!r}, expected FOLDER=DIR")
        mapping[name] = Path(path_str.strip())
    return mapping


def load_folder_mapping(path: Path) -> dict[str, Path]:
    """Load a JSON object of ``{"FolderName": "/source/dir"}``."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Mapping file {path} must contain a JSON object")
    return {str(name): Path(str(value)) for name, value in data.items() if value}
