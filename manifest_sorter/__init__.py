"""Manifest-driven photo scanning and transfer.

Reads a CSV manifest of folder/file pairs, maps each folder to a source
directory and checks or copies/moves the listed files with a pool of
worker processes.
"""

__version__ = "1.0.0"

# Core exports
from .core.config import CollisionPolicy, RunMode, RunOptions, RunRequest
from .core.errors import (
    ManifestReadError,
    ManifestSorterError,
    NoFoldersMappedError,
    UserCancelledError,
)
from .core.models import DoneEvent, ErrorEvent, ProgressEvent, RunSnapshot, RunState
from .core.protocols import CollisionDecision, CollisionPrompt, ProgressSink

# Service exports
from .services.manifest import ManifestScanner, summarize_manifest
from .services.runner import TransferRunner, run_request

# Logging exports
from .logging.rich_logger import RichProgressReporter, QuietProgressReporter

__all__ = [
    # Core
    "CollisionPolicy",
    "RunMode",
    "RunOptions",
    "RunRequest",
    "ManifestReadError",
    "ManifestSorterError",
    "NoFoldersMappedError",
    "UserCancelledError",
    "DoneEvent",
    "ErrorEvent",
    "ProgressEvent",
    "RunSnapshot",
    "RunState",
    "CollisionDecision",
    "CollisionPrompt",
    "ProgressSink",
    # Services
    "ManifestScanner",
    "summarize_manifest",
    "TransferRunner",
    "run_request",
    # Logging
    "RichProgressReporter",
    "QuietProgressReporter",
]
