"""SDK Deck core - registries, install pipeline and lifecycle controller."""

from .backend import DownloadHandle, DownloadResult, SdkBackend
from .errors import BusyError, CancelledError, OperationFailedError, SdkDeckError, SourceUnavailableError
from .filtered_collection import FilteredCollection, SelectionCursor
from .install_pipeline import CancellationToken, InstallPipeline, PipelineState
from .lifecycle import LifecycleController
from .models import Candidate, CandidateEntry, FilterState, InstallProgress, ProgressPhase, Version, VersionEntry
from .registries import CandidateRegistry, VersionRegistry
from .version_order import VersionOrder, parse_version_order

__all__ = [
    "BusyError",
    "CancellationToken",
    "CancelledError",
    "Candidate",
    "CandidateEntry",
    "CandidateRegistry",
    "DownloadHandle",
    "DownloadResult",
    "FilterState",
    "FilteredCollection",
    "InstallPipeline",
    "InstallProgress",
    "LifecycleController",
    "OperationFailedError",
    "PipelineState",
    "ProgressPhase",
    "SdkBackend",
    "SdkDeckError",
    "SelectionCursor",
    "SourceUnavailableError",
    "Version",
    "VersionEntry",
    "VersionOrder",
    "VersionRegistry",
    "parse_version_order",
]
