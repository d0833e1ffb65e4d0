"""Candidate and version registries: filtered collections backed by an SdkBackend."""

import asyncio
from typing import List, Optional

from ..utils.logger import get_module_logger
from .backend import SdkBackend
from .errors import SourceUnavailableError
from .filtered_collection import FilteredCollection
from .models import Candidate, CandidateEntry, FilterState, VersionEntry
from .observable import State

INSTALLED_ONLY = "installed_only"
DOWNLOADED_ONLY = "downloaded_only"
USED_ONLY = "used_only"


def compare_candidates(left: CandidateEntry, right: CandidateEntry) -> int:
    """Name ascending, case-insensitive."""
    a, b = left.name.lower(), right.name.lower()
    return (a > b) - (a < b)


def compare_versions(left: VersionEntry, right: VersionEntry) -> int:
    """Vendor ascending, then version descending (newest first)."""
    a, b = left.vendor or "", right.vendor or ""
    if a != b:
        return -1 if a < b else 1
    return -left.order.compare(right.order)


class CandidateRegistry(FilteredCollection[CandidateEntry]):
    """All candidates known to the backend, with the installed count of each."""

    def __init__(self, backend: SdkBackend):
        self.filter = FilterState([INSTALLED_ONLY])
        super().__init__(self._include, compare_candidates, name="candidates")
        self.backend = backend
        self.logger = get_module_logger("candidate_registry")
        self.filter.subscribe(self._on_filter_changed)

    async def load(self) -> None:
        """Rebuild the source from the backend.

        Raises:
            SourceUnavailableError: listing failed; the previous source is kept
        """
        try:
            candidates = await self.backend.list_candidates()
            counts = await asyncio.gather(
                *(self.backend.count_installed_versions(candidate.id) for candidate in candidates)
            )
        except SourceUnavailableError:
            self.logger.error("Candidate listing unavailable")
            raise
        except Exception as e:
            self.logger.error(f"Failed to load candidates: {e}")
            raise SourceUnavailableError(f"Failed to load candidates: {e}", e) from e

        entries = [CandidateEntry(candidate, count) for candidate, count in zip(candidates, counts)]
        self.logger.info(f"Loaded {len(entries)} candidates")
        self.replace_source(entries)

    def _include(self, entry: CandidateEntry) -> bool:
        if self.filter.is_on(INSTALLED_ONLY) and entry.installed_count == 0:
            return False
        text = self.filter.get_text()
        if text is None:
            return True
        return text in entry.name.lower()

    def _on_filter_changed(self) -> None:
        self.refilter()
        # always reselect so the version pane follows a deterministic candidate
        self.selection.clear()
        self.selection.select_first()


class VersionRegistry(FilteredCollection[VersionEntry]):
    """Versions of the currently selected candidate."""

    def __init__(self, backend: SdkBackend):
        self.filter = FilterState([INSTALLED_ONLY, DOWNLOADED_ONLY, USED_ONLY])
        super().__init__(self._include, compare_versions, name="versions")
        self.backend = backend
        self.logger = get_module_logger("version_registry")
        self.candidate: Optional[Candidate] = None
        self._selected_installed = State(False, "versions.selected_installed")
        self._selected_used = State(False, "versions.selected_used")
        self.selected_installed = self._selected_installed.observable()
        self.selected_used = self._selected_used.observable()
        self.filter.subscribe(self._on_filter_changed)
        self.selection.changed.subscribe(self._on_version_selected)

    async def fetch(self, candidate: Candidate) -> List[VersionEntry]:
        """Query the backend for the versions of ``candidate``.

        Raises:
            SourceUnavailableError: listing failed
        """
        try:
            active_id = await self.backend.resolve_active_version(candidate.id)
            versions = await self.backend.list_versions(candidate.id)
        except SourceUnavailableError:
            self.logger.error(f"Version listing unavailable for {candidate.id}")
            raise
        except Exception as e:
            self.logger.error(f"Failed to load versions for {candidate.id}: {e}")
            raise SourceUnavailableError(f"Failed to load versions for {candidate.id}: {e}", e) from e

        self.logger.debug(f"{candidate.id}: {len(versions)} versions, active={active_id}")
        return [VersionEntry.of(candidate, version, active_id) for version in versions]

    def populate(self, candidate: Optional[Candidate], entries: List[VersionEntry]) -> None:
        """Replace the source with the versions of ``candidate``."""
        self.candidate = candidate
        self.replace_source(entries)
        if self.selection.is_empty:
            self.selection.select_first()
        self._on_version_selected(self.selection.selected)

    def clear_versions(self) -> None:
        self.populate(None, [])

    def _include(self, entry: VersionEntry) -> bool:
        if self.filter.is_on(INSTALLED_ONLY) and not entry.installed:
            return False
        if self.filter.is_on(DOWNLOADED_ONLY) and not entry.downloaded:
            return False
        if self.filter.is_on(USED_ONLY) and not entry.active:
            return False
        text = self.filter.get_text()
        if text is None:
            return True

        version = entry.version.version.lower()
        vendor = (entry.vendor or "").lower()
        return all(token in version or token in vendor for token in text.split())

    def _on_filter_changed(self) -> None:
        self.refilter()
        if self.selection.is_empty:
            self.selection.select_first()

    def _on_version_selected(self, entry: Optional[VersionEntry]) -> None:
        self._selected_installed.set(entry is not None and entry.installed)
        self._selected_used.set(entry is not None and entry.active)
