"""Root controller wiring the candidate -> version cascade and the public operations."""

import asyncio
from typing import Optional, Set

from ..utils.logger import get_module_logger
from .backend import SdkBackend
from .errors import SdkDeckError
from .install_pipeline import InstallPipeline
from .models import CandidateEntry, VersionEntry
from .observable import State, Value
from .registries import CandidateRegistry, VersionRegistry


class LifecycleController:
    """Owns both registries and the install pipeline.

    Selecting a candidate empties the version registry at once and schedules
    a background load of the new candidate's versions on the running loop.
    Loads for a candidate that is no longer selected are discarded.
    """

    def __init__(self, backend: SdkBackend):
        self.backend = backend
        self.logger = get_module_logger("lifecycle")
        self.candidates = CandidateRegistry(backend)
        self.versions = VersionRegistry(backend)
        self.pipeline = InstallPipeline(backend)

        self._refreshing_candidates = State(False, "refreshing_candidates")
        self._refreshing_versions = State(False, "refreshing_versions")
        self._last_error: Value[Optional[SdkDeckError]] = Value(None, "last_error")
        self.refreshing_candidates = self._refreshing_candidates.observable()
        self.refreshing_versions = self._refreshing_versions.observable()
        self.last_error = self._last_error.observable()

        self._load_generation = 0
        self._version_load: Optional[asyncio.Task] = None
        self._pending_loads: Set[asyncio.Task] = set()
        self.candidates.selection.changed.subscribe(self._on_candidate_selected)

    @property
    def selected_candidate(self) -> Optional[CandidateEntry]:
        return self.candidates.selection.selected

    @property
    def selected_version(self) -> Optional[VersionEntry]:
        return self.versions.selection.selected

    async def start(self) -> None:
        """Initial load: candidates, then the versions of the first candidate."""
        await self.refresh()

    async def refresh(self) -> None:
        """Reload candidates, then the versions of the candidate still selected.

        When no candidate is selected afterwards (first load, or the selected
        one was filtered out) the first visible candidate is selected.

        Raises:
            SourceUnavailableError: either listing failed
        """
        await self.refresh_candidates()
        if self.candidates.selection.is_empty:
            self.candidates.selection.select_first()
            await self.wait_for_versions()
            return
        await self.refresh_versions()

    async def refresh_candidates(self) -> None:
        self._refreshing_candidates.set(True)
        try:
            await self.candidates.load()
        finally:
            self._refreshing_candidates.set(False)

    async def refresh_versions(self) -> None:
        """Reload the versions of the selected candidate, keeping the selection."""
        self._load_generation += 1
        generation = self._load_generation
        await self._load_versions(self.selected_candidate, generation)

    async def wait_for_versions(self) -> None:
        """Wait until the latest background version load, if any, has been applied."""
        while self._version_load is not None and not self._version_load.done():
            await asyncio.shield(self._version_load)

    async def install(self, target: Optional[VersionEntry] = None) -> None:
        target = self._target(target)
        await self.pipeline.install(target)
        await self.refresh()

    async def uninstall(self, target: Optional[VersionEntry] = None) -> None:
        target = self._target(target)
        await self.pipeline.uninstall(target)
        await self.refresh()

    async def use(self, target: Optional[VersionEntry] = None) -> None:
        """Make ``target`` the global default, installing it first when needed."""
        target = self._target(target)
        installed_before = target.installed
        await self.pipeline.use_or_install_then_use(target)
        if installed_before:
            await self.refresh_versions()
        else:
            await self.refresh()

    async def copy_use_command(self, target: Optional[VersionEntry] = None) -> str:
        """Return ``sdk use <candidate> <version>``, installing the version first when needed."""
        target = self._target(target)
        installed_before = target.installed
        command = await self.pipeline.copy_activation_command(target)
        if not installed_before:
            await self.refresh()
        return command

    async def primary_action(self, target: Optional[VersionEntry] = None) -> str:
        """Uninstall the used version, use an installed one, install anything else.

        Returns:
            Name of the action performed
        """
        target = self._target(target)
        if target.active:
            await self.uninstall(target)
            return "uninstall"
        if target.installed:
            await self.use(target)
            return "use"
        await self.install(target)
        return "install"

    def cancel(self) -> bool:
        return self.pipeline.cancel()

    def _target(self, target: Optional[VersionEntry]) -> VersionEntry:
        target = target or self.selected_version
        if target is None:
            raise ValueError("No version selected")
        return target

    def _on_candidate_selected(self, entry: Optional[CandidateEntry]) -> None:
        self._load_generation += 1
        generation = self._load_generation
        self.versions.clear_versions()
        if entry is None:
            self._refreshing_versions.set(False)
            return
        self.logger.debug(f"Candidate selected: {entry.id}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug(f"No running loop, versions of {entry.id} load on the next refresh")
            return
        task = loop.create_task(self._background_load(entry, generation))
        self._pending_loads.add(task)
        task.add_done_callback(self._pending_loads.discard)
        self._version_load = task

    async def _background_load(self, entry: CandidateEntry, generation: int) -> None:
        try:
            await self._load_versions(entry, generation)
        except SdkDeckError as e:
            # nobody awaits this task, so publish the error instead
            self._last_error.set(e)

    async def _load_versions(self, entry: Optional[CandidateEntry], generation: int) -> None:
        if entry is None:
            self.versions.clear_versions()
            return
        self._refreshing_versions.set(True)
        try:
            entries = await self.versions.fetch(entry.candidate)
        finally:
            if generation == self._load_generation:
                self._refreshing_versions.set(False)
        if generation != self._load_generation or self.selected_candidate != entry:
            self.logger.debug(f"Discarding stale versions of {entry.id}")
            return
        self.versions.populate(entry.candidate, entries)
