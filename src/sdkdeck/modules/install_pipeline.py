"""Single-flight install/uninstall/activate pipeline with cancellable downloads."""

from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from ..utils.logger import get_module_logger
from .backend import SdkBackend
from .errors import BusyError, CancelledError, OperationFailedError
from .models import IDLE_PROGRESS, InstallProgress, ProgressPhase, VersionEntry
from .observable import State, Value

DONE = 100


class PipelineState(Enum):
    """States of the pipeline; CANCELLED and FAILED always fall back to IDLE."""
    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    INSTALLING = "installing"
    UNINSTALLING = "uninstalling"
    ACTIVATING = "activating"
    CANCELLED = "cancelled"
    FAILED = "failed"


CANCELLABLE_STATES = (PipelineState.DOWNLOADING, PipelineState.EXTRACTING)


class CancellationToken:
    """One-shot cancellation signal scoped to a single install task."""

    def __init__(self):
        self._cancelled = False
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_id = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return the function that detaches it.

        A callback attached after cancellation is invoked immediately.
        """
        if self._cancelled:
            callback()
            return lambda: None
        callback_id = self._next_id
        self._next_id += 1
        self._callbacks[callback_id] = callback
        return lambda: self._callbacks.pop(callback_id, None)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks = list(self._callbacks.values())
        self._callbacks.clear()
        for callback in callbacks:
            callback()


class InstallPipeline:
    """Drives download -> extract -> install for one version at a time.

    Only one task (install, uninstall or activate) may be in flight; a second
    request is rejected with BusyError rather than queued.  All state changes
    happen on the event loop, and observers see phases in the order
    CHECKING, DOWNLOADING, EXTRACTING, INSTALLING, DONE.
    """

    def __init__(self, backend: SdkBackend):
        self.backend = backend
        self.logger = get_module_logger("install_pipeline")

        self._state: Value[PipelineState] = Value(PipelineState.IDLE, "pipeline.state")
        self._progress: Value[InstallProgress] = Value(IDLE_PROGRESS, "pipeline.progress")
        self._busy = State(False, "pipeline.busy")
        self._installing = State(False, "pipeline.installing")
        self._downloading = State(False, "pipeline.downloading")
        self._token: Optional[CancellationToken] = None
        self.target: Optional[VersionEntry] = None

        self.state = self._state.observable()
        self.progress = self._progress.observable()
        self.busy = self._busy.observable()
        self.installing = self._installing.observable()
        self.downloading = self._downloading.observable()

    @property
    def is_idle(self) -> bool:
        return self._state.get() is PipelineState.IDLE

    async def install(self, target: VersionEntry) -> None:
        """Download (unless cached) and install ``target``.

        Raises:
            BusyError: another task is in flight
            CancelledError: the download was cancelled
            OperationFailedError: a backend step failed
        """
        self._begin(PipelineState.CHECKING, target)
        self._installing.set(True)
        token = CancellationToken()
        self._token = token
        try:
            self._report(ProgressPhase.CHECKING, 0, "Checking")
            if target.downloaded:
                self.logger.info(f"{target.display_name} already downloaded, skipping download")
                self._report(ProgressPhase.CHECKING, DONE, "Checking")
                percent = DONE
            else:
                await self._download(target, token)
                percent = None

            self._state.set(PipelineState.INSTALLING)
            self._report(ProgressPhase.INSTALLING, percent, "Installing")
            await self.backend.install(target.candidate_id, target.version_id)
            self._report(ProgressPhase.DONE, DONE, "Done")
            self.logger.info(f"Installed {target.display_name}")
        except CancelledError:
            self.logger.info(f"Install of {target.display_name} cancelled")
            self._state.set(PipelineState.CANCELLED)
            self._report(ProgressPhase.IDLE, 0, "Cancelled")
            raise
        except Exception as e:
            self.logger.error(f"Install of {target.display_name} failed: {e}")
            self._state.set(PipelineState.FAILED)
            self._report(ProgressPhase.IDLE, 0, "Failed")
            if isinstance(e, OperationFailedError):
                raise
            raise OperationFailedError("Install", e) from e
        finally:
            self._token = None
            self._end()

    async def uninstall(self, target: VersionEntry) -> None:
        await self._single_step(PipelineState.UNINSTALLING, "Uninstall", self.backend.uninstall, target)

    async def activate(self, target: VersionEntry) -> None:
        await self._single_step(PipelineState.ACTIVATING, "Use", self.backend.activate, target)

    async def use_or_install_then_use(self, target: VersionEntry) -> None:
        """Activate ``target``, installing it first when needed.

        A failed or cancelled install propagates and activation never runs.
        """
        if not target.installed:
            await self.install(target)
        await self.activate(target)

    async def copy_activation_command(self, target: VersionEntry) -> str:
        """Return the ``sdk use`` command for ``target``, installing it first when needed."""
        if not target.installed:
            await self.install(target)
        return target.use_command

    def cancel(self) -> bool:
        """Cancel the in-flight download; outside the download window this does nothing.

        Returns:
            True when a cancellation request was delivered
        """
        state = self._state.get()
        if state not in CANCELLABLE_STATES or self._token is None:
            self.logger.debug(f"Cancel ignored in state {state.value}")
            return False
        self.logger.info("Cancelling download")
        self._token.cancel()
        return True

    async def _download(self, target: VersionEntry, token: CancellationToken) -> None:
        self._state.set(PipelineState.DOWNLOADING)
        self._report(ProgressPhase.DOWNLOADING, 0, "Downloading")
        handle = await self.backend.download(target.candidate_id, target.version_id)
        detach = token.attach(handle.cancel)
        try:
            result = await handle.start(self._on_download_progress)
        finally:
            # the token must not outlive this download
            detach()
        self._downloading.set(False)
        if result.cancelled:
            raise CancelledError(f"Download of {target.display_name} cancelled")

    def _on_download_progress(self, value: int) -> None:
        if self._state.get() is not PipelineState.DOWNLOADING:
            self.logger.debug(f"Progress {value} ignored in state {self._state.get().value}")
            return
        current = self._progress.get().percent or 0
        if 1 <= value < DONE:
            self._downloading.set(True)
            self._report(ProgressPhase.DOWNLOADING, max(current, value), "Downloading")
        elif value >= DONE or current > 0:
            self._downloading.set(False)
            self._state.set(PipelineState.EXTRACTING)
            self._report(ProgressPhase.EXTRACTING, None, "Extracting")

    async def _single_step(self, state: PipelineState, operation: str,
                           call: Callable[[str, str], Awaitable[None]], target: VersionEntry) -> None:
        self._begin(state, target)
        try:
            await call(target.candidate_id, target.version_id)
            self.logger.info(f"{operation} {target.display_name} completed")
        except Exception as e:
            self.logger.error(f"{operation} {target.display_name} failed: {e}")
            self._state.set(PipelineState.FAILED)
            raise OperationFailedError(operation, e) from e
        finally:
            self._end()

    def _begin(self, state: PipelineState, target: VersionEntry) -> None:
        if not self.is_idle:
            busy_with = self.target.display_name if self.target else self._state.get().value
            self.logger.warning(f"Rejected {state.value} {target.display_name}: busy with {busy_with}")
            raise BusyError(f"Busy with {busy_with}")
        self.target = target
        self._progress.set(IDLE_PROGRESS)
        self._state.set(state)
        self._busy.set(True)

    def _end(self) -> None:
        self.target = None
        self._downloading.set(False)
        self._installing.set(False)
        self._state.set(PipelineState.IDLE)
        self._busy.set(False)

    def _report(self, phase: ProgressPhase, percent: Optional[int], label: str) -> None:
        self._progress.set(InstallProgress(phase, percent, label))
