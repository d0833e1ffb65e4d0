"""Contract between the core and the SDK backend (listing, download, install)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from .models import Candidate, Version

ProgressSink = Callable[[int], None]


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of a download; ``cancelled`` is True when the handle honoured cancel()."""
    cancelled: bool = False


class DownloadHandle(ABC):
    """A single download that can be started once and cancelled cooperatively."""

    @abstractmethod
    async def start(self, progress: ProgressSink) -> DownloadResult:
        """Run the download to completion or cancellation.

        ``progress`` receives percent values 1..99 while downloading and a
        final 100 (or 0) once the archive is complete.  It is always invoked
        on the event loop that awaits this coroutine.
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Request cancellation; observed at the next chunk boundary."""
        pass


class SdkBackend(ABC):
    """Everything the core needs from the outside world."""

    @abstractmethod
    async def list_candidates(self) -> List[Candidate]:
        pass

    @abstractmethod
    async def list_versions(self, candidate_id: str) -> List[Version]:
        pass

    @abstractmethod
    async def count_installed_versions(self, candidate_id: str) -> int:
        pass

    @abstractmethod
    async def resolve_active_version(self, candidate_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def download(self, candidate_id: str, version_id: str) -> DownloadHandle:
        pass

    @abstractmethod
    async def install(self, candidate_id: str, version_id: str) -> None:
        """Install a downloaded version; installing an installed version is a no-op."""
        pass

    @abstractmethod
    async def uninstall(self, candidate_id: str, version_id: str) -> None:
        pass

    @abstractmethod
    async def activate(self, candidate_id: str, version_id: str) -> None:
        """Make the version the global default for its candidate."""
        pass
