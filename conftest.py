"""Shared fixtures: an in-memory SdkBackend with scriptable downloads."""

import asyncio
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

# Add the src directory to the Python path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from sdkdeck.modules.backend import DownloadHandle, DownloadResult, ProgressSink, SdkBackend
from sdkdeck.modules.models import Candidate, Version


class FakeDownloadHandle(DownloadHandle):
    """Replays ``script`` through the progress sink, one value per loop iteration.

    When ``gate`` is given the download pauses after ``pause_after`` values
    until the gate is set, which lets a test cancel mid-download.
    """

    def __init__(self, backend: "FakeBackend", candidate_id: str, version_id: str,
                 script: List[int], gate: Optional[asyncio.Event] = None, pause_after: int = 1):
        self.backend = backend
        self.candidate_id = candidate_id
        self.version_id = version_id
        self.script = script
        self.gate = gate
        self.pause_after = pause_after
        self.cancel_calls = 0
        self._cancelled = False

    def cancel(self) -> None:
        self.cancel_calls += 1
        self._cancelled = True

    async def start(self, progress: ProgressSink) -> DownloadResult:
        for index, value in enumerate(self.script):
            if self.gate is not None and index == self.pause_after:
                self.backend.download_paused.set()
                await self.gate.wait()
            if self._cancelled:
                return DownloadResult(cancelled=True)
            progress(value)
            await asyncio.sleep(0)
        if self._cancelled:
            return DownloadResult(cancelled=True)
        if self.backend.fail_download is not None:
            raise self.backend.fail_download
        self.backend.downloaded.add((self.candidate_id, self.version_id))
        return DownloadResult()


class FakeBackend(SdkBackend):
    """SdkBackend holding its state in dictionaries and recording every call."""

    def __init__(self, candidates: List[Candidate], versions: Dict[str, List[Version]]):
        self.candidates = candidates
        self.versions = versions
        self.installed: Set[tuple] = {
            (v.candidate_id, v.id) for vs in versions.values() for v in vs if v.installed
        }
        self.downloaded: Set[tuple] = {
            (v.candidate_id, v.id) for vs in versions.values() for v in vs if v.downloaded
        }
        self.active: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.fail_download: Optional[Exception] = None
        self.download_script = [10, 50, 99, 100]
        self.download_gate: Optional[asyncio.Event] = None
        self.download_paused = asyncio.Event()
        self.version_gates: Dict[str, asyncio.Event] = {}
        self.handles: List[FakeDownloadHandle] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def list_candidates(self) -> List[Candidate]:
        self.calls.append(("list_candidates",))
        self._maybe_fail("list_candidates")
        return list(self.candidates)

    async def list_versions(self, candidate_id: str) -> List[Version]:
        self.calls.append(("list_versions", candidate_id))
        gate = self.version_gates.get(candidate_id)
        if gate is not None:
            await gate.wait()
        self._maybe_fail("list_versions")
        return [
            replace(
                v,
                installed=(candidate_id, v.id) in self.installed,
                downloaded=(candidate_id, v.id) in self.downloaded,
            )
            for v in self.versions.get(candidate_id, [])
        ]

    async def count_installed_versions(self, candidate_id: str) -> int:
        return sum(1 for cid, _ in self.installed if cid == candidate_id)

    async def resolve_active_version(self, candidate_id: str) -> Optional[str]:
        return self.active.get(candidate_id)

    async def download(self, candidate_id: str, version_id: str) -> DownloadHandle:
        self.calls.append(("download", candidate_id, version_id))
        handle = FakeDownloadHandle(self, candidate_id, version_id, list(self.download_script),
                                    self.download_gate)
        self.handles.append(handle)
        return handle

    async def install(self, candidate_id: str, version_id: str) -> None:
        self.calls.append(("install", candidate_id, version_id))
        self._maybe_fail("install")
        self.installed.add((candidate_id, version_id))

    async def uninstall(self, candidate_id: str, version_id: str) -> None:
        self.calls.append(("uninstall", candidate_id, version_id))
        self._maybe_fail("uninstall")
        self.installed.discard((candidate_id, version_id))
        if self.active.get(candidate_id) == version_id:
            del self.active[candidate_id]

    async def activate(self, candidate_id: str, version_id: str) -> None:
        self.calls.append(("activate", candidate_id, version_id))
        self._maybe_fail("activate")
        self.active[candidate_id] = version_id

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


JAVA = Candidate("java", "Java", "Java Platform, Standard Edition")
GROOVY = Candidate("groovy", "Groovy", "Apache Groovy")
MAVEN = Candidate("maven", "Maven", "Apache Maven")


def make_backend() -> FakeBackend:
    """Java with two vendors, Groovy with one installed version, Maven with none."""
    versions = {
        "java": [
            Version("java", "17.0.9-tem", "17.0.9", vendor="Temurin"),
            Version("java", "21.0.1-tem", "21.0.1", vendor="Temurin", installed=True),
            Version("java", "21.0.1-amzn", "21.0.1", vendor="Corretto", downloaded=True),
            Version("java", "11.0.21-amzn", "11.0.21", vendor="Corretto"),
        ],
        "groovy": [
            Version("groovy", "3.0.19", "3.0.19"),
            Version("groovy", "4.0.15", "4.0.15", installed=True),
        ],
        "maven": [
            Version("maven", "3.9.5", "3.9.5"),
        ],
    }
    backend = FakeBackend([MAVEN, JAVA, GROOVY], versions)
    backend.active["java"] = "21.0.1-tem"
    return backend


@pytest.fixture
def backend() -> FakeBackend:
    return make_backend()
