"""SdkBackend implementation over a local SDKMAN! installation and the SDKMAN! broker API."""

import asyncio
import os
import platform
import re
import shutil
import tarfile
import threading
import urllib.error
import urllib.request
import zipfile
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Set

from ..config_manager import SdkmanConfig
from ..utils.logger import get_module_logger
from .backend import DownloadHandle, DownloadResult, ProgressSink, SdkBackend
from .errors import SourceUnavailableError
from .models import Candidate, Version

CURRENT = "current"
ARCHIVE_SUFFIXES = (".zip", ".tar.gz")

SECTION_RE = re.compile(r"^={10,}\s*$")
BLOCK_RE = re.compile(r"^-{10,}\s*$")
HEADER_RE = re.compile(r"^(?P<name>.+?)\s+\((?P<version>[^()]*)\)\s+(?P<url>\S+)\s*$")
INSTALL_RE = re.compile(r"\$\s*sdk install (?P<id>\S+)")
GRID_MARKERS = {">", "*", "+"}

ARCHITECTURES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "x32",
    "i686": "x32",
    "armv7l": "arm32hf",
    "armv6l": "arm32sf",
}


def detect_platform(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """SDKMAN! platform identifier, e.g. ``linuxx64`` or ``darwinarm64``."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    arch = ARCHITECTURES.get(machine, machine)
    if system.startswith("linux"):
        os_name = "linux"
    elif system.startswith("darwin"):
        os_name = "darwin"
    elif system.startswith(("windows", "cygwin", "mingw", "msys")):
        os_name = "windows"
    else:
        return "exotic"
    return f"{os_name}{arch}"


def parse_candidate_list(text: str) -> List[Candidate]:
    """Parse the text returned by ``/candidates/list``.

    Each candidate is a block delimited by dashed lines: a header
    ``Name (version)   url``, a free-text description and a
    ``$ sdk install <id>`` line.
    """
    candidates = []
    block: List[str] = []
    for line in text.splitlines() + ["-" * 10]:
        if BLOCK_RE.match(line):
            candidate = _parse_candidate_block(block)
            if candidate is not None:
                candidates.append(candidate)
            block = []
        else:
            block.append(line)
    return candidates


def _parse_candidate_block(lines: List[str]) -> Optional[Candidate]:
    install = None
    for line in lines:
        install = INSTALL_RE.search(line)
        if install:
            break
    if install is None:
        return None

    content = [line.strip() for line in lines if line.strip() and not INSTALL_RE.search(line)]
    candidate_id = install.group("id")
    if not content:
        return Candidate(candidate_id, candidate_id)
    header = HEADER_RE.match(content[0])
    name = header.group("name").strip() if header else content[0]
    return Candidate(candidate_id, name, " ".join(content[1:]))


def parse_version_list(candidate_id: str, text: str) -> List[Version]:
    """Parse the text returned by ``/candidates/<id>/<platform>/versions/list``.

    Java uses a ``Vendor | Use | Version | Dist | Status | Identifier`` table
    where continuation rows leave the vendor blank; every other candidate uses
    a grid of version names with ``>``, ``*`` and ``+`` markers.
    """
    lines = _version_section(text)
    if any("|" in line for line in lines):
        return _parse_version_table(candidate_id, lines)

    versions = []
    for line in lines:
        for token in line.split():
            if token not in GRID_MARKERS:
                versions.append(Version(candidate_id=candidate_id, id=token, version=token))
    return versions


def _version_section(text: str) -> List[str]:
    sections: List[List[str]] = [[]]
    for line in text.splitlines():
        if SECTION_RE.match(line):
            sections.append([])
        else:
            sections[-1].append(line)
    for index, section in enumerate(sections):
        if any("Available" in line for line in section) and index + 1 < len(sections):
            return [line for line in sections[index + 1] if line.strip()]
    return []


def _parse_version_table(candidate_id: str, lines: List[str]) -> List[Version]:
    versions = []
    vendor = None
    for line in lines:
        columns = [column.strip() for column in line.split("|")]
        if len(columns) < 6 or columns[0] == "Vendor":
            continue
        vendor = columns[0] or vendor
        identifier = columns[5]
        if not identifier:
            continue
        versions.append(Version(
            candidate_id=candidate_id,
            id=identifier,
            version=columns[2] or identifier,
            vendor=vendor,
        ))
    return versions


class SdkmanPaths:
    """Layout of an SDKMAN! home directory."""

    def __init__(self, home: Path):
        self.home = home
        self.candidates = home / "candidates"
        self.archives = home / "archives"
        self.tmp = home / "tmp"

    def version_dir(self, candidate_id: str, version_id: str) -> Path:
        return self.candidates / candidate_id / version_id

    def current(self, candidate_id: str) -> Path:
        return self.candidates / candidate_id / CURRENT

    def archive(self, candidate_id: str, version_id: str) -> Optional[Path]:
        for suffix in ARCHIVE_SUFFIXES:
            path = self.archives / f"{candidate_id}-{version_id}{suffix}"
            if path.exists():
                return path
        return None

    def installed_versions(self, candidate_id: str) -> Set[str]:
        directory = self.candidates / candidate_id
        if not directory.is_dir():
            return set()
        return {
            path.name for path in directory.iterdir()
            if path.name != CURRENT and path.is_dir() and not path.is_symlink()
        }


class SdkmanDownload(DownloadHandle):
    """Streams a broker download into the archive cache from a worker thread."""

    def __init__(self, paths: SdkmanPaths, candidate_id: str, version_id: str, url: str,
                 chunk_size: int, timeout: float):
        self.paths = paths
        self.candidate_id = candidate_id
        self.version_id = version_id
        self.url = url
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._cancel = threading.Event()
        self.logger = get_module_logger("sdkman_download")

    def cancel(self) -> None:
        self._cancel.set()

    async def start(self, progress: ProgressSink) -> DownloadResult:
        loop = asyncio.get_running_loop()

        def report(value: int) -> None:
            loop.call_soon_threadsafe(progress, value)

        cancelled = await loop.run_in_executor(None, self._fetch, report)
        return DownloadResult(cancelled=cancelled)

    def _fetch(self, report: Callable[[int], None]) -> bool:
        self.paths.tmp.mkdir(parents=True, exist_ok=True)
        partial = self.paths.tmp / f"{self.candidate_id}-{self.version_id}.bin"
        self.logger.info(f"Downloading {self.url}")

        try:
            cancelled = self._stream(partial, report)
        except Exception as e:
            self.logger.error(f"Download of {self.candidate_id} {self.version_id} failed: {e}")
            partial.unlink(missing_ok=True)
            raise

        if cancelled:
            self.logger.info(f"Download of {self.candidate_id} {self.version_id} cancelled")
            partial.unlink(missing_ok=True)
            return True

        report(100)
        self.paths.archives.mkdir(parents=True, exist_ok=True)
        suffix = ".zip" if zipfile.is_zipfile(partial) else ".tar.gz"
        if suffix == ".tar.gz" and not tarfile.is_tarfile(partial):
            partial.unlink()
            raise ValueError(f"Unrecognised archive format from {self.url}")
        archive = self.paths.archives / f"{self.candidate_id}-{self.version_id}{suffix}"
        shutil.move(str(partial), str(archive))
        self.logger.info(f"Archive cached: {archive}")
        return False

    def _stream(self, partial: Path, report: Callable[[int], None]) -> bool:
        """Copy the response into ``partial``; True when cancelled part way."""
        with urllib.request.urlopen(self.url, timeout=self.timeout) as response, open(partial, "wb") as out:
            total = int(response.headers.get("Content-Length") or 0)
            received = 0
            last = 0
            while True:
                if self._cancel.is_set():
                    return True
                chunk = response.read(self.chunk_size)
                if not chunk:
                    return False
                out.write(chunk)
                received += len(chunk)
                if total:
                    percent = min(99, max(1, received * 100 // total))
                    if percent != last:
                        report(percent)
                        last = percent


class SdkmanBackend(SdkBackend):
    """Reads local state from the SDKMAN! directory and remote listings from the broker API."""

    def __init__(self, config: SdkmanConfig, platform_id: Optional[str] = None):
        self.config = config
        self.paths = SdkmanPaths(config.home)
        self.platform_id = platform_id or detect_platform()
        self.logger = get_module_logger("sdkman_backend")
        self.logger.info(f"SDKMAN! backend: home={config.home}, platform={self.platform_id}")

    async def list_candidates(self) -> List[Candidate]:
        text = await self._get_text("/candidates/list")
        candidates = parse_candidate_list(text)
        if not candidates:
            raise SourceUnavailableError("Candidate list is empty or unreadable")
        return candidates

    async def list_versions(self, candidate_id: str) -> List[Version]:
        text = await self._get_text(f"/candidates/{candidate_id}/{self.platform_id}/versions/list"
                                    f"?current=&installed=")
        installed = self.paths.installed_versions(candidate_id)
        versions = []
        for version in parse_version_list(candidate_id, text):
            versions.append(replace(
                version,
                installed=version.id in installed,
                downloaded=self.paths.archive(candidate_id, version.id) is not None,
            ))
        # versions installed by hand are not part of the remote listing
        listed = {version.id for version in versions}
        for version_id in sorted(installed - listed):
            versions.append(Version(candidate_id=candidate_id, id=version_id, version=version_id,
                                    installed=True,
                                    downloaded=self.paths.archive(candidate_id, version_id) is not None))
        return versions

    async def count_installed_versions(self, candidate_id: str) -> int:
        return len(self.paths.installed_versions(candidate_id))

    async def resolve_active_version(self, candidate_id: str) -> Optional[str]:
        current = self.paths.current(candidate_id)
        if not current.is_symlink():
            return None
        return Path(os.readlink(current)).name

    async def download(self, candidate_id: str, version_id: str) -> DownloadHandle:
        url = f"{self.config.api_url}/broker/download/{candidate_id}/{version_id}/{self.platform_id}"
        return SdkmanDownload(self.paths, candidate_id, version_id, url,
                              self.config.download_chunk_size, self.config.request_timeout)

    async def install(self, candidate_id: str, version_id: str) -> None:
        target = self.paths.version_dir(candidate_id, version_id)
        if target.exists():
            self.logger.info(f"{candidate_id} {version_id} already installed")
            return
        archive = self.paths.archive(candidate_id, version_id)
        if archive is None:
            raise FileNotFoundError(f"No downloaded archive for {candidate_id} {version_id}")

        staging = self.paths.tmp / f"{candidate_id}-{version_id}-extract"
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        if archive.name.endswith(".zip"):
            command = [self.config.unzip_executable, "-oq", str(archive), "-d", str(staging)]
        else:
            command = [self.config.tar_executable, "-xzf", str(archive), "-C", str(staging)]
        try:
            await self._run(command)
            entries = list(staging.iterdir())
            root = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(root), str(target))
        finally:
            if staging.exists():
                shutil.rmtree(staging)

        if not self.paths.current(candidate_id).exists():
            self._link_current(candidate_id, version_id)
        if not self.config.keep_downloads_available:
            archive.unlink()
        self.logger.info(f"Installed {candidate_id} {version_id} into {target}")

    async def uninstall(self, candidate_id: str, version_id: str) -> None:
        target = self.paths.version_dir(candidate_id, version_id)
        if not target.is_dir():
            raise FileNotFoundError(f"{candidate_id} {version_id} is not installed")
        if await self.resolve_active_version(candidate_id) == version_id:
            self.paths.current(candidate_id).unlink()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, shutil.rmtree, target)
        self.logger.info(f"Uninstalled {candidate_id} {version_id}")

    async def activate(self, candidate_id: str, version_id: str) -> None:
        if not self.paths.version_dir(candidate_id, version_id).is_dir():
            raise FileNotFoundError(f"{candidate_id} {version_id} is not installed")
        self._link_current(candidate_id, version_id)
        self.logger.info(f"{candidate_id} default set to {version_id}")

    def _link_current(self, candidate_id: str, version_id: str) -> None:
        current = self.paths.current(candidate_id)
        staged = current.with_name(f".{CURRENT}.tmp")
        if staged.is_symlink() or staged.exists():
            staged.unlink()
        os.symlink(version_id, staged)
        os.replace(staged, current)

    async def _get_text(self, path: str) -> str:
        url = f"{self.config.api_url}{path}"
        loop = asyncio.get_running_loop()

        def fetch() -> str:
            with urllib.request.urlopen(url, timeout=self.config.request_timeout) as response:
                return response.read().decode("utf-8", errors="replace")

        try:
            return await loop.run_in_executor(None, fetch)
        except (urllib.error.URLError, OSError) as e:
            self.logger.error(f"Request to {url} failed: {e}")
            raise SourceUnavailableError(f"Request to {url} failed: {e}", e) from e

    async def _run(self, command: List[str]) -> None:
        self.logger.debug(f"Running: {' '.join(command)}")
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.config.command_timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise RuntimeError(f"{command[0]} timed out after {self.config.command_timeout}s")
        except asyncio.CancelledError:
            self.logger.info(f"{command[0]} interrupted, killing pid {process.pid}")
            await self._kill(process)
            raise
        if process.returncode != 0:
            raise RuntimeError(f"{command[0]} exited with {process.returncode}: {stderr.decode().strip()}")

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # exited between the check and the kill
        await process.wait()
