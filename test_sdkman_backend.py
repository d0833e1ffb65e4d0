"""Tests for the SDKMAN! backend: listing parsers and local directory operations."""

import asyncio
import io
import os
import shutil
import tarfile
import urllib.error
import zipfile

import pytest

from sdkdeck.config_manager import SdkmanConfig
from sdkdeck.modules.errors import SourceUnavailableError
from sdkdeck.modules.sdkman_backend import (
    SdkmanBackend,
    SdkmanDownload,
    SdkmanPaths,
    detect_platform,
    parse_candidate_list,
    parse_version_list,
)

CANDIDATE_LIST = """\
================================================================================
Available Candidates
================================================================================
q-quit                                  /-search down
j-down                                  ?-search up
k-up                                    h-help

--------------------------------------------------------------------------------
Apache ActiveMQ (Classic) (5.17.1)                  https://activemq.apache.org/

Apache ActiveMQ is a popular open source, multi-protocol, Java-based message
broker.

                                                          $ sdk install activemq
--------------------------------------------------------------------------------
Java (21.0.1-tem)                 https://projects.eclipse.org/projects/adoptium.temurin/

Java Platform, Standard Edition.

                                                              $ sdk install java
--------------------------------------------------------------------------------
"""

GROOVY_VERSIONS = """\
================================================================================
Available Groovy Versions
================================================================================
 > * 4.0.15              3.0.17              2.5.22
     4.0.14              3.0.16
   + 4.0.13

================================================================================
+ - local version
* - installed
> - currently in use
================================================================================
"""

JAVA_VERSIONS = """\
================================================================================
Available Java Versions for Linux 64bit
================================================================================
 Vendor        | Use | Version      | Dist    | Status     | Identifier
--------------------------------------------------------------------------------
 Corretto      |     | 21.0.1       | amzn    |            | 21.0.1-amzn
               |     | 17.0.9       | amzn    |            | 17.0.9-amzn
 Temurin       | >>> | 21.0.1       | tem     | installed  | 21.0.1-tem
               |     | 17.0.9       | tem     |            | 17.0.9-tem
================================================================================
Omit Identifier to install default version 21.0.1-tem:
    $ sdk install java
================================================================================
"""


@pytest.fixture
def sdkman_home(tmp_path):
    """A home with java 21.0.1-tem (current) and 17.0.9-tem installed, 21.0.1-amzn cached."""
    java = tmp_path / "candidates" / "java"
    (java / "21.0.1-tem" / "bin").mkdir(parents=True)
    (java / "17.0.9-tem").mkdir()
    os.symlink("21.0.1-tem", java / "current")
    (tmp_path / "archives").mkdir()
    (tmp_path / "archives" / "java-21.0.1-amzn.zip").write_bytes(b"")
    return tmp_path


@pytest.fixture
def sdkman(sdkman_home):
    return SdkmanBackend(SdkmanConfig(home=sdkman_home), platform_id="linuxx64")


class TestParsing:

    def test_candidate_list(self):
        candidates = parse_candidate_list(CANDIDATE_LIST)
        assert [c.id for c in candidates] == ["activemq", "java"]
        assert candidates[0].name == "Apache ActiveMQ (Classic)"
        assert candidates[0].description.startswith("Apache ActiveMQ is a popular")
        assert candidates[0].description.endswith("message broker.")
        assert candidates[1].name == "Java"

    def test_candidate_list_without_blocks(self):
        assert parse_candidate_list("nothing to see here") == []

    def test_version_grid(self):
        versions = parse_version_list("groovy", GROOVY_VERSIONS)
        assert [v.id for v in versions] == ["4.0.15", "3.0.17", "2.5.22", "4.0.14", "3.0.16", "4.0.13"]
        assert all(v.vendor is None and v.version == v.id for v in versions)

    def test_java_table_carries_vendor_down(self):
        versions = parse_version_list("java", JAVA_VERSIONS)
        assert [(v.vendor, v.version, v.id) for v in versions] == [
            ("Corretto", "21.0.1", "21.0.1-amzn"),
            ("Corretto", "17.0.9", "17.0.9-amzn"),
            ("Temurin", "21.0.1", "21.0.1-tem"),
            ("Temurin", "17.0.9", "17.0.9-tem"),
        ]

    @pytest.mark.parametrize("system, machine, expected", [
        ("Linux", "x86_64", "linuxx64"),
        ("Linux", "aarch64", "linuxarm64"),
        ("Darwin", "arm64", "darwinarm64"),
        ("Windows", "AMD64", "windowsx64"),
        ("FreeBSD", "amd64", "exotic"),
    ])
    def test_detect_platform(self, system, machine, expected):
        assert detect_platform(system, machine) == expected


class TestPaths:

    def test_installed_versions_skip_current(self, sdkman_home):
        paths = SdkmanPaths(sdkman_home)
        assert paths.installed_versions("java") == {"21.0.1-tem", "17.0.9-tem"}
        assert paths.installed_versions("groovy") == set()

    def test_archive_lookup(self, sdkman_home):
        paths = SdkmanPaths(sdkman_home)
        assert paths.archive("java", "21.0.1-amzn").name == "java-21.0.1-amzn.zip"
        assert paths.archive("java", "17.0.9-amzn") is None


class TestLocalState:

    def test_counts_and_active_version(self, sdkman):
        assert asyncio.run(sdkman.count_installed_versions("java")) == 2
        assert asyncio.run(sdkman.resolve_active_version("java")) == "21.0.1-tem"
        assert asyncio.run(sdkman.resolve_active_version("groovy")) is None

    def test_list_versions_merges_local_state(self, sdkman, monkeypatch):
        async def fake_get_text(path):
            assert path.startswith("/candidates/java/linuxx64/versions/list")
            return JAVA_VERSIONS

        monkeypatch.setattr(sdkman, "_get_text", fake_get_text)
        (sdkman.paths.candidates / "java" / "8.0.392-local").mkdir()

        versions = {v.id: v for v in asyncio.run(sdkman.list_versions("java"))}

        assert versions["21.0.1-tem"].installed
        assert versions["21.0.1-amzn"].downloaded
        assert not versions["17.0.9-amzn"].installed
        assert versions["8.0.392-local"].installed
        assert versions["8.0.392-local"].vendor is None

    def test_activate_relinks_current(self, sdkman):
        asyncio.run(sdkman.activate("java", "17.0.9-tem"))
        assert os.readlink(sdkman.paths.current("java")) == "17.0.9-tem"

    def test_activate_requires_installed_version(self, sdkman):
        with pytest.raises(FileNotFoundError):
            asyncio.run(sdkman.activate("java", "11.0.21-tem"))

    def test_uninstall_active_version_removes_current(self, sdkman):
        asyncio.run(sdkman.uninstall("java", "21.0.1-tem"))
        assert not sdkman.paths.version_dir("java", "21.0.1-tem").exists()
        assert not sdkman.paths.current("java").is_symlink()

    def test_uninstall_keeps_current_for_other_versions(self, sdkman):
        asyncio.run(sdkman.uninstall("java", "17.0.9-tem"))
        assert os.readlink(sdkman.paths.current("java")) == "21.0.1-tem"

    def test_install_already_installed_is_noop(self, sdkman):
        asyncio.run(sdkman.install("java", "21.0.1-tem"))
        assert sdkman.paths.version_dir("java", "21.0.1-tem").is_dir()

    def test_install_without_archive_fails(self, sdkman):
        with pytest.raises(FileNotFoundError):
            asyncio.run(sdkman.install("java", "11.0.21-tem"))

    @pytest.mark.skipif(shutil.which("tar") is None, reason="tar not available")
    def test_install_extracts_tarball_and_sets_current(self, sdkman):
        archive = sdkman.paths.archives / "groovy-4.0.15.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            payload = b"#!/bin/sh\n"
            info = tarfile.TarInfo("groovy-4.0.15/bin/groovy")
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))

        asyncio.run(sdkman.install("groovy", "4.0.15"))

        target = sdkman.paths.version_dir("groovy", "4.0.15")
        assert (target / "bin" / "groovy").read_bytes() == b"#!/bin/sh\n"
        assert os.readlink(sdkman.paths.current("groovy")) == "4.0.15"
        assert archive.exists()

    def test_unreachable_api_raises_source_unavailable(self, sdkman, monkeypatch):
        def refuse(*args, **kwargs):
            raise urllib.error.URLError("connection refused")

        monkeypatch.setattr("urllib.request.urlopen", refuse)
        with pytest.raises(SourceUnavailableError):
            asyncio.run(sdkman.list_candidates())


class FakeResponse(io.BytesIO):
    def __init__(self, payload: bytes):
        super().__init__(payload)
        self.headers = {"Content-Length": str(len(payload))}


def zip_payload() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("maven-3.9.5/bin/mvn", "#!/bin/sh\n" * 200)
    return buffer.getvalue()


class TestDownload:

    def test_fetch_streams_into_archive_cache(self, sdkman_home, monkeypatch):
        payload = zip_payload()
        monkeypatch.setattr("urllib.request.urlopen", lambda url, timeout: FakeResponse(payload))
        download = SdkmanDownload(SdkmanPaths(sdkman_home), "maven", "3.9.5", "https://example.invalid",
                                  chunk_size=64, timeout=5)
        reported = []

        cancelled = download._fetch(reported.append)

        assert cancelled is False
        assert reported[-1] == 100
        assert reported[:-1] == sorted(reported[:-1])
        assert all(1 <= value <= 99 for value in reported[:-1])
        assert (sdkman_home / "archives" / "maven-3.9.5.zip").read_bytes() == payload

    def test_cancelled_fetch_leaves_nothing_behind(self, sdkman_home, monkeypatch):
        monkeypatch.setattr("urllib.request.urlopen", lambda url, timeout: FakeResponse(zip_payload()))
        download = SdkmanDownload(SdkmanPaths(sdkman_home), "maven", "3.9.5", "https://example.invalid",
                                  chunk_size=64, timeout=5)
        download.cancel()
        reported = []

        assert download._fetch(reported.append) is True
        assert reported == []
        assert list((sdkman_home / "tmp").iterdir()) == []
        assert SdkmanPaths(sdkman_home).archive("maven", "3.9.5") is None

    def test_failed_fetch_removes_partial_file(self, sdkman_home, monkeypatch):
        class BrokenResponse(FakeResponse):
            def read(self, size=-1):
                if self.tell() > 0:
                    raise ConnectionResetError("connection reset by peer")
                return super().read(size)

        monkeypatch.setattr("urllib.request.urlopen", lambda url, timeout: BrokenResponse(zip_payload()))
        download = SdkmanDownload(SdkmanPaths(sdkman_home), "maven", "3.9.5", "https://example.invalid",
                                  chunk_size=64, timeout=5)

        with pytest.raises(ConnectionResetError):
            download._fetch(lambda value: None)

        assert list((sdkman_home / "tmp").iterdir()) == []
        assert SdkmanPaths(sdkman_home).archive("maven", "3.9.5") is None


class TestSubprocess:

    @pytest.mark.skipif(shutil.which("sleep") is None, reason="sleep not available")
    def test_cancelled_command_is_killed(self, sdkman, monkeypatch):
        spawned = []
        create = asyncio.create_subprocess_exec

        async def recording_exec(*args, **kwargs):
            process = await create(*args, **kwargs)
            spawned.append(process)
            return process

        monkeypatch.setattr(asyncio, "create_subprocess_exec", recording_exec)

        async def scenario():
            task = asyncio.ensure_future(sdkman._run(["sleep", "30"]))
            while not spawned:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return spawned[0].returncode

        assert asyncio.run(scenario()) is not None

    @pytest.mark.skipif(shutil.which("false") is None, reason="false not available")
    def test_failed_extraction_removes_staging(self, sdkman_home):
        backend = SdkmanBackend(SdkmanConfig(home=sdkman_home, tar_executable="false"), platform_id="linuxx64")
        (sdkman_home / "archives" / "groovy-4.0.15.tar.gz").write_bytes(b"not really a tarball")

        with pytest.raises(RuntimeError):
            asyncio.run(backend.install("groovy", "4.0.15"))

        assert not (sdkman_home / "tmp" / "groovy-4.0.15-extract").exists()
        assert not backend.paths.version_dir("groovy", "4.0.15").exists()
