"""Data models for candidates, versions, filter state and install progress."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, Optional

from .observable import State, Value
from .version_order import VersionOrder, parse_version_order

USE_COMMAND = "sdk use {candidate} {version}"


@dataclass(frozen=True)
class Candidate:
    """An installable SDK product, e.g. a JDK distribution family."""
    id: str
    name: str
    description: str = ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Candidate):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass(frozen=True)
class CandidateEntry:
    """A candidate together with the number of locally installed versions.

    Identity is the candidate id only, so an entry rebuilt with a new count
    still matches the selected one after a refresh.
    """
    candidate: Candidate
    installed_count: int = 0

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def name(self) -> str:
        return self.candidate.name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CandidateEntry):
            return NotImplemented
        return self.candidate.id == other.candidate.id

    def __hash__(self) -> int:
        return hash(self.candidate.id)

    def __str__(self) -> str:
        return self.candidate.name


@dataclass(frozen=True)
class Version:
    """A vendor/version build of a candidate as reported by the backend."""
    candidate_id: str
    id: str
    version: str
    vendor: Optional[str] = None
    installed: bool = False
    downloaded: bool = False


@dataclass(frozen=True)
class VersionEntry:
    """A version row: the backend version plus sort key and active flag."""
    candidate: Candidate
    version: Version
    order: VersionOrder = field(compare=False)
    active: bool = False

    @classmethod
    def of(cls, candidate: Candidate, version: Version, active_id: Optional[str]) -> "VersionEntry":
        return cls(
            candidate=candidate,
            version=version,
            order=parse_version_order(version.version),
            active=version.id == active_id,
        )

    @property
    def candidate_id(self) -> str:
        return self.candidate.id

    @property
    def version_id(self) -> str:
        return self.version.id

    @property
    def vendor(self) -> Optional[str]:
        return self.version.vendor

    @property
    def installed(self) -> bool:
        return self.version.installed

    @property
    def downloaded(self) -> bool:
        return self.version.downloaded

    @property
    def display_name(self) -> str:
        return f"{self.candidate.name} {self.version.id}"

    @property
    def use_command(self) -> str:
        return USE_COMMAND.format(candidate=self.candidate.id, version=self.version.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionEntry):
            return NotImplemented
        return (self.candidate.id, self.version.id) == (other.candidate.id, other.version.id)

    def __hash__(self) -> int:
        return hash((self.candidate.id, self.version.id))


class FilterState:
    """Filter text plus named boolean toggles attached to one registry.

    The text is case-folded on assignment; blank text is stored as None.
    """

    def __init__(self, toggles: Iterable[str] = ()):
        self.text: Value[Optional[str]] = Value(None, "filter.text")
        self.toggles: Dict[str, State] = {name: State(False, f"filter.{name}") for name in toggles}

    def set_text(self, text: Optional[str]) -> None:
        if text is not None:
            text = text.strip().lower() or None
        self.text.set(text)

    def get_text(self) -> Optional[str]:
        return self.text.get()

    def toggle(self, name: str) -> State:
        return self.toggles[name]

    def is_on(self, name: str) -> bool:
        return self.toggles[name].is_set()

    def subscribe(self, callback) -> None:
        """Call ``callback()`` whenever the text or any toggle changes."""
        self.text.subscribe(lambda _: callback())
        for state in self.toggles.values():
            state.subscribe(lambda _: callback())


class ProgressPhase(IntEnum):
    """Progress phases, ordered as they are reported within one task."""
    IDLE = 0
    CHECKING = 1
    DOWNLOADING = 2
    EXTRACTING = 3
    INSTALLING = 4
    DONE = 5


@dataclass(frozen=True)
class InstallProgress:
    """Snapshot of install progress; ``percent`` is None when indeterminate."""
    phase: ProgressPhase = ProgressPhase.IDLE
    percent: Optional[int] = 0
    label: str = ""

    @property
    def indeterminate(self) -> bool:
        return self.percent is None


IDLE_PROGRESS = InstallProgress()
