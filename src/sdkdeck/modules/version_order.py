"""Sort key for SDK version strings.

Strings in the ``major.minor.patch-metadata`` form are compared structurally,
everything else textually.  A string with more than two dots is never parsed,
so ``22.3.r17.1-grl`` style identifiers sort as plain text.
"""

import functools
import re
from dataclasses import dataclass
from typing import Optional, Tuple

SEMVER_RE = re.compile(
    r"^(?P<major>\d+)"
    r"(?:\.(?P<minor>\d+))?"
    r"(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<metadata>.+))?$"
)

MAX_DOTS = 2


@dataclass(frozen=True)
class SemVer:
    """Parsed ``major.minor.patch[-metadata]`` version."""
    major: int
    minor: int = 0
    patch: int = 0
    metadata: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SemVer":
        match = SEMVER_RE.match(text)
        if match is None:
            raise ValueError(f"Not a semantic version: {text!r}")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            metadata=match.group("metadata"),
        )

    def key(self) -> Tuple[int, int, int, bool, str]:
        # absent metadata sorts before present metadata
        return (self.major, self.minor, self.patch, self.metadata is not None, self.metadata or "")

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.metadata is not None:
            text += f"-{self.metadata}"
        return text


def _sign(left, right) -> int:
    return (left > right) - (left < right)


@functools.total_ordering
class VersionOrder:
    """Ordering wrapper around a raw version string.

    When both sides parsed, they compare structurally.  Otherwise the raw text
    of the unparsed side is compared with the string form of the other side.
    This mixed mode is kept as-is: it never raises, but it is only transitive
    within sets that are either all parsed or all unparsed.
    """

    __slots__ = ("raw", "semver")

    def __init__(self, raw: str, semver: Optional[SemVer] = None):
        self.raw = raw
        self.semver = semver

    @classmethod
    def parse(cls, raw: str) -> "VersionOrder":
        if raw.count(".") > MAX_DOTS:
            return cls(raw)
        try:
            return cls(raw, SemVer.parse(raw))
        except ValueError:
            return cls(raw)

    @property
    def parsed(self) -> bool:
        return self.semver is not None

    def compare(self, other: "VersionOrder") -> int:
        if self.semver is not None and other.semver is not None:
            return _sign(self.semver.key(), other.semver.key())
        if self.semver is None:
            return _sign(self.raw, str(other))
        return _sign(str(self), other.raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionOrder):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "VersionOrder") -> bool:
        if not isinstance(other, VersionOrder):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash(str(self))

    def __str__(self) -> str:
        return self.raw if self.semver is None else str(self.semver)

    def __repr__(self) -> str:
        return f"VersionOrder({self.raw!r})"


def parse_version_order(raw: str) -> VersionOrder:
    """Build the sort key for ``raw``."""
    return VersionOrder.parse(raw)
