"""Artifact identities and wildcard match predicates over them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pomprune.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class Ga:
    """A ``groupId:artifactId`` pair, ordered by group then artifact."""

    group_id: str
    artifact_id: str

    @classmethod
    def of(cls, raw: str) -> Ga:
        """Parse ``groupId:artifactId``."""
        parts = raw.strip().split(":")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            msg = f"Expected groupId:artifactId, found '{raw}'"
            raise ConfigurationError(msg)
        return cls(parts[0], parts[1])

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"


MATCH_ALL_GA = Ga("*", "*")


@dataclass(frozen=True, order=True)
class Gav:
    """A ``Ga`` plus a version that may be a literal, an expression or ``None``."""

    group_id: str
    artifact_id: str
    version: str | None = None

    @classmethod
    def of(cls, raw: str) -> Gav:
        parts = raw.strip().split(":")
        if len(parts) not in (2, 3) or not all(parts):
            msg = f"Expected groupId:artifactId[:version], found '{raw}'"
            raise ConfigurationError(msg)
        return cls(parts[0], parts[1], parts[2] if len(parts) == 3 else None)

    @property
    def ga(self) -> Ga:
        return Ga(self.group_id, self.artifact_id)

    def __str__(self) -> str:
        if self.version is None:
            return f"{self.group_id}:{self.artifact_id}"
        return f"{self.group_id}:{self.artifact_id}:{self.version}"


@dataclass(frozen=True, order=True)
class Gavtcs:
    """The unit resolved against artifact repositories.

    ``exclusions`` holds ``Ga``s whose segments may be ``*``.
    """

    group_id: str
    artifact_id: str
    version: str | None = None
    type: str = "jar"
    classifier: str | None = None
    scope: str | None = None
    exclusions: tuple[Ga, ...] = field(default=(), compare=False)

    @property
    def ga(self) -> Ga:
        return Ga(self.group_id, self.artifact_id)

    @property
    def gav(self) -> Gav:
        return Gav(self.group_id, self.artifact_id, self.version)

    def with_version(self, version: str | None) -> Gavtcs:
        return Gavtcs(
            self.group_id,
            self.artifact_id,
            version,
            self.type,
            self.classifier,
            self.scope,
            self.exclusions,
        )

    def with_exclusions(self, exclusions: Iterable[Ga]) -> Gavtcs:
        return Gavtcs(
            self.group_id,
            self.artifact_id,
            self.version,
            self.type,
            self.classifier,
            self.scope,
            tuple(sorted(set(exclusions))),
        )

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id, self.version or "", self.type]
        if self.classifier:
            parts.append(self.classifier)
        return ":".join(parts)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_SEGMENTS = 3


def _compile_segment(segment: str) -> re.Pattern[str] | None:
    """Compile one pattern segment; ``None`` stands for a lone ``*``."""
    if segment == "*":
        return None
    return re.compile("^" + ".*".join(re.escape(part) for part in segment.split("*")) + "$")


class GavPattern:
    """A compiled ``groupId[:artifactId[:version]]`` matcher with ``*`` wildcards.

    Missing segments mean ``*``.  Enforcer-style trailing segments
    (type, scope, classifier) are accepted and ignored.
    """

    __slots__ = ("_matchers", "_segments", "source")

    def __init__(self, raw: str) -> None:
        stripped = raw.strip()
        if not stripped:
            msg = "Empty artifact pattern"
            raise ConfigurationError(msg)
        segments = [s.strip() or "*" for s in stripped.split(":")][:_SEGMENTS]
        segments += ["*"] * (_SEGMENTS - len(segments))
        self._segments: tuple[str, ...] = tuple(segments)
        self._matchers = tuple(_compile_segment(s) for s in segments)
        while len(segments) > 1 and segments[-1] == "*":
            segments.pop()
        self.source = ":".join(segments)

    @classmethod
    def of(cls, raw: str) -> GavPattern:
        return cls(raw)

    @property
    def group_id(self) -> str:
        return self._segments[0]

    @property
    def artifact_id(self) -> str:
        return self._segments[1]

    def matches(self, group_id: str, artifact_id: str, version: str | None = None) -> bool:
        group_matcher, artifact_matcher, version_matcher = self._matchers
        if group_matcher is not None and not group_matcher.match(group_id):
            return False
        if artifact_matcher is not None and not artifact_matcher.match(artifact_id):
            return False
        if version is None or version_matcher is None:
            return True
        return version_matcher.match(version) is not None

    def matches_ga(self, ga: Ga) -> bool:
        return self.matches(ga.group_id, ga.artifact_id)

    def as_wildcard_ga(self) -> Ga:
        """Return the group and artifact segments as a (possibly wildcard) ``Ga``."""
        return Ga(self._segments[0], self._segments[1])

    def __eq__(self, other: object) -> bool:
        return isinstance(other, GavPattern) and other.source == self.source

    def __hash__(self) -> int:
        return hash(self.source)

    def __lt__(self, other: GavPattern) -> bool:
        return self.source < other.source

    def __repr__(self) -> str:
        return f"GavPattern({self.source!r})"

    def __str__(self) -> str:
        return self.source


# ---------------------------------------------------------------------------
# Sets
# ---------------------------------------------------------------------------


class GavSet:
    """Include/exclude combination of patterns.

    ``includes is None`` matches everything, an empty ``includes`` matches
    nothing.  Excludes are evaluated after includes and win.
    """

    __slots__ = ("excludes", "includes")

    def __init__(
        self,
        includes: Sequence[GavPattern] | None = None,
        excludes: Sequence[GavPattern] = (),
    ) -> None:
        self.includes: tuple[GavPattern, ...] | None = (
            None if includes is None else tuple(includes)
        )
        self.excludes: tuple[GavPattern, ...] = tuple(excludes)

    @classmethod
    def include_all(cls) -> GavSet:
        return cls(None, ())

    @classmethod
    def exclude_all(cls) -> GavSet:
        return cls((), ())

    @classmethod
    def of(
        cls,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None = None,
        *,
        match_all_when_empty: bool = True,
    ) -> GavSet:
        """Build a set from raw pattern strings.

        *match_all_when_empty* decides what an absent or empty include list
        means at the call site.
        """
        include_patterns = [GavPattern(raw) for raw in includes or ()]
        exclude_patterns = [GavPattern(raw) for raw in excludes or ()]
        if not include_patterns and match_all_when_empty:
            return cls(None, exclude_patterns)
        return cls(include_patterns, exclude_patterns)

    def contains(self, group_id: str, artifact_id: str, version: str | None = None) -> bool:
        if self.includes is not None and not any(
            p.matches(group_id, artifact_id, version) for p in self.includes
        ):
            return False
        return not any(p.matches(group_id, artifact_id, version) for p in self.excludes)

    def contains_ga(self, ga: Ga) -> bool:
        return self.contains(ga.group_id, ga.artifact_id)

    def __contains__(self, ga: object) -> bool:
        return isinstance(ga, Ga) and self.contains_ga(ga)

    def __repr__(self) -> str:
        includes = "*" if self.includes is None else [p.source for p in self.includes]
        return f"GavSet(includes={includes}, excludes={[p.source for p in self.excludes]})"


class UnionGavSet(GavSet):
    """Contains an identity if any member set contains it."""

    __slots__ = ("members",)

    def __init__(self, members: Iterable[GavSet]) -> None:
        super().__init__((), ())
        self.members: tuple[GavSet, ...] = tuple(members)

    def contains(self, group_id: str, artifact_id: str, version: str | None = None) -> bool:
        return any(m.contains(group_id, artifact_id, version) for m in self.members)

    def __repr__(self) -> str:
        return f"UnionGavSet({list(self.members)!r})"
