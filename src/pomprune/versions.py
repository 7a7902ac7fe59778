"""Version-style classifier: how a module spells versions of the tracked group.

Every module of the tree references artifacts of the tracked group in one
consistent way: without a version (inherited through an imported BOM),
through a property, or as a literal.  :func:`autodetect` infers that style
from the module itself and :func:`version_transformations` produces the
minimal edits that bring every entry of the module back in line with it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pomprune.errors import ConfigurationError
from pomprune.model.gav import Ga
from pomprune.tree.editor import SetDependencyVersion, SetManagedDependencyVersion

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pomprune.tree.editor import Transformation
    from pomprune.tree.expressions import ExpressionEvaluator
    from pomprune.tree.pom import Dependency, Module

logger = logging.getLogger(__name__)

PROJECT_VERSION_EXPRESSION = "${project.version}"


class VersionStyleKind(enum.Enum):
    """How one entry's ``<version>`` is expected to look."""

    NONE = "none"  # no <version>, inherited from an imported BOM
    PROJECT_VERSION = "project-version"  # ${project.version}
    COMMUNITY_VERSION = "community-version"  # ${<community property>}
    LITERAL = "literal"  # pinned string


@dataclass(frozen=True)
class VersionSettings:
    """Names the classifier needs to know about."""

    tracked_group: str
    community_version_property: str
    bom_module: str  # tree-relative path of the BOM defining module
    bom_artifact_id: str


@dataclass(frozen=True)
class VersionStyle:
    """Style for required (``tracked``) and excluded (``community``) artifacts."""

    tracked: VersionStyleKind
    community: VersionStyleKind
    tracked_literal: str
    community_literal: str
    community_property: str

    def expected_version(self, *, community: bool) -> str | None:
        kind = self.community if community else self.tracked
        if kind is VersionStyleKind.NONE:
            return None
        if kind is VersionStyleKind.PROJECT_VERSION:
            return PROJECT_VERSION_EXPRESSION
        if kind is VersionStyleKind.COMMUNITY_VERSION:
            return f"${{{self.community_property}}}"
        return self.community_literal if community else self.tracked_literal

    def transformation(
        self,
        *,
        managed: bool,
        community: bool,
        profile_id: str | None,
        ga: Ga,
        actual_version: str | None,
    ) -> Transformation | None:
        """Return the single edit fixing *ga*'s version, or ``None`` if it conforms."""
        expected = self.expected_version(community=community)
        actual = actual_version.strip() if actual_version is not None else None
        if actual == expected:
            return None
        if managed:
            return SetManagedDependencyVersion(ga, expected, profile_id)
        return SetDependencyVersion(ga, expected, profile_id)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def _is_placeholder(version: str) -> bool:
    return version.startswith("$")


def _style_from_candidates(
    module: Module,
    candidates: list[Dependency],
    community_version: str,
    own_version: str,
    settings: VersionSettings,
) -> VersionStyle:
    first = candidates[0]
    placeholder = _is_placeholder(str(first.version))
    for other in candidates[1:]:
        if _is_placeholder(str(other.version)) != placeholder:
            msg = (
                f"{module.pom_path}: mixed version styles for {settings.tracked_group}: "
                f"{first.artifact_id}:{first.version} and {other.artifact_id}:{other.version}"
            )
            raise ConfigurationError(msg)
    if placeholder:
        tracked, community = VersionStyleKind.PROJECT_VERSION, VersionStyleKind.COMMUNITY_VERSION
    else:
        tracked, community = VersionStyleKind.LITERAL, VersionStyleKind.LITERAL
    return VersionStyle(
        tracked, community, own_version, community_version, settings.community_version_property
    )


def autodetect(
    module: Module,
    community_version: str,
    own_version: str,
    settings: VersionSettings,
) -> VersionStyle | None:
    """Infer the version style of *module*.

    Only the top-level profile is inspected.  The first rule that applies
    wins: the BOM module itself, a wholesale import of the tracked BOM, the
    managed entries of the tracked group, the declared dependencies of the
    tracked group.  Entries inspected by the deciding rule that disagree on
    placeholder vs. literal raise :class:`ConfigurationError`.
    """
    if module.pom_path == settings.bom_module:
        return VersionStyle(
            VersionStyleKind.PROJECT_VERSION,
            VersionStyleKind.LITERAL,
            own_version,
            community_version,
            settings.community_version_property,
        )

    top = module.top_level
    tracked_managed = [d for d in top.managed_dependencies if d.group_id.raw == settings.tracked_group]
    if any(d.artifact_id.raw == settings.bom_artifact_id for d in tracked_managed):
        return VersionStyle(
            VersionStyleKind.NONE,
            VersionStyleKind.NONE,
            own_version,
            community_version,
            settings.community_version_property,
        )

    candidates = [
        d
        for d in tracked_managed
        if d.artifact_id.raw != settings.bom_artifact_id and d.version is not None
    ]
    if not candidates:
        candidates = [
            d
            for d in top.dependencies
            if d.group_id.raw == settings.tracked_group and d.version is not None
        ]
    if not candidates:
        return None
    return _style_from_candidates(module, candidates, community_version, own_version, settings)


class VersionStyleCache:
    """Detected styles keyed by descriptor path, computed once per module."""

    def __init__(self, settings: VersionSettings, community_version: str, own_version: str) -> None:
        self.settings = settings
        self.community_version = community_version
        self.own_version = own_version
        self._styles: dict[str, VersionStyle | None] = {}

    def style_for(self, module: Module) -> VersionStyle | None:
        if module.pom_path not in self._styles:
            style = autodetect(module, self.community_version, self.own_version, self.settings)
            if style is not None:
                logger.debug(
                    "%s: %s/%s", module.pom_path, style.tracked.value, style.community.value
                )
            self._styles[module.pom_path] = style
        return self._styles[module.pom_path]

    def detect_all(self, modules: Iterable[Module]) -> int:
        """Detect styles of *modules*; returns how many got a style."""
        return sum(1 for module in modules if self.style_for(module) is not None)


# ---------------------------------------------------------------------------
# Transformations
# ---------------------------------------------------------------------------


def _entry_ga(dep: Dependency, evaluator: ExpressionEvaluator | None) -> Ga:
    if evaluator is None:
        return Ga(dep.group_id.raw, dep.artifact_id.raw)
    return evaluator.evaluate_ga(dep)


def version_transformations(
    module: Module,
    style: VersionStyle,
    excludes: frozenset[Ga] | set[Ga],
    settings: VersionSettings,
    evaluator: ExpressionEvaluator | None = None,
) -> list[Transformation]:
    """Edits that make every tracked-group entry of *module* follow *style*.

    Excluded artifacts follow the community style, required ones the
    tracked style.  Declared dependencies without a version are left alone.
    """
    result: list[Transformation] = []
    for profile in module.profiles:
        for dep in profile.dependencies:
            if dep.group_id.raw != settings.tracked_group or dep.version is None:
                continue
            ga = _entry_ga(dep, evaluator)
            edit = style.transformation(
                managed=False,
                community=ga in excludes,
                profile_id=profile.id,
                ga=ga,
                actual_version=dep.version.raw,
            )
            if edit is not None:
                result.append(edit)
        for dep in profile.managed_dependencies:
            if dep.group_id.raw != settings.tracked_group:
                continue
            if dep.artifact_id.raw == settings.bom_artifact_id:
                continue
            ga = _entry_ga(dep, evaluator)
            edit = style.transformation(
                managed=True,
                community=ga in excludes,
                profile_id=profile.id,
                ga=ga,
                actual_version=dep.version.raw if dep.version is not None else None,
            )
            if edit is not None:
                result.append(edit)
    return result
