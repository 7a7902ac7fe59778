"""BOM flattening: resolve entry points and reduce constraints to what is reachable."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pomprune.errors import ConfigurationError, ResolutionError
from pomprune.model.gav import Ga, GavPattern, GavSet, Gavtcs
from pomprune.tree.closure import FOLLOWED_SCOPES
from pomprune.tree.pom import all_profiles

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from pomprune.bom.constraints import ManagedConstraint
    from pomprune.bom.resolver import DependencyNode, Resolver
    from pomprune.tree.expressions import ExpressionEvaluator
    from pomprune.tree.pom import ProfileFilter
    from pomprune.tree.source_tree import MavenSourceTree

logger = logging.getLogger(__name__)

_EXCLUSION_SEPARATOR_RE = re.compile(r"[,\s]+")

# ---------------------------------------------------------------------------
# Entry transformations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BomEntryTransformation:
    """Configured rewrite of the raw constraints matching ``gav_pattern``."""

    gav_pattern: GavPattern
    version_pattern: re.Pattern[str] | None = None
    version_replace: str = ""
    add_exclusions: tuple[Ga, ...] = ()

    @classmethod
    def of(
        cls,
        gav_pattern: str,
        version_replacement: str | None = None,
        add_exclusions: str | None = None,
    ) -> BomEntryTransformation:
        """Build from configuration strings.

        *version_replacement* is ``regex/replacement``; the first slash
        separates both parts and must not be the first character.
        *add_exclusions* is a comma or whitespace separated list of patterns.
        """
        version_pattern = None
        version_replace = ""
        if version_replacement is not None:
            slash = version_replacement.find("/")
            if slash < 1:
                msg = (
                    "version_replacement is expected to contain exactly one slash (/); "
                    f"found '{version_replacement}'"
                )
                raise ConfigurationError(msg)
            try:
                version_pattern = re.compile(version_replacement[:slash])
            except re.error as exc:
                msg = f"Invalid version_replacement regex '{version_replacement[:slash]}': {exc}"
                raise ConfigurationError(msg) from exc
            version_replace = version_replacement[slash + 1 :]
        exclusions: set[Ga] = set()
        for raw in _EXCLUSION_SEPARATOR_RE.split(add_exclusions or ""):
            if raw:
                exclusions.add(GavPattern(raw).as_wildcard_ga())
        return cls(GavPattern(gav_pattern), version_pattern, version_replace, tuple(sorted(exclusions)))

    def matches(self, entry: Gavtcs) -> bool:
        return self.gav_pattern.matches(entry.group_id, entry.artifact_id, entry.version)

    def replace_version(self, version: str | None) -> str | None:
        if self.version_pattern is None or version is None:
            return version
        return self.version_pattern.sub(self.version_replace, version)

    def apply(self, entry: Gavtcs) -> Gavtcs:
        result = entry.with_version(self.replace_version(entry.version))
        if self.add_exclusions:
            result = result.with_exclusions((*result.exclusions, *self.add_exclusions))
        return result


def apply_transformations(
    constraints: Iterable[ManagedConstraint],
    transformations: Sequence[BomEntryTransformation],
) -> list[ManagedConstraint]:
    """Rewrite every constraint through each matching transformation, in order."""
    result = []
    for constraint in constraints:
        entry = constraint.dependency
        for transformation in transformations:
            if transformation.matches(entry):
                entry = transformation.apply(entry)
        result.append(constraint if entry is constraint.dependency else constraint.with_dependency(entry))
    return result


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _constraint_version(constraints: Sequence[ManagedConstraint], entry: Gavtcs) -> str | None:
    for constraint in constraints:
        dep = constraint.dependency
        if (
            dep.ga == entry.ga
            and (dep.type or "jar") == (entry.type or "jar")
            and (dep.classifier or "") == (entry.classifier or "")
        ):
            return dep.version
    return None


def collect_external_dependencies(
    tree: MavenSourceTree,
    evaluator: ExpressionEvaluator,
    ga: Ga,
    profile_filter: ProfileFilter,
    visited: set[Ga] | None = None,
) -> list[Gavtcs]:
    """External ``compile``/``provided`` dependencies of a tree module.

    Dependencies on other tree modules are followed recursively; the
    returned entries carry no version.
    """
    visited = visited if visited is not None else set()
    if ga in visited:
        return []
    visited.add(ga)
    result: list[Gavtcs] = []
    for dep in tree.collect_own_dependencies(ga, profile_filter):
        if dep.effective_scope not in FOLLOWED_SCOPES:
            continue
        target = evaluator.evaluate_ga(dep)
        if target in tree.modules_by_ga:
            result.extend(collect_external_dependencies(tree, evaluator, target, profile_filter, visited))
        else:
            classifier = evaluator.evaluate_raw(dep.classifier, dep.group_id.owner) if dep.classifier else None
            result.append(Gavtcs(target.group_id, target.artifact_id, None, dep.type, classifier))
    return result


def resolution_entry_points(
    constraints: Sequence[ManagedConstraint],
    entry_points: GavSet,
    tree: MavenSourceTree,
    evaluator: ExpressionEvaluator,
    profile_filter: ProfileFilter = all_profiles,
) -> list[Gavtcs]:
    """Return the artifacts to resolve, in constraint order, without duplicates.

    External constraints selected by *entry_points* are resolved as they are.
    Selected tree modules cannot be resolved from a repository, so their
    external dependencies take their place, versioned from *constraints*
    and carrying the exclusions of the owning constraint.
    """
    result: dict[Gavtcs, None] = {}
    for constraint in constraints:
        dep = constraint.dependency
        if not entry_points.contains(dep.group_id, dep.artifact_id, dep.version):
            continue
        if dep.ga not in tree.modules_by_ga:
            result.setdefault(dep, None)
            continue
        for external in collect_external_dependencies(tree, evaluator, dep.ga, profile_filter):
            version = _constraint_version(constraints, external)
            if version is None:
                logger.warning(
                    "Could not assign version to %s. Perhaps a missing BOM entry?", external.ga
                )
                continue
            entry = Gavtcs(
                external.group_id,
                external.artifact_id,
                version,
                external.type,
                external.classifier,
                None,
                dep.exclusions,
            )
            result.setdefault(entry, None)
    return list(result)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class TransitiveCollector:
    """Dependency visitor gathering every identity below the artificial root.

    Banned identities are recorded but not descended into.  For each
    identity the first path that reached it is kept.
    """

    def __init__(self, root: Ga, banned: GavSet, suspects: GavSet) -> None:
        self.root = root
        self.banned = banned
        self.suspects = suspects
        self.transitives: set[Ga] = set()
        self.paths: dict[Ga, tuple[Ga, ...]] = {}
        self._stack: list[Ga] = []

    def visit_enter(self, node: DependencyNode) -> bool:
        ga = node.artifact.ga
        self._stack.append(ga)
        if ga == self.root:
            return True
        self.transitives.add(ga)
        path = tuple(g for g in self._stack if g != self.root)
        self.paths.setdefault(ga, path)
        if self.suspects.contains_ga(ga):
            logger.warning(
                "Suspect %s pulled via\n    - %s", ga, "\n    - ".join(str(g) for g in path)
            )
        return not self.banned.contains_ga(ga)

    def visit_leave(self, node: DependencyNode) -> None:
        self._stack.pop()


@dataclass
class FlattenResult:
    """Outcome of :func:`flatten`; nothing has been written yet."""

    full: list[ManagedConstraint]
    by_origin: list[ManagedConstraint]
    reduced: list[ManagedConstraint]
    transitives_by_entry_point: dict[Gavtcs, frozenset[Ga]] = field(default_factory=dict)
    paths_by_entry_point: dict[Gavtcs, dict[Ga, tuple[Ga, ...]]] = field(default_factory=dict)
    all_required: frozenset[Ga] = frozenset()


def flatten(
    constraints: Sequence[ManagedConstraint],
    *,
    tree: MavenSourceTree,
    resolver: Resolver,
    root: Gavtcs,
    entry_points: GavSet,
    origin_excludes: GavSet | None = None,
    resolution_set: GavSet | None = None,
    suspects: GavSet | None = None,
    banned: GavSet | None = None,
    transformations: Sequence[BomEntryTransformation] = (),
    profile_filter: ProfileFilter = all_profiles,
    repositories: Sequence[str] = (),
) -> FlattenResult:
    """Resolve the selected entry points and reduce *constraints* to what they reach.

    *root* is the artificial, dependency free artifact the resolution hangs
    off; it never counts as a transitive.  *origin_excludes* drops
    constraints by the BOM that declared them and *resolution_set* filters
    the reduced output.  Resolver errors propagate before anything is
    returned.
    """
    origin_excludes = origin_excludes or GavSet.exclude_all()
    resolution_set = resolution_set or GavSet.include_all()
    suspects = suspects or GavSet.exclude_all()
    banned = banned or GavSet.exclude_all()

    full = apply_transformations(constraints, transformations)
    by_origin = [
        c
        for c in full
        if not origin_excludes.contains(c.origin.group_id, c.origin.artifact_id, c.origin.version)
    ]

    evaluator = tree.expression_evaluator(profile_filter)
    to_resolve = resolution_entry_points(by_origin, entry_points, tree, evaluator, profile_filter)
    own = tree.modules_by_ga
    managed = [c.dependency for c in by_origin if c.ga not in own]

    result = FlattenResult(full=full, by_origin=by_origin, reduced=[])
    all_required: set[Ga] = set()
    for entry in to_resolve:
        logger.debug("Resolving %s", entry)
        try:
            node = resolver.collect_dependencies(root, managed, [entry], repositories)
        except ResolutionError as exc:
            msg = f"Could not resolve dependencies of {entry}: {exc}"
            raise ResolutionError(msg) from exc
        collector = TransitiveCollector(root.ga, banned, suspects)
        node.accept(collector)
        result.transitives_by_entry_point[entry] = frozenset(collector.transitives)
        result.paths_by_entry_point[entry] = collector.paths
        all_required.update(collector.transitives)

    all_required.update(own)
    result.all_required = frozenset(all_required)
    result.reduced = [
        c
        for c in by_origin
        if c.ga in result.all_required
        and resolution_set.contains(c.dependency.group_id, c.dependency.artifact_id, c.dependency.version)
    ]
    logger.info(
        "Resolved %d entry points; %d of %d constraints required",
        len(to_resolve),
        len(result.reduced),
        len(full),
    )
    return result
