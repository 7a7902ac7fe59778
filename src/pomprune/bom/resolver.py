"""Transitive dependency collection against a Maven repository layout."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from pomprune.errors import ConfigurationError, ResolutionError
from pomprune.model.gav import Ga, Gav, Gavtcs
from pomprune.tree.expressions import builtin_properties, interpolate, resolve_properties
from pomprune.tree.pom import parse_pom

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from pomprune.tree.expressions import ScopeValue
    from pomprune.tree.pom import Dependency

logger = logging.getLogger(__name__)

# Scopes that end up on the runtime classpath of a consumer.
TRANSITIVE_SCOPES: frozenset[str] = frozenset({"compile", "runtime"})

# ---------------------------------------------------------------------------
# Dependency tree
# ---------------------------------------------------------------------------


class DependencyVisitor(Protocol):
    def visit_enter(self, node: DependencyNode) -> bool: ...

    def visit_leave(self, node: DependencyNode) -> None: ...


@dataclass
class DependencyNode:
    """One artifact of a collected dependency tree."""

    artifact: Gavtcs
    children: list[DependencyNode] = field(default_factory=list)

    def accept(self, visitor: DependencyVisitor) -> None:
        """Walk depth-first; a False ``visit_enter`` skips the node's children."""
        if visitor.visit_enter(self):
            for node in self.children:
                node.accept(visitor)
        visitor.visit_leave(self)


class Resolver(Protocol):
    """Collects the transitive dependency tree of an artificial root."""

    def collect_dependencies(
        self,
        root: Gavtcs,
        managed: Sequence[Gavtcs],
        dependencies: Sequence[Gavtcs],
        repositories: Sequence[str] = (),
    ) -> DependencyNode: ...

    def artifact_path(self, gav: Gav, type: str = "jar") -> Path: ...

    def managed_dependencies(self, bom: Gav) -> list[tuple[Gavtcs, Gav]]: ...


def is_excluded(ga: Ga, exclusions: frozenset[Ga] | set[Ga] | tuple[Ga, ...]) -> bool:
    """Maven exclusion match; either segment of an exclusion may be ``*``."""
    return any(
        e.group_id in ("*", ga.group_id) and e.artifact_id in ("*", ga.artifact_id)
        for e in exclusions
    )


def _check_version(ga: Ga, version: str | None, declared_by: str) -> str:
    if not version:
        msg = f"{ga}: no version could be determined (declared by {declared_by})"
        raise ResolutionError(msg)
    if version[0] in "[(":
        msg = f"{ga}:{version}: version ranges are not supported (declared by {declared_by})"
        raise ResolutionError(msg)
    return version


# ---------------------------------------------------------------------------
# Local repository resolver
# ---------------------------------------------------------------------------


@dataclass
class _EffectivePom:
    gav: Gav
    raw_properties: dict[str, str]
    managed: dict[Ga, Gavtcs]
    origins: dict[Ga, Gav]  # declaring BOM of every managed entry
    dependencies: list[Gavtcs]
    optional: set[Ga]


class LocalRepositoryResolver:
    """Reads POMs from ``<repository>/<group path>/<artifactId>/<version>/``.

    Parent inheritance, property interpolation, BOM imports and dependency
    management of the external POMs are honoured; conflicts are resolved
    nearest-first in breadth-first order.
    """

    def __init__(self, repository: Path, encoding: str = "utf-8") -> None:
        self.repository = repository
        self.encoding = encoding
        self._effective_poms: dict[Gav, _EffectivePom] = {}

    def artifact_path(self, gav: Gav, type: str = "jar") -> Path:
        """Return the file of *gav* in the repository."""
        if gav.version is None:
            msg = f"{gav}: cannot locate an artifact without a version"
            raise ResolutionError(msg)
        extension = "pom" if type == "pom" else "jar"
        path = (
            self.repository.joinpath(*gav.group_id.split("."))
            / gav.artifact_id
            / gav.version
            / f"{gav.artifact_id}-{gav.version}.{extension}"
        )
        if not path.is_file():
            msg = f"{gav}: artifact not found ({path})"
            raise ResolutionError(msg)
        return path

    # -- effective model ----------------------------------------------------

    def _evaluate(self, raw: str | None, scope: Mapping[str, ScopeValue], owner: str) -> str | None:
        if raw is None:
            return None
        try:
            return interpolate(raw, scope, owner)
        except ConfigurationError as exc:
            raise ResolutionError(str(exc)) from exc

    def _to_gavtcs(
        self, dep: Dependency, scope: Mapping[str, ScopeValue], owner: str
    ) -> Gavtcs:
        return Gavtcs(
            group_id=self._evaluate(dep.group_id.raw, scope, owner) or "",
            artifact_id=self._evaluate(dep.artifact_id.raw, scope, owner) or "",
            version=self._evaluate(dep.version.raw if dep.version else None, scope, owner),
            type=dep.type,
            classifier=dep.classifier,
            scope=dep.scope,
            exclusions=dep.exclusions,
        )

    def _effective(self, gav: Gav, chain: tuple[Gav, ...] = ()) -> _EffectivePom:
        cached = self._effective_poms.get(gav)
        if cached is not None:
            return cached
        if gav in chain:
            msg = f"Cyclic parent or import chain: {' -> '.join(str(g) for g in (*chain, gav))}"
            raise ResolutionError(msg)
        path = self.artifact_path(gav, "pom")
        owner = str(path)
        try:
            module = parse_pom(path, owner, self.encoding)
        except ConfigurationError as exc:
            raise ResolutionError(f"{gav}: {exc}") from exc

        parent = None
        if module.parent_gav is not None:
            parent = self._effective(module.parent_gav, (*chain, gav))

        raw_properties = dict(parent.raw_properties) if parent else {}
        profiles = [p for p in module.profiles if p.id is None or p.active_by_default]
        for profile in profiles:
            raw_properties.update(profile.properties)
        scope = resolve_properties({**raw_properties, **builtin_properties(module)}, owner)

        managed: dict[Ga, Gavtcs] = {}
        origins: dict[Ga, Gav] = {}
        imports: list[Gavtcs] = []
        for profile in profiles:
            for dep in profile.managed_dependencies:
                entry = self._to_gavtcs(dep, scope, owner)
                if dep.is_bom_import:
                    imports.append(entry)
                elif entry.ga not in managed:
                    managed[entry.ga] = entry
                    origins[entry.ga] = gav
        if parent:
            for ga, entry in parent.managed.items():
                if ga not in managed:
                    managed[ga] = entry
                    origins[ga] = parent.origins[ga]
        for bom in imports:
            bom_gav = Gav(bom.group_id, bom.artifact_id, _check_version(bom.ga, bom.version, owner))
            imported = self._effective(bom_gav, (*chain, gav))
            for ga, entry in imported.managed.items():
                if ga not in managed:
                    managed[ga] = entry
                    origins[ga] = imported.origins[ga]

        dependencies: dict[Ga, Gavtcs] = {}
        optional: set[Ga] = set(parent.optional) if parent else set()
        if parent:
            dependencies.update((d.ga, d) for d in parent.dependencies)
        for profile in profiles:
            for dep in profile.dependencies:
                entry = self._to_gavtcs(dep, scope, owner)
                dependencies[entry.ga] = entry
                if dep.optional:
                    optional.add(entry.ga)
                else:
                    optional.discard(entry.ga)

        effective = _EffectivePom(
            gav, raw_properties, managed, origins, list(dependencies.values()), optional
        )
        self._effective_poms[gav] = effective
        return effective

    def managed_dependencies(self, bom: Gav) -> list[tuple[Gavtcs, Gav]]:
        """Effective ``<dependencyManagement>`` of an external BOM with the
        declaring BOM of every entry.
        """
        effective = self._effective(bom)
        return [(entry, effective.origins[ga]) for ga, entry in effective.managed.items()]

    # -- collection ---------------------------------------------------------

    def collect_dependencies(
        self,
        root: Gavtcs,
        managed: Sequence[Gavtcs],
        dependencies: Sequence[Gavtcs],
        repositories: Sequence[str] = (),
    ) -> DependencyNode:
        """Collect the tree below an artificial *root* declaring *dependencies*.

        *managed* overrides versions and adds exclusions anywhere in the tree.
        *repositories* are accepted for interface compatibility; only the
        local repository is consulted.
        """
        if repositories:
            logger.debug("Ignoring remote repositories %s", ", ".join(repositories))
        root_managed: dict[Ga, Gavtcs] = {}
        for entry in managed:
            root_managed.setdefault(entry.ga, entry)

        root_node = DependencyNode(root)
        seen: set[Ga] = {root.ga}
        queue: deque[tuple[DependencyNode, frozenset[Ga]]] = deque()

        def _add(parent: DependencyNode, dep: Gavtcs, version: str | None, inherited: frozenset[Ga]) -> None:
            override = root_managed.get(dep.ga)
            if override is not None and override.version:
                version = override.version
            version = _check_version(dep.ga, version, str(parent.artifact.gav))
            exclusions = inherited | frozenset(dep.exclusions)
            if override is not None:
                exclusions |= frozenset(override.exclusions)
            node = DependencyNode(dep.with_version(version))
            parent.children.append(node)
            seen.add(dep.ga)
            queue.append((node, exclusions))

        for dep in dependencies:
            if dep.ga not in seen:
                _add(root_node, dep, dep.version, frozenset())

        while queue:
            node, exclusions = queue.popleft()
            effective = self._effective(node.artifact.gav)
            for dep in effective.dependencies:
                if (dep.scope or "compile") not in TRANSITIVE_SCOPES:
                    continue
                if dep.ga in effective.optional or dep.ga in seen or is_excluded(dep.ga, exclusions):
                    continue
                version = dep.version
                if version is None and dep.ga in effective.managed:
                    version = effective.managed[dep.ga].version
                _add(node, dep, version, exclusions)
        return root_node
