"""Effective ``<dependencyManagement>`` of a BOM module, with provenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pomprune.errors import ConfigurationError
from pomprune.model.gav import Gav, Gavtcs
from pomprune.tree.pom import active_profiles

if TYPE_CHECKING:
    from pomprune.bom.resolver import Resolver
    from pomprune.model.gav import Ga
    from pomprune.tree.expressions import ExpressionEvaluator
    from pomprune.tree.pom import Dependency, Module, ProfileFilter
    from pomprune.tree.source_tree import MavenSourceTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagedConstraint:
    """A managed entry plus the BOM that declared it."""

    dependency: Gavtcs
    origin: Gav

    @property
    def ga(self) -> Ga:
        return self.dependency.ga

    def with_dependency(self, dependency: Gavtcs) -> ManagedConstraint:
        return ManagedConstraint(dependency, self.origin)


def _evaluate_entry(dep: Dependency, evaluator: ExpressionEvaluator) -> Gavtcs:
    version = evaluator.evaluate_version(dep)
    ga = evaluator.evaluate_ga(dep)
    if not version:
        msg = f"{dep.group_id.owner}: managed dependency {ga} has no version"
        raise ConfigurationError(msg)
    return Gavtcs(
        ga.group_id,
        ga.artifact_id,
        version,
        dep.type,
        dep.classifier,
        dep.scope,
        dep.exclusions,
    )


def effective_constraints(
    tree: MavenSourceTree,
    bom_module: Module,
    evaluator: ExpressionEvaluator,
    resolver: Resolver,
    profile_filter: ProfileFilter | None = None,
) -> list[ManagedConstraint]:
    """Return the managed entries a consumer of *bom_module* would see.

    Own entries come first, then those inherited from the parent, then those
    of imported BOMs in declaration order.  The first declaration of an
    identity wins.
    """
    accept = profile_filter or active_profiles()
    result: list[ManagedConstraint] = []
    seen: set[Ga] = set()
    visited: set[str] = set()

    def _add(entry: Gavtcs, origin: Gav) -> None:
        if entry.ga not in seen:
            seen.add(entry.ga)
            result.append(ManagedConstraint(entry, origin))

    def _external(bom: Gav) -> None:
        for entry, origin in resolver.managed_dependencies(bom):
            _add(entry, origin)

    def _collect(module: Module) -> None:
        if module.pom_path in visited:
            return
        visited.add(module.pom_path)
        origin = Gav(
            module.ga.group_id,
            module.ga.artifact_id,
            evaluator.evaluate_raw(module.effective_version or "", module.pom_path) or None,
        )
        imports: list[Gavtcs] = []
        for profile in module.accepted_profiles(accept):
            for dep in profile.managed_dependencies:
                entry = _evaluate_entry(dep, evaluator)
                if dep.is_bom_import:
                    imports.append(entry)
                else:
                    _add(entry, origin)
        parent = tree.in_tree_parent(module)
        if parent is not None:
            _collect(parent)
        elif module.parent_gav is not None and module.parent_gav.version:
            _external(module.parent_gav)
        for bom in imports:
            imported = tree.modules_by_ga.get(bom.ga)
            if imported is not None:
                _collect(imported)
            else:
                _external(bom.gav)

    _collect(bom_module)
    logger.debug("%s: %d effective constraints", bom_module.pom_path, len(result))
    return result
