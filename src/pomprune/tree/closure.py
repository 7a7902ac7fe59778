"""Required-module closure and the excludes manifest."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from pomprune.fsutil import write_if_changed
from pomprune.tree.pom import all_profiles

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from pomprune.model.gav import Ga
    from pomprune.tree.expressions import ExpressionEvaluator
    from pomprune.tree.pom import Module, ProfileFilter
    from pomprune.tree.source_tree import MavenSourceTree

logger = logging.getLogger(__name__)

# Scopes whose edges are needed to build a module.
FOLLOWED_SCOPES: frozenset[str] = frozenset({"compile", "provided"})


def _edges(
    tree: MavenSourceTree,
    module: Module,
    profile_filter: ProfileFilter,
    evaluator: ExpressionEvaluator,
) -> Iterator[Ga]:
    parent = tree.in_tree_parent(module)
    if parent is not None:
        yield parent.ga
    for aggregator in tree.aggregators_of(module, profile_filter):
        yield aggregator.ga
    for profile in module.accepted_profiles(profile_filter):
        for dep in profile.dependencies:
            if dep.effective_scope in FOLLOWED_SCOPES:
                yield evaluator.evaluate_ga(dep)
        for dep in profile.managed_dependencies:
            if dep.is_bom_import:
                yield evaluator.evaluate_ga(dep)


def required_closure(
    tree: MavenSourceTree,
    roots: Iterable[Ga],
    profile_filter: ProfileFilter = all_profiles,
    evaluator: ExpressionEvaluator | None = None,
) -> frozenset[Ga]:
    """Return the smallest set of tree modules containing *roots* and closed
    under build edges.

    Build edges are ``compile``/``provided`` dependencies, ``import``-scoped
    BOM entries, the in-tree parent and the in-tree aggregators.  Identities
    outside the tree are leaves.  An expression that cannot be evaluated
    raises :class:`~pomprune.errors.ConfigurationError`.
    """
    if evaluator is None:
        evaluator = tree.expression_evaluator(profile_filter)
    modules = tree.modules_by_ga
    required: set[Ga] = set()
    queue: deque[Ga] = deque()
    for ga in roots:
        if ga in modules:
            queue.append(ga)
        else:
            logger.debug("Ignoring root %s: not a module of the tree", ga)

    while queue:
        ga = queue.popleft()
        if ga in required:
            continue
        required.add(ga)
        for target in _edges(tree, modules[ga], profile_filter, evaluator):
            if target in modules and target not in required:
                queue.append(target)

    logger.debug("Closure of %d modules out of %d", len(required), len(modules))
    return frozenset(required)


def complement(tree: MavenSourceTree, required: Iterable[Ga]) -> frozenset[Ga]:
    """Tree modules that are not in *required*."""
    return frozenset(tree.modules_by_ga) - frozenset(required)


def excludes_manifest_text(excludes: Iterable[Ga]) -> str:
    """One ``:<artifactId>`` line per excluded module, sorted by artifactId."""
    lines = sorted(f":{ga.artifact_id}" for ga in excludes)
    return "".join(f"{line}\n" for line in lines)


def write_excludes_manifest(path: Path, excludes: Iterable[Ga], encoding: str = "utf-8") -> bool:
    """Write the manifest; returns True when the file changed."""
    return write_if_changed(path, excludes_manifest_text(excludes), encoding)
