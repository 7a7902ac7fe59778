"""In-memory view of a multi-module Maven source tree."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from pomprune.errors import ConfigurationError, DescriptorIOError
from pomprune.tree import closure
from pomprune.tree.editor import CommentModules, TransformationBatch, UncommentModules
from pomprune.tree.expressions import ExpressionEvaluator
from pomprune.tree.pom import (
    ActiveLink,
    SuppressedLink,
    active_profiles,
    all_profiles,
    link_target,
    parse_pom,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from pomprune.model.gav import Ga
    from pomprune.tree.editor import EditorSettings
    from pomprune.tree.pom import Dependency, Module, ModuleLink, ProfileFilter

logger = logging.getLogger(__name__)


def _followed(link: ModuleLink, relink_marker: str | None) -> bool:
    if isinstance(link, ActiveLink):
        return True
    return relink_marker is not None and link.reason == relink_marker


class MavenSourceTree:
    """All modules reachable through ``<module>`` links from a root descriptor.

    Modules are keyed both by their tree-relative descriptor path and by
    their identity.  Instances are immutable; relinking returns a new tree.

    With a *relink_marker*, links commented out with that marker are
    followed as if they were active, so the tree looks as it would after
    :meth:`relink_modules` without touching any file.
    """

    def __init__(
        self,
        root_directory: Path,
        root_pom_path: str,
        modules: Iterable[Module],
        encoding: str = "utf-8",
        relink_marker: str | None = None,
    ) -> None:
        self.root_directory = root_directory
        self.encoding = encoding
        self.relink_marker = relink_marker
        self._root_pom_path = root_pom_path
        self.modules_by_path: dict[str, Module] = {}
        self.modules_by_ga: dict[Ga, Module] = {}
        # target descriptor path -> [(linking descriptor path, profile id)]
        self._linked_from: dict[str, list[tuple[str, str | None]]] = {}
        self._evaluators: dict[ProfileFilter, ExpressionEvaluator] = {}
        for module in modules:
            self._add(module)

    def _add(self, module: Module) -> None:
        ga = module.ga
        other = self.modules_by_ga.get(ga)
        if other is not None:
            msg = f"Duplicate module {ga} in {other.pom_path} and {module.pom_path}"
            raise ConfigurationError(msg)
        self.modules_by_path[module.pom_path] = module
        self.modules_by_ga[ga] = module
        for profile in module.profiles:
            for link in profile.links:
                if _followed(link, self.relink_marker):
                    target = link_target(module.pom_path, link.path)
                    self._linked_from.setdefault(target, []).append((module.pom_path, profile.id))

    @classmethod
    def of(
        cls, root_pom: Path, encoding: str = "utf-8", *, relink_marker: str | None = None
    ) -> MavenSourceTree:
        """Read *root_pom* and every descriptor it links, in breadth-first order."""
        root_directory = root_pom.parent
        root_path = root_pom.name
        modules: list[Module] = []
        seen = {root_path}
        queue: deque[tuple[str, str | None, str | None]] = deque([(root_path, None, None)])
        while queue:
            pom_path, linker, link = queue.popleft()
            pom_file = root_directory / pom_path
            if not pom_file.is_file():
                msg = f"module link '{link}' points at missing descriptor {pom_path}"
                raise DescriptorIOError(root_directory / (linker or pom_path), msg)
            module = parse_pom(pom_file, pom_path, encoding)
            modules.append(module)
            for entry in module.links():
                if _followed(entry, relink_marker):
                    target = link_target(pom_path, entry.path)
                    if target not in seen:
                        seen.add(target)
                        queue.append((target, pom_path, entry.path))
        logger.debug("Read %d modules below %s", len(modules), root_directory)
        return cls(root_directory, root_path, modules, encoding, relink_marker)

    # -- lookups ------------------------------------------------------------

    @property
    def root_module(self) -> Module:
        return self.modules_by_path[self._root_pom_path]

    @property
    def root_pom(self) -> Path:
        return self.root_directory / self._root_pom_path

    def module(self, ga: Ga) -> Module:
        try:
            return self.modules_by_ga[ga]
        except KeyError:
            msg = f"{ga} is not a module of the tree rooted at {self.root_directory}"
            raise ConfigurationError(msg) from None

    def pom_file(self, module: Module) -> Path:
        return self.root_directory / module.pom_path

    def in_tree_parent(self, module: Module) -> Module | None:
        if module.parent_gav is None:
            return None
        return self.modules_by_ga.get(module.parent_gav.ga)

    def aggregators_of(self, module: Module, profile_filter: ProfileFilter) -> Iterator[Module]:
        """Yield modules linking *module* through a profile accepted by *profile_filter*."""
        for linker_path, profile_id in self._linked_from.get(module.pom_path, ()):
            linker = self.modules_by_path[linker_path]
            profile = linker.profile(profile_id)
            if profile is not None and profile_filter(profile):
                yield linker

    @staticmethod
    def active_profiles(*profile_ids: str) -> ProfileFilter:
        return active_profiles(*profile_ids)

    def expression_evaluator(self, profile_filter: ProfileFilter = all_profiles) -> ExpressionEvaluator:
        evaluator = self._evaluators.get(profile_filter)
        if evaluator is None:
            evaluator = ExpressionEvaluator.for_modules(
                self.modules_by_path.values(),
                self.in_tree_parent,
                profile_filter,
                self.root_directory,
            )
            self._evaluators[profile_filter] = evaluator
        return evaluator

    def collect_own_dependencies(
        self, ga: Ga, profile_filter: ProfileFilter = all_profiles
    ) -> list[Dependency]:
        """Declared dependencies of a module and of its in-tree parent chain."""
        result: list[Dependency] = []
        module: Module | None = self.module(ga)
        visited: set[str] = set()
        while module is not None and module.pom_path not in visited:
            visited.add(module.pom_path)
            for profile in module.accepted_profiles(profile_filter):
                result.extend(profile.dependencies)
            module = self.in_tree_parent(module)
        return result

    # -- closure ------------------------------------------------------------

    def required_closure(
        self,
        roots: Iterable[Ga],
        profile_filter: ProfileFilter = all_profiles,
        evaluator: ExpressionEvaluator | None = None,
    ) -> frozenset[Ga]:
        return closure.required_closure(self, roots, profile_filter, evaluator)

    def complement(self, required: Iterable[Ga]) -> frozenset[Ga]:
        return closure.complement(self, required)

    # -- link / unlink ------------------------------------------------------

    def suppressed_links(self, marker: str) -> list[tuple[Module, SuppressedLink]]:
        return [
            (module, link)
            for module in self.modules_by_path.values()
            for link in module.links()
            if isinstance(link, SuppressedLink) and link.reason == marker
        ]

    def relink_modules(self, marker: str, settings: EditorSettings | None = None) -> MavenSourceTree:
        """Restore every link commented out with *marker*, until none is left.

        Relinked aggregators may hold suppressed links of their own, so the
        tree is re-read after each round.
        """
        tree = self
        while True:
            suppressed = tree.suppressed_links(marker)
            if not suppressed:
                return tree
            batch = TransformationBatch()
            for module, link in suppressed:
                logger.info("Relinking %s in %s", link.path, module.pom_path)
                batch.add(tree.pom_file(module), UncommentModules(marker))
            if not batch.apply(settings):
                return tree
            tree = MavenSourceTree.of(tree.root_pom, tree.encoding)

    def unlink_modules(
        self,
        required: Iterable[Ga],
        profile_filter: ProfileFilter,
        marker: str,
        batch: TransformationBatch,
    ) -> int:
        """Queue comment-outs of every link to a module outside *required*.

        On a tree read with ``relink_marker == marker`` the marked links are
        restored first, in the same batch, so a descriptor whose links end up
        as before is not rewritten.  Returns the number of links queued for
        commenting.
        """
        keep = frozenset(required)
        relink = self.relink_marker == marker
        queued = 0
        for module in self.modules_by_path.values():
            pom_file = self.pom_file(module)
            if relink and any(
                isinstance(link, SuppressedLink) and link.reason == marker for link in module.links()
            ):
                batch.add(pom_file, UncommentModules(marker))
            paths = set()
            for link in module.links(profile_filter):
                if not _followed(link, self.relink_marker if relink else None):
                    continue
                target = self.modules_by_path.get(link_target(module.pom_path, link.path))
                if target is not None and target.ga not in keep:
                    paths.add(link.path)
            if paths:
                batch.add(pom_file, CommentModules(frozenset(paths), marker))
                queued += len(paths)
        return queued
