"""The flatten-bom pipeline: flatten, write, audit and check one BOM module."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pomprune.audit.banned import audit, banned_failure_message, banned_set, fix_banned
from pomprune.audit.checks import (
    check_deployment_pairing,
    check_required_constraints,
    check_stale,
    run_checks,
)
from pomprune.audit.policy import report_failure
from pomprune.bom.constraints import effective_constraints
from pomprune.bom.flatten import flatten
from pomprune.bom.resolver import LocalRepositoryResolver
from pomprune.bom.writer import ConstraintDrift, constraint_drift, write_flattened
from pomprune.errors import ConfigurationError
from pomprune.fsutil import read_text
from pomprune.model.gav import Gav, Gavtcs
from pomprune.tree.editor import TransformationBatch
from pomprune.tree.source_tree import MavenSourceTree

if TYPE_CHECKING:
    from pathlib import Path

    from pomprune.audit.banned import BannedViolation
    from pomprune.bom.flatten import FlattenResult
    from pomprune.bom.resolver import Resolver
    from pomprune.config import PomPruneConfig
    from pomprune.tree.pom import Module

logger = logging.getLogger(__name__)


@dataclass
class FlattenBomOutcome:
    """Everything one flatten-bom run produced."""

    bom: Gav
    result: FlattenResult
    drift: ConstraintDrift
    written: list[Path] = field(default_factory=list)
    violations: list[BannedViolation] = field(default_factory=list)
    fixed: list[Path] = field(default_factory=list)
    failed_checks: int = 0


class FlattenBom:
    """Flattens the configured BOM module of a project."""

    def __init__(self, config: PomPruneConfig, resolver: Resolver | None = None) -> None:
        self.config = config
        self.settings = config.flatten
        self.resolver = resolver or LocalRepositoryResolver(config.local_repository, config.encoding)

    def _bom_module(self, tree: MavenSourceTree) -> Module:
        if not self.settings.bom_module:
            msg = "flatten.bom_module is not configured"
            raise ConfigurationError(msg)
        module = tree.modules_by_path.get(self.settings.bom_module)
        if module is None:
            msg = f"flatten.bom_module {self.settings.bom_module} is not a module of {tree.root_pom}"
            raise ConfigurationError(msg)
        return module

    def run(self, *, fix: bool = False) -> FlattenBomOutcome:
        """Flatten, write the three flattened files, then audit and check.

        Nothing is written when resolution fails.  With *fix*, exclusions for
        banned dependencies are added to the BOM descriptor before the
        violations are reported.
        """
        config = self.config
        encoding = config.encoding
        profile_filter = config.profile_filter()
        tree = MavenSourceTree.of(config.root_pom, encoding)
        module = self._bom_module(tree)
        evaluator = tree.expression_evaluator(profile_filter)
        version = evaluator.evaluate_raw(module.effective_version or "", module.pom_path) or None
        bom = Gav(module.ga.group_id, module.ga.artifact_id, version)

        constraints = effective_constraints(tree, module, evaluator, self.resolver, profile_filter)
        banned = banned_set(self.settings.banned_dependency_resources, encoding)
        result = flatten(
            constraints,
            tree=tree,
            resolver=self.resolver,
            root=Gavtcs(bom.group_id, bom.artifact_id, bom.version, "pom"),
            entry_points=self.settings.entry_points(),
            origin_excludes=self.settings.origin_exclude_set(),
            resolution_set=self.settings.resolution_set(),
            suspects=self.settings.suspects(),
            banned=banned,
            transformations=self.settings.bom_entry_transformations,
            profile_filter=profile_filter,
        )

        base_dir = tree.pom_file(module).parent
        reduced_path = base_dir / self.settings.reduced_pom
        previous = read_text(reduced_path, encoding) if reduced_path.is_file() else None
        outcome = FlattenBomOutcome(bom, result, constraint_drift(previous, result.reduced))
        for relative, entries, verbose in (
            (self.settings.full_pom, result.full, False),
            (self.settings.reduced_verbose_pom, result.reduced, True),
            (self.settings.reduced_pom, result.reduced, False),
        ):
            path = base_dir / relative
            if write_flattened(path, bom, entries, verbose=verbose, encoding=encoding):
                outcome.written.append(path)

        own_entries = {c.ga for c in constraints if c.origin.ga == bom.ga}
        outcome.violations = audit(
            result.transitives_by_entry_point, banned, result.paths_by_entry_point, own_entries
        )
        if fix and outcome.violations:

            def _evaluate(raw: str) -> str:
                return evaluator.evaluate_raw(raw, module.pom_path)

            batch = TransformationBatch()
            fix_banned(outcome.violations, tree.pom_file(module), batch)
            outcome.fixed = batch.apply(config.editor_settings(), evaluators=lambda _path: _evaluate)
        message = banned_failure_message(outcome.violations)
        if message is not None:
            report_failure(config.on_check_failure, message)

        bom_name = bom.artifact_id
        outcome.failed_checks = run_checks(
            [
                check_stale(
                    constraints,
                    tree.modules_by_ga,
                    tracked_group=self.settings.tracked_group,
                    bom_version=bom.version,
                    bom_name=bom_name,
                ),
                check_deployment_pairing(
                    constraints,
                    tree.modules_by_ga,
                    tracked_group=self.settings.tracked_group,
                    bom_name=bom_name,
                ),
                check_required_constraints(
                    result.all_required,
                    constraints,
                    required_entries=self.settings.required_entries(),
                    banned=banned,
                    bom_name=bom_name,
                ),
            ],
            config.on_check_failure,
        )
        return outcome
