"""The prod-excludes pipeline: reduce a source tree to its required modules.

One pass relinks previously excluded modules, computes the closure of the
required artifacts, writes the excludes manifest, unlinks everything else
and brings the tracked-group versions of the remaining modules in line
with their detected version style.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pomprune.audit.policy import OnFailure, report_failure
from pomprune.bom.resolver import LocalRepositoryResolver
from pomprune.errors import ConfigurationError
from pomprune.fsutil import (
    copy_poms,
    delete_directory,
    diff_files,
    read_text,
    unpack_zip,
    visit_poms,
)
from pomprune.model.gav import Ga, Gav
from pomprune.tree.closure import write_excludes_manifest
from pomprune.tree.editor import (
    AddOrSetProperty,
    SetParentVersion,
    TransformationBatch,
)
from pomprune.tree.pom import link_target
from pomprune.tree.source_tree import MavenSourceTree
from pomprune.versions import VersionStyleCache, version_transformations

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from pomprune.bom.resolver import Resolver
    from pomprune.config import ExcludesConfig, PomPruneConfig
    from pomprune.tree.pom import Module

logger = logging.getLogger(__name__)

CHECK_WORK_DIR = "target/prod-excludes-work"
FIX_COMMAND = "pomprune prod-excludes"

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def parse_required_artifacts(text: str, tracked_group: str) -> set[Ga]:
    """One artifactId per line; blank lines and ``#`` comments are skipped."""
    result = set()
    for line in text.splitlines():
        artifact_id = line.split("#", 1)[0].strip()
        if artifact_id:
            result.add(Ga(tracked_group, artifact_id))
    return result


def required_artifacts(
    project_root: Path,
    settings: ExcludesConfig,
    encoding: str = "utf-8",
) -> set[Ga]:
    """Artifacts listed in the required-artifacts file plus the configured extras.

    Extras are ``artifactId`` (tracked group implied) or ``groupId:artifactId``.
    """
    path = project_root / settings.required_artifacts_file
    result = parse_required_artifacts(read_text(path, encoding), settings.tracked_group)
    for raw in settings.additional_artifacts:
        result.add(Ga.of(raw) if ":" in raw else Ga(settings.tracked_group, raw))
    logger.debug("%d required artifacts from %s", len(result), path)
    return result


def is_component(module: Module, prefixes: Iterable[str]) -> bool:
    return module.packaging == "jar" and module.pom_path.startswith(tuple(prefixes))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass
class ExcludesResult:
    """What one pass decided and touched."""

    required: frozenset[Ga]
    excludes: frozenset[Ga]
    written: list[Path] = field(default_factory=list)
    manifest_changed: bool = False
    unpacked: list[str] = field(default_factory=list)


class ProdExcludes:
    """Runs the pipeline against a project root or a scratch copy of it."""

    def __init__(self, config: PomPruneConfig, resolver: Resolver | None = None) -> None:
        self.config = config
        self.settings = config.excludes
        self.editor_settings = config.editor_settings()
        self.profile_filter = config.profile_filter()
        self.resolver = resolver or LocalRepositoryResolver(config.local_repository, config.encoding)

    def run(self, work_root: Path | None = None, *, side_effects: bool = True) -> ExcludesResult:
        """Run one pass over the descriptors under *work_root*.

        *side_effects* controls the build-output handling of excluded
        modules (deleting ``target/``, unpacking community jars).  Every
        input, community jars included, is resolved before the first write.
        """
        project_root = self.config.project_root
        work_root = work_root or project_root
        encoding = self.config.encoding
        root_pom = work_root / "pom.xml"
        includes = required_artifacts(project_root, self.settings, encoding)

        # Marked links are followed in memory and restored by the unlink batch.
        tree = MavenSourceTree.of(root_pom, encoding, relink_marker=self.settings.marker)
        evaluator = tree.expression_evaluator(self.profile_filter)
        required = tree.required_closure(includes, self.profile_filter, evaluator)
        logger.info("%d of %d modules required", len(required), len(tree.modules_by_ga))
        for module, link in tree.suppressed_links(self.settings.marker):
            target = tree.modules_by_path.get(link_target(module.pom_path, link.path))
            if target is not None and target.ga in required:
                logger.info("Relinking %s in %s", link.path, module.pom_path)

        own_version = self._own_version(tree)
        styles = VersionStyleCache(
            self.settings.version_settings(), self.settings.community_version, own_version
        )
        styles.detect_all(tree.modules_by_path.values())

        excludes = tree.complement(required)
        community_jars = self._community_jars(tree, excludes) if side_effects else {}

        result = ExcludesResult(required=required, excludes=excludes)
        result.manifest_changed = write_excludes_manifest(
            work_root / self.settings.manifest, excludes, encoding
        )
        if side_effects:
            result.unpacked = self._handle_excluded_outputs(tree, excludes, community_jars)

        batch = TransformationBatch()
        batch.add(
            tree.root_pom,
            AddOrSetProperty(self.settings.community_version_property, self.settings.community_version),
        )
        self._update_parent_versions(tree, own_version, batch)
        tree.unlink_modules(required, self.profile_filter, self.settings.marker, batch)
        result.written.extend(batch.apply(self.editor_settings))

        reduced = MavenSourceTree.of(root_pom, encoding)
        reduced_evaluator = reduced.expression_evaluator()
        for module in reduced.modules_by_path.values():
            style = styles.style_for(module)
            if style is None:
                continue
            edits = version_transformations(
                module, style, excludes, self.settings.version_settings(), reduced_evaluator
            )
            if edits:
                batch.add(reduced.pom_file(module), *edits)
        result.written.extend(batch.apply(self.editor_settings))
        return result

    def _own_version(self, tree: MavenSourceTree) -> str:
        root = tree.root_module
        raw = root.effective_version
        version = None
        if raw:
            version = tree.expression_evaluator(self.profile_filter).evaluate_raw(raw, root.pom_path)
        if not version:
            msg = f"{root.pom_path}: cannot determine the version of the root module"
            raise ConfigurationError(msg)
        return version

    def _community_jars(self, tree: MavenSourceTree, excludes: frozenset[Ga]) -> dict[Ga, Path]:
        """Locate the community jar of every excluded component."""
        jars = {}
        for ga in sorted(excludes):
            if is_component(tree.module(ga), self.settings.component_path_prefixes):
                jars[ga] = self.resolver.artifact_path(
                    Gav(self.settings.tracked_group, ga.artifact_id, self.settings.community_version)
                )
        return jars

    def _handle_excluded_outputs(
        self, tree: MavenSourceTree, excludes: frozenset[Ga], community_jars: dict[Ga, Path]
    ) -> list[str]:
        """Delete ``target/`` of excluded modules and unpack community jars of components."""
        unpacked = []
        for ga in sorted(excludes):
            module = tree.module(ga)
            module_dir = tree.pom_file(module).parent
            delete_directory(module_dir / "target")
            jar = community_jars.get(ga)
            if jar is None:
                continue
            unpack_zip(jar, module_dir / "target" / "classes")
            logger.info("Unpacked %s to %s", jar.name, module.directory)
            unpacked.append(module.pom_path)
        return unpacked

    @staticmethod
    def _update_parent_versions(
        tree: MavenSourceTree, own_version: str, batch: TransformationBatch
    ) -> None:
        """Align ``<parent><version>`` of same-group children with the root version."""
        for module in tree.modules_by_path.values():
            if module.pom_path == tree.root_module.pom_path or module.parent_gav is None:
                continue
            parent = module.parent_gav
            if parent.version != own_version and parent.group_id == module.ga.group_id:
                logger.info("%s: parent version %s -> %s", module.pom_path, parent.version, own_version)
                batch.add(tree.pom_file(module), SetParentVersion(own_version))

    # -- check mode ---------------------------------------------------------

    def check(self) -> list[str]:
        """Run the pipeline on a copy and report descriptors that would change.

        Each out-of-sync file is routed through the failure policy; the
        returned list holds every message.
        """
        policy = self.config.on_check_failure
        project_root = self.config.project_root
        work_root = project_root / CHECK_WORK_DIR
        delete_directory(work_root)
        copy_poms(project_root, work_root)
        self.run(work_root, side_effects=False)
        if policy is OnFailure.IGNORE:
            return []

        final_tree = MavenSourceTree.of(work_root / "pom.xml", self.config.encoding)
        compared = [
            pom for pom in visit_poms(work_root)
            if pom.relative_to(work_root).as_posix() in final_tree.modules_by_path
        ]
        compared.append(work_root / self.settings.manifest)

        messages = []
        for file in compared:
            relative = file.relative_to(work_root)
            diff = diff_files(file, project_root / relative, self.config.encoding)
            if not diff:
                continue
            message = (
                f"File [{relative.as_posix()}] is not in sync with "
                f"{self.settings.required_artifacts_file}:\n\n    "
                + "\n    ".join(diff)
                + f"\n\nConsider running {FIX_COMMAND}\n\n"
            )
            messages.append(message)
            report_failure(policy, message)
        return messages
