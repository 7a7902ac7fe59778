"""Tests for pomprune.tree.pom and pomprune.tree.source_tree."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pomprune.errors import ConfigurationError, DescriptorIOError
from pomprune.model.gav import Ga
from pomprune.tree.editor import TransformationBatch
from pomprune.tree.pom import ActiveLink, SuppressedLink, active_profiles, link_target, parse_pom
from pomprune.tree.source_tree import MavenSourceTree

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

GROUP = "org.apache.camel"
VERSION = "1.0.0-redhat-00001"
PARENT = f"{GROUP}:camel-parent:{VERSION}"
MARKER = "disabled by pomprune:prod-excludes"


# ---------------------------------------------------------------------------
# Descriptor parsing
# ---------------------------------------------------------------------------


class TestParsePom:
    def test_inherits_group_and_version(self, write_pom: Callable[..., Path]) -> None:
        path = write_pom("a/pom.xml", "a", parent=PARENT)
        module = parse_pom(path, "a/pom.xml")
        assert module.ga == Ga(GROUP, "a")
        assert module.effective_version == VERSION
        assert module.group_id is None
        assert module.directory == "a"

    def test_links(self, write_pom: Callable[..., Path]) -> None:
        path = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            modules=["a", f"<!-- <module>b</module> {MARKER} -->", "<!-- just a comment -->"],
        )
        module = parse_pom(path, "pom.xml")
        assert list(module.links()) == [ActiveLink("a"), SuppressedLink("b", MARKER)]

    def test_dependency_details(self, write_pom: Callable[..., Path]) -> None:
        path = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            dependencies=["org.acme:lib:1.0:test"],
            managed=["org.acme:bom:2.0:import"],
        )
        module = parse_pom(path, "pom.xml")
        dep = module.top_level.dependencies[0]
        assert dep.effective_scope == "test"
        assert dep.version is not None and dep.version.raw == "1.0"
        assert module.top_level.managed_dependencies[0].is_bom_import

    def test_malformed(self, tmp_path: Path) -> None:
        path = tmp_path / "pom.xml"
        path.write_text("<project><artifactId>x</project>", encoding="utf-8")
        with pytest.raises(DescriptorIOError):
            parse_pom(path, "pom.xml")

    def test_missing_artifact_id(self, tmp_path: Path) -> None:
        path = tmp_path / "pom.xml"
        path.write_text("<project><groupId>g</groupId></project>", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="artifactId"):
            parse_pom(path, "pom.xml")

    @pytest.mark.parametrize(
        ("pom_path", "link", "expected"),
        [
            ("pom.xml", "a", "a/pom.xml"),
            ("a/pom.xml", "../b", "b/pom.xml"),
            ("pom.xml", "c/custom-pom.xml", "c/custom-pom.xml"),
        ],
    )
    def test_link_target(self, pom_path: str, link: str, expected: str) -> None:
        assert link_target(pom_path, link) == expected


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


class TestMavenSourceTree:
    def test_reads_linked_modules(self, chain_tree: Path) -> None:
        tree = MavenSourceTree.of(chain_tree)
        assert set(tree.modules_by_path) == {
            "pom.xml",
            "a/pom.xml",
            "b/pom.xml",
            "c/pom.xml",
            "d/pom.xml",
        }
        assert tree.root_module.ga == Ga(GROUP, "camel-parent")
        assert tree.in_tree_parent(tree.module(Ga(GROUP, "a"))) is tree.root_module

    def test_missing_link_target(self, write_pom: Callable[..., Path]) -> None:
        root = write_pom("pom.xml", "root", group_id=GROUP, version=VERSION, modules=["gone"])
        with pytest.raises(DescriptorIOError, match="gone"):
            MavenSourceTree.of(root)

    def test_duplicate_identity(self, write_pom: Callable[..., Path]) -> None:
        root = write_pom("pom.xml", "root", group_id=GROUP, version=VERSION, modules=["a", "b"])
        write_pom("a/pom.xml", "same", parent=f"{GROUP}:root:{VERSION}")
        write_pom("b/pom.xml", "same", parent=f"{GROUP}:root:{VERSION}")
        with pytest.raises(ConfigurationError, match="Duplicate"):
            MavenSourceTree.of(root)

    def test_unknown_module(self, chain_tree: Path) -> None:
        tree = MavenSourceTree.of(chain_tree)
        with pytest.raises(ConfigurationError):
            tree.module(Ga(GROUP, "zzz"))

    def test_suppressed_links_not_followed_by_default(self, write_pom: Callable[..., Path]) -> None:
        root = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            modules=["a", f"<!-- <module>b</module> {MARKER} -->"],
        )
        write_pom("a/pom.xml", "a", parent=f"{GROUP}:root:{VERSION}")
        write_pom("b/pom.xml", "b", parent=f"{GROUP}:root:{VERSION}")
        tree = MavenSourceTree.of(root)
        assert "b/pom.xml" not in tree.modules_by_path
        assert [link.path for _, link in tree.suppressed_links(MARKER)] == ["b"]

    def test_relink_marker_follows_marked_links_in_memory(
        self, write_pom: Callable[..., Path]
    ) -> None:
        root = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            modules=[
                "a",
                f"<!-- <module>b</module> {MARKER} -->",
                "<!-- <module>c</module> someone else -->",
            ],
        )
        for name in ("a", "b", "c"):
            write_pom(f"{name}/pom.xml", name, parent=f"{GROUP}:root:{VERSION}")
        before = root.read_text(encoding="utf-8")
        tree = MavenSourceTree.of(root, relink_marker=MARKER)
        assert "b/pom.xml" in tree.modules_by_path
        assert "c/pom.xml" not in tree.modules_by_path
        assert list(tree.aggregators_of(tree.module(Ga(GROUP, "b")), active_profiles())) == [
            tree.root_module
        ]
        assert root.read_text(encoding="utf-8") == before

    def test_relink_modules_on_disk(self, write_pom: Callable[..., Path]) -> None:
        root = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            modules=["a", f"<!-- <module>b</module> {MARKER} -->"],
        )
        write_pom("a/pom.xml", "a", parent=f"{GROUP}:root:{VERSION}")
        write_pom(
            "b/pom.xml",
            "b",
            parent=f"{GROUP}:root:{VERSION}",
            packaging="pom",
            modules=[f"<!-- <module>nested</module> {MARKER} -->"],
        )
        write_pom("b/nested/pom.xml", "nested", parent=f"{GROUP}:b:{VERSION}")
        tree = MavenSourceTree.of(root).relink_modules(MARKER)
        assert "b/nested/pom.xml" in tree.modules_by_path
        assert tree.suppressed_links(MARKER) == []
        assert "<module>b</module>" in root.read_text(encoding="utf-8")

    @pytest.mark.parametrize("header", ["", "<!--\n    Licensed under the Apache License, Version 2.0\n-->\n"])
    def test_unlink_then_relink_restores_bytes(self, chain_tree: Path, header: str) -> None:
        declaration, rest = chain_tree.read_text(encoding="utf-8").split("\n", 1)
        chain_tree.write_text(f"{declaration}\n{header}{rest}", encoding="utf-8")
        before = chain_tree.read_text(encoding="utf-8")
        tree = MavenSourceTree.of(chain_tree)
        required = tree.required_closure([Ga(GROUP, "a")])
        batch = TransformationBatch()
        queued = tree.unlink_modules(required, active_profiles(), MARKER, batch)
        assert queued == 1
        assert batch.apply() == [chain_tree]
        unlinked = chain_tree.read_text(encoding="utf-8")
        assert f"<!-- <module>d</module> {MARKER} -->" in unlinked
        assert "d/pom.xml" not in MavenSourceTree.of(chain_tree).modules_by_path

        MavenSourceTree.of(chain_tree).relink_modules(MARKER)
        assert chain_tree.read_text(encoding="utf-8") == before

    def test_unlink_with_in_memory_relink_is_stable(self, chain_tree: Path) -> None:
        tree = MavenSourceTree.of(chain_tree)
        batch = TransformationBatch()
        tree.unlink_modules(tree.required_closure([Ga(GROUP, "a")]), active_profiles(), MARKER, batch)
        batch.apply()
        unlinked = chain_tree.read_text(encoding="utf-8")

        relinked = MavenSourceTree.of(chain_tree, relink_marker=MARKER)
        assert "d/pom.xml" in relinked.modules_by_path
        batch = TransformationBatch()
        relinked.unlink_modules(
            relinked.required_closure([Ga(GROUP, "a")]), active_profiles(), MARKER, batch
        )
        assert batch.apply() == []
        assert chain_tree.read_text(encoding="utf-8") == unlinked

    def test_collect_own_dependencies_includes_parent_chain(
        self, write_pom: Callable[..., Path]
    ) -> None:
        root = write_pom(
            "pom.xml",
            "root",
            group_id=GROUP,
            version=VERSION,
            modules=["a"],
            dependencies=["org.acme:everywhere:1.0"],
        )
        write_pom("a/pom.xml", "a", parent=f"{GROUP}:root:{VERSION}", dependencies=["org.acme:own:1.0"])
        tree = MavenSourceTree.of(root)
        deps = tree.collect_own_dependencies(Ga(GROUP, "a"))
        assert [d.artifact_id.raw for d in deps] == ["own", "everywhere"]
