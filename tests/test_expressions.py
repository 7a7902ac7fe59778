"""Tests for pomprune.tree.expressions — pre-resolved property scopes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pomprune.errors import ConfigurationError
from pomprune.tree.expressions import Unresolved, resolve_properties
from pomprune.tree.pom import active_profiles
from pomprune.tree.source_tree import MavenSourceTree

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

GROUP = "org.acme"


class TestResolveProperties:
    def test_nested_references(self) -> None:
        scope = resolve_properties({"a": "${b}-x", "b": "${c}", "c": "1"}, "pom.xml")
        assert scope == {"a": "1-x", "b": "1", "c": "1"}

    def test_cycle_is_unresolved(self) -> None:
        scope = resolve_properties({"a": "${b}", "b": "${a}", "ok": "1"}, "pom.xml")
        assert isinstance(scope["a"], Unresolved)
        assert "cycle" in scope["a"].message
        assert scope["ok"] == "1"

    def test_unknown_reference_is_unresolved(self) -> None:
        scope = resolve_properties({"a": "${missing}"}, "pom.xml")
        assert isinstance(scope["a"], Unresolved)
        assert "missing" in scope["a"].message


class TestEvaluator:
    def _tree(self, write_pom: Callable[..., Path]) -> MavenSourceTree:
        profile = (
            "    <profiles>\n"
            "        <profile>\n"
            "            <id>extra</id>\n"
            "            <properties>\n"
            "                <foo.version>9.9</foo.version>\n"
            "            </properties>\n"
            "        </profile>\n"
            "    </profiles>"
        )
        root = write_pom(
            "pom.xml",
            "parent",
            group_id=GROUP,
            version="2.0",
            packaging="pom",
            modules=["child"],
            properties={"foo.version": "1.1", "broken": "${nope}"},
            extra=profile,
        )
        write_pom(
            "child/pom.xml",
            "child",
            parent=f"{GROUP}:parent:2.0",
            properties={"bar.version": "${foo.version}-bar"},
        )
        return MavenSourceTree.of(root)

    def test_inherited_and_builtin_properties(self, write_pom: Callable[..., Path]) -> None:
        tree = self._tree(write_pom)
        evaluator = tree.expression_evaluator(active_profiles())
        assert evaluator.evaluate_raw("${bar.version}", "child/pom.xml") == "1.1-bar"
        assert evaluator.evaluate_raw("${project.version}", "child/pom.xml") == "2.0"
        assert evaluator.evaluate_raw("${project.groupId}:${project.artifactId}", "child/pom.xml") == (
            "org.acme:child"
        )

    def test_accepted_profile_properties_override(self, write_pom: Callable[..., Path]) -> None:
        tree = self._tree(write_pom)
        evaluator = tree.expression_evaluator(active_profiles("extra"))
        assert evaluator.evaluate_raw("${bar.version}", "child/pom.xml") == "9.9-bar"

    def test_unresolved_fails_only_when_used(self, write_pom: Callable[..., Path]) -> None:
        tree = self._tree(write_pom)
        evaluator = tree.expression_evaluator(active_profiles())
        assert evaluator.evaluate_raw("constant", "pom.xml") == "constant"
        with pytest.raises(ConfigurationError, match="nope"):
            evaluator.evaluate_raw("${broken}", "pom.xml")

    def test_undefined_placeholder(self, write_pom: Callable[..., Path]) -> None:
        tree = self._tree(write_pom)
        evaluator = tree.expression_evaluator(active_profiles())
        with pytest.raises(ConfigurationError, match="undefined.prop"):
            evaluator.evaluate_raw("${undefined.prop}", "child/pom.xml")
        assert evaluator.property("child/pom.xml", "undefined.prop") is None

    def test_evaluator_is_cached_per_filter(self, write_pom: Callable[..., Path]) -> None:
        tree = self._tree(write_pom)
        accept = active_profiles()
        assert tree.expression_evaluator(accept) is tree.expression_evaluator(accept)
