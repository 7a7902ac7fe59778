"""Tests for pomprune.flatten_bom — the end-to-end flatten-bom pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pomprune.config import load_config
from pomprune.errors import CheckFailure, ConfigurationError
from pomprune.flatten_bom import FlattenBom
from pomprune.model.gav import Ga, Gav

if TYPE_CHECKING:
    from pathlib import Path

CQ = "org.apache.camel.quarkus"
GENERATED = ("flattened-full-pom.xml", "flattened-reduced-verbose-pom.xml", "flattened-reduced-pom.xml")


def _append_config(project: Path, text: str) -> None:
    config = project / "pomprune.yml"
    config.write_text(config.read_text(encoding="utf-8") + text, encoding="utf-8")


def _enable_banned(project: Path) -> None:
    _append_config(project, "  banned_dependency_resources:\n    - banned.xml\n")


class TestClean:
    def test_writes_three_files_once(self, bom_project: Path) -> None:
        outcome = FlattenBom(load_config(bom_project)).run()
        generated = bom_project / "poms" / "bom" / "src" / "main" / "generated"
        assert sorted(p.name for p in outcome.written) == sorted(GENERATED)
        assert all((generated / name).is_file() for name in GENERATED)
        assert outcome.bom == Gav(CQ, "camel-quarkus-bom", "1.0.0")
        assert outcome.violations == []
        assert outcome.failed_checks == 0
        assert outcome.drift.has_changes

        reduced = (generated / "flattened-reduced-pom.xml").read_text(encoding="utf-8")
        assert "<artifactId>com.unused</artifactId>" not in reduced
        assert "<artifactId>unused</artifactId>" not in reduced
        assert "<artifactId>y</artifactId>" in reduced
        full = (generated / "flattened-full-pom.xml").read_text(encoding="utf-8")
        assert "<artifactId>unused</artifactId>" in full
        verbose = (generated / "flattened-reduced-verbose-pom.xml").read_text(encoding="utf-8")
        assert f"<!-- {CQ}:camel-quarkus-bom:${{project.version}} -->" in verbose

        again = FlattenBom(load_config(bom_project)).run()
        assert again.written == []
        assert not again.drift.has_changes

    def test_missing_bom_module(self, bom_project: Path) -> None:
        (bom_project / "pomprune.yml").write_text(
            "local_repository: m2/repository\nflatten:\n  bom_module: poms/nope/pom.xml\n",
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="poms/nope/pom.xml"):
            FlattenBom(load_config(bom_project)).run()

    def test_bom_module_not_configured(self, bom_project: Path) -> None:
        (bom_project / "pomprune.yml").write_text("local_repository: m2/repository\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not configured"):
            FlattenBom(load_config(bom_project)).run()


class TestBanned:
    def test_fix_adds_exclusion_and_still_fails(self, bom_project: Path) -> None:
        _enable_banned(bom_project)
        with pytest.raises(CheckFailure, match="com.evil:thing"):
            FlattenBom(load_config(bom_project)).run(fix=True)

        bom_text = (bom_project / "poms" / "bom" / "pom.xml").read_text(encoding="utf-8")
        assert (
            "<exclusion>\n"
            "                        <groupId>com.evil</groupId>\n"
            "                        <artifactId>thing</artifactId>\n"
            "                    </exclusion>"
        ) in bom_text

        # the exclusion cuts the path, so the next run is clean
        outcome = FlattenBom(load_config(bom_project)).run()
        assert outcome.violations == []

    def test_warn_reports_without_editing(self, bom_project: Path) -> None:
        _enable_banned(bom_project)
        _append_config(bom_project, "on_check_failure: warn\n")
        before = (bom_project / "poms" / "bom" / "pom.xml").read_bytes()
        outcome = FlattenBom(load_config(bom_project)).run()
        assert [(str(v.entry_point.gav), v.banned, v.owner) for v in outcome.violations] == [
            ("com.x:x:1", Ga("com.evil", "thing"), Ga("com.x", "x"))
        ]
        assert outcome.fixed == []
        assert (bom_project / "poms" / "bom" / "pom.xml").read_bytes() == before


class TestChecks:
    def test_stale_entry_fails(self, bom_project: Path) -> None:
        bom_pom = bom_project / "poms" / "bom" / "pom.xml"
        text = bom_pom.read_text(encoding="utf-8").replace(
            "camel-quarkus-foo-deployment</artifactId>", "camel-quarkus-gone-deployment</artifactId>"
        )
        bom_pom.write_text(text, encoding="utf-8")
        _append_config(
            bom_project,
            "  resolution_entry_point_excludes:\n    - org.apache.camel.quarkus:camel-quarkus-gone-deployment\n",
        )
        with pytest.raises(CheckFailure, match="non-existent"):
            FlattenBom(load_config(bom_project)).run()

    def test_failed_checks_counted_under_warn(self, bom_project: Path) -> None:
        _append_config(bom_project, "  required_bom_entry_includes: [com.unused]\non_check_failure: warn\n")
        outcome = FlattenBom(load_config(bom_project)).run()
        assert outcome.failed_checks == 1
