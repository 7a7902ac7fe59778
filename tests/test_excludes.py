"""Tests for pomprune.excludes — the prod-excludes pipeline and its check mode."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conftest import GROUP, VERSION
from pomprune.audit.policy import OnFailure
from pomprune.config import load_config, with_overrides
from pomprune.errors import CheckFailure, DescriptorIOError, ResolutionError
from pomprune.excludes import ProdExcludes, parse_required_artifacts
from pomprune.model.gav import Ga

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from conftest import LocalRepository

REQUIRED_FILE = "product/src/main/resources/required-productized-camel-artifacts.txt"
MARKER = "disabled by pomprune:prod-excludes"


def _require(root: Path, *artifact_ids: str) -> None:
    path = root / REQUIRED_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("# productized\n" + "".join(f"{a}\n" for a in artifact_ids), encoding="utf-8")


def _snapshot(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and "target" not in p.relative_to(root).parts
    }


@pytest.fixture()
def camel_project(tmp_path: Path, write_pom: Callable[..., Path]) -> Path:
    """Root aggregating ``a -> b -> c``, ``d`` used by ``a`` in test scope only, and a component."""
    parent = f"{GROUP}:camel-parent:{VERSION}"
    write_pom(
        "pom.xml",
        "camel-parent",
        group_id=GROUP,
        version=VERSION,
        packaging="pom",
        modules=["a", "b", "c", "d", "components/camel-comp"],
    )
    write_pom(
        "a/pom.xml",
        "a",
        parent=parent,
        dependencies=[f"{GROUP}:b:${{project.version}}", f"{GROUP}:d:${{project.version}}:test"],
    )
    write_pom("b/pom.xml", "b", parent=parent, dependencies=[f"{GROUP}:c:${{project.version}}"])
    write_pom("c/pom.xml", "c", parent=parent)
    write_pom("d/pom.xml", "d", parent=parent)
    write_pom("components/camel-comp/pom.xml", "camel-comp", parent=parent)
    (tmp_path / "pomprune.yml").write_text("local_repository: m2/repository\n", encoding="utf-8")
    _require(tmp_path, "a")
    return tmp_path


@pytest.fixture()
def community_jar(local_repo: LocalRepository) -> Path:
    return local_repo.add_jar(
        f"{GROUP}:camel-comp:3.11.1",
        {"META-INF/services/org/apache/camel/component/comp": "class=Comp\n"},
    )


def test_parse_required_artifacts() -> None:
    text = "# header\n\ncamel-core\ncamel-main  # trailing\n  \n"
    assert parse_required_artifacts(text, GROUP) == {Ga(GROUP, "camel-core"), Ga(GROUP, "camel-main")}


class TestRun:
    def test_reduces_tree(self, camel_project: Path, community_jar: Path) -> None:
        result = ProdExcludes(load_config(camel_project)).run()

        assert result.required == frozenset(
            {Ga(GROUP, "camel-parent"), Ga(GROUP, "a"), Ga(GROUP, "b"), Ga(GROUP, "c")}
        )
        assert result.excludes == frozenset({Ga(GROUP, "d"), Ga(GROUP, "camel-comp")})
        assert result.manifest_changed
        manifest = camel_project / ".mvn" / "excludes.txt"
        assert manifest.read_text(encoding="utf-8") == ":camel-comp\n:d\n"

        root_text = (camel_project / "pom.xml").read_text(encoding="utf-8")
        assert "<camel-community-version>3.11.1</camel-community-version>" in root_text
        assert f"<!-- <module>d</module> {MARKER} -->" in root_text
        assert f"<!-- <module>components/camel-comp</module> {MARKER} -->" in root_text
        assert "<module>a</module>" in root_text

        a_text = (camel_project / "a" / "pom.xml").read_text(encoding="utf-8")
        assert "<version>${camel-community-version}</version>" in a_text
        assert a_text.count("<version>${project.version}</version>") == 1

        unpacked = camel_project / "components" / "camel-comp" / "target" / "classes"
        assert (unpacked / "META-INF" / "services" / "org" / "apache" / "camel" / "component" / "comp").is_file()
        assert result.unpacked == ["components/camel-comp/pom.xml"]

    def test_second_run_changes_nothing(self, camel_project: Path, community_jar: Path) -> None:
        config = load_config(camel_project)
        ProdExcludes(config).run()
        before = _snapshot(camel_project)
        result = ProdExcludes(config).run()
        assert result.written == []
        assert not result.manifest_changed
        assert _snapshot(camel_project) == before

    def test_widening_the_required_set_relinks(self, camel_project: Path, community_jar: Path) -> None:
        config = load_config(camel_project)
        ProdExcludes(config).run()
        _require(camel_project, "a", "d")
        result = ProdExcludes(config).run()

        assert Ga(GROUP, "d") in result.required
        root_text = (camel_project / "pom.xml").read_text(encoding="utf-8")
        assert "        <module>d</module>\n" in root_text
        a_text = (camel_project / "a" / "pom.xml").read_text(encoding="utf-8")
        assert "${camel-community-version}" not in a_text
        assert (camel_project / ".mvn" / "excludes.txt").read_text(encoding="utf-8") == ":camel-comp\n"

    def test_missing_community_jar(self, camel_project: Path) -> None:
        stale = camel_project / "d" / "target" / "keep.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("built\n", encoding="utf-8")
        before = _snapshot(camel_project)

        with pytest.raises(ResolutionError, match="artifact not found"):
            ProdExcludes(load_config(camel_project)).run()

        assert _snapshot(camel_project) == before
        assert not (camel_project / ".mvn" / "excludes.txt").exists()
        assert stale.is_file()

    def test_missing_required_artifacts_file(self, camel_project: Path) -> None:
        (camel_project / REQUIRED_FILE).unlink()
        with pytest.raises(DescriptorIOError, match="cannot read"):
            ProdExcludes(load_config(camel_project)).run()


class TestCheck:
    def test_in_sync(self, camel_project: Path, community_jar: Path) -> None:
        config = load_config(camel_project)
        ProdExcludes(config).run()
        before = _snapshot(camel_project)
        assert ProdExcludes(config).check() == []
        assert _snapshot(camel_project) == before

    def test_out_of_sync_fails(self, camel_project: Path, community_jar: Path) -> None:
        config = load_config(camel_project)
        ProdExcludes(config).run()
        _require(camel_project, "a", "d")
        with pytest.raises(CheckFailure, match="is not in sync with"):
            ProdExcludes(config).check()

    def test_out_of_sync_warns(self, camel_project: Path, community_jar: Path) -> None:
        config = load_config(camel_project)
        ProdExcludes(config).run()
        _require(camel_project, "a", "d")
        messages = ProdExcludes(with_overrides(config, on_check_failure="warn")).check()
        reported = {m.split("]", 1)[0].removeprefix("File [") for m in messages}
        assert reported == {"pom.xml", "a/pom.xml", ".mvn/excludes.txt"}
        assert all(m.endswith("Consider running pomprune prod-excludes\n\n") for m in messages)
        # check mode never touches the project itself
        assert "<module>d</module> " + MARKER in (camel_project / "pom.xml").read_text(encoding="utf-8")

    def test_ignore_reports_nothing(self, camel_project: Path, community_jar: Path) -> None:
        config = with_overrides(load_config(camel_project), on_check_failure="ignore")
        assert config.on_check_failure is OnFailure.IGNORE
        assert ProdExcludes(config).check() == []
