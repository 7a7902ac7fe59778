"""Shared test fixtures for pomprune: small Maven source trees on disk."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from pathlib import Path

GROUP = "org.apache.camel"
VERSION = "1.0.0-redhat-00001"


def dependency_xml(spec: str, indent: str = "            ") -> str:
    """Render ``groupId:artifactId[:version[:scope]]``; scope ``import`` implies type pom."""
    parts = spec.split(":")
    group_id, artifact_id = parts[0], parts[1]
    version = parts[2] if len(parts) > 2 and parts[2] else None
    scope = parts[3] if len(parts) > 3 else None
    lines = [
        f"{indent}<dependency>",
        f"{indent}    <groupId>{group_id}</groupId>",
        f"{indent}    <artifactId>{artifact_id}</artifactId>",
    ]
    if version:
        lines.append(f"{indent}    <version>{version}</version>")
    if scope == "import":
        lines.append(f"{indent}    <type>pom</type>")
    if scope:
        lines.append(f"{indent}    <scope>{scope}</scope>")
    lines.append(f"{indent}</dependency>")
    return "\n".join(lines)


def pom_xml(
    artifact_id: str,
    *,
    group_id: str | None = None,
    version: str | None = None,
    parent: str | None = None,
    packaging: str | None = None,
    modules: Iterable[str] = (),
    dependencies: Iterable[str] = (),
    managed: Iterable[str] = (),
    properties: Mapping[str, str] | None = None,
    extra: str = "",
) -> str:
    """Render a descriptor.

    *parent* is ``groupId:artifactId:version``; *modules* entries starting
    with ``<!--`` are inserted verbatim.
    """
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<project xmlns="http://maven.apache.org/POM/4.0.0">',
        "    <modelVersion>4.0.0</modelVersion>",
    ]
    if parent:
        p_group, p_artifact, p_version = parent.split(":")
        lines += [
            "    <parent>",
            f"        <groupId>{p_group}</groupId>",
            f"        <artifactId>{p_artifact}</artifactId>",
            f"        <version>{p_version}</version>",
            "    </parent>",
        ]
    if group_id:
        lines.append(f"    <groupId>{group_id}</groupId>")
    lines.append(f"    <artifactId>{artifact_id}</artifactId>")
    if version:
        lines.append(f"    <version>{version}</version>")
    if packaging:
        lines.append(f"    <packaging>{packaging}</packaging>")
    if properties:
        lines.append("    <properties>")
        lines += [f"        <{k}>{v}</{k}>" for k, v in properties.items()]
        lines.append("    </properties>")
    modules = list(modules)
    if modules:
        lines.append("    <modules>")
        for module in modules:
            lines.append(f"        {module}" if module.startswith("<!--") else f"        <module>{module}</module>")
        lines.append("    </modules>")
    managed = list(managed)
    if managed:
        lines += ["    <dependencyManagement>", "        <dependencies>"]
        lines += [dependency_xml(spec, "            ") for spec in managed]
        lines += ["        </dependencies>", "    </dependencyManagement>"]
    dependencies = list(dependencies)
    if dependencies:
        lines.append("    <dependencies>")
        lines += [dependency_xml(spec, "        ") for spec in dependencies]
        lines.append("    </dependencies>")
    if extra:
        lines.append(extra)
    lines.append("</project>")
    return "\n".join(lines) + "\n"


@pytest.fixture()
def write_pom(tmp_path: Path) -> Callable[..., Path]:
    """Return ``write(relative_path, artifact_id, **pom_xml_kwargs) -> Path``."""

    def _write(relative: str, artifact_id: str, **kwargs: object) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(pom_xml(artifact_id, **kwargs), encoding="utf-8")  # type: ignore[arg-type]
        return path

    return _write


@pytest.fixture()
def chain_tree(tmp_path: Path, write_pom: Callable[..., Path]) -> Path:
    """Root aggregating ``a -> b -> c`` plus an isolated ``d``; returns the root pom."""
    parent = f"{GROUP}:camel-parent:{VERSION}"
    root = write_pom(
        "pom.xml",
        "camel-parent",
        group_id=GROUP,
        version=VERSION,
        packaging="pom",
        modules=["a", "b", "c", "d"],
    )
    write_pom("a/pom.xml", "a", parent=parent, dependencies=[f"{GROUP}:b:${{project.version}}"])
    write_pom("b/pom.xml", "b", parent=parent, dependencies=[f"{GROUP}:c:${{project.version}}"])
    write_pom("c/pom.xml", "c", parent=parent)
    write_pom("d/pom.xml", "d", parent=parent)
    return root


class LocalRepository:
    """Writes artifacts into a Maven repository layout below a temp directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _dir(self, group_id: str, artifact_id: str, version: str) -> Path:
        path = self.root.joinpath(*group_id.split(".")) / artifact_id / version
        path.mkdir(parents=True, exist_ok=True)
        return path

    def add_pom(self, gav: str, **kwargs: object) -> Path:
        group_id, artifact_id, version = gav.split(":")
        path = self._dir(group_id, artifact_id, version) / f"{artifact_id}-{version}.pom"
        path.write_text(
            pom_xml(artifact_id, group_id=group_id, version=version, **kwargs),  # type: ignore[arg-type]
            encoding="utf-8",
        )
        return path

    def add_jar(self, gav: str, entries: Mapping[str, str]) -> Path:
        import zipfile

        group_id, artifact_id, version = gav.split(":")
        path = self._dir(group_id, artifact_id, version) / f"{artifact_id}-{version}.jar"
        with zipfile.ZipFile(path, "w") as archive:
            for name, content in entries.items():
                archive.writestr(name, content)
        return path


@pytest.fixture()
def local_repo(tmp_path: Path) -> LocalRepository:
    return LocalRepository(tmp_path / "m2" / "repository")


CQ_GROUP = "org.apache.camel.quarkus"
CQ_VERSION = "1.0.0"

BOM_PROJECT_CONFIG = """\
local_repository: m2/repository
flatten:
  bom_module: poms/bom/pom.xml
  resolution_entry_point_includes:
    - "org.apache.camel.quarkus:*"
"""

BANNED_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<rules xmlns="http://maven.apache.org/enforcer">
    <bannedDependencies>
        <excludes>
            <exclude>com.evil:*</exclude>
        </excludes>
    </bannedDependencies>
</rules>
"""


@pytest.fixture()
def bom_project(
    tmp_path: Path, write_pom: Callable[..., Path], local_repo: LocalRepository
) -> Path:
    """A tree with a BOM module whose ``com.x:x`` pulls ``com.evil:thing``.

    ``banned.xml`` bans ``com.evil:*``; ``pomprune.yml`` does not reference
    it until a test appends ``banned_dependency_resources``.
    """
    parent = f"{CQ_GROUP}:camel-quarkus-parent:{CQ_VERSION}"
    write_pom(
        "pom.xml",
        "camel-quarkus-parent",
        group_id=CQ_GROUP,
        version=CQ_VERSION,
        packaging="pom",
        modules=["poms/bom", "foo", "foo-deployment"],
    )
    write_pom(
        "poms/bom/pom.xml",
        "camel-quarkus-bom",
        parent=parent,
        packaging="pom",
        managed=[
            f"{CQ_GROUP}:camel-quarkus-foo:${{project.version}}",
            f"{CQ_GROUP}:camel-quarkus-foo-deployment:${{project.version}}",
            "com.x:x:1",
            "com.y:y:1",
            "com.unused:unused:1",
        ],
    )
    write_pom("foo/pom.xml", "camel-quarkus-foo", parent=parent, dependencies=["com.x:x"])
    write_pom(
        "foo-deployment/pom.xml",
        "camel-quarkus-foo-deployment",
        parent=parent,
        dependencies=[f"{CQ_GROUP}:camel-quarkus-foo"],
    )
    local_repo.add_pom("com.x:x:1", dependencies=["com.y:y:1", "com.evil:thing:6"])
    local_repo.add_pom("com.y:y:1")
    local_repo.add_pom("com.evil:thing:6")
    (tmp_path / "banned.xml").write_text(BANNED_XML, encoding="utf-8")
    (tmp_path / "pomprune.yml").write_text(BOM_PROJECT_CONFIG, encoding="utf-8")
    return tmp_path
