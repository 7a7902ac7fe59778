"""Deterministic serialization of flattened BOMs and drift between two of them."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from lxml import etree
from rich.markup import escape

from pomprune.errors import DescriptorIOError
from pomprune.fsutil import write_if_changed
from pomprune.model.gav import Ga
from pomprune.tree.pom import POM_NAMESPACE, child, child_text, children

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from rich.console import Console

    from pomprune.bom.constraints import ManagedConstraint
    from pomprune.model.gav import Gav

_XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
_SCHEMA_LOCATION = f"{POM_NAMESPACE} https://maven.apache.org/xsd/maven-4.0.0.xsd"
_INDENT = "    "
_DECLARATION_RE = re.compile(r"^\s*<\?xml[^>]*\?>")


def _origin_text(origin: Gav, bom: Gav) -> str:
    """Origin comment body; the BOM's own version is spelled as a property
    so that release bumps do not touch every line.
    """
    if origin.version is not None and origin.version == bom.version:
        return f" {origin.group_id}:{origin.artifact_id}:${{project.version}} "
    return f" {origin} "


def flattened_text(
    bom: Gav,
    constraints: Sequence[ManagedConstraint],
    *,
    verbose: bool = False,
    encoding: str = "utf-8",
) -> str:
    """Serialize *constraints* as a ``pom``-packaged BOM with 4-space indent."""
    nsmap = {None: POM_NAMESPACE, "xsi": _XSI_NAMESPACE}
    root = etree.Element(f"{{{POM_NAMESPACE}}}project", nsmap=nsmap)
    root.set(f"{{{_XSI_NAMESPACE}}}schemaLocation", _SCHEMA_LOCATION)

    def _text(parent: etree._Element, name: str, value: str | None) -> None:
        if value:
            etree.SubElement(parent, f"{{{POM_NAMESPACE}}}{name}").text = value

    _text(root, "modelVersion", "4.0.0")
    _text(root, "groupId", bom.group_id)
    _text(root, "artifactId", bom.artifact_id)
    _text(root, "version", bom.version)
    _text(root, "packaging", "pom")
    dm = etree.SubElement(root, f"{{{POM_NAMESPACE}}}dependencyManagement")
    deps = etree.SubElement(dm, f"{{{POM_NAMESPACE}}}dependencies")
    for constraint in constraints:
        entry = constraint.dependency
        dep = etree.SubElement(deps, f"{{{POM_NAMESPACE}}}dependency")
        _text(dep, "groupId", entry.group_id)
        _text(dep, "artifactId", entry.artifact_id)
        if verbose:
            dep.append(etree.Comment(_origin_text(constraint.origin, bom)))
        _text(dep, "version", entry.version)
        if entry.type and entry.type != "jar":
            _text(dep, "type", entry.type)
        _text(dep, "classifier", entry.classifier)
        _text(dep, "scope", entry.scope)
        if entry.exclusions:
            exclusions = etree.SubElement(dep, f"{{{POM_NAMESPACE}}}exclusions")
            for excluded in sorted(entry.exclusions):
                exclusion = etree.SubElement(exclusions, f"{{{POM_NAMESPACE}}}exclusion")
                _text(exclusion, "groupId", excluded.group_id)
                _text(exclusion, "artifactId", excluded.artifact_id)
    etree.indent(root, space=_INDENT)
    body = etree.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="{encoding.upper()}"?>\n{body}\n'


def write_flattened(
    path: Path,
    bom: Gav,
    constraints: Sequence[ManagedConstraint],
    *,
    verbose: bool = False,
    encoding: str = "utf-8",
) -> bool:
    """Write a flattened BOM; returns True only when the bytes changed."""
    return write_if_changed(
        path, flattened_text(bom, constraints, verbose=verbose, encoding=encoding), encoding
    )


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConstraintChange:
    """One managed identity that differs between two flattened BOMs."""

    ga: str
    change_type: str  # "added" | "removed" | "changed"
    old_version: str | None = None
    new_version: str | None = None


@dataclass
class ConstraintDrift:
    changes: list[ConstraintChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def of_type(self, change_type: str) -> list[ConstraintChange]:
        return [c for c in self.changes if c.change_type == change_type]


def parse_flattened(text: str, source: Path | str = "<flattened>") -> dict[Ga, str | None]:
    """Managed identities and versions of a previously written flattened BOM."""
    parser = etree.XMLParser(remove_comments=True)
    try:
        root = etree.fromstring(_DECLARATION_RE.sub("", text, count=1), parser)
    except etree.XMLSyntaxError as exc:
        raise DescriptorIOError(source, f"malformed flattened BOM: {exc}") from exc
    deps = child(child(root, "dependencyManagement"), "dependencies")
    result: dict[Ga, str | None] = {}
    for dep in children(deps, "dependency"):
        ga = Ga(child_text(dep, "groupId") or "", child_text(dep, "artifactId") or "")
        result.setdefault(ga, child_text(dep, "version"))
    return result


def constraint_drift(old_text: str | None, new_constraints: Sequence[ManagedConstraint]) -> ConstraintDrift:
    """Compare a previously written flattened BOM with new constraints."""
    old = parse_flattened(old_text) if old_text else {}
    new: dict[Ga, str | None] = {}
    for constraint in new_constraints:
        new.setdefault(constraint.ga, constraint.dependency.version)
    drift = ConstraintDrift()
    for ga in sorted(set(old) | set(new)):
        if ga not in old:
            drift.changes.append(ConstraintChange(str(ga), "added", new_version=new[ga]))
        elif ga not in new:
            drift.changes.append(ConstraintChange(str(ga), "removed", old_version=old[ga]))
        elif old[ga] != new[ga]:
            drift.changes.append(ConstraintChange(str(ga), "changed", old[ga], new[ga]))
    return drift


def render_drift(drift: ConstraintDrift, console: Console, label: str = "flattened BOM") -> None:
    """Render a ConstraintDrift with ``+`` (green), ``~`` (yellow), ``-`` (red) markers."""
    # Coordinates like g:a:v must not be read as emoji codes or markup.
    label = escape(label)
    if not drift.has_changes:
        console.print(f"No constraint changes in {label}.", emoji=False)
        return

    console.print(f"[bold]Constraint drift in {label}:[/bold]", emoji=False)
    for change in drift.changes:
        if change.change_type == "added":
            console.print(f"  [green]+ {escape(f'{change.ga}:{change.new_version}')}[/green]", emoji=False)
        elif change.change_type == "removed":
            console.print(f"  [red]- {escape(f'{change.ga}:{change.old_version}')}[/red]", emoji=False)
        else:
            console.print(
                f"  [yellow]~ {escape(change.ga)}[/yellow] "
                f"{escape(str(change.old_version))} → {escape(str(change.new_version))}",
                emoji=False,
            )
    console.print(
        f"{len(drift.of_type('added'))} added, {len(drift.of_type('changed'))} changed, "
        f"{len(drift.of_type('removed'))} removed"
    )


def drift_to_dict(drift: ConstraintDrift) -> dict[str, object]:
    """Serialize a ConstraintDrift to a JSON-compatible dict."""
    return {
        "has_changes": drift.has_changes,
        "changes": [asdict(c) for c in drift.changes],
    }
